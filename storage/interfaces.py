"""Storage interfaces using Protocol for duck typing."""
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class LaunchpadRepository(Protocol):
    """
    Protocol defining the storage surface used by the indexer, workers
    and services.

    Any backend exposing these repositories (the PostgreSQL store, or an
    in-memory fake in tests) can be handed to the service layer.
    """

    tokens: Any
    trades: Any
    holders: Any
    portfolios: Any
    ipfs_cache: Any
    indexer_state: Any

    def ping(self) -> bool:
        """
        Check connectivity.

        Returns:
            True if the backend answered
        """
        ...

    def close(self) -> None:
        """Close all connections and cleanup resources."""
        ...
