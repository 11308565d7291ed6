"""
Exception hierarchy shared by the indexer, workers and API.
"""
from typing import Optional


class LaunchpadError(Exception):
    """Base error carrying the HTTP status it maps to"""
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(LaunchpadError):
    status_code = 400


class NotFoundError(LaunchpadError):
    status_code = 404

    def __init__(self, resource: str = 'Resource'):
        super().__init__(f"{resource} not found")


class RateLimitError(LaunchpadError):
    status_code = 429

    def __init__(self, message: str = 'Too many requests'):
        super().__init__(message)


class BlockchainError(LaunchpadError):
    """RPC or chain-level failure"""
    status_code = 503

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class ContractCallError(BlockchainError):
    """Reverted or malformed call; retrying will not help"""


class ConfigurationError(LaunchpadError):
    pass
