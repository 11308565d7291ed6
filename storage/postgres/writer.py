"""Launchpad store - Facade delegating to the pool, schema and repositories."""
import logging

from common.config.settings import DatabaseConfig
from .pool import PostgresConnectionPool
from .schema import SchemaManager
from .repositories import (
    TokenRepository,
    TradeRepository,
    HolderRepository,
    PortfolioRepository,
    IPFSCacheRepository,
    IndexerStateRepository,
)

logger = logging.getLogger(__name__)


class LaunchpadStore:
    """
    PostgreSQL store facade.

    Owns the connection pool and exposes one repository per table:
    - tokens, trades, holders, portfolios, ipfs_cache, indexer_state
    """

    def __init__(self, pool: PostgresConnectionPool, initialize_schema: bool = True):
        """
        Args:
            pool: PostgresConnectionPool instance
            initialize_schema: create missing tables on startup
        """
        self.pool = pool
        self.schema_manager = SchemaManager(self.pool)
        self.tokens = TokenRepository(self.pool)
        self.trades = TradeRepository(self.pool)
        self.holders = HolderRepository(self.pool)
        self.portfolios = PortfolioRepository(self.pool)
        self.ipfs_cache = IPFSCacheRepository(self.pool)
        self.indexer_state = IndexerStateRepository(self.pool)

        if initialize_schema:
            self.schema_manager.initialize_schema()

    @classmethod
    def from_config(cls, config: DatabaseConfig, initialize_schema: bool = True) -> 'LaunchpadStore':
        try:
            pool = PostgresConnectionPool(
                dsn=config.url,
                host=config.host,
                port=config.port,
                database=config.database,
                user=config.user,
                password=config.password,
                min_conn=config.min_connections,
                max_conn=config.max_connections,
            )
        except Exception as e:
            logger.error(f"Failed to initialize LaunchpadStore: {e}")
            raise
        return cls(pool, initialize_schema=initialize_schema)

    def get_connection(self):
        """Context manager for getting a connection from the pool."""
        return self.pool.get_connection()

    def ping(self) -> bool:
        return self.pool.ping()

    def close(self):
        """Close all connections in the pool."""
        self.pool.close()
