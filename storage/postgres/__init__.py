"""PostgreSQL storage for tokens, trades, holders and portfolios."""
from .pool import PostgresConnectionPool
from .writer import LaunchpadStore

__all__ = ['PostgresConnectionPool', 'LaunchpadStore']
