"""
PostgreSQL connection pool manager.

Provides thread-safe connection pooling with proper resource management.
"""
import logging
from contextlib import contextmanager
from typing import Optional

import psycopg2
from psycopg2 import pool

logger = logging.getLogger(__name__)


class PostgresConnectionPool:
    """
    Thread-safe PostgreSQL connection pool.

    Accepts either a DSN (``DATABASE_URL``) or discrete connection
    parameters. Connections are handed out through ``get_connection()``.
    """

    def __init__(
        self,
        dsn: Optional[str] = None,
        host: Optional[str] = None,
        port: Optional[int] = None,
        database: Optional[str] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        min_conn: int = 1,
        max_conn: int = 20
    ):
        """
        Initialize connection pool.

        Args:
            dsn: libpq connection string; takes precedence over the other fields
            host: Database host (default: localhost)
            port: Database port (default: 5432)
            database: Database name (default: launchpad)
            user: Database user (default: postgres)
            password: Database password
            min_conn: Minimum connections in pool
            max_conn: Maximum connections in pool
        """
        self.dsn = dsn
        self.host = host or 'localhost'
        self.port = port or 5432
        self.database = database or 'launchpad'
        self.user = user or 'postgres'
        self.password = password
        self.min_conn = min_conn
        self.max_conn = max_conn

        try:
            if dsn:
                self.pool = psycopg2.pool.ThreadedConnectionPool(min_conn, max_conn, dsn=dsn)
                target = 'DATABASE_URL'
            else:
                self.pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn=min_conn,
                    maxconn=max_conn,
                    host=self.host,
                    port=self.port,
                    database=self.database,
                    user=self.user,
                    password=self.password
                )
                target = f"{self.host}:{self.port}/{self.database}"
            logger.info(f"Connection pool created: {target} (min={min_conn}, max={max_conn})")
        except Exception as e:
            logger.error(f"Failed to create connection pool: {e}")
            raise

    @contextmanager
    def get_connection(self):
        """
        Context manager for getting a connection from the pool.

        Automatically commits on success, rolls back on error, and returns
        the connection to the pool.

        Example:
            with pool.get_connection() as conn:
                cur = conn.cursor()
                cur.execute("SELECT address FROM tokens")
        """
        conn = self.pool.getconn()
        try:
            yield conn
            conn.commit()
        except Exception as e:
            conn.rollback()
            logger.error(f"Database error in connection context: {e}")
            raise
        finally:
            self.pool.putconn(conn)

    def ping(self) -> bool:
        """Run a trivial query; False when the database is unreachable."""
        try:
            with self.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
                    cur.fetchone()
            return True
        except Exception as e:
            logger.warning(f"Database ping failed: {e}")
            return False

    def close(self):
        """Close all connections in the pool."""
        if hasattr(self, 'pool') and self.pool:
            self.pool.closeall()
            logger.info("Connection pool closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
