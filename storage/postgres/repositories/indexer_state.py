"""
Indexer cursor repository.
"""
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class IndexerStateRepository:
    """Last fully processed block per named indexer."""

    def __init__(self, pool):
        self.pool = pool

    def get_last_block(self, name: str = 'launchpad') -> Optional[int]:
        with self.pool.get_connection() as conn:
            cur = conn.cursor()
            cur.execute("SELECT last_processed_block FROM indexer_state WHERE name = %s", (name,))
            row = cur.fetchone()
            return int(row[0]) if row else None

    def save_last_block(self, block_number: int, name: str = 'launchpad') -> None:
        with self.pool.get_connection() as conn:
            cur = conn.cursor()
            cur.execute("""
                INSERT INTO indexer_state (name, last_processed_block, updated_at)
                VALUES (%s, %s, NOW())
                ON CONFLICT (name) DO UPDATE SET
                    last_processed_block = EXCLUDED.last_processed_block,
                    updated_at = NOW()
            """, (name, block_number))
