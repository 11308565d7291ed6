"""
Holder balance repository.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from psycopg2 import extras

from common.models.data_models import HolderRecord

logger = logging.getLogger(__name__)


class HolderRepository:
    """
    Repository for per-token holder balances.

    Balances are upserted on (token_address, holder_address); a zero
    balance is kept as a row and excluded from counts and listings.
    """

    def __init__(self, pool):
        self.pool = pool

    def upsert_balance(self, token: str, holder: str, balance: int,
                       at: Optional[datetime] = None) -> None:
        at = at or datetime.now(timezone.utc)
        with self.pool.get_connection() as conn:
            cur = conn.cursor()
            cur.execute("""
                INSERT INTO holders (token_address, holder_address, balance, first_acquired, last_updated)
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (token_address, holder_address) DO UPDATE SET
                    balance = EXCLUDED.balance,
                    last_updated = EXCLUDED.last_updated
            """, (token.lower(), holder.lower(), balance, at, at))

    def upsert_balances(self, token: str, balances: Dict[str, int]) -> int:
        """Batch upsert of holder -> balance; returns rows written."""
        if not balances:
            return 0
        now = datetime.now(timezone.utc)
        data = [(token.lower(), holder.lower(), balance, now, now)
                for holder, balance in balances.items()]
        with self.pool.get_connection() as conn:
            cur = conn.cursor()
            extras.execute_batch(cur, """
                INSERT INTO holders (token_address, holder_address, balance, first_acquired, last_updated)
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (token_address, holder_address) DO UPDATE SET
                    balance = EXCLUDED.balance,
                    last_updated = EXCLUDED.last_updated
            """, data, page_size=500)
            logger.debug(f"Upserted {len(data)} holder balances for {token}")
            return len(data)

    def count_nonzero(self, token: str) -> int:
        with self.pool.get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                "SELECT COUNT(*) FROM holders WHERE token_address = %s AND balance > 0",
                (token.lower(),),
            )
            return int(cur.fetchone()[0])

    def all_for_token(self, token: str) -> List[HolderRecord]:
        with self.pool.get_connection() as conn:
            cur = conn.cursor()
            cur.execute("""
                SELECT id, token_address, holder_address, balance, first_acquired, last_updated
                FROM holders WHERE token_address = %s
            """, (token.lower(),))
            return [self._from_row(row) for row in cur.fetchall()]

    def page_for_token(self, token: str, page: int = 1,
                       limit: int = 20) -> Tuple[List[HolderRecord], int]:
        """Non-zero holders ordered by balance, largest first."""
        with self.pool.get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                "SELECT COUNT(*) FROM holders WHERE token_address = %s AND balance > 0",
                (token.lower(),),
            )
            total = int(cur.fetchone()[0])
            cur.execute("""
                SELECT id, token_address, holder_address, balance, first_acquired, last_updated
                FROM holders
                WHERE token_address = %s AND balance > 0
                ORDER BY balance DESC
                LIMIT %s OFFSET %s
            """, (token.lower(), limit, (page - 1) * limit))
            return [self._from_row(row) for row in cur.fetchall()], total

    @staticmethod
    def _from_row(row) -> HolderRecord:
        return HolderRecord(
            id=row[0],
            token_address=row[1],
            holder_address=row[2],
            balance=int(row[3] or 0),
            first_acquired=row[4],
            last_updated=row[5],
        )
