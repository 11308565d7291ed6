"""
Trade ledger repository.

Handles CREATE/BUY/SELL rows written by the indexer and the trade
queries behind metrics, portfolios, candles and the market views.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from common.models.data_models import TradeRecord

logger = logging.getLogger(__name__)

_COLUMNS = ", ".join(TradeRecord.COLUMNS)
_SELECT = f"SELECT {_COLUMNS} FROM transactions"
_ORDER_ASC = " ORDER BY timestamp ASC, block_number ASC, log_index ASC"
_ORDER_DESC = " ORDER BY timestamp DESC, block_number DESC, log_index DESC"


class TradeRepository:
    """
    Repository for the transactions table.

    Rows are keyed by (hash, log_index) so a transaction emitting several
    marketplace events keeps one row per event.
    """

    def __init__(self, pool):
        """
        Initialize trade repository.

        Args:
            pool: PostgresConnectionPool instance
        """
        self.pool = pool

    def exists(self, tx_hash: str, log_index: Optional[int] = None) -> bool:
        query = "SELECT 1 FROM transactions WHERE hash = %s"
        params: Tuple = (tx_hash,)
        if log_index is not None:
            query += " AND log_index = %s"
            params = (tx_hash, log_index)
        with self.pool.get_connection() as conn:
            cur = conn.cursor()
            cur.execute(query, params)
            return cur.fetchone() is not None

    def insert(self, trade: TradeRecord) -> bool:
        """
        Insert a ledger row (idempotent).

        Returns:
            True if the row was created
        """
        with self.pool.get_connection() as conn:
            cur = conn.cursor()
            cur.execute(f"""
                INSERT INTO transactions ({_COLUMNS})
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (hash, log_index) DO NOTHING
            """, (
                trade.hash,
                trade.log_index,
                trade.user_address.lower(),
                trade.token_address.lower(),
                trade.type.value,
                trade.amount_in,
                trade.amount_out,
                trade.price,
                trade.block_number,
                trade.timestamp,
            ))
            return cur.rowcount == 1

    def max_block_number(self) -> Optional[int]:
        """Highest block with an indexed transaction, None when empty."""
        with self.pool.get_connection() as conn:
            cur = conn.cursor()
            cur.execute("SELECT MAX(block_number) FROM transactions")
            row = cur.fetchone()
            return int(row[0]) if row and row[0] is not None else None

    def for_user_token(self, user: str, token: str) -> List[TradeRecord]:
        """Every ledger row of a user for one token, oldest first."""
        with self.pool.get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                _SELECT + " WHERE user_address = %s AND token_address = %s" + _ORDER_ASC,
                (user.lower(), token.lower()),
            )
            return [TradeRecord.from_db_row(row) for row in cur.fetchall()]

    def for_token_since(self, token: str, since: datetime) -> List[TradeRecord]:
        """BUY/SELL rows of a token at or after `since`, oldest first."""
        with self.pool.get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                _SELECT + " WHERE token_address = %s AND type IN ('BUY', 'SELL')"
                " AND timestamp >= %s" + _ORDER_ASC,
                (token.lower(), since),
            )
            return [TradeRecord.from_db_row(row) for row in cur.fetchall()]

    def recent_for_token(self, token: str, limit: int) -> List[TradeRecord]:
        """Most recent BUY/SELL rows of a token, newest first."""
        with self.pool.get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                _SELECT + " WHERE token_address = %s AND type IN ('BUY', 'SELL')"
                + _ORDER_DESC + " LIMIT %s",
                (token.lower(), limit),
            )
            return [TradeRecord.from_db_row(row) for row in cur.fetchall()]

    def page_for_token(self, token: str, page: int = 1,
                       limit: int = 20) -> Tuple[List[TradeRecord], int]:
        """One page of BUY/SELL rows of a token, newest first, plus the total count."""
        with self.pool.get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                "SELECT COUNT(*) FROM transactions WHERE token_address = %s AND type IN ('BUY', 'SELL')",
                (token.lower(),),
            )
            total = int(cur.fetchone()[0])
            cur.execute(
                _SELECT + " WHERE token_address = %s AND type IN ('BUY', 'SELL')" + _ORDER_DESC + " LIMIT %s OFFSET %s",
                (token.lower(), limit, (page - 1) * limit),
            )
            return [TradeRecord.from_db_row(row) for row in cur.fetchall()], total

    def recent_with_token(self, limit: int) -> List[Tuple[TradeRecord, Dict[str, Any]]]:
        """Latest BUY/SELL rows across all tokens with symbol, name and logo."""
        columns = ", ".join(f"x.{c}" for c in TradeRecord.COLUMNS)
        with self.pool.get_connection() as conn:
            cur = conn.cursor()
            cur.execute(f"""
                SELECT {columns}, t.symbol, t.name, t.metadata_cache->>'image'
                FROM transactions x
                LEFT JOIN tokens t ON t.address = x.token_address
                WHERE x.type IN ('BUY', 'SELL')
                ORDER BY x.timestamp DESC, x.block_number DESC, x.log_index DESC
                LIMIT %s
            """, (limit,))
            return [
                (TradeRecord.from_db_row(row[:-3]),
                 {'symbol': row[-3], 'name': row[-2], 'logo': row[-1]})
                for row in cur.fetchall()
            ]

    def activity_since(self, since: datetime) -> Tuple[int, int]:
        """(BUY/SELL count, distinct addresses with any ledger row) since `since`."""
        with self.pool.get_connection() as conn:
            cur = conn.cursor()
            cur.execute("""
                SELECT COUNT(*) FILTER (WHERE type IN ('BUY', 'SELL')),
                       COUNT(DISTINCT user_address)
                FROM transactions
                WHERE timestamp >= %s
            """, (since,))
            row = cur.fetchone()
            return int(row[0]), int(row[1])
