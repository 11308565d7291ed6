"""
User portfolio repository.
"""
import logging

from common.models.data_models import PortfolioPosition

logger = logging.getLogger(__name__)


class PortfolioRepository:
    """Upserts per user/token positions computed by the portfolio service."""

    def __init__(self, pool):
        self.pool = pool

    def upsert(self, position: PortfolioPosition) -> None:
        with self.pool.get_connection() as conn:
            cur = conn.cursor()
            cur.execute("""
                INSERT INTO user_portfolios
                (user_address, token_address, balance, average_price, total_invested,
                 realized_pnl, unrealized_pnl, updated_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, NOW())
                ON CONFLICT (user_address, token_address) DO UPDATE SET
                    balance = EXCLUDED.balance,
                    average_price = EXCLUDED.average_price,
                    total_invested = EXCLUDED.total_invested,
                    realized_pnl = EXCLUDED.realized_pnl,
                    unrealized_pnl = EXCLUDED.unrealized_pnl,
                    updated_at = NOW()
            """, (
                position.user_address.lower(),
                position.token_address.lower(),
                position.balance,
                position.average_price,
                position.total_invested,
                position.realized_pnl,
                position.unrealized_pnl,
            ))
            logger.debug(f"Portfolio updated: {position.user_address} / {position.token_address}")
