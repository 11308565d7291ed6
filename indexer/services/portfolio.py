"""
User portfolio tracking with weighted average cost basis.
"""
import logging
from dataclasses import dataclass
from typing import Iterable

from common.models.data_models import PortfolioPosition, TradeRecord, TransactionType, from_wei

logger = logging.getLogger(__name__)

# Holdings below this many tokens are treated as fully sold
DUST_THRESHOLD = 1e-7


@dataclass
class CostBasis:
    """Running position state after replaying a user's trades"""
    tokens_held: float = 0.0
    total_cost_basis: float = 0.0
    realized_pnl: float = 0.0
    total_invested: float = 0.0

    @property
    def average_price(self) -> float:
        return self.total_cost_basis / self.tokens_held if self.tokens_held > 0 else 0.0

    def apply(self, trade: TradeRecord):
        if trade.type == TransactionType.BUY:
            eth_spent = from_wei(trade.amount_in)
            self.total_cost_basis += eth_spent
            self.tokens_held += from_wei(trade.amount_out)
            self.total_invested += eth_spent

        elif trade.type == TransactionType.SELL:
            tokens_sold = from_wei(trade.amount_in)
            eth_received = from_wei(trade.amount_out)
            sold_cost = self.average_price * tokens_sold

            self.realized_pnl += eth_received - sold_cost
            self.tokens_held -= tokens_sold
            self.total_cost_basis -= sold_cost

            if self.tokens_held < DUST_THRESHOLD:
                self.tokens_held = 0.0
            if self.total_cost_basis < 0:
                self.total_cost_basis = 0.0

        elif trade.type == TransactionType.CREATE:
            # initial supply is received at zero cost
            self.tokens_held += from_wei(trade.amount_out)


def compute_cost_basis(trades: Iterable[TradeRecord]) -> CostBasis:
    """Replay trades (oldest first) into a CostBasis."""
    basis = CostBasis()
    for trade in trades:
        basis.apply(trade)
    return basis


def unrealized_pnl(balance_wei: int, current_price: float, cost_basis: float) -> float:
    balance = from_wei(balance_wei)
    if balance <= 0:
        return 0.0
    return balance * current_price - cost_basis


class PortfolioService:
    """Recomputes and stores a user's position in one token."""

    def __init__(self, contracts, store):
        self.contracts = contracts
        self.store = store

    def update_user_portfolio(self, user: str, token: str) -> PortfolioPosition:
        balance = self.contracts.get_token_balance(token, user)
        trades = self.store.trades.for_user_token(user, token)
        basis = compute_cost_basis(trades)
        current_price = from_wei(self.contracts.get_current_price(token))

        position = PortfolioPosition(
            user_address=user.lower(),
            token_address=token.lower(),
            balance=balance,
            average_price=basis.average_price,
            total_invested=basis.total_invested,
            realized_pnl=basis.realized_pnl,
            unrealized_pnl=unrealized_pnl(balance, current_price, basis.total_cost_basis),
        )
        self.store.portfolios.upsert(position)
        return position
