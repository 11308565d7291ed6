"""
Token market metrics: price, market cap, 24h volume, 24h price change
and holder count.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Sequence

from common.models.data_models import TokenMetrics, TradeRecord, TransactionType, from_wei

logger = logging.getLogger(__name__)

WINDOW_24H = timedelta(hours=24)


def compute_volume_24h(trades: Iterable[TradeRecord]) -> float:
    """Sum of the ETH legs of BUY/SELL trades, in ETH."""
    total = 0.0
    for trade in trades:
        if trade.type in (TransactionType.BUY, TransactionType.SELL):
            total += from_wei(trade.eth_amount)
    return total


def compute_price_change_24h(trades: Sequence[TradeRecord], current_price: float,
                             since: datetime) -> float:
    """
    Percentage change from the price of the trade closest to `since`.

    Returns 0.0 when there are no trades or the baseline price is not
    positive.
    """
    if not trades:
        return 0.0

    ordered = sorted(trades, key=lambda t: (t.timestamp, t.block_number, t.log_index))
    baseline = ordered[0]
    closest = abs((baseline.timestamp - since).total_seconds())
    for trade in ordered[1:]:
        diff = abs((trade.timestamp - since).total_seconds())
        if diff < closest:
            closest = diff
            baseline = trade

    if baseline.price <= 0:
        return 0.0
    return (current_price - baseline.price) / baseline.price * 100


def token_cache_patterns(address: str) -> List[str]:
    """Cache keys and patterns that hold data derived from a token row."""
    address = address.lower()
    return [f"token:{address}", f"token:{address}:*", "tokens:list:*"]


class MetricsService:
    """
    Computes token metrics from chain state plus the trade ledger and
    persists them on the token row.
    """

    def __init__(self, contracts, store, cache=None):
        """
        Args:
            contracts: ContractService
            store: LaunchpadRepository
            cache: CacheService (optional)
        """
        self.contracts = contracts
        self.store = store
        self.cache = cache

    def fetch_token_metrics(self, address: str, now: Optional[datetime] = None) -> TokenMetrics:
        """Read price and supply from chain and aggregate the last 24h of trades."""
        now = now or datetime.now(timezone.utc)
        since = now - WINDOW_24H

        price_wei = self.contracts.get_current_price(address)
        market_info = self.contracts.get_token_market_info(address)
        holder_count = self.store.holders.count_nonzero(address)
        recent = self.store.trades.for_token_since(address, since)

        current_price = from_wei(price_wei)
        market_cap = from_wei(market_info.current_supply) * current_price

        return TokenMetrics(
            current_price=current_price,
            market_cap=market_cap,
            volume_24h=compute_volume_24h(recent),
            price_change_24h=compute_price_change_24h(recent, current_price, since),
            current_supply=market_info.current_supply,
            reserve_balance=market_info.reserve_balance,
            holder_count=holder_count,
        )

    def update_token_metrics(self, address: str, now: Optional[datetime] = None) -> TokenMetrics:
        """
        Recompute and store metrics for one token.

        Raises whatever the chain or database raised; callers decide
        whether a failure is fatal.
        """
        metrics = self.fetch_token_metrics(address, now=now)
        self.store.tokens.update_metrics(address, metrics)
        self.invalidate_token_cache(address)
        logger.debug(f"Updated metrics for {address}: price={metrics.current_price}, "
                     f"marketCap={metrics.market_cap}, volume24h={metrics.volume_24h}")
        return metrics

    def invalidate_token_cache(self, address: str):
        if self.cache is None:
            return
        key, *patterns = token_cache_patterns(address)
        self.cache.delete(key)
        for pattern in patterns:
            self.cache.delete_pattern(pattern)
