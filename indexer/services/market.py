"""
Market-wide statistics and rankings, read from the metrics stored on
token rows.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from common.models.data_models import TransactionType, format_ether
from .tokens import format_token

logger = logging.getLogger(__name__)

EMPTY_STATS = {
    'total_tokens': 0,
    'total_market_cap': 0.0,
    'total_volume_24h': 0.0,
    'total_holders': 0,
    'new_tokens_24h': 0,
    'trades_24h': 0,
    'active_users_24h': 0,
    'avg_token_price': 0.0,
}


def clean_symbol(symbol: Optional[str]) -> str:
    """Strip a leading "ETH " / "ETH" prefix some tokens carry."""
    if not symbol:
        return 'TOKEN'
    upper = symbol.upper()
    if upper.startswith('ETH ') and len(symbol) > 4:
        symbol = symbol[4:].strip()
    elif upper.startswith('ETH') and len(symbol) > 3 and upper != 'ETH':
        symbol = symbol[3:].strip()
    return symbol or 'TOKEN'


class MarketService:
    """Market stats, rankings and the recent trade feed."""

    def __init__(self, store, cache=None, stats_ttl: int = 15):
        self.store = store
        self.cache = cache
        self.stats_ttl = stats_ttl

    def get_market_stats(self, now: Optional[datetime] = None, use_cache: bool = True) -> Dict[str, Any]:
        if use_cache and self.cache is not None:
            cached = self.cache.get('market:stats')
            if cached:
                return cached

        now = now or datetime.now(timezone.utc)
        since = now - timedelta(hours=24)
        try:
            totals = self.store.tokens.market_totals(since)
            trades_24h, active_users = self.store.trades.activity_since(since)
        except Exception as e:
            logger.error(f"Error getting market stats: {e}")
            return dict(EMPTY_STATS)

        stats = {
            'total_tokens': totals['total_tokens'],
            'total_market_cap': totals['total_market_cap'],
            'total_volume_24h': totals['total_volume_24h'],
            'total_holders': totals['total_holders'],
            'new_tokens_24h': totals['new_tokens_24h'],
            'trades_24h': trades_24h,
            'active_users_24h': active_users,
            'avg_token_price': totals['avg_token_price'],
        }
        if self.cache is not None:
            self.cache.set('market:stats', stats, self.stats_ttl)
        return stats

    def _ranked(self, label: str, sort: str, descending: bool, limit: int,
                where: str) -> List[Dict[str, Any]]:
        try:
            rows = self.store.tokens.list_ranked(sort, descending=descending, limit=limit, where=where)
        except Exception as e:
            logger.error(f"Error getting {label}: {e}")
            return []
        return [format_token(t) for t in rows]

    def get_trending_tokens(self, limit: int = 10) -> List[Dict[str, Any]]:
        key = f"market:trending:{limit}"
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached:
                return cached
        tokens = self._ranked('trending tokens', 'volume', True, limit, 'volume_positive')
        if self.cache is not None and tokens:
            self.cache.set(key, tokens, self.stats_ttl)
        return tokens

    def get_top_tokens(self, limit: int = 10) -> List[Dict[str, Any]]:
        return self._ranked('top tokens', 'marketCap', True, limit, 'market_cap_positive')

    def get_top_gainers(self, limit: int = 10) -> List[Dict[str, Any]]:
        return self._ranked('top gainers', 'priceChange', True, limit, 'change_positive')

    def get_top_losers(self, limit: int = 10) -> List[Dict[str, Any]]:
        return self._ranked('top losers', 'priceChange', False, limit, 'change_negative')

    def get_recent_trades(self, limit: int = 10) -> List[Dict[str, Any]]:
        try:
            rows = self.store.trades.recent_with_token(limit)
        except Exception as e:
            logger.error(f"Error getting recent trades: {e}")
            return []

        trades = []
        for trade, token in rows:
            is_buy = trade.type == TransactionType.BUY
            amount_in = format_ether(trade.amount_in)
            amount_out = format_ether(trade.amount_out)
            trades.append({
                'hash': trade.hash,
                'type': trade.type.value.lower(),
                'user_address': trade.user_address,
                'token_address': trade.token_address,
                'eth_amount': amount_in if is_buy else amount_out,
                'token_amount': amount_out if is_buy else amount_in,
                'price': trade.price,
                'timestamp': trade.timestamp.isoformat() if trade.timestamp else None,
                'block_number': trade.block_number,
                'token_symbol': clean_symbol(token.get('symbol')),
                'token_name': token.get('name'),
                'token_logo': token.get('logo'),
            })
        return trades
