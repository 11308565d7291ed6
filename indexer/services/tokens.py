"""
Read-side token queries with caching.
"""
import json
import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from common.errors import NotFoundError, ValidationError
from common.models.data_models import TokenRecord, format_ether
from storage.postgres.repositories.tokens import SORT_COLUMNS

logger = logging.getLogger(__name__)


def format_token(token: TokenRecord) -> Dict[str, Any]:
    """
    Token row as returned by the API: wei columns as ether strings.

    A stored market cap that is effectively zero is recomputed from
    supply * price.
    """
    metadata = token.metadata_cache or {}
    m = token.metrics
    current_supply = m.current_supply or token.total_supply
    current_supply_eth = format_ether(current_supply)

    market_cap = m.market_cap
    supply = float(Decimal(current_supply_eth))
    if market_cap < 0.000001 and supply > 0 and m.current_price > 0:
        market_cap = supply * m.current_price

    return {
        'address': token.address,
        'name': token.name,
        'symbol': token.symbol,
        'description': token.description or metadata.get('description'),
        'price': m.current_price,
        'price_change_24h': m.price_change_24h,
        'market_cap': market_cap,
        'volume_24h': m.volume_24h,
        'holders': m.holder_count,
        'created_at': token.created_at.isoformat() if token.created_at else None,
        'creator': token.creator,
        'reserve_ratio': token.reserve_ratio,
        'trading_enabled': token.trading_enabled,
        'logo': token.logo_url or metadata.get('image'),
        'current_supply': current_supply_eth,
        'total_supply': format_ether(token.total_supply),
        'reserve_balance': format_ether(m.reserve_balance),
        'social_links': token.social_links or metadata.get('social'),
    }


class TokenQueryService:
    """Paged token listings, token details, holders and trades."""

    def __init__(self, store, cache=None, cache_config=None):
        """
        Args:
            store: LaunchpadRepository
            cache: CacheService (optional)
            cache_config: CacheConfig with TTLs (optional)
        """
        self.store = store
        self.cache = cache
        self.list_ttl = cache_config.token_list_ttl if cache_config else 300
        self.details_ttl = cache_config.token_details_ttl if cache_config else 120

    def _cached(self, key: str) -> Optional[Any]:
        return self.cache.get(key) if self.cache is not None else None

    def _store(self, key: str, value: Any, ttl: int):
        if self.cache is not None:
            self.cache.set(key, value, ttl)

    def get_tokens(self, page: int = 1, limit: int = 24, sort: str = 'marketCap',
                   order: str = 'desc', search: Optional[str] = None,
                   creator: Optional[str] = None) -> Dict[str, Any]:
        if page < 1 or not 1 <= limit <= 100:
            raise ValidationError("page must be >= 1 and limit between 1 and 100")
        if sort not in SORT_COLUMNS:
            raise ValidationError(f"Unsupported sort key: {sort}")

        params = {'page': page, 'limit': limit, 'sort': sort, 'order': order,
                  'search': search, 'creator': creator}
        key = f"tokens:list:{json.dumps(params, sort_keys=True)}"
        cached = self._cached(key)
        if cached:
            logger.debug("Token list cache hit")
            return cached

        rows, total = self.store.tokens.search(page=page, limit=limit, sort=sort, order=order,
                                               search=search, creator=creator)
        result = {'tokens': [format_token(t) for t in rows], 'total': total}
        self._store(key, result, self.list_ttl)
        return result

    def get_token(self, address: str) -> Dict[str, Any]:
        address = address.lower()
        key = f"token:{address}"
        cached = self._cached(key)
        if cached:
            logger.debug(f"Token cache hit: {address}")
            return cached

        token = self.store.tokens.get(address)
        if token is None:
            raise NotFoundError(f"Token {address}")
        data = format_token(token)
        self._store(key, data, self.details_ttl)
        return data

    def get_token_holders(self, address: str, page: int = 1, limit: int = 50) -> Dict[str, Any]:
        address = address.lower()
        token = self.store.tokens.get(address)
        if token is None:
            raise NotFoundError(f"Token {address}")

        holders, total = self.store.holders.page_for_token(address, page=page, limit=limit)
        total_supply = token.total_supply
        rows = []
        for holder in holders:
            rows.append({
                'holder_address': holder.holder_address,
                'balance': str(holder.balance),
                'balance_formatted': format_ether(holder.balance),
                'percentage': (holder.balance / total_supply * 100) if total_supply > 0 else 0.0,
                'first_acquired': holder.first_acquired.isoformat() if holder.first_acquired else None,
                'last_updated': holder.last_updated.isoformat() if holder.last_updated else None,
            })
        return {'holders': rows, 'total': total}

    def get_token_trades(self, address: str, page: int = 1, limit: int = 50) -> Dict[str, Any]:
        address = address.lower()
        trades, total = self.store.trades.page_for_token(address, page=page, limit=limit)
        return {'trades': [t.to_dict() for t in trades], 'total': total}

    def get_holder_count(self, address: str) -> int:
        address = address.lower()
        key = f"holderCount:{address}"
        cached = self._cached(key)
        if cached is not None:
            return int(cached)
        count = self.store.holders.count_nonzero(address)
        self._store(key, count, 300)
        return count
