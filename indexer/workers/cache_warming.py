"""Pre-populates Redis with the most requested read views."""
import logging
import time
from typing import Callable, Dict, List, Tuple

logger = logging.getLogger(__name__)

TOP_TOKEN_DETAILS = 10


class CacheWarmingProcessor:

    def __init__(self, cache, market_service, token_service, store):
        self.cache = cache
        self.market_service = market_service
        self.token_service = token_service
        self.store = store

    def _targets(self) -> List[Tuple[str, Callable]]:
        tokens = self.token_service
        return [
            ('market stats', lambda: self.market_service.get_market_stats(use_cache=False)),
            ('trending tokens', lambda: self.market_service.get_trending_tokens(10)),
            ('tokens list', lambda: tokens.get_tokens(page=1, limit=24, sort='marketCap', order='desc')),
            ('new tokens', lambda: tokens.get_tokens(page=1, limit=10, sort='created', order='desc')),
            ('top volume', lambda: tokens.get_tokens(page=1, limit=10, sort='volume', order='desc')),
            ('token details', self._warm_token_details),
        ]

    def _warm_token_details(self):
        for token in self.store.tokens.list_newest(TOP_TOKEN_DETAILS, trading_only=False):
            self.token_service.get_token(token.address)

    def run(self) -> Dict[str, bool]:
        """
        Warm every view; one failing view does not stop the others.

        Returns:
            view name -> warmed, empty when Redis is unavailable
        """
        if not self.cache.is_available():
            logger.warning("Redis not available, skipping cache warming")
            return {}

        logger.info("Starting cache warming")
        started = time.monotonic()
        results = {}
        for name, warm in self._targets():
            try:
                warm()
                results[name] = True
            except Exception as e:
                logger.error(f"Failed to warm {name} cache: {e}")
                results[name] = False

        logger.info(f"Cache warming completed in {int((time.monotonic() - started) * 1000)}ms")
        return results
