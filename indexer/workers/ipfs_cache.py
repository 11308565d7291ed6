"""IPFS metadata retry for tokens indexed while the gateways were unreachable."""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Tuple

from common.errors import ValidationError

logger = logging.getLogger(__name__)

FETCH_BATCH_SIZE = 5
MODES = ('all', 'new', 'trending')


class IPFSCacheProcessor:

    def __init__(self, ipfs, store):
        self.ipfs = ipfs
        self.store = store

    def _select(self, mode: str, limit: int) -> List[Tuple[str, str]]:
        if mode == 'all':
            return self.store.tokens.list_without_metadata(limit)
        # no trending ranking of its own; newest tradable tokens stand in
        return [(t.address, t.metadata_uri) for t in self.store.tokens.list_newest(limit, trading_only=True)]

    def run(self, mode: str = 'all', limit: int = 50) -> Dict[str, int]:
        if mode not in MODES:
            raise ValidationError(f"Unknown IPFS cache mode '{mode}'")

        logger.info(f"Starting IPFS cache warming for type: {mode}")
        tokens = self._select(mode, limit)
        logger.info(f"Found {len(tokens)} tokens to cache")

        cached = errors = 0
        with ThreadPoolExecutor(max_workers=FETCH_BATCH_SIZE, thread_name_prefix='ipfs') as executor:
            for start in range(0, len(tokens), FETCH_BATCH_SIZE):
                batch = [(a, uri) for a, uri in tokens[start:start + FETCH_BATCH_SIZE] if uri]
                futures = [executor.submit(self.ipfs.fetch_metadata, uri) for _, uri in batch]
                for (address, _), future in zip(batch, futures):
                    try:
                        metadata = future.result()
                        if metadata:
                            self.store.tokens.update_metadata(address, metadata)
                            cached += 1
                    except Exception as e:
                        errors += 1
                        logger.error(f"Failed to cache metadata for token {address}: {e}")

        logger.info(f"IPFS cache warming completed: {cached} cached, {errors} errors "
                    f"out of {len(tokens)} total")
        return {'total': len(tokens), 'cached': cached, 'errors': errors}
