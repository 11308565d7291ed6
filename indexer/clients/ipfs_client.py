"""
IPFS metadata fetcher with a two-tier cache (Redis, then database).
"""
import logging
import re
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)

_PATH_HASH = re.compile(r'/ipfs/([a-zA-Z0-9]+)')
_BARE_HASH = re.compile(r'^[a-zA-Z0-9]+$')


def extract_ipfs_hash(uri: Optional[str]) -> Optional[str]:
    """
    Extract the content hash from an IPFS reference.

    Accepts ``ipfs://<hash>``, any URL containing ``/ipfs/<hash>`` and a
    bare alphanumeric hash. Anything else yields None.
    """
    if not uri:
        return None
    if uri.startswith('ipfs://'):
        return uri[len('ipfs://'):] or None
    match = _PATH_HASH.search(uri)
    if match:
        return match.group(1)
    if _BARE_HASH.match(uri):
        return uri
    return None


class IPFSClient:
    """
    Token metadata fetcher.

    Lookup order: Redis ``ipfs:metadata:{hash}``, the ipfs_cache table,
    then each gateway in order. Successful gateway fetches are written to
    both cache tiers.
    """

    def __init__(self, gateways: List[str], cache=None, repository=None,
                 timeout: float = 10.0, metadata_ttl: int = 3600):
        """
        Args:
            gateways: Gateway base URLs ending in ``/ipfs/``, in priority order
            cache: CacheService (optional)
            repository: IPFSCacheRepository (optional)
            timeout: Per-gateway request timeout in seconds
            metadata_ttl: Redis TTL for metadata documents
        """
        self.gateways = gateways
        self.cache = cache
        self.repository = repository
        self.timeout = timeout
        self.metadata_ttl = metadata_ttl

        self.session = requests.Session()
        adapter = HTTPAdapter(
            pool_connections=10,
            pool_maxsize=10,
            max_retries=Retry(total=1, backoff_factor=0.5, status_forcelist=[502, 503, 504]),
        )
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)

    @staticmethod
    def cache_key(ipfs_hash: str) -> str:
        return f"ipfs:metadata:{ipfs_hash}"

    def _get_cached(self, ipfs_hash: str) -> Optional[Dict[str, Any]]:
        if self.cache is not None:
            cached = self.cache.get(self.cache_key(ipfs_hash))
            if cached:
                return cached

        if self.repository is not None:
            try:
                stored = self.repository.get(ipfs_hash)
            except Exception as e:
                logger.error(f"Error reading cached metadata {ipfs_hash}: {e}")
                return None
            if stored:
                if self.cache is not None:
                    self.cache.set(self.cache_key(ipfs_hash), stored, self.metadata_ttl)
                return stored
        return None

    def _store(self, ipfs_hash: str, metadata: Dict[str, Any], source_url: str):
        if self.repository is not None:
            try:
                self.repository.save(ipfs_hash, metadata, blob_url=source_url)
            except Exception as e:
                logger.error(f"Failed to cache IPFS data {ipfs_hash}: {e}")
        if self.cache is not None:
            self.cache.set(self.cache_key(ipfs_hash), metadata, self.metadata_ttl)

    def fetch_metadata(self, uri: str) -> Optional[Dict[str, Any]]:
        """
        Resolve a metadata URI to its JSON document.

        Returns:
            The metadata dict, or None for an invalid URI or when every
            gateway fails
        """
        ipfs_hash = extract_ipfs_hash(uri)
        if not ipfs_hash:
            logger.warning(f"Invalid IPFS URI: {uri}")
            return None

        cached = self._get_cached(ipfs_hash)
        if cached:
            logger.debug(f"Metadata cache hit: {ipfs_hash}")
            return cached

        for gateway in self.gateways:
            url = f"{gateway}{ipfs_hash}"
            try:
                response = self.session.get(url, timeout=self.timeout)
                response.raise_for_status()
                metadata = response.json()
            except (requests.RequestException, ValueError) as e:
                logger.debug(f"Failed to fetch from gateway {url}: {e}")
                continue
            if not isinstance(metadata, dict):
                logger.debug(f"Gateway {url} returned non-object metadata")
                continue

            self._store(ipfs_hash, metadata, url)
            logger.info(f"Metadata fetched from IPFS: {ipfs_hash}")
            return metadata

        logger.error(f"Failed to fetch metadata from all gateways: {ipfs_hash}")
        return None

    def close(self):
        self.session.close()
