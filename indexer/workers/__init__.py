"""Scheduled background processors."""
from .tiered_metrics import TieredMetricsProcessor
from .holder_update import HolderUpdateProcessor
from .ipfs_cache import IPFSCacheProcessor
from .cache_warming import CacheWarmingProcessor

__all__ = [
    'TieredMetricsProcessor',
    'HolderUpdateProcessor',
    'IPFSCacheProcessor',
    'CacheWarmingProcessor',
]
