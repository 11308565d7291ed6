"""Repositories for the launchpad tables."""
from .tokens import TokenRepository
from .trades import TradeRepository
from .holders import HolderRepository
from .portfolios import PortfolioRepository
from .ipfs_cache import IPFSCacheRepository
from .indexer_state import IndexerStateRepository

__all__ = [
    'TokenRepository',
    'TradeRepository',
    'HolderRepository',
    'PortfolioRepository',
    'IPFSCacheRepository',
    'IndexerStateRepository',
]
