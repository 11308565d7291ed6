"""Domain services over the store and the contracts."""
from .metrics import MetricsService
from .portfolio import PortfolioService
from .tokens import TokenQueryService
from .market import MarketService
from .sync import SyncService

__all__ = [
    'MetricsService',
    'PortfolioService',
    'TokenQueryService',
    'MarketService',
    'SyncService',
]
