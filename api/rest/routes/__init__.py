"""REST API routers."""
from .health import health_router
from .indexer import indexer_router
from .jobs import jobs_router
from .market import market_router
from .tokens import tokens_router

__all__ = [
    'health_router',
    'indexer_router',
    'jobs_router',
    'market_router',
    'tokens_router',
]
