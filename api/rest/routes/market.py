"""Market overview routes."""
from fastapi import APIRouter, Depends, Query

from indexer.service.core import IndexerService
from ..dependencies import get_service
from ..responses import success

market_router = APIRouter(prefix="/market", tags=["market"])


@market_router.get("/stats")
def market_stats(service: IndexerService = Depends(get_service)):
    return success(service.market_service.get_market_stats())


@market_router.get("/trending")
def trending(limit: int = Query(10, ge=1, le=100), service: IndexerService = Depends(get_service)):
    return success(service.market_service.get_trending_tokens(limit))


@market_router.get("/top")
def top_tokens(limit: int = Query(10, ge=1, le=100), service: IndexerService = Depends(get_service)):
    return success(service.market_service.get_top_tokens(limit))


@market_router.get("/gainers")
def top_gainers(limit: int = Query(10, ge=1, le=100), service: IndexerService = Depends(get_service)):
    return success(service.market_service.get_top_gainers(limit))


@market_router.get("/losers")
def top_losers(limit: int = Query(10, ge=1, le=100), service: IndexerService = Depends(get_service)):
    return success(service.market_service.get_top_losers(limit))


@market_router.get("/recent-trades")
def recent_trades(limit: int = Query(20, ge=1, le=100), service: IndexerService = Depends(get_service)):
    return success(service.market_service.get_recent_trades(limit))
