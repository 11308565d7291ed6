"""Per-token chart and trade history routes."""
from fastapi import APIRouter, Depends, Query

from indexer.service.core import IndexerService
from ..dependencies import get_service, validate_address
from ..responses import success

tokens_router = APIRouter(prefix="/tokens", tags=["tokens"])


@tokens_router.get("/{address}/candles")
def get_candles(address: str, timeframe: str = Query("1m"),
                service: IndexerService = Depends(get_service)):
    """OHLCV candles plus all-time high for a token."""
    address = validate_address(address)
    return success(service.candle_service.get_candles(address, timeframe))


@tokens_router.get("/{address}/trades")
def get_trades(address: str, page: int = Query(1, ge=1), limit: int = Query(50, ge=1, le=100),
               service: IndexerService = Depends(get_service)):
    address = validate_address(address)
    data = service.token_service.get_token_trades(address, page=page, limit=limit)
    data['page'] = page
    data['limit'] = limit
    return success(data)
