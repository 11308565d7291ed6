"""Indexer and worker status routes."""
from fastapi import APIRouter, Depends

from indexer.service.core import IndexerService
from ..dependencies import get_service
from ..responses import success

indexer_router = APIRouter(prefix="/indexer", tags=["indexer"])


@indexer_router.get("/status")
def indexer_status(service: IndexerService = Depends(get_service)):
    data = service.indexer_status()
    data['workers'] = service.worker_status()
    return success(data)
