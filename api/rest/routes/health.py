"""Liveness and dependency health routes."""
from fastapi import APIRouter, Depends

from indexer.service.core import IndexerService
from ..dependencies import get_service
from ..responses import success

health_router = APIRouter(tags=["health"])


@health_router.get("/health")
def health(service: IndexerService = Depends(get_service)):
    return success(service.health())


@health_router.get("/health/detailed")
def health_detailed(service: IndexerService = Depends(get_service)):
    """Database, Redis and RPC status; 503 when the database is down."""
    report = service.health_detailed()
    status_code = 503 if report['status'] == 'unhealthy' else 200
    return success(report, status_code=status_code)
