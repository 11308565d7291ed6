"""Operational job routes: metrics backfill, token sync and holder sync."""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from common.errors import LaunchpadError, NotFoundError
from indexer.service.core import IndexerService
from indexer.service.models import BackfillRequest, CancelOutcome
from ..dependencies import get_service, validate_address
from ..responses import success

jobs_router = APIRouter(prefix="/jobs", tags=["jobs"])


class BackfillJobRequest(BaseModel):
    """Request model for a metrics backfill."""
    verify_mode: bool = False
    only_missing_metrics: bool = False
    batch_size: Optional[int] = Field(default=None, ge=1, le=1000)
    concurrency: Optional[int] = Field(default=None, ge=1, le=200)


@jobs_router.post("/backfill")
def start_backfill(request: Optional[BackfillJobRequest] = None,
                   service: IndexerService = Depends(get_service)):
    request = request or BackfillJobRequest()
    status = service.start_backfill(BackfillRequest(
        verify_mode=request.verify_mode,
        only_missing_metrics=request.only_missing_metrics,
        batch_size=request.batch_size,
        concurrency=request.concurrency,
    ))
    return success(status.to_dict(), status_code=202)


@jobs_router.post("/sync")
def start_sync(service: IndexerService = Depends(get_service)):
    return success(service.start_sync().to_dict(), status_code=202)


@jobs_router.post("/sync-holders/{address}")
def start_sync_holders(address: str, service: IndexerService = Depends(get_service)):
    address = validate_address(address)
    return success(service.start_sync_holders(address).to_dict(), status_code=202)


@jobs_router.get("")
def list_jobs(service: IndexerService = Depends(get_service)):
    return success([job.to_dict() for job in service.list_jobs()])


@jobs_router.get("/{job_id}")
def get_job(job_id: str, service: IndexerService = Depends(get_service)):
    job = service.get_job(job_id)
    if not job:
        raise NotFoundError("Job")
    return success(job.to_dict())


@jobs_router.delete("/{job_id}")
def cancel_job(job_id: str, service: IndexerService = Depends(get_service)):
    outcome = service.cancel_job(job_id)
    if outcome == CancelOutcome.NOT_FOUND:
        raise NotFoundError("Job")
    if outcome == CancelOutcome.FINISHED:
        raise LaunchpadError("Job already finished", status_code=409)
    if outcome == CancelOutcome.RUNNING:
        raise LaunchpadError("Running job cannot be cancelled", status_code=409)
    return success({'status': 'cancelled', 'job_id': job_id})
