"""Dataclass models for the indexer service jobs."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobState(str, Enum):
    """Lifecycle states for a submitted job."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class JobKind(str, Enum):
    BACKFILL = "backfill"
    SYNC = "sync"
    SYNC_HOLDERS = "sync_holders"


class CancelOutcome(str, Enum):
    """Result of a cancellation request."""

    CANCELLED = "cancelled"
    NOT_FOUND = "not_found"
    FINISHED = "finished"
    RUNNING = "running"


@dataclass
class BackfillRequest:
    """Configuration payload for starting a metrics backfill."""

    verify_mode: bool = False
    only_missing_metrics: bool = False
    batch_size: Optional[int] = None
    concurrency: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "verify_mode": self.verify_mode,
            "only_missing_metrics": self.only_missing_metrics,
            "batch_size": self.batch_size,
            "concurrency": self.concurrency,
        }


@dataclass
class JobStatus:
    """Runtime state for a submitted job."""

    job_id: str
    kind: JobKind
    params: Dict[str, Any] = field(default_factory=dict)
    state: JobState = JobState.PENDING
    submitted_at: datetime = field(default_factory=_utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    message: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def finished(self) -> bool:
        return self.state in (JobState.COMPLETED, JobState.FAILED, JobState.CANCELLED)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize status to a JSON-friendly dictionary."""

        return {
            "job_id": self.job_id,
            "kind": self.kind.value,
            "params": self.params,
            "state": self.state.value,
            "submitted_at": self.submitted_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "message": self.message,
            "result": self.result,
            "error": self.error,
        }
