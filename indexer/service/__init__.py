"""Service facade and job tracking."""
from .core import IndexerService
from .models import BackfillRequest, JobKind, JobState, JobStatus

__all__ = ['IndexerService', 'BackfillRequest', 'JobKind', 'JobState', 'JobStatus']
