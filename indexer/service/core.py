"""Core implementation of the launchpad indexer service."""
from __future__ import annotations

import logging
import threading
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from common.config.settings import LaunchpadConfig
from indexer.backfill import MetricsBackfill
from indexer.clients import ContractService, IPFSClient, RpcClient
from indexer.pipeline.block_indexer import BlockchainIndexer
from indexer.processors.candles import CandleService
from indexer.scheduler import WorkerScheduler
from indexer.services.market import MarketService
from indexer.services.metrics import MetricsService
from indexer.services.portfolio import PortfolioService
from indexer.services.sync import SyncService
from indexer.services.tokens import TokenQueryService
from indexer.workers.cache_warming import CacheWarmingProcessor
from indexer.workers.holder_update import HolderUpdateProcessor
from indexer.workers.ipfs_cache import IPFSCacheProcessor
from indexer.workers.tiered_metrics import TieredMetricsProcessor
from storage.cache import CacheService, create_redis_client
from storage.interfaces import LaunchpadRepository
from storage.postgres import LaunchpadStore

from .models import BackfillRequest, CancelOutcome, JobKind, JobState, JobStatus

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IndexerService:
    """High-level facade wiring storage, chain access, the indexer, the workers and jobs."""

    # finished jobs kept for status lookups; older ones are dropped on submit
    max_finished_jobs = 100

    def __init__(self, config: Optional[LaunchpadConfig] = None, store=None,
                 cache: Optional[CacheService] = None, rpc: Optional[RpcClient] = None,
                 contracts: Optional[ContractService] = None, ipfs: Optional[IPFSClient] = None,
                 max_workers: int = 2, show_progress: bool = False) -> None:
        self.config = config or LaunchpadConfig.default()
        cfg = self.config

        self.store = store or LaunchpadStore.from_config(cfg.database)
        if not isinstance(self.store, LaunchpadRepository):
            raise TypeError(f"{type(self.store).__name__} does not implement LaunchpadRepository")
        if cache is None:
            client = create_redis_client(cfg.redis) if cfg.cache.enabled else None
            cache = CacheService(client, enabled=cfg.cache.enabled)
        self.cache = cache

        if contracts is None:
            rpc = rpc or RpcClient(
                cfg.blockchain.rpc_urls,
                rate_limit=cfg.blockchain.rpc_rate_limit,
                timeout=cfg.http.timeout,
                max_connections=cfg.http.max_connections,
            )
            contracts = ContractService(rpc, cfg.blockchain.token_factory_address,
                                        cfg.blockchain.marketplace_address)
        self.rpc = rpc
        self.contracts = contracts
        self.ipfs = ipfs or IPFSClient(
            cfg.ipfs.gateways,
            cache=self.cache,
            repository=self.store.ipfs_cache,
            timeout=cfg.ipfs.timeout,
            metadata_ttl=cfg.cache.metadata_ttl,
        )

        self.metrics_service = MetricsService(self.contracts, self.store, self.cache)
        self.portfolio_service = PortfolioService(self.contracts, self.store)
        self.token_service = TokenQueryService(self.store, self.cache, cfg.cache)
        self.market_service = MarketService(self.store, self.cache, stats_ttl=cfg.cache.token_price_ttl)
        self.candle_service = CandleService(self.store)
        self.sync_service = SyncService(self.contracts, self.store, self.ipfs,
                                        start_block=cfg.blockchain.start_block)

        self.indexer = BlockchainIndexer(
            self.contracts, self.store, self.ipfs, self.metrics_service, self.portfolio_service,
            indexer_config=cfg.indexer, blockchain_config=cfg.blockchain,
        )

        self.tiered_metrics = TieredMetricsProcessor(
            self.metrics_service, self.store, max_workers=cfg.worker.concurrency)
        self.holder_update = HolderUpdateProcessor(self.contracts, self.store)
        self.ipfs_cache = IPFSCacheProcessor(self.ipfs, self.store)
        self.cache_warming = CacheWarmingProcessor(
            self.cache, self.market_service, self.token_service, self.store)
        self._scheduler: Optional[WorkerScheduler] = None

        self.show_progress = show_progress
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='job')
        self._jobs: Dict[str, JobStatus] = {}
        self._job_futures: Dict[str, Future] = {}
        self._backfills: Dict[str, MetricsBackfill] = {}
        self._jobs_lock = threading.RLock()
        self._started_at = time.monotonic()

    # ------------------------------------------------------------------
    # Indexer and workers
    # ------------------------------------------------------------------
    def start_indexer(self) -> bool:
        return self.indexer.start()

    def stop_indexer(self) -> None:
        self.indexer.stop()

    def indexer_status(self) -> Dict[str, Any]:
        return self.indexer.get_status()

    @property
    def scheduler(self) -> WorkerScheduler:
        if self._scheduler is None:
            self._scheduler = WorkerScheduler(
                self.tiered_metrics, self.cache_warming, self.holder_update, self.ipfs_cache)
        return self._scheduler

    def start_workers(self) -> bool:
        if not self.config.worker.enabled:
            logger.info("Background workers are disabled")
            return False
        self.scheduler.start()
        return True

    def stop_workers(self) -> None:
        if self._scheduler is not None:
            self._scheduler.stop()

    def worker_status(self) -> Dict[str, Any]:
        scheduler = self._scheduler
        if scheduler is None:
            return {'running': False, 'jobs': []}
        return {'running': scheduler.scheduler.running, 'jobs': scheduler.get_jobs()}

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------
    def health(self) -> Dict[str, Any]:
        return {
            'status': 'healthy',
            'uptime': round(time.monotonic() - self._started_at, 1),
            'environment': self.config.app.env,
        }

    def health_detailed(self) -> Dict[str, Any]:
        """
        Check database, Redis and RPC.

        status is 'unhealthy' when the database is down and 'degraded'
        when only Redis or RPC is.
        """
        try:
            db_ok = bool(self.store.ping())
            database = {'status': 'up' if db_ok else 'down'}
        except Exception as e:
            db_ok = False
            database = {'status': 'down', 'error': str(e)}

        redis_ok = self.cache.is_available()
        redis_status: Dict[str, Any] = {'status': 'up' if redis_ok else 'down'}
        if redis_ok:
            redis_status['stats'] = self.cache.stats()

        if self.rpc is not None:
            rpc_status = self.rpc.health_check()
            rpc_status['providers'] = self.rpc.provider_stats()
        else:
            try:
                rpc_status = {'healthy': True, 'block_number': self.contracts.get_latest_block()}
            except Exception as e:
                rpc_status = {'healthy': False, 'error': str(e)}
        rpc_ok = bool(rpc_status.get('healthy'))

        if not db_ok:
            status = 'unhealthy'
        elif not (redis_ok and rpc_ok):
            status = 'degraded'
        else:
            status = 'healthy'

        return {
            'status': status,
            'uptime': round(time.monotonic() - self._started_at, 1),
            'services': {
                'database': database,
                'redis': redis_status,
                'rpc': rpc_status,
                'indexer': self.indexer_status(),
            },
        }

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------
    def start_backfill(self, request: Optional[BackfillRequest] = None) -> JobStatus:
        """Submit a metrics backfill job to the executor."""
        request = request or BackfillRequest()
        backfill = MetricsBackfill(self.metrics_service, self.store, show_progress=self.show_progress)

        def run() -> Dict[str, Any]:
            result = backfill.backfill(
                verify_mode=request.verify_mode,
                batch_size=request.batch_size,
                concurrency=request.concurrency,
                only_missing_metrics=request.only_missing_metrics,
            )
            return result.to_dict()

        return self._submit(JobKind.BACKFILL, request.to_dict(), run, backfill=backfill)

    def start_sync(self) -> JobStatus:
        return self._submit(JobKind.SYNC, {}, self.sync_service.sync_all_tokens)

    def start_sync_holders(self, token_address: str) -> JobStatus:
        token_address = token_address.lower()

        def run() -> Dict[str, Any]:
            return {'holders': self.sync_service.sync_token_holders(token_address)}

        return self._submit(JobKind.SYNC_HOLDERS, {'token_address': token_address}, run)

    def list_jobs(self) -> List[JobStatus]:
        with self._jobs_lock:
            return list(self._jobs.values())

    def get_job(self, job_id: str) -> Optional[JobStatus]:
        with self._jobs_lock:
            return self._jobs.get(job_id)

    def cancel_job(self, job_id: str) -> CancelOutcome:
        """
        Cancel a pending job, or ask a running backfill to stop.

        Running sync jobs cannot be interrupted and report CancelOutcome.RUNNING.
        """
        with self._jobs_lock:
            future = self._job_futures.get(job_id)
            status = self._jobs.get(job_id)
            backfill = self._backfills.get(job_id)

        if not future or not status:
            return CancelOutcome.NOT_FOUND
        if status.finished:
            return CancelOutcome.FINISHED

        cancelled = future.cancel()
        if not cancelled and backfill is not None and status.state == JobState.RUNNING:
            backfill.stop()
            cancelled = True

        if not cancelled:
            return CancelOutcome.FINISHED if status.finished else CancelOutcome.RUNNING

        status.state = JobState.CANCELLED
        status.completed_at = _utcnow()
        status.message = "Job cancelled by user"
        logger.info("Job %s cancelled", job_id)
        return CancelOutcome.CANCELLED

    def _submit(self, kind: JobKind, params: Dict[str, Any],
                work: Callable[[], Dict[str, Any]],
                backfill: Optional[MetricsBackfill] = None) -> JobStatus:
        job_id = str(uuid.uuid4())
        status = JobStatus(job_id=job_id, kind=kind, params=params)

        with self._jobs_lock:
            self._prune_jobs()
            self._jobs[job_id] = status
            if backfill is not None:
                self._backfills[job_id] = backfill
            future = self._executor.submit(self._run_job, status, work)
            self._job_futures[job_id] = future

        future.add_done_callback(lambda fut, jid=job_id: self._finalize_job(jid, fut))

        logger.info("%s job %s queued", kind.value, job_id)
        return status

    def _prune_jobs(self) -> None:
        finished = [job_id for job_id, status in self._jobs.items() if status.finished]
        for job_id in finished[:max(0, len(finished) - self.max_finished_jobs)]:
            self._jobs.pop(job_id, None)
            self._job_futures.pop(job_id, None)
            self._backfills.pop(job_id, None)

    def _run_job(self, status: JobStatus, work: Callable[[], Dict[str, Any]]) -> None:
        status.state = JobState.RUNNING
        status.started_at = _utcnow()
        logger.info("%s job %s started", status.kind.value, status.job_id)
        try:
            result = work()
            if status.state == JobState.CANCELLED:
                status.result = result
                return
            status.state = JobState.COMPLETED
            status.completed_at = _utcnow()
            status.result = result
            status.message = f"{status.kind.value} completed"
            logger.info("%s job %s completed", status.kind.value, status.job_id)
        except Exception as exc:
            status.state = JobState.FAILED
            status.completed_at = _utcnow()
            status.error = str(exc)
            status.message = f"{status.kind.value} failed"
            logger.exception("%s job %s failed", status.kind.value, status.job_id)

    def _finalize_job(self, job_id: str, future: Future) -> None:
        with self._jobs_lock:
            self._backfills.pop(job_id, None)
            status = self._jobs.get(job_id)
            if status and not status.finished:
                status.completed_at = _utcnow()
                if future.cancelled():
                    status.state = JobState.CANCELLED
                    status.message = "Job cancelled"
                elif future.exception():
                    status.state = JobState.FAILED
                    status.error = str(future.exception())
                    status.message = "Job failed"

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def shutdown(self) -> None:
        logger.info("Shutting down indexer service")
        self.stop_workers()
        self.stop_indexer()
        with self._jobs_lock:
            backfills = list(self._backfills.values())
        for backfill in backfills:
            backfill.stop()
        self._executor.shutdown(wait=False)
        self.cache.close()
        if self.rpc is not None:
            self.rpc.close()
        if hasattr(self.ipfs, 'close'):
            self.ipfs.close()
        self.store.close()
