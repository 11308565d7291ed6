"""
APScheduler integration for the background workers.

Provides scheduled execution of:
- Tiered metrics refresh (every 30 seconds)
- Cache warming, including market stats (every 10 minutes)
- Batch holder balance refresh (hourly at minute 0)
- IPFS metadata retry (hourly at minute 0)
"""
import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)


class WorkerScheduler:
    """
    Manages the periodic worker jobs using APScheduler.

    Each job catches and logs its own failures so one bad run never
    unschedules it.
    """

    def __init__(self, tiered_metrics, cache_warming, holder_update, ipfs_cache,
                 tiered_interval_seconds: int = 30, cache_warming_minutes: int = 10):
        """
        Initialize scheduler.

        Args:
            tiered_metrics: TieredMetricsProcessor
            cache_warming: CacheWarmingProcessor
            holder_update: HolderUpdateProcessor
            ipfs_cache: IPFSCacheProcessor
            tiered_interval_seconds: tick of the tiered metrics job
            cache_warming_minutes: interval of the cache warming job
        """
        self.tiered_metrics = tiered_metrics
        self.cache_warming = cache_warming
        self.holder_update = holder_update
        self.ipfs_cache = ipfs_cache
        self.tiered_interval_seconds = tiered_interval_seconds
        self.cache_warming_minutes = cache_warming_minutes

        self.scheduler = BackgroundScheduler(
            job_defaults={
                'coalesce': True,  # Combine missed runs into one
                'max_instances': 1,  # Prevent concurrent execution
                'misfire_grace_time': 300,  # 5 minutes grace period
            }
        )

        self._setup_jobs()
        logger.info("WorkerScheduler initialized")

    def _setup_jobs(self) -> None:
        self.scheduler.add_job(
            func=self._run_tiered_metrics,
            trigger=IntervalTrigger(seconds=self.tiered_interval_seconds),
            id='tiered_metrics',
            name='Tiered Metrics Update',
            replace_existing=True,
        )
        logger.info(f"Scheduled: Tiered metrics every {self.tiered_interval_seconds} seconds")

        self.scheduler.add_job(
            func=self._run_cache_warming,
            trigger=IntervalTrigger(minutes=self.cache_warming_minutes),
            id='cache_warming',
            name='Cache Warming',
            replace_existing=True,
        )
        logger.info(f"Scheduled: Cache warming every {self.cache_warming_minutes} minutes")

        self.scheduler.add_job(
            func=self._run_holder_update,
            trigger=CronTrigger(minute=0, timezone='UTC'),
            id='holder_update',
            name='Holder Balance Update',
            replace_existing=True,
        )
        logger.info("Scheduled: Holder balance update hourly")

        self.scheduler.add_job(
            func=self._run_ipfs_cache,
            trigger=CronTrigger(minute=0, timezone='UTC'),
            id='ipfs_cache',
            name='IPFS Metadata Retry',
            replace_existing=True,
        )
        logger.info("Scheduled: IPFS metadata retry hourly")

    def _run_tiered_metrics(self) -> None:
        try:
            self.tiered_metrics.run()
        except Exception as e:
            logger.error(f"Tiered metrics update failed: {e}", exc_info=True)

    def _run_cache_warming(self) -> None:
        try:
            self.cache_warming.run()
        except Exception as e:
            logger.error(f"Cache warming failed: {e}", exc_info=True)

    def _run_holder_update(self) -> None:
        try:
            self.holder_update.run(batch_update=True)
        except Exception as e:
            logger.error(f"Holder update failed: {e}", exc_info=True)

    def _run_ipfs_cache(self) -> None:
        try:
            self.ipfs_cache.run(mode='all')
        except Exception as e:
            logger.error(f"IPFS metadata retry failed: {e}", exc_info=True)

    def start(self) -> None:
        """Start the scheduler."""
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Scheduler started")
        else:
            logger.warning("Scheduler already running")

    def stop(self) -> None:
        """Stop the scheduler."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=True)
            logger.info("Scheduler stopped")
        else:
            logger.warning("Scheduler not running")

    def get_jobs(self) -> list:
        """Get list of scheduled jobs."""
        return [
            {
                'id': job.id,
                'name': job.name,
                'next_run': job.next_run_time.isoformat() if getattr(job, 'next_run_time', None) else None,
                'trigger': str(job.trigger),
            }
            for job in self.scheduler.get_jobs()
        ]
