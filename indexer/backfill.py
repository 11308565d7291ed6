"""
Token metrics backfill.

Recomputes stored metrics for every token (or only those that never had
metrics) with a pool of workers pulling from a per-batch queue. Failures
are counted, never fatal.
"""
import logging
import math
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from tqdm import tqdm

from common.models.data_models import TokenMetrics, from_wei
from indexer.utils.structured_logging import get_logger

logger = logging.getLogger(__name__)
slog = get_logger('indexer.backfill')

DEFAULT_BATCH_SIZE = 50
DEFAULT_CONCURRENCY = 50
VERIFY_TOKEN_LIMIT = 10
VERIFY_BATCH_SIZE = 10
VERIFY_CONCURRENCY = 5


def format_eta(seconds: float) -> str:
    if not math.isfinite(seconds):
        return 'calculating...'
    if seconds < 60:
        return f"{math.ceil(seconds)}s"
    if seconds < 3600:
        return f"{math.ceil(seconds / 60)}m"
    return f"{int(seconds // 3600)}h {math.ceil((seconds % 3600) / 60)}m"


def format_duration(seconds: float) -> str:
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)
    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


@dataclass
class BackfillResult:
    """Counters for one backfill run"""
    total: int = 0
    processed: int = 0
    success: int = 0
    failed: int = 0
    skipped: int = 0
    duration: float = 0.0
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def speed(self) -> float:
        return self.processed / self.duration if self.duration > 0 else 0.0

    def to_dict(self) -> Dict:
        return {
            'total': self.total,
            'processed': self.processed,
            'success': self.success,
            'failed': self.failed,
            'skipped': self.skipped,
            'duration': round(self.duration, 2),
            'speed': round(self.speed, 2),
            'errors': dict(self.errors),
        }


class MetricsBackfill:
    """
    Concurrency-limited metrics backfill.

    Tokens are split into batches; inside a batch up to `concurrency`
    workers drain a shared queue, each token being fetched and stored by
    MetricsService.
    """

    def __init__(self, metrics_service, store, show_progress: bool = True):
        """
        Args:
            metrics_service: MetricsService
            store: LaunchpadRepository
            show_progress: render a tqdm bar over batches
        """
        self.metrics_service = metrics_service
        self.store = store
        self.show_progress = show_progress
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self._result = BackfillResult()
        self._started_at = 0.0

    def stop(self):
        """Stop before the next token is taken from the queue."""
        self._stop_event.set()

    @property
    def progress(self) -> float:
        result = self._result
        return result.processed / result.total if result.total else 0.0

    def backfill(self, verify_mode: bool = False, batch_size: Optional[int] = None,
                 concurrency: Optional[int] = None,
                 only_missing_metrics: bool = False) -> BackfillResult:
        """
        Run the backfill.

        Args:
            verify_mode: process 10 tokens with small batches and log
                before/after values
            batch_size: tokens per batch (50, verify 10)
            concurrency: workers per batch (50, verify 5)
            only_missing_metrics: only tokens whose metrics were never stored

        Returns:
            BackfillResult with the final counters
        """
        batch_size = batch_size or (VERIFY_BATCH_SIZE if verify_mode else DEFAULT_BATCH_SIZE)
        concurrency = concurrency or (VERIFY_CONCURRENCY if verify_mode else DEFAULT_CONCURRENCY)

        self._stop_event.clear()
        self._result = BackfillResult()
        self._started_at = time.monotonic()

        logger.info("Starting token metrics backfill")
        logger.info(f"Mode: {'VERIFICATION (small batch)' if verify_mode else 'FULL BACKFILL'}")
        logger.info(f"Concurrency: {concurrency}, Batch Size: {batch_size}")

        addresses = self.store.tokens.list_addresses(
            only_missing_metrics=only_missing_metrics,
            limit=VERIFY_TOKEN_LIMIT if verify_mode else None,
        )
        self._result.total = len(addresses)

        if not addresses:
            logger.info("No tokens need metrics update")
            return self._finish()

        logger.info(f"Found {len(addresses)} tokens to update")

        batches = [addresses[i:i + batch_size] for i in range(0, len(addresses), batch_size)]
        for number, batch in enumerate(
                tqdm(batches, desc="Metrics backfill", disable=not self.show_progress), start=1):
            if self._stop_event.is_set():
                logger.warning("Backfill stopped")
                break
            logger.info(f"Processing batch {number}/{len(batches)} ({len(batch)} tokens)")
            self._process_batch(batch, concurrency, verify_mode)
            self._log_progress()

        return self._finish()

    def _process_batch(self, batch: List[str], concurrency: int, verify_mode: bool):
        work: queue.Queue = queue.Queue()
        for address in batch:
            work.put(address)

        workers = min(concurrency, len(batch))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='backfill') as executor:
            futures = [executor.submit(self._worker, work, verify_mode) for _ in range(workers)]
            for future in futures:
                future.result()

    def _worker(self, work: queue.Queue, verify_mode: bool):
        while not self._stop_event.is_set():
            try:
                address = work.get_nowait()
            except queue.Empty:
                return
            self.update_token(address, verify_mode)

    def update_token(self, address: str, verify_mode: bool = False) -> Optional[TokenMetrics]:
        """Refresh one token's metrics, recording success or failure."""
        address = address.lower()
        before = None
        try:
            if verify_mode:
                before = self.store.tokens.get(address)
            metrics = self.metrics_service.update_token_metrics(address)
        except Exception as e:
            with self._lock:
                self._result.failed += 1
                self._result.processed += 1
                self._result.errors[address] = str(e)
            if verify_mode:
                logger.error(f"{address} failed: {e}", exc_info=True)
            else:
                logger.error(f"Failed {address}: {e}")
            return None

        with self._lock:
            self._result.success += 1
            self._result.processed += 1

        if verify_mode:
            self._log_verification(address, before, metrics)
        else:
            logger.debug(f"Updated {address}: price={metrics.current_price:.10f}, "
                         f"mcap={metrics.market_cap:.6f}")
        return metrics

    def _log_verification(self, address: str, before, metrics: TokenMetrics):
        label = f"{before.name} ({before.symbol})" if before else address
        was_price = before.metrics.current_price if before else 0
        was_mcap = before.metrics.market_cap if before else 0
        logger.info(f"{label} - {address}")
        logger.info(f"   Price:      {metrics.current_price:.10f} ETH "
                    f"{f'(was: {was_price:.10f})' if was_price else '(new)'}")
        logger.info(f"   Market Cap: {metrics.market_cap:.6f} ETH "
                    f"{f'(was: {was_mcap:.6f})' if was_mcap else '(new)'}")
        logger.info(f"   Volume 24h: {metrics.volume_24h:.6f} ETH")
        logger.info(f"   Price chg:  {metrics.price_change_24h:.2f}%")
        logger.info(f"   Supply:     {from_wei(metrics.current_supply):.2f} tokens")
        logger.info(f"   Reserve:    {from_wei(metrics.reserve_balance):.6f} ETH")
        logger.info(f"   Holders:    {metrics.holder_count}")

    def _log_progress(self):
        result = self._result
        elapsed = time.monotonic() - self._started_at
        speed = result.processed / elapsed if elapsed > 0 else 0.0
        remaining = result.total - result.processed
        eta = remaining / speed if speed > 0 else math.inf
        slog.info(
            "backfill_progress",
            processed=result.processed,
            total=result.total,
            percent=round(result.processed / result.total * 100, 1) if result.total else 0.0,
            success=result.success,
            failed=result.failed,
            speed=round(speed, 1),
            eta=format_eta(eta),
        )

    def _finish(self) -> BackfillResult:
        result = self._result
        result.duration = time.monotonic() - self._started_at
        logger.info("=" * 60)
        logger.info("BACKFILL COMPLETE")
        logger.info("=" * 60)
        logger.info(f"Total Processed:  {result.processed}")
        logger.info(f"Success:          {result.success}")
        logger.info(f"Failed:           {result.failed}")
        logger.info(f"Skipped:          {result.skipped}")
        logger.info(f"Total Time:       {format_duration(result.duration)}")
        logger.info(f"Avg Speed:        {result.speed:.2f} tokens/s")
        logger.info("=" * 60)
        slog.info("backfill_complete", **result.to_dict())
        return result
