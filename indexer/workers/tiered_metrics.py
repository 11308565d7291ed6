"""
Tiered metrics refresh.

Tokens are bucketed by how recently they traded; busier tiers are
refreshed more often:

- HOT: traded in the last 10 minutes, every 30 seconds
- WARM: traded in the last hour (not hot), every 5 minutes
- ACTIVE: traded in the last 24 hours (not warm), every 30 minutes
- COLD: no trade in 24 hours, every 12 hours, 50 tokens per run
"""
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Tier:
    name: str
    interval: timedelta
    limit: int
    traded_within: Optional[timedelta] = None
    not_traded_within: Optional[timedelta] = None


HOT = Tier('HOT', timedelta(seconds=30), 100, traded_within=timedelta(minutes=10))
WARM = Tier('WARM', timedelta(minutes=5), 200,
            traded_within=timedelta(hours=1), not_traded_within=timedelta(minutes=10))
ACTIVE = Tier('ACTIVE', timedelta(minutes=30), 500,
              traded_within=timedelta(hours=24), not_traded_within=timedelta(hours=1))
COLD = Tier('COLD', timedelta(hours=12), 50, not_traded_within=timedelta(hours=24))

TIERS = (HOT, WARM, ACTIVE, COLD)


@dataclass
class TierResult:
    tier: str
    selected: int = 0
    successful: int = 0
    failed: int = 0
    duration_ms: int = 0


class TieredMetricsProcessor:
    """
    Runs due tiers on each tick. Overlapping ticks are skipped, not queued.
    """

    def __init__(self, metrics_service, store, max_workers: int = 10):
        self.metrics_service = metrics_service
        self.store = store
        self.max_workers = max_workers
        self.last_run: Dict[str, float] = {tier.name: 0.0 for tier in TIERS}
        self.cold_offset = 0
        self._running = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._running.locked()

    def run(self, now: Optional[datetime] = None) -> Optional[List[TierResult]]:
        """
        Refresh every tier whose interval has elapsed.

        Returns:
            Results per refreshed tier, or None when a previous run is
            still active
        """
        if not self._running.acquire(blocking=False):
            logger.warning("Skipping tiered metrics update - previous run still active")
            return None

        try:
            now = now or datetime.now(timezone.utc)
            clock = now.timestamp()
            results = []
            for tier in TIERS:
                if clock - self.last_run[tier.name] >= tier.interval.total_seconds():
                    results.append(self.update_tier(tier, now))
                    self.last_run[tier.name] = clock
            logger.info("Tiered metrics update completed")
            return results
        finally:
            self._running.release()

    def select_tokens(self, tier: Tier, now: datetime) -> List[str]:
        return self.store.tokens.find_by_last_trade(
            traded_since=now - tier.traded_within if tier.traded_within else None,
            not_traded_since=now - tier.not_traded_within if tier.not_traded_within else None,
            limit=tier.limit,
            offset=self.cold_offset if tier is COLD else 0,
            trading_only=tier is not COLD,
        )

    def update_tier(self, tier: Tier, now: datetime) -> TierResult:
        started = time.monotonic()
        result = TierResult(tier=tier.name)

        addresses = self.select_tokens(tier, now)
        result.selected = len(addresses)

        if not addresses:
            if tier is COLD:
                self.cold_offset = 0
                logger.info("All cold tokens updated, resetting batch offset")
            else:
                logger.info(f"No {tier.name.lower()} tokens to update")
            return result

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(addresses)),
                                thread_name_prefix=f"metrics-{tier.name.lower()}") as executor:
            futures = [executor.submit(self.metrics_service.update_token_metrics, a) for a in addresses]
            for address, future in zip(addresses, futures):
                try:
                    future.result()
                    result.successful += 1
                except Exception as e:
                    result.failed += 1
                    logger.debug(f"Metrics update failed for {address}: {e}")

        result.duration_ms = int((time.monotonic() - started) * 1000)
        if tier is COLD:
            self.cold_offset += len(addresses)
            logger.info(f"COLD tokens updated: {result.successful} successful, {result.failed} failed, "
                        f"offset now at {self.cold_offset} ({result.duration_ms}ms)")
        else:
            logger.info(f"{tier.name} tokens updated: {result.successful} successful, "
                        f"{result.failed} failed ({result.duration_ms}ms)")
        return result
