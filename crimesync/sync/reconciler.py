"""
Cache eviction. Keeps the local cache from growing without bound.
---
Rows are deleted when their ``last_synced_at`` is older than the family's
retention window. Only fetch write-through moves ``last_synced_at``;
optimistic reaction writes don't, so a row with an unconfirmed reaction is
aged by its last real sync, never by the local edit.

The trade-off: a reaction that failed to reach the server on a row that was
already near its retention limit can be evicted before a fetch reconciles
it. The user sees the entity again, with server counts, the next time it is
fetched. Keeping such rows would need a separate pending-action marker.

Runs out-of-band: once at app start and then on an APScheduler interval.
Failures are logged and recorded, never raised.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config.settings import settings
from crimesync.db.cache import LocalCache
from crimesync.models import EntityFamily, utcnow

logger = logging.getLogger(__name__)

# ── Configuration ─────────────────────────────────────────────────────────────

REPORT_RETENTION_DAYS = 7
POST_RETENTION_DAYS = 7
GROUP_RETENTION_DAYS = 30
USER_RETENTION_DAYS = 30

DEFAULT_RETENTION = {
    EntityFamily.REPORTS: timedelta(days=REPORT_RETENTION_DAYS),
    EntityFamily.POSTS: timedelta(days=POST_RETENTION_DAYS),
    EntityFamily.GROUPS: timedelta(days=GROUP_RETENTION_DAYS),
    EntityFamily.USERS: timedelta(days=USER_RETENTION_DAYS),
}


@dataclass
class EvictionResult:
    """Results from an eviction sweep."""
    evicted: dict[str, int] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    dry_run: bool = False
    started_at: str = ""
    completed_at: str = ""
    duration_ms: int = 0

    @property
    def total(self) -> int:
        return sum(self.evicted.values())


class CacheReconciler:
    """Age-based eviction over every family in a LocalCache."""

    def __init__(
        self,
        cache: LocalCache,
        retention: dict[EntityFamily, timedelta] | None = None,
    ):
        self.cache = cache
        self.retention = dict(DEFAULT_RETENTION)
        if settings.CACHE_RETENTION_DAYS is not None:
            override = timedelta(days=settings.CACHE_RETENTION_DAYS)
            self.retention = {family: override for family in self.retention}
        if retention:
            self.retention.update(retention)

    async def evict(
        self,
        family: EntityFamily | str,
        retention: timedelta,
        now: datetime | None = None,
        dry_run: bool = False,
    ) -> int:
        """Delete rows last synced strictly before ``now - retention``."""
        store = self.cache.family(family)
        cutoff = (now or utcnow()) - retention
        if dry_run:
            return await store.count_older_than(cutoff)
        deleted = await store.delete_older_than(cutoff)
        if deleted:
            logger.info(f"Evicted {deleted} {store.family.value} synced before {cutoff.isoformat()}")
        return deleted

    async def run_sweep(
        self,
        retention: Optional[timedelta] = None,
        dry_run: bool = False,
        now: datetime | None = None,
    ) -> EvictionResult:
        """Evict every family. One family failing doesn't stop the others."""
        start = utcnow()
        now = now or start
        result = EvictionResult(dry_run=dry_run, started_at=start.isoformat())

        for family, family_retention in self.retention.items():
            try:
                result.evicted[family.value] = await self.evict(
                    family, retention or family_retention, now=now, dry_run=dry_run,
                )
            except Exception as e:
                result.errors.append(f"{family.value}: {e}")
                logger.error(f"Eviction: {family.value} failed: {e}")

        end = utcnow()
        result.completed_at = end.isoformat()
        result.duration_ms = int((end - start).total_seconds() * 1000)

        logger.info(
            f"Eviction sweep {'(DRY RUN) ' if dry_run else ''}"
            f"completed in {result.duration_ms}ms: "
            + " ".join(f"{name}={count}" for name, count in result.evicted.items())
        )
        return result


# ── Scheduling ────────────────────────────────────────────────────────────────

scheduler = AsyncIOScheduler()


async def sweep_on_start(reconciler: CacheReconciler) -> EvictionResult:
    """App-start trigger."""
    logger.info("Startup eviction sweep starting...")
    return await reconciler.run_sweep()


def start_scheduler(reconciler: CacheReconciler, interval_hours: int | None = None):
    """Start the background scheduler for periodic eviction."""
    interval_hours = interval_hours or settings.EVICTION_INTERVAL_HOURS
    scheduler.add_job(
        reconciler.run_sweep,
        trigger=IntervalTrigger(hours=interval_hours),
        id="periodic_eviction",
        name="Periodic cache eviction",
        replace_existing=True,
    )
    if not scheduler.running:
        scheduler.start()
    logger.info(f"Scheduler started, evicting every {interval_hours}h")


def stop_scheduler():
    """Gracefully shut down the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
