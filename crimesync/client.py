"""CrimeSync: the one object an app constructs per process.

    async with CrimeSync.from_settings() as sync:
        result = await sync.get_reports_near(-23.5505, -46.6333, 5.0)
        for report in result.data:
            ...
        if result.staleness is Staleness.STALE:
            show_offline_banner(result.error)

Everything shares one LocalCache, one RemoteClient, one KeyedLock and one
set of background tasks, so repositories and reactions serialize against
each other on the same entity.
"""
from __future__ import annotations

import logging
from typing import AsyncIterator

from config.settings import settings
from crimesync.db.cache import LocalCache
from crimesync.models import EntityFamily, Feedback
from crimesync.remote import HttpRemoteClient, RemoteClient
from crimesync.result import Result
from crimesync.sync.background import BackgroundTasks
from crimesync.sync.locks import KeyedLock
from crimesync.sync.reactions import ReactionCoordinator, ReactionOutcome
from crimesync.sync.reconciler import CacheReconciler, start_scheduler, stop_scheduler, sweep_on_start
from crimesync.sync.repository import (
    GroupRepository,
    PostRepository,
    ReportRepository,
    UserRepository,
)

logger = logging.getLogger(__name__)


class CrimeSync:
    def __init__(
        self,
        remote: RemoteClient,
        cache: LocalCache,
        revert_on_failure: bool | None = None,
        evict_on_start: bool | None = None,
    ):
        self.remote = remote
        self.cache = cache
        self.locks = KeyedLock()
        self.tasks = BackgroundTasks()

        self.reports = ReportRepository(remote, cache, self.locks, self.tasks)
        self.posts = PostRepository(remote, cache, self.locks, self.tasks)
        self.groups = GroupRepository(remote, cache, self.locks, self.tasks)
        self.users = UserRepository(remote, cache, self.locks, self.tasks)
        self.reactions = ReactionCoordinator(
            remote, cache, self.locks, self.tasks, revert_on_failure=revert_on_failure,
        )
        self.reconciler = CacheReconciler(cache)
        if evict_on_start is None:
            evict_on_start = settings.EVICTION_ON_START
        self.evict_on_start = evict_on_start
        self._scheduling = False

    @classmethod
    def from_settings(
        cls,
        database_url: str | None = None,
        base_url: str | None = None,
        token: str | None = None,
    ) -> "CrimeSync":
        return cls(
            remote=HttpRemoteClient(base_url=base_url, token=token),
            cache=LocalCache.from_url(database_url or settings.CACHE_DATABASE_URL),
        )

    async def __aenter__(self) -> "CrimeSync":
        await self.cache.create_schema()
        if self.evict_on_start:
            await sweep_on_start(self.reconciler)
            start_scheduler(self.reconciler)
            self._scheduling = True
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self):
        """Stop periodic eviction, let in-flight writes land, then release the
        HTTP client and engine."""
        if self._scheduling:
            stop_scheduler()
            self._scheduling = False
        await self.tasks.drain()
        await self.remote.close()
        await self.cache.dispose()
        logger.debug("CrimeSync closed")

    # ── UI-facing operations ──────────────────────────────────────────────

    async def get_reports_near(
        self, latitude: float, longitude: float, radius_km: float | None = None
    ) -> Result:
        if radius_km is None:
            radius_km = settings.DEFAULT_RADIUS_KM
        return await self.reports.get_reports_near(latitude, longitude, radius_km)

    async def toggle_report_feedback(self, report_id: str, kind: Feedback | str) -> ReactionOutcome:
        return await self.reactions.toggle_report_feedback(report_id, kind)

    async def toggle_like(self, post_id: str) -> ReactionOutcome:
        return await self.reactions.toggle_like(post_id)

    async def toggle_dislike(self, post_id: str) -> ReactionOutcome:
        return await self.reactions.toggle_dislike(post_id)

    def get_cached_stream(self, family: EntityFamily | str, **filters) -> AsyncIterator[list]:
        """Live cache snapshots for one family.

        Filters: posts take ``group_id`` / ``author_id``; groups take
        ``search`` / ``member_only``; reports and users take none.
        """
        return self.cache.family(family).observe(**filters)
