"""Shared test fixtures: in-memory cache per test + a scripted remote."""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

import pytest
import pytest_asyncio

from crimesync.db.cache import LocalCache
from crimesync.db.engine import create_cache_engine
from crimesync.errors import SyncError
from crimesync.models import CrimeType, Group, Post, Report, User
from crimesync.remote import RemoteClient, RemoteEmpty, RemoteFailure, RemoteOk
from crimesync.sync.background import BackgroundTasks
from crimesync.sync.locks import KeyedLock

# StaticPool keeps the one in-memory database alive across sessions
TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

SAO_PAULO = (-23.5505, -46.6333)
OFFLINE = RemoteFailure(SyncError.unreachable("Connection refused"))


class FakeRemote(RemoteClient):
    """RemoteClient with per-method scripted outcomes.

    ``script("fetch_report", RemoteOk(r))`` answers every call with that
    outcome; several outcomes are consumed in order and the last repeats.
    Unscripted methods answer ``default``. Set ``gate`` to an Event to hold
    every call until the test releases it.
    """

    def __init__(self, default: Any = None):
        self.default = default if default is not None else RemoteEmpty()
        self.outcomes: dict[str, list] = {}
        self.calls: list[tuple[str, tuple]] = []
        self.gate: asyncio.Event | None = None
        self.closed = False

    def script(self, method: str, *outcomes):
        self.outcomes[method] = list(outcomes)

    def go_offline(self):
        self.default = OFFLINE
        self.outcomes.clear()

    def called(self, method: str) -> list[tuple]:
        return [args for name, args in self.calls if name == method]

    async def _answer(self, method: str, *args):
        self.calls.append((method, args))
        if self.gate is not None:
            await self.gate.wait()
        # Let other tasks interleave, like a real network round-trip would
        await asyncio.sleep(0)
        queue = self.outcomes.get(method)
        if not queue:
            return self.default
        return queue.pop(0) if len(queue) > 1 else queue[0]

    async def fetch_nearby_reports(self, latitude, longitude, radius_km):
        return await self._answer("fetch_nearby_reports", latitude, longitude, radius_km)

    async def fetch_report(self, report_id):
        return await self._answer("fetch_report", report_id)

    async def create_report(self, crime_type, description, latitude, longitude, anonymous=False):
        return await self._answer("create_report", crime_type, description, latitude, longitude, anonymous)

    async def submit_feedback(self, report_id, feedback):
        return await self._answer("submit_feedback", report_id, feedback)

    async def fetch_groups(self, search=None):
        return await self._answer("fetch_groups", search)

    async def fetch_group(self, group_id):
        return await self._answer("fetch_group", group_id)

    async def create_group(self, name, description=None):
        return await self._answer("create_group", name, description)

    async def join_group(self, group_id):
        return await self._answer("join_group", group_id)

    async def leave_group(self, group_id):
        return await self._answer("leave_group", group_id)

    async def fetch_group_posts(self, group_id, page=1, limit=20):
        return await self._answer("fetch_group_posts", group_id, page, limit)

    async def fetch_user_feed(self, page=1, limit=20):
        return await self._answer("fetch_user_feed", page, limit)

    async def fetch_post(self, post_id):
        return await self._answer("fetch_post", post_id)

    async def create_post(self, group_id, content, media_url=None):
        return await self._answer("create_post", group_id, content, media_url)

    async def delete_post(self, post_id):
        return await self._answer("delete_post", post_id)

    async def like_post(self, post_id):
        return await self._answer("like_post", post_id)

    async def dislike_post(self, post_id):
        return await self._answer("dislike_post", post_id)

    async def fetch_profile(self):
        return await self._answer("fetch_profile")

    async def close(self):
        self.closed = True


# ── Factories ─────────────────────────────────────────────────────────────────

CREATED = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _make_report(**kwargs) -> Report:
    defaults = dict(
        id="r1",
        type=CrimeType.FURTO,
        description="Phone snatched at the bus stop",
        latitude=SAO_PAULO[0],
        longitude=SAO_PAULO[1],
        created_at=CREATED,
        author_display_name="maria",
    )
    defaults.update(kwargs)
    return Report(**defaults)


def _make_post(**kwargs) -> Post:
    defaults = dict(
        id="p1",
        group_id="g1",
        author_id="u1",
        author_username="maria",
        group_name="Vila Mariana",
        content="Streetlight out on Rua Domingos de Morais",
        created_at=CREATED,
    )
    defaults.update(kwargs)
    return Post(**defaults)


def _make_group(**kwargs) -> Group:
    defaults = dict(id="g1", name="Vila Mariana", member_count=10, created_at=CREATED)
    defaults.update(kwargs)
    return Group(**defaults)


def _make_user(**kwargs) -> User:
    defaults = dict(id="u1", username="maria", email="maria@example.com", created_at=CREATED)
    defaults.update(kwargs)
    return User(**defaults)


@pytest.fixture
def make_report():
    return _make_report


@pytest.fixture
def make_post():
    return _make_post


@pytest.fixture
def make_group():
    return _make_group


@pytest.fixture
def make_user():
    return _make_user


# ── Wiring ────────────────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def cache():
    """Fresh schema for each test, disposed after."""
    local = LocalCache(create_cache_engine(TEST_DB_URL))
    await local.create_schema()
    yield local
    await local.dispose()


@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
def locks():
    return KeyedLock()


@pytest_asyncio.fixture
async def tasks():
    background = BackgroundTasks()
    yield background
    await background.drain()
