"""End-to-end tests through the CrimeSync facade."""
from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest
import pytest_asyncio
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from crimesync import CrimeSync, Staleness
from crimesync.db.cache import LocalCache
from crimesync.db.engine import create_cache_engine
from crimesync.errors import ErrorKind
from crimesync.models import EntityFamily, Feedback, utcnow
from crimesync.remote import HttpRemoteClient, RemoteOk
from crimesync.sync import reconciler as reconciler_mod

from tests.conftest import SAO_PAULO, TEST_DB_URL, FakeRemote


@pytest_asyncio.fixture
async def sync():
    remote = FakeRemote()
    async with CrimeSync(remote, LocalCache(create_cache_engine(TEST_DB_URL)), evict_on_start=False) as client:
        yield client


@pytest.mark.asyncio
async def test_shares_one_lock_table(sync):
    assert sync.reports.locks is sync.reactions.locks is sync.posts.locks is sync.groups.locks
    assert sync.reports.tasks is sync.reactions.tasks


@pytest.mark.asyncio
async def test_offline_nearby_then_feedback(sync, make_report):
    lat, lon = SAO_PAULO
    sync.remote.script("fetch_nearby_reports", RemoteOk([
        make_report(id="R1", latitude=lat + 0.01, useful_count=3, not_useful_count=1),
    ]))
    online = await sync.get_reports_near(lat, lon, 5.0)
    assert online.staleness == Staleness.FRESH

    sync.remote.go_offline()
    offline = await sync.get_reports_near(lat, lon)
    assert offline.staleness == Staleness.STALE
    assert [r.id for r in offline.data] == ["R1"]

    outcome = await sync.toggle_report_feedback("R1", Feedback.USEFUL)
    assert outcome.error.kind == ErrorKind.UNREACHABLE
    assert outcome.entity.useful_count == 4

    # The optimistic write is what the next offline read shows
    again = await sync.get_reports_near(lat, lon, 5.0)
    assert again.data[0].user_feedback == Feedback.USEFUL


@pytest.mark.asyncio
async def test_like_and_dislike(sync, make_post):
    await sync.cache.posts.upsert(make_post(like_count=2))
    assert (await sync.toggle_like("p1")).entity.like_count == 3
    disliked = await sync.toggle_dislike("p1")
    assert (disliked.entity.like_count, disliked.entity.dislike_count) == (2, 1)


@pytest.mark.asyncio
async def test_cached_stream(sync, make_post):
    stream = sync.get_cached_stream(EntityFamily.POSTS, group_id="g1")
    assert await stream.__anext__() == []

    await sync.cache.posts.upsert_many([make_post(id="p1", group_id="g1"), make_post(id="p2", group_id="g2")])
    snapshot = await asyncio.wait_for(stream.__anext__(), timeout=2)
    assert [p.id for p in snapshot] == ["p1"]
    await stream.aclose()


@pytest.mark.asyncio
async def test_cached_stream_by_name(sync, make_group):
    await sync.cache.groups.upsert(make_group(is_member=True))
    stream = sync.get_cached_stream("groups", member_only=True)
    assert len(await stream.__anext__()) == 1
    await stream.aclose()


@pytest.mark.asyncio
async def test_close_releases_remote():
    remote = FakeRemote()
    client = CrimeSync(remote, LocalCache(create_cache_engine(TEST_DB_URL)), evict_on_start=False)
    async with client:
        pass
    assert remote.closed


def test_from_settings_wires_http_client(monkeypatch):
    from config.settings import settings
    monkeypatch.setattr(settings, "API_BASE_URL", "http://api.example")

    client = CrimeSync.from_settings(database_url=TEST_DB_URL, token="t")

    assert isinstance(client.remote, HttpRemoteClient)
    assert client.remote.base_url == "http://api.example"
    assert client.reconciler.cache is client.cache


@pytest.mark.asyncio
async def test_enter_evicts_and_schedules(monkeypatch, make_report, make_group):
    fresh = AsyncIOScheduler()
    monkeypatch.setattr(reconciler_mod, "scheduler", fresh)
    cache = LocalCache(create_cache_engine(TEST_DB_URL))
    await cache.create_schema()
    await cache.reports.save_local(make_report(id="old", last_synced_at=utcnow() - timedelta(days=8)))
    await cache.reports.upsert(make_report(id="recent"))
    await cache.groups.save_local(make_group(last_synced_at=utcnow() - timedelta(days=8)))

    async with CrimeSync(FakeRemote(), cache, evict_on_start=True) as client:
        assert [r.id for r in await client.cache.reports.list_all()] == ["recent"]
        assert await client.cache.groups.count() == 1
        assert fresh.get_job("periodic_eviction") is not None
        assert fresh.running

    # AsyncIOScheduler shuts down on its next loop iteration
    await asyncio.sleep(0)
    assert not fresh.running


@pytest.mark.asyncio
async def test_eviction_on_start_follows_settings(monkeypatch):
    from config.settings import settings
    fresh = AsyncIOScheduler()
    monkeypatch.setattr(reconciler_mod, "scheduler", fresh)
    monkeypatch.setattr(settings, "EVICTION_ON_START", False)

    async with CrimeSync(FakeRemote(), LocalCache(create_cache_engine(TEST_DB_URL))) as client:
        assert client.evict_on_start is False
        assert not fresh.running
