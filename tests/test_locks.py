"""Tests for the keyed lock table and detached background tasks."""
from __future__ import annotations

import asyncio

import pytest

from crimesync.sync.background import BackgroundTasks
from crimesync.sync.locks import KeyedLock


class TestKeyedLock:

    @pytest.mark.asyncio
    async def test_same_key_serializes(self):
        locks = KeyedLock()
        order = []

        async def worker(name):
            async with locks.hold(("posts", "p1")):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))
        assert order == ["a-in", "a-out", "b-in", "b-out"]

    @pytest.mark.asyncio
    async def test_different_keys_run_concurrently(self):
        locks = KeyedLock()
        inside = asyncio.Event()

        async def first():
            async with locks.hold(("posts", "p1")):
                await asyncio.wait_for(inside.wait(), timeout=1)

        async def second():
            async with locks.hold(("posts", "p2")):
                inside.set()

        await asyncio.gather(first(), second())

    @pytest.mark.asyncio
    async def test_entries_dropped_when_idle(self):
        locks = KeyedLock()
        async with locks.hold("k"):
            assert len(locks) == 1
            assert locks.locked("k")
        assert len(locks) == 0
        assert not locks.locked("k")

    @pytest.mark.asyncio
    async def test_entry_released_on_error(self):
        locks = KeyedLock()
        with pytest.raises(RuntimeError):
            async with locks.hold("k"):
                raise RuntimeError("boom")
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_hold_many_blocks_single_holders(self):
        locks = KeyedLock()
        order = []

        async def batch():
            async with locks.hold_many([("r", "b"), ("r", "a"), ("r", "a")]):
                order.append("batch-in")
                await asyncio.sleep(0.01)
                order.append("batch-out")

        async def single():
            await asyncio.sleep(0)
            async with locks.hold(("r", "b")):
                order.append("single")

        await asyncio.gather(batch(), single())
        assert order == ["batch-in", "batch-out", "single"]
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_overlapping_batches_do_not_deadlock(self):
        locks = KeyedLock()

        async def batch(keys):
            async with locks.hold_many(keys):
                await asyncio.sleep(0.001)

        await asyncio.wait_for(
            asyncio.gather(*(batch(["x", "y", "z"]) for _ in range(5)), batch(["z", "y", "x"])),
            timeout=2,
        )
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_release_holder(self):
        locks = KeyedLock()
        release = asyncio.Event()

        async def holder():
            async with locks.hold("a"):
                await release.wait()

        holding = asyncio.ensure_future(holder())
        await asyncio.sleep(0)
        waiter = asyncio.ensure_future(_enter_many(locks, ["a", "b"]))
        await asyncio.sleep(0.01)
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter

        assert locks.locked("a")
        release.set()
        await holding
        assert len(locks) == 0


async def _enter_many(locks, keys):
    async with locks.hold_many(keys):
        pass


class TestBackgroundTasks:

    @pytest.mark.asyncio
    async def test_run_to_completion_returns_value(self):
        tasks = BackgroundTasks()

        async def work():
            return 42

        assert await tasks.run_to_completion(work()) == 42
        assert len(tasks) == 0

    @pytest.mark.asyncio
    async def test_survives_caller_cancellation(self):
        tasks = BackgroundTasks()
        done = []

        async def work():
            await asyncio.sleep(0.01)
            done.append(True)

        caller = asyncio.ensure_future(tasks.run_to_completion(work(), name="work"))
        await asyncio.sleep(0)
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller

        await tasks.drain()
        assert done == [True]

    @pytest.mark.asyncio
    async def test_failures_are_logged(self, caplog):
        tasks = BackgroundTasks()

        async def boom():
            raise RuntimeError("kaput")

        tasks.spawn(boom(), name="boom")
        await tasks.drain()
        await asyncio.sleep(0)
        assert "Background task boom failed" in caplog.text
