"""Unit tests for the stage completion barrier."""

import asyncio
import gc

import pytest

from acipoll.fetcher.barrier import CompletionBarrier
from acipoll.models.errors import ProtocolViolation


class TestCompletionBarrier:

    @pytest.mark.asyncio
    async def test_wait_without_work_resolves_immediately(self):
        barrier = CompletionBarrier("empty")

        await barrier.wait()

        assert barrier.resolved
        assert barrier.pending == 0

    @pytest.mark.asyncio
    async def test_wait_resumes_after_last_done(self):
        barrier = CompletionBarrier("stage")
        first = barrier.begin("first")
        second = barrier.begin("second")
        assert barrier.pending == 2

        async def finish():
            await asyncio.sleep(0.01)
            first.done()
            await asyncio.sleep(0.01)
            assert not barrier.resolved
            second.done()

        asyncio.ensure_future(finish())
        await barrier.wait()

        assert barrier.resolved
        assert first.is_done and second.is_done

    def test_done_twice_raises(self):
        barrier = CompletionBarrier("stage")
        handle = barrier.begin("once")
        handle.done()

        with pytest.raises(ProtocolViolation, match="called twice"):
            handle.done()

    @pytest.mark.asyncio
    async def test_begin_after_resolution_raises(self):
        barrier = CompletionBarrier("stage")
        barrier.begin().done()
        await barrier.wait()

        with pytest.raises(ProtocolViolation, match="already resolved"):
            barrier.begin()

    @pytest.mark.asyncio
    async def test_discarded_handle_is_reported(self):
        barrier = CompletionBarrier("stage")
        barrier.begin("lost")
        gc.collect()

        with pytest.raises(ProtocolViolation, match="lost"):
            await barrier.wait()

    @pytest.mark.asyncio
    async def test_spawned_task_completes_handle(self):
        barrier = CompletionBarrier("stage")
        results = []

        async def work(value):
            await asyncio.sleep(0)
            results.append(value)

        for i in range(5):
            barrier.spawn(work(i))

        await barrier.wait()

        assert sorted(results) == [0, 1, 2, 3, 4]
        assert barrier.registered == 5
        assert barrier.failures == []

    @pytest.mark.asyncio
    async def test_failing_task_still_completes(self):
        barrier = CompletionBarrier("stage")

        async def boom():
            raise RuntimeError("boom")

        async def ok():
            await asyncio.sleep(0.01)

        barrier.spawn(boom(), label="boom")
        barrier.spawn(ok(), label="ok")

        await barrier.wait()

        assert barrier.resolved
        assert len(barrier.failures) == 1
        assert isinstance(barrier.failures[0], RuntimeError)

    @pytest.mark.asyncio
    async def test_nested_spawn_keeps_stage_open(self):
        """Work registered by a running task is awaited before resolution."""
        barrier = CompletionBarrier("stage")
        order = []

        async def child():
            await asyncio.sleep(0.02)
            order.append("child")

        async def parent():
            await asyncio.sleep(0)
            barrier.spawn(child(), label="child")
            order.append("parent")

        barrier.spawn(parent(), label="parent")
        await barrier.wait()
        order.append("resolved")

        assert order == ["parent", "child", "resolved"]
        assert barrier.registered == 2

    @pytest.mark.asyncio
    async def test_cancelled_wait_cancels_spawned_tasks(self):
        barrier = CompletionBarrier("stage")
        finished = []

        async def slow(tag):
            await asyncio.sleep(1.0)
            finished.append(tag)

        async def spawner():
            await asyncio.sleep(0.01)
            barrier.spawn(slow("nested"), label="nested")
            await asyncio.sleep(1.0)

        tasks = [barrier.spawn(slow("first")), barrier.spawn(spawner())]
        waiter = asyncio.ensure_future(barrier.wait())
        await asyncio.sleep(0.05)

        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter

        assert all(task.done() for task in tasks)
        assert barrier.pending == 0
        assert not barrier.resolved
        await asyncio.sleep(0.05)
        assert finished == []
