"""Unit tests for the bounded WorkerPool."""

from __future__ import annotations

import asyncio
import threading

import pytest

from src.config.knowledge_base import ExecutorConfig
from src.utils.concurrency import WorkerPool
from src.utils.errors import WorkerPoolSaturatedError


def _pool(max_workers: int = 1, queue_capacity: int = 1) -> WorkerPool:
    return WorkerPool(
        ExecutorConfig(max_workers=max_workers, queue_capacity=queue_capacity, thread_name_prefix="test")
    )


class TestSubmit:
    @pytest.mark.asyncio
    async def test_task_result(self) -> None:
        pool = _pool()

        async def work() -> int:
            return 42

        assert await pool.submit(work) == 42
        await pool.shutdown()

    @pytest.mark.asyncio
    async def test_refuses_beyond_capacity(self) -> None:
        pool = _pool(max_workers=1, queue_capacity=1)
        release = asyncio.Event()
        pool.submit(release.wait)
        pool.submit(release.wait)
        calls: list[str] = []

        async def never() -> None:
            calls.append("ran")

        with pytest.raises(WorkerPoolSaturatedError):
            pool.submit(never)

        assert pool.pending == 2
        assert pool.capacity == 2
        release.set()
        await pool.shutdown()
        # The refused factory is never called.
        assert calls == []

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self) -> None:
        pool = _pool(max_workers=2, queue_capacity=10)
        running = 0
        peak = 0

        async def work() -> None:
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1

        await asyncio.gather(*(pool.submit(work) for _ in range(6)))

        assert peak == 2
        await pool.shutdown()

    @pytest.mark.asyncio
    async def test_shutdown_refuses_new_work(self) -> None:
        pool = _pool()
        await pool.shutdown()

        async def work() -> None:
            return None

        with pytest.raises(WorkerPoolSaturatedError, match="shut down"):
            pool.submit(work)

    @pytest.mark.asyncio
    async def test_shutdown_drains_failures(self) -> None:
        pool = _pool()

        async def boom() -> None:
            raise RuntimeError("boom")

        task = pool.submit(boom)
        await pool.shutdown()

        assert isinstance(task.exception(), RuntimeError)


class TestSlotsAndThreads:
    @pytest.mark.asyncio
    async def test_slot_shares_the_semaphore(self) -> None:
        pool = _pool(max_workers=1, queue_capacity=5)
        order: list[str] = []

        async def queued() -> None:
            order.append("task")

        async with pool.slot():
            task = pool.submit(queued)
            await asyncio.sleep(0.01)
            order.append("slot")
        await task

        assert order == ["slot", "task"]
        await pool.shutdown()

    @pytest.mark.asyncio
    async def test_run_blocking_uses_named_thread(self) -> None:
        pool = _pool()

        name = await pool.run_blocking(lambda: threading.current_thread().name)

        assert name.startswith("test")
        assert pool.name == "test"
        await pool.shutdown()
