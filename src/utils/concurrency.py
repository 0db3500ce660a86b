"""Bounded worker pools for ingestion and generation work.

A :class:`WorkerPool` combines the two concurrency tools the service needs:

1. **An asyncio semaphore** -- caps how many coroutines submitted to the
   pool run at once.  Extra submissions wait for a slot; submissions beyond
   ``max_workers + queue_capacity`` are refused with
   :class:`~src.utils.errors.WorkerPoolSaturatedError` instead of piling
   up unbounded.

2. **A thread pool executor** -- runs blocking work (PDF parsing, DOCX
   parsing, chunking) off the event loop so request handling never stalls
   while a large document is being read.

Two pools are built at startup from :class:`~src.config.ExecutorConfig`:
the *document* pool that runs ingestion tasks and the *ai* pool whose
semaphore bounds concurrent generation calls.
"""

from __future__ import annotations

import asyncio
import functools
from collections.abc import AsyncIterator, Awaitable, Callable
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, TypeVar

import structlog

from src.utils.errors import WorkerPoolSaturatedError
from src.utils.logging import get_logger

if TYPE_CHECKING:
    from src.config.knowledge_base import ExecutorConfig

_T = TypeVar("_T")


class WorkerPool:
    """Semaphore-bounded task pool with its own thread executor.

    Parameters
    ----------
    config:
        Worker count, queue capacity, and thread name prefix for this pool.
    """

    def __init__(self, config: ExecutorConfig) -> None:
        self._config = config
        self._semaphore = asyncio.Semaphore(config.max_workers)
        self._executor = ThreadPoolExecutor(
            max_workers=config.max_workers,
            thread_name_prefix=config.thread_name_prefix,
        )
        self._tasks: set[asyncio.Task[Any]] = set()
        self._closed = False
        self._logger: structlog.BoundLogger = get_logger(__name__).bind(
            pool=config.thread_name_prefix
        )

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._config.thread_name_prefix

    @property
    def capacity(self) -> int:
        """Running plus queued tasks the pool accepts before refusing work."""
        return self._config.max_workers + self._config.queue_capacity

    @property
    def pending(self) -> int:
        """Number of submitted tasks that have not finished yet."""
        return len(self._tasks)

    # ------------------------------------------------------------------
    # Task submission
    # ------------------------------------------------------------------

    def submit(self, coro_factory: Callable[[], Awaitable[_T]]) -> asyncio.Task[_T]:
        """Schedule a coroutine on the pool and return its task handle.

        The factory is only called once the submission has been accepted,
        so a refused submission never leaves an un-awaited coroutine behind.

        Raises
        ------
        WorkerPoolSaturatedError
            If the pool is shut down or already holds ``capacity`` tasks.
        """
        if self._closed:
            raise WorkerPoolSaturatedError(
                message=f"Worker pool '{self.name}' is shut down"
            )
        if len(self._tasks) >= self.capacity:
            self._logger.warning(
                "worker_pool_saturated",
                pending=len(self._tasks),
                capacity=self.capacity,
            )
            raise WorkerPoolSaturatedError(
                message=f"Worker pool '{self.name}' is saturated ({self.capacity} tasks pending)"
            )

        async def _run() -> _T:
            async with self._semaphore:
                return await coro_factory()

        task = asyncio.get_running_loop().create_task(_run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        """Hold one of the pool's worker slots for the duration of the block."""
        async with self._semaphore:
            yield

    async def run_blocking(self, fn: Callable[..., _T], *args: Any) -> _T:
        """Run a blocking callable on the pool's thread executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(fn, *args))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def shutdown(self) -> None:
        """Refuse new work, wait for submitted tasks, and stop the executor."""
        self._closed = True
        if self._tasks:
            self._logger.info("worker_pool_draining", pending=len(self._tasks))
            results = await asyncio.gather(*list(self._tasks), return_exceptions=True)
            for result in results:
                if isinstance(result, BaseException):
                    self._logger.warning("worker_pool_task_failed", error=str(result))
        self._executor.shutdown(wait=True)
        self._logger.info("worker_pool_stopped")
