"""Keyed asyncio worker pool for background work.

# ─── HOW THE QUEUE WORKS ──────────────────────────────────────────────
#
#   submit(key, factory) ──► in-flight? ──yes──► (existing future, False)
#                               │
#                               no
#                               ▼
#                   asyncio.Queue ──► worker 1..N ──► await factory()
#                                                        │
#                                             result / exception
#                                                        ▼
#                                               future resolved, key freed
#
# A task is a zero-argument coroutine factory.  At most one task per key is
# queued or running at any moment; tasks under different keys run
# concurrently up to ``concurrency``.  Failures are logged by the worker
# and stored on the task's future.  Nothing is retried here: callers that
# want retries wrap the factory with ragdesk.utils.retry.with_retry.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

import structlog

logger = structlog.get_logger(logger_name=__name__)

TaskFactory = Callable[[], Awaitable[Any]]


def _mark_retrieved(future: asyncio.Future[Any]) -> None:
    # Failures are already logged by the worker; touching the exception
    # keeps asyncio from reporting it again when the future is collected.
    if not future.cancelled():
        future.exception()


class TaskQueue:
    """Runs keyed background tasks on a fixed number of asyncio workers.

    Parameters
    ----------
    concurrency:
        Number of worker tasks, i.e. how many keys may run at once.
    """

    def __init__(self, concurrency: int = 2) -> None:
        if concurrency <= 0:
            raise ValueError(f"concurrency must be positive, got {concurrency}")
        self._concurrency = concurrency
        self._queue: asyncio.Queue[tuple[str, TaskFactory, asyncio.Future[Any]]] = asyncio.Queue()
        self._in_flight: dict[str, asyncio.Future[Any]] = {}
        self._workers: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return bool(self._workers)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Spawn the workers.  Calling it again while running is a no-op."""
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(index), name=f"ragdesk-worker-{index}")
            for index in range(self._concurrency)
        ]
        logger.info("task_queue_started", workers=self._concurrency)

    async def stop(self) -> None:
        """Cancel the workers and any tasks that never started."""
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

        while not self._queue.empty():
            key, _, future = self._queue.get_nowait()
            self._queue.task_done()
            if not future.done():
                future.cancel()
            self._in_flight.pop(key, None)
        logger.info("task_queue_stopped")

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(self, key: str, factory: TaskFactory) -> tuple[asyncio.Future[Any], bool]:
        """Queue *factory* under *key* unless that key is already in flight.

        Returns
        -------
        tuple[asyncio.Future, bool]
            The future that resolves with the task's result, and ``True``
            when a new task was queued (``False`` means the existing
            in-flight task's future was returned).
        """
        existing = self._in_flight.get(key)
        if existing is not None and not existing.done():
            logger.info("task_already_in_flight", key=key)
            return existing, False

        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        future.add_done_callback(_mark_retrieved)
        self._in_flight[key] = future
        self._queue.put_nowait((key, factory, future))
        logger.debug("task_submitted", key=key, queued=self._queue.qsize())
        return future, True

    def is_in_flight(self, key: str) -> bool:
        future = self._in_flight.get(key)
        return future is not None and not future.done()

    async def wait(self, key: str) -> Any:
        """Wait for the in-flight task under *key* and return its result.

        Returns ``None`` when nothing is in flight for *key*.  Re-raises the
        task's exception if it failed.
        """
        future = self._in_flight.get(key)
        if future is None:
            return None
        return await asyncio.shield(future)

    async def join(self) -> None:
        """Block until every queued task has finished."""
        await self._queue.join()

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    async def _worker(self, index: int) -> None:
        while True:
            key, factory, future = await self._queue.get()
            try:
                if future.cancelled():
                    continue
                result = await factory()
            except asyncio.CancelledError:
                if not future.done():
                    future.cancel()
                raise
            except Exception as exc:
                logger.error(
                    "task_failed",
                    key=key,
                    worker=index,
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
                if not future.done():
                    future.set_exception(exc)
            else:
                if not future.done():
                    future.set_result(result)
                logger.debug("task_completed", key=key, worker=index)
            finally:
                if self._in_flight.get(key) is future:
                    del self._in_flight[key]
                self._queue.task_done()
