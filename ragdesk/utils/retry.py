"""Explicit retry policy for background tasks.

Nothing in ragdesk retries implicitly.  A caller that wants a task retried
wraps the task's coroutine factory with :func:`with_retry`, choosing the
attempt budget, the exception types worth retrying, and an optional
``before_retry`` hook that restores whatever state the next attempt needs
(e.g. resetting a failed document back to ``pending``).
"""

from __future__ import annotations

import asyncio
import functools
from typing import Awaitable, Callable, TypeVar

import structlog

logger = structlog.get_logger(logger_name=__name__)

_T = TypeVar("_T")

TaskFactory = Callable[[], Awaitable[_T]]


def with_retry(
    attempts: int = 1,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    backoff_s: float = 1.0,
    before_retry: Callable[[int, BaseException], Awaitable[None]] | None = None,
) -> Callable[[TaskFactory[_T]], TaskFactory[_T]]:
    """Build a decorator that re-runs a zero-argument coroutine factory.

    Parameters
    ----------
    attempts:
        Total number of attempts, including the first.  ``1`` disables
        retrying entirely.
    retry_on:
        Exception types that trigger another attempt.  Anything else
        propagates immediately.
    backoff_s:
        Base delay between attempts; attempt *n* waits ``backoff_s * n``.
    before_retry:
        Awaited with ``(next_attempt_number, error)`` before each retry.

    Returns
    -------
    Callable
        A decorator for coroutine factories.  The final failure is re-raised
        unchanged.
    """
    if attempts < 1:
        raise ValueError(f"attempts must be >= 1, got {attempts}")

    def decorator(factory: TaskFactory[_T]) -> TaskFactory[_T]:
        @functools.wraps(factory)
        async def _run() -> _T:
            for attempt in range(1, attempts + 1):
                try:
                    return await factory()
                except retry_on as exc:
                    if attempt >= attempts:
                        raise
                    delay = backoff_s * attempt
                    logger.warning(
                        "task_retry_scheduled",
                        task=getattr(factory, "__name__", repr(factory)),
                        attempt=attempt,
                        max_attempts=attempts,
                        backoff_s=delay,
                        error=str(exc),
                    )
                    if before_retry is not None:
                        await before_retry(attempt + 1, exc)
                    await asyncio.sleep(delay)
            raise AssertionError("unreachable")  # pragma: no cover

        return _run

    return decorator
