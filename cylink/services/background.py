"""Detached (fire-and-forget) tasks for best-effort analytics.

The redirect response never waits on, or sees the outcome of, anything spawned
here. Failures only reach the log. The event loop keeps weak references to
tasks, so spawned tasks are held in ``_pending`` until they finish.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine

logger = logging.getLogger(__name__)

_pending: set[asyncio.Task] = set()


def _on_done(task: asyncio.Task) -> None:
    _pending.discard(task)
    if task.cancelled():
        logger.warning("Background task %s was cancelled", task.get_name(), extra={"task": task.get_name()})
        return
    exc = task.exception()
    if exc is not None:
        logger.error(
            "Background task %s failed: %s", task.get_name(), exc,
            exc_info=(type(exc), exc, exc.__traceback__),
            extra={"task": task.get_name()},
        )


def spawn(coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task:
    """Schedule ``coro`` without joining it."""
    task = asyncio.create_task(coro, name=name)
    _pending.add(task)
    task.add_done_callback(_on_done)
    return task


def pending_count() -> int:
    return len(_pending)


async def drain(timeout: float | None = 5.0) -> None:
    """Wait for every in-flight task, including ones spawned while draining.

    Used at shutdown so analytics writes are not dropped, and by tests.
    """
    loop = asyncio.get_running_loop()
    deadline = None if timeout is None else loop.time() + timeout
    while _pending:
        remaining = None if deadline is None else max(deadline - loop.time(), 0)
        done, _ = await asyncio.wait(set(_pending), timeout=remaining)
        if not done and deadline is not None and loop.time() >= deadline:
            logger.warning("Gave up draining %d background task(s)", len(_pending))
            return
