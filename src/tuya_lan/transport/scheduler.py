"""Scheduling seam for self-rescheduling work (heartbeat, scan continuation)."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from typing import Any, Protocol

from tuya_lan.logging_abstraction import get_logger

logger = get_logger(__name__)

Job = Callable[[], Coroutine[Any, Any, None]]


class ScheduledHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Runs a coroutine factory after a delay."""

    def call_later(self, delay: float, job: Job) -> ScheduledHandle: ...


class _LoopHandle:
    def __init__(self, timer: asyncio.TimerHandle):
        self._timer = timer
        self.task: asyncio.Task[None] | None = None

    def cancel(self) -> None:
        self._timer.cancel()
        if self.task is not None and not self.task.done():
            _ = self.task.cancel()


class LoopScheduler:
    """Scheduler backed by the running asyncio event loop.

    Keeps strong references to spawned tasks until they finish.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[None]] = set()

    def call_later(self, delay: float, job: Job) -> ScheduledHandle:
        loop = asyncio.get_running_loop()
        handle: _LoopHandle

        def _spawn() -> None:
            task = loop.create_task(self._run(job))
            handle.task = task
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        handle = _LoopHandle(loop.call_later(max(delay, 0.0), _spawn))
        return handle

    @staticmethod
    async def _run(job: Job) -> None:
        try:
            await job()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("LoopScheduler:run: scheduled job %s failed", getattr(job, "__name__", job))

    async def shutdown(self) -> None:
        """Cancel and await every task still running."""
        tasks = list(self._tasks)
        for task in tasks:
            _ = task.cancel()
        if tasks:
            _ = await asyncio.gather(*tasks, return_exceptions=True)
