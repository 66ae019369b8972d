"""Periodic asyncio timer used for recording duration and level sampling.

A PeriodicTimer runs a callback every ``interval`` seconds on the event
loop until stopped. Stopping is synchronous and safe to call from inside
the callback itself: the running task is only cancelled when the caller
is some other task.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable

import structlog

logger: structlog.stdlib.BoundLogger = structlog.get_logger()

TickCallback = Callable[[], Awaitable[None] | None]


class PeriodicTimer:
    """Repeating tick source backed by a single asyncio task."""

    def __init__(self, interval: float, callback: TickCallback, *, name: str = "timer") -> None:
        if interval <= 0:
            msg = f"Timer interval must be positive, got {interval}"
            raise ValueError(msg)
        self._interval = interval
        self._callback = callback
        self._name = name
        self._task: asyncio.Task[None] | None = None
        self._running = False

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Begin ticking. A second start while running is ignored."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self._name)

    def stop(self) -> None:
        """Stop ticking. Idempotent."""
        self._running = False
        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    async def _run(self) -> None:
        while self._running:
            await asyncio.sleep(self._interval)
            if not self._running:
                break
            try:
                result = self._callback()
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("timer_callback_failed", timer=self._name)
