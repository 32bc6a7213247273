"""Cancellable recurring tasks for the polling loop.

The controller only talks to the ``Scheduler`` interface, so tests can swap in
a manual scheduler and drive ticks without wall-clock sleeps.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

TickFn = Callable[[], Awaitable[None]]


class ScheduledTask(ABC):
    """Handle to a recurring callback."""

    @abstractmethod
    def cancel(self) -> None:
        """Stop future ticks and abort the one in flight, if any."""
        ...

    @property
    @abstractmethod
    def cancelled(self) -> bool:
        ...


class Scheduler(ABC):
    """Abstract interface for running a callback at a fixed cadence."""

    @abstractmethod
    def every(self, interval: float, fn: TickFn) -> ScheduledTask:
        """Run ``fn`` now, then ``interval`` seconds after each run completes."""
        ...


class _AsyncioTask(ScheduledTask):

    def __init__(self, interval: float, fn: TickFn):
        self._interval = interval
        self._fn = fn
        self._cancelled = False
        self._task: Optional[asyncio.Task] = asyncio.get_running_loop().create_task(
            self._run()
        )

    async def _run(self) -> None:
        while not self._cancelled:
            await self._fn()
            if self._cancelled:
                break
            await asyncio.sleep(self._interval)

    def cancel(self) -> None:
        self._cancelled = True
        if self._task is not None and not self._task.done():
            # A tick may cancel its own loop once it sees a terminal status;
            # the loop then exits at its next check instead.
            if self._task is not asyncio.current_task():
                self._task.cancel()
        self._task = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class AsyncioScheduler(Scheduler):
    """Runs ticks as a background task on the running event loop.

    Ticks never overlap: the next sleep starts only after the previous tick
    has returned.
    """

    def every(self, interval: float, fn: TickFn) -> ScheduledTask:
        if interval <= 0:
            raise ValueError("Polling interval must be positive")
        return _AsyncioTask(interval, fn)
