"""Timer scheduling for sync sessions.

Everything a session does later goes through a ``Scheduler``: one-shot
callbacks, repeating intervals and spawned coroutines. Production code uses
``AsyncioScheduler``; tests substitute a manual clock.

``TimerSlot`` holds at most one live timer. Scheduling into a slot cancels
whatever the slot held before, so a session keeps exactly one heartbeat,
one reconnect and one poll timer no matter how transitions interleave.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional, Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Clock and timer source used by a session."""

    def now(self) -> int:
        """Current wall-clock time in epoch milliseconds."""
        ...

    def call_later(self, delay_ms: float, callback: Callable[[], Any]) -> TimerHandle: ...

    def spawn(self, coro: Awaitable[Any]) -> Any: ...


class AsyncioScheduler:
    """Scheduler backed by the running asyncio event loop."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def now(self) -> int:
        return int(time.time() * 1000)

    def call_later(self, delay_ms: float, callback: Callable[[], Any]) -> asyncio.TimerHandle:
        loop = asyncio.get_running_loop()
        return loop.call_later(max(delay_ms, 0) / 1000, callback)

    def spawn(self, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        # Keep a strong reference until the task finishes
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task


class TimerSlot:
    """A named holder for a single live timer."""

    def __init__(self, scheduler: Scheduler, name: str):
        self._scheduler = scheduler
        self.name = name
        self._handle: Optional[TimerHandle] = None

    @property
    def active(self) -> bool:
        return self._handle is not None

    def schedule(self, delay_ms: float, callback: Callable[[], Any]) -> None:
        """Run ``callback`` once after ``delay_ms``, replacing any pending timer."""
        self.cancel()

        def fire() -> None:
            self._handle = None
            callback()

        self._handle = self._scheduler.call_later(delay_ms, fire)
        logger.debug("Timer %s scheduled in %dms", self.name, delay_ms)

    def schedule_interval(self, interval_ms: float, callback: Callable[[], Any]) -> None:
        """Run ``callback`` every ``interval_ms`` until cancelled."""
        self.cancel()

        def tick() -> None:
            # Re-arm first so the callback may cancel the slot
            self._handle = self._scheduler.call_later(interval_ms, tick)
            callback()

        self._handle = self._scheduler.call_later(interval_ms, tick)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
