"""Single timer scheduler keyed by due time.

All session timers (expiry and periodic forwarding) live in one min-heap
driven by a clock. Production runs a background task against the system
clock; tests use ``ManualClock`` and ``advance`` to step virtual time.
"""

import asyncio
import heapq
import itertools
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Protocol

from dispatch.utils.logging import get_logger

logger = get_logger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


class DispatchError(Exception):
    """Raised on misuse of dispatch components."""


class Clock(Protocol):
    """Source of the current time."""

    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def set(self, when: datetime) -> None:
        if when < self._now:
            raise DispatchError("ManualClock cannot move backwards")
        self._now = when

    def advance(self, seconds: float) -> datetime:
        self._now += timedelta(seconds=seconds)
        return self._now


class Timer:
    """Handle for a scheduled callback."""

    def __init__(
        self,
        name: str,
        due_at: datetime,
        callback: TimerCallback,
        interval: timedelta | None = None,
    ) -> None:
        self.name = name
        self.due_at = due_at
        self.callback = callback
        self.interval = interval
        self.cancelled = False
        self.fired = 0

    def cancel(self) -> None:
        self.cancelled = True

    def __repr__(self) -> str:
        return f"Timer({self.name!r}, due_at={self.due_at.isoformat()}, cancelled={self.cancelled})"


class TimerScheduler:
    """Min-heap of timers; fires callbacks whose due time has passed."""

    def __init__(self, clock: Clock, poll_seconds: float = 0.5) -> None:
        self.clock = clock
        self.poll_seconds = poll_seconds
        self._heap: list[tuple[datetime, int, Timer]] = []
        self._seq = itertools.count()
        self._task: asyncio.Task | None = None
        self._wakeup: asyncio.Event | None = None
        self._closed = False

    # Scheduling

    def call_at(self, when: datetime, callback: TimerCallback, name: str = "") -> Timer:
        return self._push(Timer(name, when, callback))

    def call_later(self, seconds: float, callback: TimerCallback, name: str = "") -> Timer:
        return self.call_at(self.clock.now() + timedelta(seconds=seconds), callback, name)

    def call_every(self, seconds: float, callback: TimerCallback, name: str = "") -> Timer:
        """Fire ``callback`` every ``seconds``, first after one interval."""
        if seconds <= 0:
            raise DispatchError("Periodic timer interval must be positive")
        interval = timedelta(seconds=seconds)
        return self._push(Timer(name, self.clock.now() + interval, callback, interval))

    def cancel(self, timer: Timer | None) -> None:
        if timer is not None:
            timer.cancel()

    def _push(self, timer: Timer) -> Timer:
        if self._closed:
            raise DispatchError("Scheduler is closed")
        heapq.heappush(self._heap, (timer.due_at, next(self._seq), timer))
        if self._wakeup is not None:
            self._wakeup.set()
        return timer

    # Inspection

    def _discard_cancelled(self) -> None:
        while self._heap and self._heap[0][2].cancelled:
            heapq.heappop(self._heap)

    def next_due(self) -> datetime | None:
        self._discard_cancelled()
        return self._heap[0][0] if self._heap else None

    @property
    def pending(self) -> list[Timer]:
        return [timer for _, _, timer in sorted(self._heap) if not timer.cancelled]

    # Firing

    async def run_due(self) -> int:
        """Fire every timer due at the current clock time."""
        now = self.clock.now()
        fired = 0

        while True:
            self._discard_cancelled()
            if not self._heap or self._heap[0][0] > now:
                break

            _, _, timer = heapq.heappop(self._heap)
            if timer.interval is not None:
                timer.due_at = timer.due_at + timer.interval
                heapq.heappush(self._heap, (timer.due_at, next(self._seq), timer))

            timer.fired += 1
            fired += 1
            try:
                await timer.callback()
            except Exception as e:
                logger.error("timer_callback_failed", timer=timer.name, error=str(e))

        return fired

    async def advance(self, seconds: float) -> int:
        """Move a ``ManualClock`` forward, firing timers at their due times."""
        if not isinstance(self.clock, ManualClock):
            raise DispatchError("advance() requires a ManualClock")

        target = self.clock.now() + timedelta(seconds=seconds)
        fired = 0
        while True:
            due = self.next_due()
            if due is None or due > target:
                break
            if due > self.clock.now():
                self.clock.set(due)
            fired += await self.run_due()

        self.clock.set(target)
        fired += await self.run_due()
        return fired

    # Background loop

    def start(self) -> None:
        """Run timers against the clock on the current event loop."""
        if self._task is None:
            self._wakeup = asyncio.Event()
            self._task = asyncio.create_task(self._run_forever())
            logger.info("scheduler_started")

    async def _run_forever(self) -> None:
        if self._wakeup is None:
            return
        while not self._closed:
            await self.run_due()

            timeout = self.poll_seconds
            due = self.next_due()
            if due is not None:
                timeout = min(timeout, max(0.0, (due - self.clock.now()).total_seconds()))

            self._wakeup.clear()
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                pass

    async def close(self) -> None:
        """Cancel every timer and stop the background loop."""
        self._closed = True
        for _, _, timer in self._heap:
            timer.cancel()
        self._heap.clear()

        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("scheduler_stopped")
