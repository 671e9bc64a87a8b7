"""Tests for the timer scheduler and clocks."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from dispatch.engine.scheduler import DispatchError, ManualClock, SystemClock, TimerScheduler


def test_manual_clock_refuses_to_go_backwards() -> None:
    clock = ManualClock()
    clock.advance(10)

    with pytest.raises(DispatchError):
        clock.set(datetime(2023, 1, 1, tzinfo=timezone.utc))


@pytest.mark.asyncio
async def test_one_shot_timer_fires_at_due_time() -> None:
    clock = ManualClock()
    scheduler = TimerScheduler(clock)
    fired: list[datetime] = []

    async def record() -> None:
        fired.append(clock.now())

    start = clock.now()
    scheduler.call_later(30, record, name="once")

    assert await scheduler.advance(29) == 0
    assert await scheduler.advance(5) == 1
    assert fired == [start + timedelta(seconds=30)]
    assert await scheduler.advance(100) == 0


@pytest.mark.asyncio
async def test_periodic_timer_fires_every_interval() -> None:
    clock = ManualClock()
    scheduler = TimerScheduler(clock)
    ticks = 0

    async def tick() -> None:
        nonlocal ticks
        ticks += 1

    timer = scheduler.call_every(15, tick)

    await scheduler.advance(60)
    assert ticks == 4
    assert timer.fired == 4

    scheduler.cancel(timer)
    await scheduler.advance(60)
    assert ticks == 4


@pytest.mark.asyncio
async def test_timers_fire_in_due_order() -> None:
    clock = ManualClock()
    scheduler = TimerScheduler(clock)
    order: list[str] = []

    def recorder(name: str):
        async def callback() -> None:
            order.append(name)
        return callback

    scheduler.call_later(20, recorder("late"))
    scheduler.call_later(5, recorder("early"))
    scheduler.call_later(10, recorder("middle"))

    await scheduler.advance(30)

    assert order == ["early", "middle", "late"]


@pytest.mark.asyncio
async def test_failing_callback_does_not_stop_others() -> None:
    clock = ManualClock()
    scheduler = TimerScheduler(clock)
    fired: list[str] = []

    async def broken() -> None:
        raise RuntimeError("boom")

    async def healthy() -> None:
        fired.append("ok")

    scheduler.call_later(1, broken)
    scheduler.call_later(1, healthy)

    assert await scheduler.advance(1) == 2
    assert fired == ["ok"]


@pytest.mark.asyncio
async def test_next_due_skips_cancelled_timers() -> None:
    clock = ManualClock()
    scheduler = TimerScheduler(clock)

    async def noop() -> None:
        pass

    first = scheduler.call_later(5, noop)
    scheduler.call_later(10, noop)
    first.cancel()

    assert scheduler.next_due() == clock.now() + timedelta(seconds=10)
    assert len(scheduler.pending) == 1


@pytest.mark.asyncio
async def test_closed_scheduler_rejects_new_timers() -> None:
    scheduler = TimerScheduler(ManualClock())

    async def noop() -> None:
        pass

    scheduler.call_later(5, noop)
    await scheduler.close()

    assert scheduler.pending == []
    with pytest.raises(DispatchError):
        scheduler.call_later(5, noop)


def test_periodic_interval_must_be_positive() -> None:
    scheduler = TimerScheduler(ManualClock())

    async def noop() -> None:
        pass

    with pytest.raises(DispatchError):
        scheduler.call_every(0, noop)


@pytest.mark.asyncio
async def test_advance_requires_manual_clock() -> None:
    scheduler = TimerScheduler(SystemClock())

    with pytest.raises(DispatchError):
        await scheduler.advance(1)


@pytest.mark.asyncio
async def test_background_loop_fires_due_timers() -> None:
    clock = ManualClock()
    scheduler = TimerScheduler(clock)
    done = asyncio.Event()

    async def finish() -> None:
        done.set()

    scheduler.start()
    scheduler.call_at(clock.now(), finish, name="due-now")

    await asyncio.wait_for(done.wait(), timeout=2)
    await scheduler.close()
    assert scheduler.pending == []
