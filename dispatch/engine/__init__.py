"""Dispatch engine: lifecycle, sessions, timers and geo helpers."""

from dispatch.engine.geo import eta_seconds, haversine_m, parse_coordinates
from dispatch.engine.results import ActionResult, Outcome
from dispatch.engine.scheduler import (
    Clock,
    DispatchError,
    ManualClock,
    SystemClock,
    TimerScheduler,
)

__all__ = [
    "ActionResult",
    "Clock",
    "DispatchError",
    "ManualClock",
    "Outcome",
    "SystemClock",
    "TimerScheduler",
    "eta_seconds",
    "haversine_m",
    "parse_coordinates",
]
