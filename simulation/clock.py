"""simulation/clock.py — Day / hour keeper for Goa.

Turns accumulated frame time into game minutes and announces the
boundaries every other system keys off: ``MinuteChange``,
``PeriodChange``, ``HourChange`` and ``NewDay``.

The market historically ran only in the cool of the morning (7–9,
tapering to noon) and again in the evening; the afternoon heat emptied
the Ribeira.  ``is_market_open()`` reflects that.
"""

from __future__ import annotations
from typing import Any

from core import tuning
from core.constants import (
    MS_PER_GAME_MINUTE, MINUTES_PER_HOUR, HOURS_PER_DAY,
    START_DAY, START_HOUR,
)
from core.events import EventBus, NewDay, HourChange, MinuteChange, PeriodChange


# name, start hour, end hour (exclusive); the last one wraps midnight
PERIODS: list[tuple[str, int, int]] = [
    ("Early Morning", 5, 7),
    ("Market Hours", 7, 9),
    ("Morning", 9, 12),
    ("Afternoon", 12, 17),
    ("Evening", 17, 20),
    ("Night", 20, 5),
]


def in_hour_window(hour: int, start: int, end: int) -> bool:
    """True if *hour* falls in ``[start, end)``, wrapping past midnight."""
    if start <= end:
        return start <= hour < end
    return hour >= start or hour < end


def period_for_hour(hour: int) -> str:
    for name, start, end in PERIODS:
        if in_hour_window(hour, start, end):
            return name
    return "Day"


class TimeSystem:
    """Game clock.  Owned by the session, advanced with ``update(dt)``."""

    def __init__(self, bus: EventBus, start_day: int = START_DAY,
                 start_hour: int = START_HOUR) -> None:
        self.bus = bus
        self.hour = start_hour % HOURS_PER_DAY
        self.minute = 0
        self.day_count = start_day
        self.time_scale = float(tuning.get("time", "time_scale", 1.0))
        self.ms_per_minute = float(tuning.get("time", "ms_per_minute",
                                              MS_PER_GAME_MINUTE))
        self.paused = False
        self._elapsed = 0.0

    # ── Tick ─────────────────────────────────────────────────────────

    def update(self, dt_ms: float) -> int:
        """Advance by *dt_ms* virtual ms.  Returns game minutes passed."""
        if self.paused:
            return 0
        self._elapsed += dt_ms * self.time_scale
        advanced = 0
        while self._elapsed >= self.ms_per_minute:
            self._elapsed -= self.ms_per_minute
            self._advance_minute()
            advanced += 1
        return advanced

    def _advance_minute(self) -> None:
        self.minute += 1
        if self.minute >= MINUTES_PER_HOUR:
            self.minute = 0
            self._advance_hour()
        self.bus.emit(MinuteChange(hour=self.hour, minute=self.minute))

    def _advance_hour(self) -> None:
        previous_period = self.current_period()
        self.hour += 1
        if self.hour >= HOURS_PER_DAY:
            self.hour = 0
            self._advance_day()

        new_period = self.current_period()
        if new_period != previous_period:
            self.bus.emit(PeriodChange(previous=previous_period,
                                       current=new_period,
                                       is_market_open=self.is_market_open()))

        self.bus.emit(HourChange(**self.get_time_data()))

    def _advance_day(self) -> None:
        self.day_count += 1
        print(f"[TIME] Day {self.day_count} begins")
        self.bus.emit(NewDay(day_count=self.day_count))

    # ── Queries ──────────────────────────────────────────────────────

    def current_period(self) -> str:
        return period_for_hour(self.hour)

    def is_market_open(self) -> bool:
        h = self.hour
        return 7 <= h < 12 or 17 <= h < 20

    def market_activity(self) -> float:
        """Relative bustle of the market at this hour (0..1)."""
        h = self.hour
        if 7 <= h < 9:
            return 1.0
        if 9 <= h < 12:
            return 0.7
        if 12 <= h < 17:
            return 0.1
        if 17 <= h < 20:
            return 0.5
        if 5 <= h < 7:
            return 0.2
        return 0.0

    def get_time_data(self) -> dict[str, Any]:
        return {
            "hour": self.hour,
            "minute": self.minute,
            "period": self.current_period(),
            "day_count": self.day_count,
            "is_market_open": self.is_market_open(),
        }

    def absolute_hour(self) -> int:
        """Hours since day 0, 00:00.  Contract deadlines and voyages run on it."""
        return self.day_count * HOURS_PER_DAY + self.hour

    def formatted_time(self) -> str:
        ampm = "PM" if self.hour >= 12 else "AM"
        display = self.hour - 12 if self.hour > 12 else (12 if self.hour == 0 else self.hour)
        return f"{display}:{self.minute:02d} {ampm}"

    # ── Control ──────────────────────────────────────────────────────

    def set_time(self, hour: int, minute: int = 0) -> None:
        self.hour = hour % HOURS_PER_DAY
        self.minute = minute % MINUTES_PER_HOUR

    def set_time_scale(self, scale: float) -> None:
        self.time_scale = max(1.0, scale)

    def pause(self) -> None:
        self.paused = True

    def resume(self) -> None:
        self.paused = False

    # ── Persistence ──────────────────────────────────────────────────

    def get_save_data(self) -> dict[str, Any]:
        return {
            "hour": self.hour,
            "minute": self.minute,
            "day_count": self.day_count,
            "time_scale": self.time_scale,
        }

    def load_save_data(self, data: dict[str, Any]) -> None:
        self.hour = int(data.get("hour", START_HOUR)) % HOURS_PER_DAY
        self.minute = int(data.get("minute", 0)) % MINUTES_PER_HOUR
        self.day_count = int(data.get("day_count", START_DAY))
        self.time_scale = max(1.0, float(data.get("time_scale", 1.0)))
        self._elapsed = 0.0

    def __repr__(self) -> str:
        return f"TimeSystem(day={self.day_count}, {self.hour:02d}:{self.minute:02d})"
