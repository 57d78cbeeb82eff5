"""Wall-clock sources for entity timestamps."""

from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    """Anything that can tell the current UTC time."""

    def now(self) -> datetime: ...


class SystemClock:
    """Clock backed by the system wall clock, always timezone-aware UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FrozenClock:
    """Manually advanced clock for tests and replays.

    Each call to ``now()`` returns the current instant and then moves it
    forward by ``tick``, so consecutive timestamps are strictly increasing
    unless ``tick`` is zero.
    """

    def __init__(self, start: datetime, tick: timedelta = timedelta(0)) -> None:
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        self._current = start
        self._tick = tick

    def now(self) -> datetime:
        current = self._current
        self._current = current + self._tick
        return current

    def advance(self, delta: timedelta) -> None:
        self._current += delta


system_clock = SystemClock()
