from __future__ import annotations

from datetime import datetime, time, tzinfo
from typing import Callable, NamedTuple, Optional, Union
from zoneinfo import ZoneInfo

from ..core.constants import SECONDS_PER_DAY

Clock = Callable[[], datetime]
WallClock = Union[time, datetime]


class Elapsed(NamedTuple):
    hours: int
    minutes: int
    seconds: int

    @property
    def total_seconds(self) -> int:
        return self.hours * 3600 + self.minutes * 60 + self.seconds


def get_timezone(name: Optional[str]) -> Optional[tzinfo]:
    return ZoneInfo(name) if name else None


def now_local(tz: Optional[tzinfo] = None) -> datetime:
    """Current time in the deployment's reference timezone.

    Note: Wrapped so tests can patch/mocked easier.
    """
    return datetime.now(tz)


def local_clock(tz: Optional[tzinfo] = None) -> Clock:
    return lambda: now_local(tz)


def to_local(value: datetime, tz: Optional[tzinfo]) -> datetime:
    if tz is None or value.tzinfo is None:
        return value
    return value.astimezone(tz)


def _seconds_of_day(value: WallClock) -> int:
    t = value.time() if isinstance(value, datetime) else value
    return t.hour * 3600 + t.minute * 60 + t.second


def elapsed(start: WallClock, end: Optional[WallClock] = None, *, clock: Clock = now_local) -> Elapsed:
    """Elapsed wall-clock time between ``start`` and ``end`` (default: now).

    Only the time of day is compared. An ``end`` earlier than ``start`` means
    the session crossed local midnight, so one day is added once.
    """

    if end is None:
        end = clock()
    if (
        isinstance(start, datetime)
        and isinstance(end, datetime)
        and start.tzinfo is not None
        and end.tzinfo is not None
    ):
        end = end.astimezone(start.tzinfo)

    total = _seconds_of_day(end) - _seconds_of_day(start)
    if total < 0:
        total += SECONDS_PER_DAY

    return Elapsed(hours=total // 3600, minutes=(total % 3600) // 60, seconds=total % 60)


def format_clock(value: Elapsed) -> str:
    return f"{value.hours:02d}:{value.minutes:02d}:{value.seconds:02d}"


def format_short(value: Elapsed) -> str:
    return f"{value.hours}h {value.minutes}m"
