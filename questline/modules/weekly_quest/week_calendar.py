"""
Calendar resolver for the weekly quest cycle.

Maps a wall-clock instant and a user's timezone onto the quest week:
Monday to Friday are quest days, Saturday and Sunday form the "weekend"
reward and claim window. Everything here is pure; the only clock access is
through the injectable `Clock`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Optional, Protocol, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from questline.modules.shared.exceptions import ValidationError
from questline.modules.weekly_quest.constants import QUEST_DAYS, WEEKEND


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """
    Settable clock for tests and replays.

    >>> clock = FixedClock(datetime(2025, 1, 6, 9, tzinfo=timezone.utc))
    >>> clock.advance(days=1)
    """

    def __init__(self, instant: datetime) -> None:
        self._instant = _as_aware(instant)

    def now(self) -> datetime:
        return self._instant

    def set(self, instant: datetime) -> None:
        self._instant = _as_aware(instant)

    def advance(self, **delta: float) -> datetime:
        self._instant = self._instant + timedelta(**delta)
        return self._instant


def _as_aware(instant: datetime) -> datetime:
    # Naive timestamps are UTC
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant


def resolve_timezone(name: Optional[str]) -> ZoneInfo:
    """
    Resolve an IANA timezone name.

    Raises:
        ValidationError: If the name is empty or unknown
    """
    if not name or not str(name).strip():
        raise ValidationError("timezone", "timezone must be a non-empty IANA name")
    try:
        return ZoneInfo(str(name).strip())
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValidationError("timezone", f"unknown timezone {name!r}") from exc


def week_start_for(day: date) -> date:
    """Monday of the week containing `day`."""
    return day - timedelta(days=day.weekday())


def weeks_between(stored_week_start: date, current_week_start: date) -> int:
    """Full weeks from the stored Monday to the current one; never negative."""
    return max(0, (current_week_start - stored_week_start).days // 7)


@dataclass(frozen=True)
class CalendarSnapshot:
    """
    The quest-calendar view of one instant.

    Attributes
    ----------
    local_now : datetime
        The instant in the user's timezone
    week_start : date
        Monday of the current real week
    current_day : str
        Weekday name ("monday".."friday") or "weekend"
    weeks_elapsed : int
        Full weeks between the stored week start and `week_start`
    """

    local_now: datetime
    week_start: date
    current_day: str
    weeks_elapsed: int

    @property
    def today(self) -> date:
        return self.local_now.date()

    @property
    def is_weekend(self) -> bool:
        return self.current_day == WEEKEND

    @property
    def current_index(self) -> int:
        # The weekend sorts after every quest day
        if self.is_weekend:
            return len(QUEST_DAYS)
        return QUEST_DAYS.index(self.current_day)

    def is_today(self, day: str) -> bool:
        return day == self.current_day

    def is_past(self, day: str) -> bool:
        return QUEST_DAYS.index(day) < self.current_index

    def is_future(self, day: str) -> bool:
        return QUEST_DAYS.index(day) > self.current_index

    def date_for(self, day: str) -> date:
        return self.week_start + timedelta(days=QUEST_DAYS.index(day))


def resolve(
    now: Optional[datetime],
    tz: Union[str, tzinfo],
    stored_week_start: Optional[date] = None,
) -> CalendarSnapshot:
    """
    Resolve `now` (None means the current instant) in timezone `tz`.

    Args:
        now: Wall-clock instant; naive values are read as UTC
        tz: IANA name or tzinfo of the user
        stored_week_start: The user's stored week start, if any

    Raises:
        ValidationError: If `tz` is an unknown timezone name
    """
    zone = resolve_timezone(tz) if isinstance(tz, str) else tz
    instant = _as_aware(now) if now is not None else datetime.now(timezone.utc)
    local_now = instant.astimezone(zone)
    local_date = local_now.date()

    weekday = local_date.weekday()
    current_day = QUEST_DAYS[weekday] if weekday < len(QUEST_DAYS) else WEEKEND
    week_start = week_start_for(local_date)

    weeks_elapsed = (
        weeks_between(stored_week_start, week_start) if stored_week_start is not None else 0
    )

    return CalendarSnapshot(
        local_now=local_now,
        week_start=week_start,
        current_day=current_day,
        weeks_elapsed=weeks_elapsed,
    )
