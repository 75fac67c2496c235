"""
Weekly schedule windows.

Classifies a timestamp as ALLOWED, FORBIDDEN or DEFAULT from a rule's
enabled/forbidden day-and-time entries. Solar anchors are resolved for
the timestamp's calendar day through the platform's solar calendar.
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Callable, Iterable, Optional

from .models import (
    DAY,
    Schedule,
    ScheduleEntry,
    SolarAnchor,
    TimeBound,
    TimeRange,
    Weekday,
    WindowState,
)

logger = logging.getLogger(__name__)

SolarProvider = Callable[[date, SolarAnchor], datetime]


def resolve_bound(
    bound: TimeBound,
    day: date,
    tzinfo,
    solar: SolarProvider,
    is_end: bool = False,
) -> datetime:
    """
    Resolve a time bound to a datetime on a calendar day.

    Args:
        bound: The time bound
        day: Calendar day to resolve on
        tzinfo: Timezone for clock-time bounds
        solar: Solar calendar (date, anchor) -> datetime
        is_end: True if the bound closes a range (MIDNIGHT becomes 24:00)

    Returns:
        The resolved datetime
    """
    fixed = bound.fixed_offset(is_end)
    if fixed is not None:
        return datetime.combine(day, time(0), tzinfo=tzinfo) + fixed
    return solar(day, bound.anchor) + bound.offset


def in_range(timestamp: datetime, time_range: TimeRange, solar: SolarProvider) -> bool:
    """
    Check if a timestamp falls within a half-open range on its own day.

    A range that resolves inverted on this day, or whose solar bounds land
    on another calendar day, matches nothing.
    """
    day = timestamp.date()
    start = resolve_bound(time_range.start, day, timestamp.tzinfo, solar, is_end=False)
    end = resolve_bound(time_range.end, day, timestamp.tzinfo, solar, is_end=True)
    day_start = datetime.combine(day, time(0), tzinfo=timestamp.tzinfo)
    if end < start or start < day_start or end > day_start + DAY:
        logger.warning(
            f"Range {time_range.start}..{time_range.end} does not fit in {day} "
            f"({start}..{end}), ignoring"
        )
        return False
    return start <= timestamp < end


def within_time_of_day(
    timestamp: datetime,
    after: Optional[TimeBound],
    before: Optional[TimeBound],
    solar: SolarProvider,
) -> bool:
    """
    Check if a timestamp is after/before the given bounds on its day.

    Unlike schedule ranges, a window whose end is before its start is
    treated as spanning midnight (e.g., after 22:00, before 06:00).
    """
    day = timestamp.date()
    tzinfo = timestamp.tzinfo
    start = resolve_bound(after, day, tzinfo, solar) if after else None
    end = resolve_bound(before, day, tzinfo, solar, is_end=True) if before else None

    if start is not None and end is not None:
        if start <= end:
            return start <= timestamp < end
        # Spans midnight
        return timestamp >= start or timestamp < end
    if start is not None:
        return timestamp >= start
    if end is not None:
        return timestamp < end
    return True  # No constraints


class ScheduleWindow:
    """
    Classifies timestamps against a rule's weekly schedule.

    Precedence: forbidden entries, then enabled entries, then DEFAULT.
    """

    def __init__(self, schedule: Schedule, solar: SolarProvider) -> None:
        self._schedule = schedule
        self._solar = solar

    @property
    def schedule(self) -> Schedule:
        return self._schedule

    def classify(self, timestamp: datetime) -> WindowState:
        """
        Classify a timestamp.

        Args:
            timestamp: Timezone-aware timestamp

        Returns:
            FORBIDDEN, ALLOWED or DEFAULT
        """
        if self._matches_any(self._schedule.forbidden, timestamp):
            return WindowState.FORBIDDEN
        if self._matches_any(self._schedule.enabled, timestamp):
            return WindowState.ALLOWED
        return WindowState.DEFAULT

    def _matches_any(self, entries: Iterable[ScheduleEntry], timestamp: datetime) -> bool:
        weekday = Weekday(timestamp.weekday())
        for entry in entries:
            if weekday not in entry.days:
                continue
            for time_range in entry.effective_ranges:
                if in_range(timestamp, time_range, self._solar):
                    return True
        return False


def next_occurrence(
    bound: TimeBound,
    after: datetime,
    solar: SolarProvider,
    weekday: Optional[Weekday] = None,
) -> datetime:
    """
    Find the first time strictly after `after` that the bound occurs.

    Args:
        bound: Time-of-day bound (solar bounds resolve per day)
        after: Reference timestamp
        solar: Solar calendar
        weekday: Only consider this weekday (None = every day)

    Returns:
        The next occurrence

    Raises:
        ValueError: If the bound's offset keeps it before `after` for two weeks
    """
    start_day = after.date()
    for days_ahead in range(0, 15):
        day = start_day + timedelta(days=days_ahead)
        if weekday is not None and day.weekday() != weekday:
            continue
        candidate = resolve_bound(bound, day, after.tzinfo, solar)
        if candidate > after:
            return candidate
    raise ValueError(f"No occurrence of {bound} after {after}")
