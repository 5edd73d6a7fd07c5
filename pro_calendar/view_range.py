"""Visible range computation for the day, week and month calendar views."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Final, List

from .timezones import (
    ZonedParts,
    anchor_noon,
    sanitize_timezone,
    utc_instant_of,
    weekday_in_timezone,
    zoned_parts_of,
)

# Weeks start on Monday (``datetime.weekday()`` numbering) in every view.
WEEK_START: Final[int] = 0
MONTH_GRID_DAYS: Final[int] = 42
_DAY: Final[timedelta] = timedelta(days=1)


class ViewMode(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"

    @property
    def day_count(self) -> int:
        return {ViewMode.DAY: 1, ViewMode.WEEK: 7, ViewMode.MONTH: MONTH_GRID_DAYS}[self]


@dataclass(frozen=True)
class ViewRange:
    """Half-open ``[start, end)`` range of UTC instants."""

    start: datetime
    end: datetime

    def __contains__(self, instant: object) -> bool:
        return isinstance(instant, datetime) and self.start <= instant < self.end

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return start < self.end and end > self.start


def _days_since_week_start(instant: datetime, time_zone: str) -> int:
    return (weekday_in_timezone(instant, time_zone) - WEEK_START) % 7


def _local_midnight(parts: ZonedParts, time_zone: str, *, day_delta: int = 0) -> datetime:
    return utc_instant_of(ZonedParts(parts.year, parts.month, parts.day + day_delta), time_zone)


def range_for(view: ViewMode | str, focus: datetime, time_zone: str) -> ViewRange:
    """Return the UTC range to fetch and display for ``view`` around ``focus``.

    Boundaries are local midnights of ``time_zone``, derived from zoned
    year/month/day readings rather than offsets added to instants.
    """

    mode = ViewMode(view)
    tz = sanitize_timezone(time_zone)
    parts = zoned_parts_of(focus, tz)

    if mode is ViewMode.DAY:
        start = _local_midnight(parts, tz)
    elif mode is ViewMode.WEEK:
        start = _local_midnight(parts, tz, day_delta=-_days_since_week_start(focus, tz))
    else:
        first_of_month = utc_instant_of(ZonedParts(parts.year, parts.month, 1, hour=12), tz)
        first_parts = zoned_parts_of(first_of_month, tz)
        start = _local_midnight(
            first_parts, tz, day_delta=-_days_since_week_start(first_of_month, tz)
        )

    return ViewRange(start=start, end=start + mode.day_count * _DAY)


def visible_days(view: ViewMode | str, focus: datetime, time_zone: str) -> List[datetime]:
    """Return one local-noon anchor per rendered column."""

    mode = ViewMode(view)
    tz = sanitize_timezone(time_zone)
    first = anchor_noon(range_for(mode, focus, tz).start, tz)
    return [anchor_noon(first, tz, day_delta=offset) for offset in range(mode.day_count)]


def shift_focus(view: ViewMode | str, anchor: datetime, delta: int, time_zone: str) -> datetime:
    """Move the focus anchor by ``delta`` days, weeks or months."""

    mode = ViewMode(view)
    tz = sanitize_timezone(time_zone)
    if mode is ViewMode.DAY:
        return anchor_noon(anchor, tz, day_delta=delta)
    if mode is ViewMode.WEEK:
        return anchor_noon(anchor, tz, day_delta=7 * delta)
    return anchor_noon(anchor, tz, month_delta=delta)


def in_focus_month(day: datetime, focus: datetime, time_zone: str) -> bool:
    day_parts = zoned_parts_of(day, time_zone)
    focus_parts = zoned_parts_of(focus, time_zone)
    return (day_parts.year, day_parts.month) == (focus_parts.year, focus_parts.month)


__all__ = [
    "MONTH_GRID_DAYS",
    "WEEK_START",
    "ViewMode",
    "ViewRange",
    "in_focus_month",
    "range_for",
    "shift_focus",
    "visible_days",
]
