"""Grid metrics and vertical placement of events within a day column."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Final, Iterable, List, Sequence

from .events import CalendarEvent, is_well_formed
from .snapping import clamp
from .timezones import MINUTES_PER_DAY, anchor_noon, local_date_of, minutes_since_midnight

MIN_EVENT_HEIGHT_MINUTES: Final[int] = 15
_ONE_MS: Final[timedelta] = timedelta(milliseconds=1)


@dataclass(frozen=True)
class GridMetrics:
    """Pixel geometry of the time grid (one pixel per minute by default)."""

    px_per_minute: float = 1.0
    minutes_per_day: int = MINUTES_PER_DAY

    @property
    def column_height(self) -> float:
        return self.minutes_per_day * self.px_per_minute

    def minutes_for_offset(self, pointer_y: float, column_top: float = 0.0) -> float:
        """Convert a pointer position into minutes from the column's top."""

        return (pointer_y - column_top) / self.px_per_minute

    def offset_for_minutes(self, minutes: float) -> float:
        return minutes * self.px_per_minute


DEFAULT_METRICS: Final[GridMetrics] = GridMetrics()


@dataclass(frozen=True)
class EventPlacement:
    event: CalendarEvent
    top_minutes: int
    height_minutes: int
    starts_on_day: bool
    ends_on_day: bool

    @property
    def bottom_minutes(self) -> int:
        return self.top_minutes + self.height_minutes


def _inclusive_end(event: CalendarEvent) -> datetime:
    # Exact-midnight ends belong to the previous day.
    return event.ends_at - _ONE_MS


def events_for_day(day: datetime, events: Iterable[CalendarEvent], time_zone: str) -> List[CalendarEvent]:
    """Events touching ``day``'s local date, including multi-day events."""

    day_date = local_date_of(anchor_noon(day, time_zone), time_zone)
    selected: List[CalendarEvent] = []
    for event in events:
        if not is_well_formed(event):
            continue
        start_date = local_date_of(event.starts_at, time_zone)
        end_date = local_date_of(_inclusive_end(event), time_zone)
        if start_date <= day_date <= end_date:
            selected.append(event)
    return selected


def place_event(day: datetime, event: CalendarEvent, time_zone: str) -> EventPlacement:
    day_date = local_date_of(anchor_noon(day, time_zone), time_zone)

    starts_on_day = local_date_of(event.starts_at, time_zone) == day_date
    ends_on_day = local_date_of(_inclusive_end(event), time_zone) == day_date

    top = minutes_since_midnight(event.starts_at, time_zone) if starts_on_day else 0
    if ends_on_day:
        end = minutes_since_midnight(event.ends_at, time_zone)
        if end == 0 and local_date_of(event.ends_at, time_zone) != day_date:
            end = MINUTES_PER_DAY
    else:
        end = MINUTES_PER_DAY

    top = int(clamp(top, 0, MINUTES_PER_DAY - MIN_EVENT_HEIGHT_MINUTES))
    height = int(clamp(end - top, MIN_EVENT_HEIGHT_MINUTES, MINUTES_PER_DAY - top))
    return EventPlacement(
        event=event,
        top_minutes=top,
        height_minutes=height,
        starts_on_day=starts_on_day,
        ends_on_day=ends_on_day,
    )


def layout_day(day: datetime, events: Sequence[CalendarEvent], time_zone: str) -> List[EventPlacement]:
    """Position every event that touches ``day`` on the minute grid.

    Events that start before the day are clipped to the top, events that end
    after it run to 1440. Events whose end is not after their start are
    discarded. Every placement satisfies ``0 <= top < 1440`` and
    ``top + height <= 1440`` with a minimum height of 15 minutes.
    """

    return [place_event(day, event, time_zone) for event in events_for_day(day, events, time_zone)]


__all__ = [
    "DEFAULT_METRICS",
    "EventPlacement",
    "GridMetrics",
    "MIN_EVENT_HEIGHT_MINUTES",
    "events_for_day",
    "layout_day",
    "place_event",
]
