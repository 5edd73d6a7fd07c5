"""Typed views of the calendar collaborator's payloads."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from ..events import CalendarEvent, event_from_record, parse_records
from ..working_hours import WorkingHours, WorkingHoursError, parse_working_hours

logger = logging.getLogger(__name__)


def _optional_number(value: object) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


def _count(value: object) -> int:
    number = _optional_number(value)
    if number is None or not math.isfinite(number):
        return 0
    return int(number)


@dataclass(frozen=True)
class CalendarStats:
    todays_bookings: int = 0
    available_hours: Optional[float] = None
    pending_requests: int = 0
    blocked_hours: Optional[float] = None

    @classmethod
    def from_payload(cls, payload: object) -> Optional["CalendarStats"]:
        if not isinstance(payload, Mapping):
            return None
        return cls(
            todays_bookings=_count(payload.get("todaysBookings")),
            available_hours=_optional_number(payload.get("availableHours")),
            pending_requests=_count(payload.get("pendingRequests")),
            blocked_hours=_optional_number(payload.get("blockedHours")),
        )


@dataclass(frozen=True)
class CalendarSnapshot:
    """Result of ``fetchCalendar``: appointments plus scheduling context."""

    events: List[CalendarEvent] = field(default_factory=list)
    working_hours_by_config: Dict[str, Optional[WorkingHours]] = field(default_factory=dict)
    time_zone: Optional[str] = None
    needs_time_zone_setup: bool = False
    stats: Optional[CalendarStats] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, object]) -> "CalendarSnapshot":
        raw_events = payload.get("events")
        events = parse_records(
            raw_events if isinstance(raw_events, list) else [],
            event_from_record,
            source="calendar",
        )

        configs: Dict[str, Optional[WorkingHours]] = {}
        raw_configs = payload.get("workingHoursByConfig")
        if isinstance(raw_configs, Mapping):
            for name, raw in raw_configs.items():
                configs[str(name)] = _lenient_hours(str(name), raw)

        time_zone = payload.get("timeZone")
        return cls(
            events=events,
            working_hours_by_config=configs,
            time_zone=time_zone.strip() if isinstance(time_zone, str) else None,
            needs_time_zone_setup=bool(payload.get("needsTimeZoneSetup")),
            stats=CalendarStats.from_payload(payload.get("stats")),
        )


def _lenient_hours(name: str, raw: object) -> Optional[WorkingHours]:
    try:
        return parse_working_hours(raw)
    except WorkingHoursError as exc:
        logger.warning("Ignoring malformed working hours for %s: %s", name, exc)
        return None


__all__ = ["CalendarSnapshot", "CalendarStats"]
