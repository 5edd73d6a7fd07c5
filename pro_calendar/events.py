"""Calendar entries shown on the scheduling grid.

Appointments and personal time-blocks are separate variants that share the
positionable fields consumed by layout and interaction code.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Mapping, Optional, Sequence, Union

from .timezones import format_instant, parse_instant

logger = logging.getLogger(__name__)

BLOCK_ID_PREFIX = "block:"
BLOCKED_STATUS = "BLOCKED"
DEFAULT_DURATION_MINUTES = 60

APPOINTMENT_STATUSES = ("PENDING", "ACCEPTED", "COMPLETED", "CANCELLED", "WAITLIST")


class EventParseError(ValueError):
    """Raised when an appointment or block record cannot be interpreted."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field


@dataclass(frozen=True)
class Appointment:
    """A booked appointment with a client."""

    id: str
    starts_at: datetime
    ends_at: datetime
    title: str = "Appointment"
    client_name: str = "Client"
    status: str = "PENDING"
    duration_minutes: Optional[int] = None

    is_blocked = False

    @property
    def backing_id(self) -> str:
        return self.id


@dataclass(frozen=True)
class Block:
    """Personal time the professional has blocked off."""

    id: str
    starts_at: datetime
    ends_at: datetime
    block_id: str = ""
    note: Optional[str] = None
    duration_minutes: Optional[int] = None
    title: str = field(default="Blocked")
    status: str = field(default=BLOCKED_STATUS)

    is_blocked = True

    @property
    def backing_id(self) -> str:
        return self.block_id or extract_block_id(self.id) or self.id

    @property
    def client_name(self) -> str:
        return self.note or "Personal time"


CalendarEvent = Union[Appointment, Block]


def extract_block_id(event_id: str) -> Optional[str]:
    if event_id.startswith(BLOCK_ID_PREFIX):
        return event_id[len(BLOCK_ID_PREFIX):] or None
    return None


def entity_type_of(event: CalendarEvent) -> str:
    return "block" if event.is_blocked else "booking"


def minutes_between(start: datetime, end: datetime) -> int:
    return round((end - start) / timedelta(minutes=1))


def duration_of(event: CalendarEvent) -> int:
    """Explicit duration when present, otherwise derived from the instants."""

    if event.duration_minutes is not None and event.duration_minutes > 0:
        return event.duration_minutes
    derived = minutes_between(event.starts_at, event.ends_at)
    return derived if derived > 0 else DEFAULT_DURATION_MINUTES


def is_well_formed(event: CalendarEvent) -> bool:
    return event.ends_at > event.starts_at


def _required_text(record: Mapping[str, object], key: str) -> str:
    value = record.get(key)
    if value is None or not str(value).strip():
        raise EventParseError(key, "is required")
    return str(value).strip()


def _instant(record: Mapping[str, object], key: str) -> datetime:
    try:
        return parse_instant(record.get(key))
    except ValueError as exc:
        raise EventParseError(key, str(exc)) from exc


def _optional_minutes(record: Mapping[str, object], key: str) -> Optional[int]:
    value = record.get(key)
    if value is None:
        return None
    try:
        minutes = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError) as exc:
        raise EventParseError(key, f"expected whole minutes, got {value!r}") from exc
    return minutes if minutes > 0 else None


def _looks_like_block(record: Mapping[str, object]) -> bool:
    return (
        str(record.get("status") or "").upper() == BLOCKED_STATUS
        or str(record.get("id") or "").startswith(BLOCK_ID_PREFIX)
        or str(record.get("kind") or "").upper() == "BLOCK"
    )


def event_from_record(record: Mapping[str, object]) -> CalendarEvent:
    """Build an event from an appointment record of the calendar feed."""

    if _looks_like_block(record):
        event_id = _required_text(record, "id")
        note = record.get("note")
        return Block(
            id=event_id,
            block_id=str(record.get("blockId") or extract_block_id(event_id) or ""),
            starts_at=_instant(record, "startsAt"),
            ends_at=_instant(record, "endsAt"),
            note=str(note) if note else None,
            duration_minutes=_optional_minutes(record, "durationMinutes"),
        )

    return Appointment(
        id=_required_text(record, "id"),
        starts_at=_instant(record, "startsAt"),
        ends_at=_instant(record, "endsAt"),
        title=str(record.get("title") or "Appointment"),
        client_name=str(record.get("clientName") or "Client"),
        status=str(record.get("status") or "PENDING").upper(),
        duration_minutes=_optional_minutes(record, "durationMinutes"),
    )


def block_from_record(record: Mapping[str, object]) -> Block:
    """Build a block event from a ``{id, startsAt, endsAt, note}`` row."""

    block_id = _required_text(record, "id")
    starts_at = _instant(record, "startsAt")
    ends_at = _instant(record, "endsAt")
    note = record.get("note")
    return Block(
        id=f"{BLOCK_ID_PREFIX}{block_id}",
        block_id=block_id,
        starts_at=starts_at,
        ends_at=ends_at,
        note=str(note) if note else None,
        duration_minutes=max(15, minutes_between(starts_at, ends_at)),
    )


def parse_records(
    records: Iterable[object],
    parser: Callable[[Mapping[str, object]], CalendarEvent],
    *,
    source: str,
) -> List[CalendarEvent]:
    """Parse a feed, skipping malformed records with a warning."""

    parsed: List[CalendarEvent] = []
    for record in records:
        if not isinstance(record, Mapping):
            logger.warning("Skipping %s record that is not an object: %r", source, record)
            continue
        try:
            parsed.append(parser(record))
        except EventParseError as exc:
            logger.warning("Skipping malformed %s record %r: %s", source, record.get("id"), exc)
    return parsed


def merge_and_sort(*groups: Iterable[CalendarEvent]) -> List[CalendarEvent]:
    combined = [event for group in groups for event in group]
    combined.sort(key=lambda event: (event.starts_at, event.ends_at, event.id))
    return combined


def event_to_payload(event: CalendarEvent) -> dict:
    return {
        "id": event.id,
        "startsAt": format_instant(event.starts_at),
        "endsAt": format_instant(event.ends_at),
        "title": event.title,
        "clientName": event.client_name,
        "status": event.status,
        "durationMinutes": event.duration_minutes,
        "isBlocked": event.is_blocked,
    }


class EventStore:
    """In-memory event list owned by the calendar session.

    Mutated only by a full replacement on reload or by patching a single
    event by id during a gesture or its rollback.
    """

    def __init__(self, events: Sequence[CalendarEvent] = ()) -> None:
        self._events: List[CalendarEvent] = list(events)

    def __iter__(self):
        return iter(self._events)

    def __len__(self) -> int:
        return len(self._events)

    @property
    def events(self) -> List[CalendarEvent]:
        return list(self._events)

    def get(self, event_id: str) -> Optional[CalendarEvent]:
        for event in self._events:
            if event.id == event_id:
                return event
        return None

    def replace_all(self, events: Iterable[CalendarEvent]) -> None:
        self._events = list(events)

    def patch(
        self,
        event_id: str,
        *,
        starts_at: Optional[datetime] = None,
        ends_at: Optional[datetime] = None,
        duration_minutes: Optional[int] = None,
        clear_duration: bool = False,
    ) -> Optional[CalendarEvent]:
        """Replace the timing fields of one event and return the new value."""

        for index, event in enumerate(self._events):
            if event.id != event_id:
                continue
            changes: dict = {}
            if starts_at is not None:
                changes["starts_at"] = starts_at
            if ends_at is not None:
                changes["ends_at"] = ends_at
            if duration_minutes is not None or clear_duration:
                changes["duration_minutes"] = duration_minutes
            updated = replace(event, **changes)
            self._events[index] = updated
            return updated
        return None

    def restore(self, snapshot: CalendarEvent) -> Optional[CalendarEvent]:
        """Write back the timing fields of ``snapshot`` verbatim."""

        return self.patch(
            snapshot.id,
            starts_at=snapshot.starts_at,
            ends_at=snapshot.ends_at,
            duration_minutes=snapshot.duration_minutes,
            clear_duration=snapshot.duration_minutes is None,
        )


__all__ = [
    "APPOINTMENT_STATUSES",
    "Appointment",
    "BLOCK_ID_PREFIX",
    "Block",
    "CalendarEvent",
    "EventParseError",
    "EventStore",
    "block_from_record",
    "duration_of",
    "entity_type_of",
    "event_from_record",
    "event_to_payload",
    "extract_block_id",
    "is_well_formed",
    "merge_and_sort",
    "minutes_between",
    "parse_records",
]
