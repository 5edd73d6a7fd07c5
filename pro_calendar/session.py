"""Calendar session: loads data for the visible range and wires gestures.

The session is the single owner of the resolved calendar timezone. Pure
helpers receive it explicitly; the interaction controller reads it through
a callable so it always sees the current value.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, List, Mapping, Optional, Set

from .api.backend import CalendarBackend
from .api.client import CalendarApiError
from .api.models import CalendarStats
from .events import CalendarEvent, EventStore, extract_block_id, merge_and_sort
from .interaction import (
    ApplyOutcome,
    CreateProposal,
    GestureState,
    InteractionController,
    PendingChange,
)
from .layout import DEFAULT_METRICS, EventPlacement, GridMetrics, layout_day
from .snapping import ceil_to_slot, snap_duration, snap_minutes
from .timezones import (
    DEFAULT_TIME_ZONE,
    ZonedParts,
    anchor_noon,
    minutes_since_midnight,
    resolve_timezone,
    sanitize_timezone,
    start_of_day_utc,
    utc_from_day_and_minutes,
    utc_instant_of,
    zoned_parts_of,
)
from .view_range import ViewMode, ViewRange, range_for, shift_focus, visible_days
from .working_hours import (
    WorkingHours,
    WorkingWindow,
    closed_segments,
    is_outside_all_working_hours,
    merged_windows_for,
    parse_working_hours,
)

LOGGER = logging.getLogger(__name__)

ERROR_DISPLAY_SECONDS = 3.5
BOOKING_STATUS_UPDATES = ("ACCEPTED", "CANCELLED")

_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


class ValidationError(ValueError):
    """Raised for user input rejected before any network call."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field


@dataclass(frozen=True)
class ReschedulePlan:
    starts_at: datetime
    duration_minutes: int
    outside_working_hours: bool

    @property
    def ends_at(self) -> datetime:
        return self.starts_at + timedelta(minutes=self.duration_minutes)


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


class CalendarSession:
    """Scheduling state for one professional's calendar view."""

    def __init__(
        self,
        backend: CalendarBackend,
        *,
        view: ViewMode | str = ViewMode.WEEK,
        focus: Optional[datetime] = None,
        fallback_time_zone: str = DEFAULT_TIME_ZONE,
        metrics: GridMetrics = DEFAULT_METRICS,
        now: Callable[[], datetime] = _utc_now,
        clock: Callable[[], float] = time.monotonic,
        logger: logging.Logger | None = None,
    ) -> None:
        self.backend = backend
        self.view = ViewMode(view)
        self.fallback_time_zone = sanitize_timezone(fallback_time_zone)
        self.metrics = metrics
        self.now = now
        self.clock = clock
        self.logger = logger or LOGGER

        self.time_zone = self.fallback_time_zone
        self.needs_time_zone_setup = False
        # Re-anchored in the calendar zone on load until a focus is chosen explicitly.
        self._focus_instant = focus or now()
        self._focus_pinned = False
        self.focus = anchor_noon(self._focus_instant, self.time_zone)
        self.range: ViewRange = range_for(self.view, self.focus, self.time_zone)
        self.working_hours: Dict[str, Optional[WorkingHours]] = {}
        self.stats: Optional[CalendarStats] = None
        self.loading = False
        self.create_proposal: Optional[CreateProposal] = None

        self.store = EventStore()
        self.interaction = InteractionController(
            self.store,
            time_zone=lambda: self.time_zone,
            metrics=metrics,
            clock=clock,
            overlay_open=self.overlay_open,
        )

        self._overlays: Set[str] = set()
        self._load_seq = 0
        self._error: Optional[str] = None
        self._error_expires_at: Optional[float] = None

    # ------------------------------------------------------------------
    # Errors and overlays
    # ------------------------------------------------------------------
    @property
    def error(self) -> Optional[str]:
        if self._error is None:
            return None
        if self._error_expires_at is not None and self.clock() >= self._error_expires_at:
            self._error = None
            self._error_expires_at = None
        return self._error

    def _set_error(self, message: str, *, transient: bool = True) -> None:
        self._error = message
        self._error_expires_at = self.clock() + ERROR_DISPLAY_SECONDS if transient else None

    def open_overlay(self, name: str) -> None:
        self._overlays.add(name)

    def close_overlay(self, name: str) -> None:
        self._overlays.discard(name)

    def overlay_open(self) -> bool:
        return bool(self._overlays) or self.create_proposal is not None

    @property
    def events(self) -> List[CalendarEvent]:
        return self.store.events

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------
    async def load(self) -> bool:
        """Fetch the calendar for the current view and focus.

        Returns ``False`` when the load failed or a newer load superseded it.
        """

        self._load_seq += 1
        seq = self._load_seq
        self.loading = True
        self._error = None

        try:
            snapshot = await self.backend.fetch_calendar()
            if seq != self._load_seq:
                self.logger.debug("Discarding stale calendar response (load %d)", seq)
                return False

            resolution = resolve_timezone(
                snapshot.time_zone,
                fallback=self.fallback_time_zone,
                setup_flagged=snapshot.needs_time_zone_setup,
            )
            tz = resolution.time_zone
            focus = self.focus if self._focus_pinned else anchor_noon(self._focus_instant, tz)
            view_range = range_for(self.view, focus, tz)

            try:
                blocks = await self.backend.fetch_blocks(view_range.start, view_range.end)
            except CalendarApiError as exc:
                self.logger.warning("Could not load blocked time: %s", exc)
                blocks = []
            if seq != self._load_seq:
                self.logger.debug("Discarding stale blocks response (load %d)", seq)
                return False

            self.time_zone = tz
            self.focus = focus
            self.needs_time_zone_setup = resolution.needs_setup
            self.range = view_range
            self.working_hours = dict(snapshot.working_hours_by_config)
            self.stats = snapshot.stats
            self.store.replace_all(merge_and_sort(blocks, snapshot.events))
            return True
        except (CalendarApiError, ValueError, OSError) as exc:
            self.logger.exception("Failed to load calendar")
            if seq == self._load_seq:
                self._set_error(str(exc) or "Network error loading calendar.", transient=False)
            return False
        finally:
            if seq == self._load_seq:
                self.loading = False

    async def set_view(self, view: ViewMode | str) -> bool:
        self.view = ViewMode(view)
        self.range = range_for(self.view, self.focus, self.time_zone)
        return await self.load()

    async def set_focus(self, focus: datetime) -> bool:
        self._focus_pinned = True
        self.focus = anchor_noon(focus, self.time_zone)
        self.range = range_for(self.view, self.focus, self.time_zone)
        return await self.load()

    async def navigate(self, delta: int) -> bool:
        return await self.set_focus(shift_focus(self.view, self.focus, delta, self.time_zone))

    async def go_to_today(self) -> bool:
        return await self.set_focus(self.now())

    # ------------------------------------------------------------------
    # Derived view state
    # ------------------------------------------------------------------
    def visible_days(self) -> List[datetime]:
        return visible_days(self.view, self.focus, self.time_zone)

    def layout_for(self, day: datetime) -> List[EventPlacement]:
        return layout_day(day, self.store.events, self.time_zone)

    def open_segments(self, day: datetime) -> List[WorkingWindow]:
        return merged_windows_for(day, self.time_zone, self.working_hours)

    def closed_segments(self, day: datetime) -> List[WorkingWindow]:
        return closed_segments(self.open_segments(day))

    def blocked_minutes_today(self) -> int:
        day_start = start_of_day_utc(self.now(), self.time_zone)
        parts = zoned_parts_of(day_start, self.time_zone)
        day_end = utc_instant_of(ZonedParts(parts.year, parts.month, parts.day + 1), self.time_zone)

        total = 0
        for event in self.store:
            if not event.is_blocked or event.ends_at <= event.starts_at:
                continue
            overlap_start = max(event.starts_at, day_start)
            overlap_end = min(event.ends_at, day_end)
            if overlap_end > overlap_start:
                total += round((overlap_end - overlap_start) / timedelta(minutes=1))
        return total

    def is_outside_working_hours(self, starts_at: datetime, duration_minutes: int) -> bool:
        start_minutes = minutes_since_midnight(starts_at, self.time_zone)
        return is_outside_all_working_hours(
            starts_at,
            start_minutes,
            start_minutes + duration_minutes,
            self.working_hours,
            self.time_zone,
        )

    def pending_outside_working_hours(self) -> bool:
        change = self.interaction.pending
        if change is None:
            return False
        duration = round((change.next_end - change.next_start) / timedelta(minutes=1))
        return self.is_outside_working_hours(change.next_start, duration)

    # ------------------------------------------------------------------
    # Gestures
    # ------------------------------------------------------------------
    def click_grid(self, day: datetime, pointer_y: float, column_top: float = 0.0) -> Optional[CreateProposal]:
        proposal = self.interaction.click_grid(day, pointer_y, column_top)
        if proposal is not None:
            self.create_proposal = proposal
        return proposal

    def close_create(self) -> None:
        self.create_proposal = None
        self.interaction.finish_create()

    @property
    def pending(self) -> Optional[PendingChange]:
        return self.interaction.pending

    @property
    def applying(self) -> bool:
        return self.interaction.state is GestureState.APPLYING

    def cancel_pending(self) -> Optional[PendingChange]:
        return self.interaction.cancel()

    async def confirm_pending(self) -> Optional[ApplyOutcome]:
        """Persist the pending change, then reload; roll back on failure."""

        change = self.interaction.begin_apply()
        if change is None:
            return None

        try:
            await self._persist(change)
        except (CalendarApiError, ValueError, OSError) as exc:
            self.logger.error("Could not apply %s of %s: %s", change.kind, change.event_id, exc)
            outcome = self.interaction.fail_apply(str(exc) or "Could not apply changes.")
            self._set_error(str(exc) or "Could not apply changes.")
            return outcome

        outcome = self.interaction.complete_apply()
        await self.load()
        return outcome

    async def _persist(self, change: PendingChange) -> None:
        if change.entity_type == "booking":
            if change.kind == "resize":
                await self.backend.update_appointment(
                    change.api_id, total_duration_minutes=change.next_duration_minutes
                )
            else:
                await self.backend.update_appointment(change.api_id, scheduled_for=change.next_start)
            return

        await self.backend.update_block(
            change.api_id, starts_at=change.next_start, ends_at=change.next_end
        )

    def close(self) -> None:
        self.interaction.close()

    # ------------------------------------------------------------------
    # Blocks, bookings and working hours
    # ------------------------------------------------------------------
    async def create_block(self, starts_at: datetime, ends_at: datetime, note: Optional[str] = None) -> bool:
        if ends_at <= starts_at:
            raise ValidationError("endsAt", "End must be after start.")
        try:
            await self.backend.create_block(starts_at, ends_at, note)
        except (CalendarApiError, OSError) as exc:
            self.logger.error("Could not create block: %s", exc)
            self._set_error(str(exc) or "Could not create block.")
            return False
        return await self.load()

    async def block_full_day(self, day: datetime) -> bool:
        parts = zoned_parts_of(day, self.time_zone)
        start = utc_instant_of(ZonedParts(parts.year, parts.month, parts.day), self.time_zone)
        end = utc_instant_of(ZonedParts(parts.year, parts.month, parts.day + 1), self.time_zone)
        return await self.create_block(start, end, "Full day off")

    async def edit_block(
        self, block_id: str, starts_at: datetime, ends_at: datetime, note: Optional[str] = None
    ) -> bool:
        """Change the times and note of a block. ``block_id`` may carry the ``block:`` prefix."""

        if ends_at <= starts_at:
            raise ValidationError("endsAt", "End must be after start.")
        api_id = extract_block_id(block_id) or block_id
        try:
            await self.backend.update_block(api_id, starts_at=starts_at, ends_at=ends_at, note=note or "")
        except (CalendarApiError, OSError) as exc:
            self.logger.error("Could not update block %s: %s", api_id, exc)
            self._set_error(str(exc) or "Could not update block.")
            return False
        return await self.load()

    async def delete_block(self, block_id: str) -> bool:
        api_id = extract_block_id(block_id) or block_id
        try:
            await self.backend.delete_block(api_id)
        except (CalendarApiError, OSError) as exc:
            self.logger.error("Could not delete block %s: %s", api_id, exc)
            self._set_error(str(exc) or "Could not delete block.")
            return False
        return await self.load()

    def propose_block_now(self) -> datetime:
        """Start of a new block: now, rounded up to the next slot in the calendar zone."""

        now = self.now()
        minutes = snap_minutes(ceil_to_slot(minutes_since_midnight(now, self.time_zone)))
        return utc_from_day_and_minutes(now, minutes, self.time_zone)

    async def set_booking_status(self, booking_id: str, status: str) -> bool:
        status = status.upper()
        current = self.store.get(booking_id)
        if current is not None and current.status.upper() == status:
            return True
        if status not in BOOKING_STATUS_UPDATES:
            raise ValidationError("status", f"Unsupported status {status!r}.")
        try:
            await self.backend.update_appointment(booking_id, status=status)
        except (CalendarApiError, OSError) as exc:
            self.logger.error("Could not update booking %s: %s", booking_id, exc)
            self._set_error(str(exc) or "Failed to update booking.")
            return False
        return await self.load()

    def reschedule_plan(self, date_text: str, time_text: str, duration_minutes: float) -> ReschedulePlan:
        """Validate reschedule form values and resolve them in the calendar zone."""

        date_match = _DATE_RE.match((date_text or "").strip())
        if not date_match:
            raise ValidationError("date", "Pick a valid date.")
        year, month, day = (int(part) for part in date_match.groups())
        try:
            date(year, month, day)
        except ValueError as exc:
            raise ValidationError("date", "Pick a valid date.") from exc

        time_match = _TIME_RE.match((time_text or "").strip())
        if not time_match:
            raise ValidationError("time", "Pick a valid time.")
        hour, minute = (int(part) for part in time_match.groups())
        if hour > 23 or minute > 59:
            raise ValidationError("time", "Pick a valid time.")

        duration = snap_duration(duration_minutes or 60)
        starts_at = utc_instant_of(ZonedParts(year, month, day, hour=hour, minute=minute), self.time_zone)
        start_minutes = hour * 60 + minute
        outside = is_outside_all_working_hours(
            starts_at, start_minutes, start_minutes + duration, self.working_hours, self.time_zone
        )
        return ReschedulePlan(starts_at=starts_at, duration_minutes=duration, outside_working_hours=outside)

    async def update_working_hours(self, config_name: str, raw: Mapping[str, object]) -> bool:
        hours = parse_working_hours(raw, strict=True)
        if hours is None:
            raise ValidationError("workingHours", "Working hours are required.")
        try:
            await self.backend.save_working_hours(config_name, hours)
        except (CalendarApiError, OSError) as exc:
            self.logger.error("Could not save %s working hours: %s", config_name, exc)
            self._set_error(str(exc) or "Failed to save working hours.")
            return False
        self.working_hours[config_name] = hours
        return True


__all__ = [
    "BOOKING_STATUS_UPDATES",
    "CalendarSession",
    "ERROR_DISPLAY_SECONDS",
    "ReschedulePlan",
    "ValidationError",
]
