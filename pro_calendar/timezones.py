"""Timezone conversion helpers anchored to the professional's IANA zone.

All calendar math goes through this module. Instants are timezone-aware
``datetime`` objects in UTC; wall-clock readings are :class:`ZonedParts`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Final, Optional

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_TIME_ZONE: Final[str] = "UTC"
MINUTES_PER_DAY: Final[int] = 24 * 60

_MAX_REFINEMENT_STEPS: Final[int] = 4
_CONVERGENCE_TOLERANCE: Final[timedelta] = timedelta(milliseconds=500)
_SEED_DISTANCE: Final[timedelta] = timedelta(days=1)


@dataclass(frozen=True)
class ZonedParts:
    """Wall-clock reading of an instant in a particular timezone.

    ``fold`` follows :pep:`495`: ``1`` marks the second occurrence of a
    repeated wall-clock time at the end of daylight saving time.
    """

    year: int
    month: int
    day: int
    hour: int = 0
    minute: int = 0
    second: int = 0
    fold: int = 0

    @property
    def minutes_since_midnight(self) -> int:
        return self.hour * 60 + self.minute

    def to_date(self) -> date:
        return date(self.year, self.month, self.day)


@dataclass(frozen=True)
class TimeZoneResolution:
    """Outcome of resolving an externally supplied timezone."""

    time_zone: str
    needs_setup: bool
    raw: Optional[str] = None


def timezone_is_valid(candidate: object) -> bool:
    """Return ``True`` when ``candidate`` names a loadable IANA zone."""

    if not isinstance(candidate, str) or not candidate.strip():
        return False
    try:
        ZoneInfo(candidate.strip())
    except (ZoneInfoNotFoundError, ValueError, TypeError, OSError):
        return False
    return True


def sanitize_timezone(candidate: object, fallback: str = DEFAULT_TIME_ZONE) -> str:
    value = candidate.strip() if isinstance(candidate, str) else ""
    return value if timezone_is_valid(value) else fallback


def resolve_timezone(
    candidate: object,
    *,
    fallback: str = DEFAULT_TIME_ZONE,
    setup_flagged: bool = False,
) -> TimeZoneResolution:
    """Resolve the calendar timezone without ever consulting the host zone.

    Invalid or missing values fall back to ``fallback`` and are flagged so the
    caller can prompt for configuration.
    """

    raw = candidate.strip() if isinstance(candidate, str) else None
    if raw and timezone_is_valid(raw):
        return TimeZoneResolution(time_zone=raw, needs_setup=setup_flagged, raw=raw)

    logger.warning(
        "Calendar timezone missing or invalid (%r); using %s until it is configured",
        candidate,
        fallback,
    )
    return TimeZoneResolution(time_zone=fallback, needs_setup=True, raw=raw)


def get_zone(time_zone: str) -> ZoneInfo:
    return ZoneInfo(sanitize_timezone(time_zone))


def ensure_utc(instant: datetime) -> datetime:
    """Return ``instant`` as an aware UTC datetime.

    Naive values are rejected: they carry no instant information.
    """

    if instant.tzinfo is None:
        raise ValueError(f"Expected a timezone-aware instant, got naive {instant!r}")
    return instant.astimezone(timezone.utc)


def zoned_parts_of(instant: datetime, time_zone: str) -> ZonedParts:
    local = ensure_utc(instant).astimezone(get_zone(time_zone))
    return ZonedParts(
        year=local.year,
        month=local.month,
        day=local.day,
        hour=local.hour,
        minute=local.minute,
        second=local.second,
        fold=local.fold,
    )


def _wall_clock_as_utc(parts: ZonedParts) -> datetime:
    # Overflowing fields roll over the way calendar arithmetic expects, so
    # ``day=0`` is the last day of the previous month and ``month=13`` is
    # January of the following year.
    year = parts.year + (parts.month - 1) // 12
    month = (parts.month - 1) % 12 + 1
    base = datetime(year, month, 1, tzinfo=timezone.utc)
    return base + timedelta(
        days=parts.day - 1,
        hours=parts.hour,
        minutes=parts.minute,
        seconds=parts.second,
    )


def utc_offset_at(instant: datetime, time_zone: str) -> timedelta:
    """Offset such that ``local wall clock = UTC + offset`` at ``instant``."""

    offset = ensure_utc(instant).astimezone(get_zone(time_zone)).utcoffset()
    return offset if offset is not None else timedelta(0)


def utc_instant_of(parts: ZonedParts, time_zone: str) -> datetime:
    """Convert a wall-clock reading in ``time_zone`` to a UTC instant.

    The offset depends on the answer, so the guess is refined a few times
    until it stops moving. Times skipped by a DST jump do not converge; the
    last guess is returned, which is still a valid instant.
    """

    tz = sanitize_timezone(time_zone)
    local_as_utc = _wall_clock_as_utc(parts)
    seed = local_as_utc + _SEED_DISTANCE if parts.fold else local_as_utc - _SEED_DISTANCE

    guess = seed
    for _ in range(_MAX_REFINEMENT_STEPS):
        corrected = local_as_utc - utc_offset_at(guess, tz)
        if abs(corrected - guess) < _CONVERGENCE_TOLERANCE:
            return corrected
        guess = corrected
    return guess


def start_of_day_utc(instant: datetime, time_zone: str) -> datetime:
    parts = zoned_parts_of(instant, time_zone)
    return utc_instant_of(ZonedParts(parts.year, parts.month, parts.day), time_zone)


def ymd_in_timezone(instant: datetime, time_zone: str) -> str:
    parts = zoned_parts_of(instant, time_zone)
    return f"{parts.year:04d}-{parts.month:02d}-{parts.day:02d}"


def local_date_of(instant: datetime, time_zone: str) -> date:
    return zoned_parts_of(instant, time_zone).to_date()


def minutes_since_midnight(instant: datetime, time_zone: str) -> int:
    return zoned_parts_of(instant, time_zone).minutes_since_midnight


def weekday_in_timezone(instant: datetime, time_zone: str) -> int:
    """Monday=0 ... Sunday=6, evaluated on the zoned calendar date."""

    return local_date_of(instant, time_zone).weekday()


def utc_from_day_and_minutes(day: datetime, minutes: float, time_zone: str) -> datetime:
    """Return the instant of ``minutes`` past local midnight on ``day``'s date."""

    parts = zoned_parts_of(day, time_zone)
    mins = max(0, min(MINUTES_PER_DAY - 1, int(minutes // 1)))
    return utc_instant_of(
        ZonedParts(parts.year, parts.month, parts.day, hour=mins // 60, minute=mins % 60),
        time_zone,
    )


def anchor_noon(instant: datetime, time_zone: str, *, day_delta: int = 0, month_delta: int = 0) -> datetime:
    """Represent ``instant``'s local calendar day as local noon, shifted.

    Noon anchors stay on the intended day regardless of DST jumps, which
    always happen at night.
    """

    parts = zoned_parts_of(instant, time_zone)
    day = parts.day
    if month_delta:
        day = min(day, _days_in_month(parts.year, parts.month + month_delta))
    return utc_instant_of(
        ZonedParts(parts.year, parts.month + month_delta, day + day_delta, hour=12),
        time_zone,
    )


def _days_in_month(year: int, month: int) -> int:
    first = _wall_clock_as_utc(ZonedParts(year, month, 1))
    following = _wall_clock_as_utc(ZonedParts(year, month + 1, 1))
    return (following - first).days


def parse_instant(value: object) -> datetime:
    """Parse an ISO-8601 string (``Z`` or offset suffix) into a UTC instant."""

    if isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected an ISO-8601 timestamp, got {value!r}")
    text = value.strip()
    cleaned = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
    parsed = datetime.fromisoformat(cleaned)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_instant(instant: datetime) -> str:
    """Serialize an instant as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""

    utc = ensure_utc(instant)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


__all__ = [
    "DEFAULT_TIME_ZONE",
    "MINUTES_PER_DAY",
    "TimeZoneResolution",
    "ZonedParts",
    "anchor_noon",
    "ensure_utc",
    "format_instant",
    "get_zone",
    "local_date_of",
    "minutes_since_midnight",
    "parse_instant",
    "resolve_timezone",
    "sanitize_timezone",
    "start_of_day_utc",
    "timezone_is_valid",
    "utc_from_day_and_minutes",
    "utc_instant_of",
    "utc_offset_at",
    "weekday_in_timezone",
    "ymd_in_timezone",
    "zoned_parts_of",
]
