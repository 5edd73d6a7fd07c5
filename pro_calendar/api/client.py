"""HTTP client for the professional calendar API."""

from __future__ import annotations

import json
import logging
import time
import urllib.error
import urllib.parse
import urllib.request
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, MutableMapping, Optional, Sequence

from ..events import Block, CalendarEvent, block_from_record, parse_records
from ..timezones import format_instant
from ..working_hours import WorkingHours, working_hours_to_payload
from .models import CalendarSnapshot

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
LOCATION_TYPES: Sequence[str] = ("SALON", "MOBILE")


class CalendarApiError(RuntimeError):
    """Raised when the calendar API fails or rejects a request."""

    def __init__(self, message: str, *, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status

    @property
    def retryable(self) -> bool:
        return self.status is None or self.status >= 500


def _decode_json(raw: bytes, *, strict: bool = False) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        payload = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        if strict:
            raise CalendarApiError(f"Calendar API returned a malformed response: {exc}") from exc
        return {}
    return payload if isinstance(payload, dict) else {"data": payload}


class CalendarApiClient:
    """Synchronous JSON client for the calendar endpoints.

    Reads are retried with exponential backoff on transport failures and 5xx
    responses. Writes are sent exactly once.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = 2,
        retry_initial_delay: float = 0.5,
        retry_backoff: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
        opener: Callable[..., Any] = urllib.request.urlopen,
    ) -> None:
        if not base_url:
            raise ValueError("A base URL for the calendar API must be provided.")
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_initial_delay = retry_initial_delay
        self.retry_backoff = retry_backoff
        self._sleep = sleep
        self._opener = opener

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------
    def fetch_calendar(self) -> CalendarSnapshot:
        payload = self._get("/api/pro/calendar")
        if not isinstance(payload.get("workingHoursByConfig"), Mapping):
            payload["workingHoursByConfig"] = {
                location_type: self.fetch_working_hours(location_type)
                for location_type in self._enabled_location_types(payload)
            }
        return CalendarSnapshot.from_payload(payload)

    def fetch_working_hours(self, location_type: str) -> Optional[Mapping[str, Any]]:
        payload = self._get("/api/pro/working-hours", {"locationType": location_type})
        hours = payload.get("workingHours")
        return hours if isinstance(hours, Mapping) else None

    def save_working_hours(self, location_type: str, hours: WorkingHours) -> Optional[Mapping[str, Any]]:
        payload = self._send(
            "POST",
            "/api/pro/working-hours",
            {"workingHours": working_hours_to_payload(hours)},
            params={"locationType": location_type},
        )
        saved = payload.get("workingHours")
        return saved if isinstance(saved, Mapping) else None

    def fetch_blocks(self, start: datetime, end: datetime) -> List[CalendarEvent]:
        payload = self._get(
            "/api/pro/calendar/blocked",
            {"from": format_instant(start), "to": format_instant(end)},
        )
        rows = payload.get("blocks")
        return parse_records(rows if isinstance(rows, list) else [], block_from_record, source="block")

    def create_block(self, starts_at: datetime, ends_at: datetime, note: Optional[str] = None) -> Block:
        payload = self._send(
            "POST",
            "/api/pro/calendar/blocked",
            {"startsAt": format_instant(starts_at), "endsAt": format_instant(ends_at), "note": note},
        )
        record = payload.get("block", payload)
        return block_from_record(record if isinstance(record, Mapping) else {})

    def update_appointment(
        self,
        appointment_id: str,
        *,
        scheduled_for: Optional[datetime] = None,
        total_duration_minutes: Optional[int] = None,
        status: Optional[str] = None,
        notify_client: bool = True,
    ) -> Mapping[str, Any]:
        body: Dict[str, Any] = {"notifyClient": notify_client}
        if scheduled_for is not None:
            body["scheduledFor"] = format_instant(scheduled_for)
        if total_duration_minutes is not None:
            body["totalDurationMinutes"] = total_duration_minutes
        if status is not None:
            body["status"] = status
        payload = self._send("PATCH", f"/api/pro/bookings/{urllib.parse.quote(appointment_id, safe='')}", body)
        booking = payload.get("booking", payload)
        return booking if isinstance(booking, Mapping) else {}

    def update_block(
        self,
        block_id: str,
        *,
        starts_at: Optional[datetime] = None,
        ends_at: Optional[datetime] = None,
        note: Optional[str] = None,
    ) -> Mapping[str, Any]:
        body: Dict[str, Any] = {}
        if starts_at is not None:
            body["startsAt"] = format_instant(starts_at)
        if ends_at is not None:
            body["endsAt"] = format_instant(ends_at)
        if note is not None:
            body["note"] = note.strip() or None
        payload = self._send(
            "PATCH", f"/api/pro/calendar/blocked/{urllib.parse.quote(block_id, safe='')}", body
        )
        block = payload.get("block", payload)
        return block if isinstance(block, Mapping) else {}

    def delete_block(self, block_id: str) -> None:
        self._send("DELETE", f"/api/pro/calendar/blocked/{urllib.parse.quote(block_id, safe='')}")

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------
    @staticmethod
    def _enabled_location_types(payload: Mapping[str, Any]) -> List[str]:
        enabled = {
            "SALON": bool(payload.get("canSalon", True)),
            "MOBILE": bool(payload.get("canMobile", False)),
        }
        selected = [name for name in LOCATION_TYPES if enabled[name]]
        return selected or ["SALON"]

    def _build_url(self, path: str, params: Optional[Mapping[str, Optional[str]]] = None) -> str:
        if not path.startswith("/"):
            path = f"/{path}"
        url = f"{self.base_url}{path}"
        query = urllib.parse.urlencode({k: v for k, v in (params or {}).items() if v is not None})
        return f"{url}?{query}" if query else url

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Optional[str]]] = None,
        body: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        headers = {"Accept": "application/json", "Cache-Control": "no-store"}
        data = None
        if body is not None:
            data = json.dumps(body).encode("utf-8")
            headers["Content-Type"] = "application/json"
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        request = urllib.request.Request(
            self._build_url(path, params), data=data, headers=headers, method=method
        )
        try:
            with self._opener(request, timeout=self.timeout) as response:
                raw = response.read()
        except urllib.error.HTTPError as exc:
            payload = _decode_json(exc.read() or b"")
            message = str(payload.get("error") or f"{method} {path} failed ({exc.code}).")
            raise CalendarApiError(message, status=exc.code) from exc
        except (urllib.error.URLError, OSError) as exc:
            raise CalendarApiError(f"{method} {path} failed: {exc}") from exc
        return _decode_json(raw, strict=True)

    def _get(self, path: str, params: Optional[Mapping[str, Optional[str]]] = None) -> MutableMapping[str, Any]:
        return self._execute_with_backoff(lambda: self._request("GET", path, params=params))

    def _send(
        self,
        method: str,
        path: str,
        body: Optional[Mapping[str, Any]] = None,
        *,
        params: Optional[Mapping[str, Optional[str]]] = None,
    ) -> Dict[str, Any]:
        return self._request(method, path, params=params, body=body)

    def _execute_with_backoff(self, func: Callable[[], Dict[str, Any]]) -> Dict[str, Any]:
        attempt = 0
        delay = self.retry_initial_delay
        while True:
            try:
                return func()
            except CalendarApiError as exc:
                attempt += 1
                if not exc.retryable or attempt > self.max_retries:
                    raise
                logger.warning(
                    "Calendar API request failed (attempt %d/%d): %s", attempt, self.max_retries, exc
                )
                self._sleep(delay)
                delay *= self.retry_backoff


__all__ = ["CalendarApiClient", "CalendarApiError", "DEFAULT_TIMEOUT", "LOCATION_TYPES"]
