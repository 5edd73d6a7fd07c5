from __future__ import annotations

import asyncio
import io
import json
import urllib.error
import urllib.parse
from datetime import datetime, timezone
from typing import Any, List
from unittest import mock

import pytest

from pro_calendar.api import AsyncCalendarBackend, CalendarApiClient, CalendarApiError
from pro_calendar.api.models import CalendarStats
from pro_calendar.events import Block
from pro_calendar.session import CalendarSession
from pro_calendar.working_hours import default_working_hours

UTC = timezone.utc
BASE_URL = "https://pro.example.test/"


class FakeResponse:
    def __init__(self, payload: Any) -> None:
        self._body = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")

    def read(self) -> bytes:
        return self._body

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        return None


class FakeOpener:
    """Replays queued results and records each request."""

    def __init__(self, *results: Any) -> None:
        self.results = list(results)
        self.requests: List[Any] = []
        self.timeouts: List[float] = []

    def __call__(self, request, timeout: float):
        self.requests.append(request)
        self.timeouts.append(timeout)
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return FakeResponse(result)

    def body(self, index: int) -> dict:
        return json.loads(self.requests[index].data.decode("utf-8"))

    def query(self, index: int) -> dict:
        parsed = urllib.parse.urlparse(self.requests[index].full_url)
        return dict(urllib.parse.parse_qsl(parsed.query))


def _http_error(status: int, payload: dict | None = None) -> urllib.error.HTTPError:
    body = json.dumps(payload or {}).encode("utf-8")
    return urllib.error.HTTPError(BASE_URL, status, "error", {}, io.BytesIO(body))


def _client(opener: FakeOpener, **kwargs: Any) -> CalendarApiClient:
    kwargs.setdefault("sleep", mock.Mock())
    return CalendarApiClient(BASE_URL, token="secret", opener=opener, **kwargs)


def test_fetch_calendar_parses_snapshot() -> None:
    opener = FakeOpener(
        {
            "events": [
                {"id": "bk_1", "startsAt": "2024-06-03T14:00:00Z", "endsAt": "2024-06-03T15:00:00Z"},
                {"id": "broken"},
            ],
            "timeZone": "America/New_York",
            "needsTimeZoneSetup": False,
            "workingHoursByConfig": {"SALON": {"mon": {"enabled": True, "start": "9:00", "end": "17:00"}}},
            "stats": {"todaysBookings": 2, "pendingRequests": 1, "blockedHours": 1.5},
        }
    )

    snapshot = _client(opener, timeout=4).fetch_calendar()

    assert [event.id for event in snapshot.events] == ["bk_1"]
    assert snapshot.time_zone == "America/New_York"
    assert snapshot.working_hours_by_config["SALON"]["mon"].start == "09:00"
    assert snapshot.stats is not None and snapshot.stats.todays_bookings == 2
    assert snapshot.stats.blocked_hours == 1.5

    request = opener.requests[0]
    assert request.full_url == "https://pro.example.test/api/pro/calendar"
    assert request.get_method() == "GET"
    assert request.get_header("Authorization") == "Bearer secret"
    assert opener.timeouts == [4]


def test_fetch_calendar_loads_hours_per_location_type() -> None:
    opener = FakeOpener(
        {"events": [], "timeZone": "Europe/Paris", "canSalon": True, "canMobile": True},
        {"workingHours": {"tue": {"enabled": True, "start": "10:00", "end": "14:00"}}},
        {"workingHours": None},
    )

    snapshot = _client(opener).fetch_calendar()

    assert [opener.query(i) for i in (1, 2)] == [{"locationType": "SALON"}, {"locationType": "MOBILE"}]
    assert snapshot.working_hours_by_config["SALON"]["tue"].enabled is True
    assert snapshot.working_hours_by_config["MOBILE"] is None


def test_fetch_blocks_sends_range_and_prefixes_ids() -> None:
    opener = FakeOpener(
        {"blocks": [{"id": "b_1", "startsAt": "2024-06-03T16:00:00Z", "endsAt": "2024-06-03T17:00:00Z", "note": "Gym"}]}
    )

    blocks = _client(opener).fetch_blocks(
        datetime(2024, 6, 3, 4, tzinfo=UTC), datetime(2024, 6, 10, 4, tzinfo=UTC)
    )

    assert opener.query(0) == {"from": "2024-06-03T04:00:00.000Z", "to": "2024-06-10T04:00:00.000Z"}
    assert len(blocks) == 1
    assert isinstance(blocks[0], Block)
    assert blocks[0].id == "block:b_1"
    assert blocks[0].note == "Gym"


def test_reads_retry_on_server_errors() -> None:
    opener = FakeOpener(_http_error(503), {"events": [], "workingHoursByConfig": {}})
    sleep = mock.Mock()

    snapshot = _client(opener, sleep=sleep, retry_initial_delay=0.1).fetch_calendar()

    assert snapshot.events == []
    assert sleep.call_args_list == [mock.call(0.1)]
    assert len(opener.requests) == 2


def test_reads_give_up_after_max_retries() -> None:
    opener = FakeOpener(*[urllib.error.URLError("connection refused")] * 3)
    sleep = mock.Mock()

    with pytest.raises(CalendarApiError) as excinfo:
        _client(opener, sleep=sleep, max_retries=2, retry_initial_delay=0.5).fetch_calendar()

    assert excinfo.value.status is None
    assert sleep.call_args_list == [mock.call(0.5), mock.call(1.0)]


def test_client_errors_are_not_retried() -> None:
    opener = FakeOpener(_http_error(403, {"error": "Not a professional account"}))
    sleep = mock.Mock()

    with pytest.raises(CalendarApiError, match="Not a professional account") as excinfo:
        _client(opener, sleep=sleep).fetch_calendar()

    assert excinfo.value.status == 403
    assert not excinfo.value.retryable
    sleep.assert_not_called()


def test_update_appointment_is_sent_once() -> None:
    opener = FakeOpener(_http_error(500, {"error": "Booking conflicts with another appointment"}))

    with pytest.raises(CalendarApiError, match="conflicts"):
        _client(opener).update_appointment("bk 1", scheduled_for=datetime(2024, 6, 3, 22, tzinfo=UTC))

    assert len(opener.requests) == 1
    request = opener.requests[0]
    assert request.get_method() == "PATCH"
    assert request.full_url.endswith("/api/pro/bookings/bk%201")
    assert opener.body(0) == {"notifyClient": True, "scheduledFor": "2024-06-03T22:00:00.000Z"}


def test_update_appointment_duration_and_status() -> None:
    opener = FakeOpener({"booking": {"id": "bk_1"}}, {"booking": {"id": "bk_1", "status": "ACCEPTED"}})
    client = _client(opener)

    assert client.update_appointment("bk_1", total_duration_minutes=90) == {"id": "bk_1"}
    client.update_appointment("bk_1", status="ACCEPTED")

    assert opener.body(0) == {"notifyClient": True, "totalDurationMinutes": 90}
    assert opener.body(1) == {"notifyClient": True, "status": "ACCEPTED"}


def test_update_and_create_blocks() -> None:
    opener = FakeOpener(
        {"block": {"id": "b_1"}},
        {"block": {"id": "b_2", "startsAt": "2024-06-03T16:00:00Z", "endsAt": "2024-06-03T17:00:00Z"}},
    )
    client = _client(opener)
    start = datetime(2024, 6, 3, 16, tzinfo=UTC)
    end = datetime(2024, 6, 3, 17, tzinfo=UTC)

    client.update_block("b_1", starts_at=start, ends_at=end)
    created = client.create_block(start, end, "Lunch")

    assert opener.requests[0].get_method() == "PATCH"
    assert opener.requests[0].full_url.endswith("/api/pro/calendar/blocked/b_1")
    assert opener.body(0) == {"startsAt": "2024-06-03T16:00:00.000Z", "endsAt": "2024-06-03T17:00:00.000Z"}
    assert opener.requests[1].get_method() == "POST"
    assert opener.body(1)["note"] == "Lunch"
    assert created.id == "block:b_2"


def test_save_working_hours_posts_payload() -> None:
    opener = FakeOpener({"workingHours": {"mon": {"enabled": True, "start": "09:00", "end": "17:00"}}})

    saved = _client(opener).save_working_hours("MOBILE", default_working_hours())

    assert opener.query(0) == {"locationType": "MOBILE"}
    assert opener.body(0)["workingHours"]["fri"] == {"enabled": True, "start": "09:00", "end": "17:00"}
    assert saved == {"mon": {"enabled": True, "start": "09:00", "end": "17:00"}}


def test_base_url_is_required() -> None:
    with pytest.raises(ValueError):
        CalendarApiClient("")


def test_block_note_and_delete() -> None:
    opener = FakeOpener({"block": {"id": "b_1"}}, {"block": {"id": "b_1"}}, b"")
    client = _client(opener)

    client.update_block("b_1", note="  Dentist ")
    client.update_block("b_1", note="")
    assert client.delete_block("b 1") is None

    assert opener.body(0) == {"note": "Dentist"}
    assert opener.body(1) == {"note": None}
    assert opener.requests[2].get_method() == "DELETE"
    assert opener.requests[2].full_url.endswith("/api/pro/calendar/blocked/b%201")
    assert opener.requests[2].data is None


def test_malformed_success_body_fails_the_write() -> None:
    opener = FakeOpener(b"<html>Bad gateway</html>")

    with pytest.raises(CalendarApiError):
        _client(opener).update_appointment("bk_1", status="ACCEPTED")

    assert len(opener.requests) == 1


def test_rows_that_are_not_objects_are_skipped_during_load() -> None:
    opener = FakeOpener(
        {
            "events": [
                None,
                "bk_1",
                {"id": "bk_2", "startsAt": "2024-06-03T14:00:00Z", "endsAt": "2024-06-03T15:00:00Z"},
            ],
            "timeZone": "UTC",
            "workingHoursByConfig": {},
            "stats": {"todaysBookings": float("inf"), "pendingRequests": "nan"},
        },
        {"blocks": [None, 7]},
    )
    session = CalendarSession(AsyncCalendarBackend(_client(opener)), fallback_time_zone="UTC")

    assert asyncio.run(session.load()) is True

    assert [event.id for event in session.events] == ["bk_2"]
    assert session.stats == CalendarStats(todays_bookings=0, pending_requests=0)
    assert session.error is None


def test_stats_ignore_non_finite_counts() -> None:
    stats = CalendarStats.from_payload({"todaysBookings": "1e400", "pendingRequests": 3.0, "blockedHours": 2})

    assert stats == CalendarStats(todays_bookings=0, pending_requests=3, blocked_hours=2.0)
