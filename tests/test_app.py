from __future__ import annotations

import io
from pathlib import Path
from typing import Any, Optional

import pytest

from pro_calendar import app
from pro_calendar.api import CalendarApiError, CalendarSnapshot
from pro_calendar.events import Appointment
from pro_calendar.timezones import ZonedParts, utc_instant_of
from pro_calendar.working_hours import parse_working_hours

TZ = "America/New_York"


def _local(hour: int, minute: int = 0) -> Any:
    return utc_instant_of(ZonedParts(2024, 6, 3, hour, minute), TZ)


class FakeBackend:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.block_ranges: list[tuple[Any, Any]] = []

    async def fetch_calendar(self) -> CalendarSnapshot:
        if self.fail:
            raise CalendarApiError("Service unavailable", status=503)
        return CalendarSnapshot(
            events=[Appointment(id="bk_1", starts_at=_local(10), ends_at=_local(11), client_name="Dana")],
            working_hours_by_config={
                "SALON": parse_working_hours({"mon": {"enabled": True, "start": "09:00", "end": "17:00"}})
            },
            time_zone=TZ,
        )

    async def fetch_blocks(self, start, end):
        self.block_ranges.append((start, end))
        return []


@pytest.fixture(autouse=True)
def calendar_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("PRO_CALENDAR_API_URL", "https://pro.example.test")
    monkeypatch.setenv("PRO_CALENDAR_API_TOKEN", "secret")
    monkeypatch.delenv("PRO_CALENDAR_TIMEOUT", raising=False)
    monkeypatch.delenv("PRO_CALENDAR_FALLBACK_TZ", raising=False)


def _run(argv: list[str], backend: FakeBackend, clients: Optional[list[dict[str, Any]]] = None) -> tuple[int, str]:
    output = io.StringIO()
    created = clients if clients is not None else []

    def client_factory(base_url: str, *, token: Optional[str], timeout: float):
        created.append({"base_url": base_url, "token": token, "timeout": timeout})
        return object()

    code = app.main(argv, client_factory=client_factory, backend_factory=lambda client: backend, output=output)
    return code, output.getvalue()


def test_day_view_summary_for_requested_date() -> None:
    clients: list[dict[str, Any]] = []
    backend = FakeBackend()

    code, text = _run(["--view", "day", "--date", "2024-06-03"], backend, clients)

    assert code == 0
    assert clients == [{"base_url": "https://pro.example.test", "token": "secret", "timeout": 10.0}]
    assert "Timezone: America/New_York" in text
    assert "2024-06-03  open: 09:00-17:00" in text
    assert "10:00 +60m  Dana (PENDING)" in text
    assert backend.block_ranges[-1] == (_local(0), utc_instant_of(ZonedParts(2024, 6, 4), TZ))


def test_render_flag_writes_snapshot(tmp_path: Path) -> None:
    target = tmp_path / "out" / "week.png"

    code, _ = _run(["--date", "2024-06-03", "--render", str(target)], FakeBackend())

    assert code == 0
    assert target.exists()


def test_load_failure_exits_non_zero() -> None:
    code, text = _run(["--view", "week"], FakeBackend(fail=True))

    assert code == 1
    assert text == ""


def test_missing_api_url_is_a_usage_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("PRO_CALENDAR_API_URL")

    with pytest.raises(SystemExit) as excinfo:
        _run([], FakeBackend())

    assert excinfo.value.code == 2


def test_invalid_date_is_a_usage_error() -> None:
    with pytest.raises(SystemExit):
        _run(["--date", "03/06/2024"], FakeBackend())


def test_env_file_is_loaded(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("PRO_CALENDAR_API_URL")
    env_file = tmp_path / "calendar.env"
    env_file.write_text("PRO_CALENDAR_API_URL=https://other.example.test\n", encoding="utf-8")
    clients: list[dict[str, Any]] = []

    code, _ = _run(["--env-file", str(env_file)], FakeBackend(), clients)

    assert code == 0
    assert clients[0]["base_url"] == "https://other.example.test"
