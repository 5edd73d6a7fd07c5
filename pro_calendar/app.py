"""Command line entry point for inspecting a professional's calendar."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, List, Optional, TextIO

from .api import AsyncCalendarBackend, CalendarApiClient, CalendarBackend
from .config import CalendarSettings, ConfigError, load_env_file
from .rendering import GridRenderer
from .session import CalendarSession
from .timezones import ZonedParts, format_instant, utc_instant_of, ymd_in_timezone
from .view_range import ViewMode
from .working_hours import format_hhmm

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Professional calendar grid inspector")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Optional path to a .env file loaded before the app starts.",
    )
    parser.add_argument(
        "--view",
        choices=[mode.value for mode in ViewMode],
        default=ViewMode.WEEK.value,
        help="Which grid to load.",
    )
    parser.add_argument(
        "--date",
        type=str,
        default=None,
        help="Focus date as YYYY-MM-DD in the calendar's timezone (defaults to today).",
    )
    parser.add_argument(
        "--render",
        type=Path,
        default=None,
        help="Write a PNG snapshot of the grid to this path.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    return parser


@dataclass
class AppSettings:
    calendar: CalendarSettings
    view: ViewMode
    focus_date: Optional[str]
    render_path: Path | None


def parse_focus_date(text: str) -> ZonedParts:
    try:
        parsed = datetime.strptime(text, "%Y-%m-%d")
    except ValueError as exc:
        raise ValueError(f"Invalid --date value {text!r}; expected YYYY-MM-DD") from exc
    return ZonedParts(parsed.year, parsed.month, parsed.day, hour=12)


class AppRuntime:
    """Owns the API client, the calendar session and optional rendering."""

    def __init__(
        self,
        *,
        settings: AppSettings,
        client_factory: Callable[..., CalendarApiClient] = CalendarApiClient,
        backend_factory: Callable[[CalendarApiClient], CalendarBackend] = AsyncCalendarBackend,
        renderer_factory: Callable[[], GridRenderer] = GridRenderer,
        output: TextIO | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.settings = settings
        self.client_factory = client_factory
        self.backend_factory = backend_factory
        self.renderer_factory = renderer_factory
        self.output = output or sys.stdout
        self.logger = logger or LOGGER
        self.session: CalendarSession | None = None

    def start(self) -> CalendarSession:
        calendar = self.settings.calendar
        client = self.client_factory(calendar.api_url, token=calendar.token, timeout=calendar.timeout)
        self.session = CalendarSession(
            self.backend_factory(client),
            view=self.settings.view,
            fallback_time_zone=calendar.fallback_time_zone,
        )
        return self.session

    async def run(self) -> bool:
        session = self.session or self.start()

        if not await session.load():
            self.logger.error("Calendar could not be loaded: %s", session.error)
            return False

        if self.settings.focus_date:
            # The calendar zone is only known after the first load.
            focus = utc_instant_of(parse_focus_date(self.settings.focus_date), session.time_zone)
            if not await session.set_focus(focus):
                self.logger.error("Calendar could not be loaded: %s", session.error)
                return False

        self._print_summary(session)

        if self.settings.render_path is not None:
            self.renderer_factory().render_session(session, output_path=self.settings.render_path)
            self.logger.info("Wrote grid snapshot to %s", self.settings.render_path)
        return True

    def close(self) -> None:
        if self.session is not None:
            self.session.close()
            self.session = None

    def _print_summary(self, session: CalendarSession) -> None:
        tz = session.time_zone
        lines: List[str] = [
            f"Timezone: {tz}" + (" (needs setup)" if session.needs_time_zone_setup else ""),
            f"Range: {format_instant(session.range.start)} -> {format_instant(session.range.end)}",
        ]
        for day in session.visible_days():
            placements = session.layout_for(day)
            open_segments = ", ".join(
                f"{format_hhmm(seg.start_minutes)}-{format_hhmm(seg.end_minutes)}"
                for seg in session.open_segments(day)
            )
            lines.append(f"{ymd_in_timezone(day, tz)}  open: {open_segments or 'closed'}")
            for placement in placements:
                event = placement.event
                lines.append(
                    f"  {format_hhmm(placement.top_minutes)} +{placement.height_minutes}m"
                    f"  {event.client_name} ({event.status})"
                )
        lines.append(f"Blocked today: {session.blocked_minutes_today()} min")
        print("\n".join(lines), file=self.output)


def resolve_settings(args: argparse.Namespace) -> AppSettings:
    load_env_file(args.env_file)
    if args.date:
        parse_focus_date(args.date)
    return AppSettings(
        calendar=CalendarSettings.from_env(),
        view=ViewMode(args.view),
        focus_date=args.date,
        render_path=args.render,
    )


def main(
    argv: Optional[Iterable[str]] = None,
    *,
    client_factory: Callable[..., CalendarApiClient] = CalendarApiClient,
    backend_factory: Callable[[CalendarApiClient], CalendarBackend] = AsyncCalendarBackend,
    output: TextIO | None = None,
) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    try:
        settings = resolve_settings(args)
    except (ConfigError, ValueError) as exc:
        parser.error(str(exc))

    runtime = AppRuntime(
        settings=settings,
        client_factory=client_factory,
        backend_factory=backend_factory,
        output=output,
    )

    try:
        runtime.start()
        ok = asyncio.run(runtime.run())
    except KeyboardInterrupt:
        LOGGER.info("Interrupted, shutting down")
        ok = False
    finally:
        runtime.close()
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
