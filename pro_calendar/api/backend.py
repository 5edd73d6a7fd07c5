"""Asynchronous collaborator contract consumed by the calendar session."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, List, Mapping, Optional, Protocol

from ..events import Block, CalendarEvent
from ..working_hours import WorkingHours
from .client import CalendarApiClient
from .models import CalendarSnapshot


class CalendarBackend(Protocol):
    async def fetch_calendar(self) -> CalendarSnapshot: ...

    async def fetch_blocks(self, start: datetime, end: datetime) -> List[CalendarEvent]: ...

    async def create_block(
        self, starts_at: datetime, ends_at: datetime, note: Optional[str] = None
    ) -> Block: ...

    async def update_appointment(
        self,
        appointment_id: str,
        *,
        scheduled_for: Optional[datetime] = None,
        total_duration_minutes: Optional[int] = None,
        status: Optional[str] = None,
    ) -> Mapping[str, Any]: ...

    async def update_block(
        self,
        block_id: str,
        *,
        starts_at: Optional[datetime] = None,
        ends_at: Optional[datetime] = None,
        note: Optional[str] = None,
    ) -> Mapping[str, Any]: ...

    async def delete_block(self, block_id: str) -> None: ...

    async def save_working_hours(
        self, config_name: str, hours: WorkingHours
    ) -> Optional[Mapping[str, Any]]: ...


class AsyncCalendarBackend:
    """Runs :class:`CalendarApiClient` calls in a worker thread."""

    def __init__(self, client: CalendarApiClient) -> None:
        self.client = client

    async def fetch_calendar(self) -> CalendarSnapshot:
        return await asyncio.to_thread(self.client.fetch_calendar)

    async def fetch_blocks(self, start: datetime, end: datetime) -> List[CalendarEvent]:
        return await asyncio.to_thread(self.client.fetch_blocks, start, end)

    async def create_block(
        self, starts_at: datetime, ends_at: datetime, note: Optional[str] = None
    ) -> Block:
        return await asyncio.to_thread(self.client.create_block, starts_at, ends_at, note)

    async def update_appointment(
        self,
        appointment_id: str,
        *,
        scheduled_for: Optional[datetime] = None,
        total_duration_minutes: Optional[int] = None,
        status: Optional[str] = None,
    ) -> Mapping[str, Any]:
        return await asyncio.to_thread(
            lambda: self.client.update_appointment(
                appointment_id,
                scheduled_for=scheduled_for,
                total_duration_minutes=total_duration_minutes,
                status=status,
            )
        )

    async def update_block(
        self,
        block_id: str,
        *,
        starts_at: Optional[datetime] = None,
        ends_at: Optional[datetime] = None,
        note: Optional[str] = None,
    ) -> Mapping[str, Any]:
        return await asyncio.to_thread(
            lambda: self.client.update_block(block_id, starts_at=starts_at, ends_at=ends_at, note=note)
        )

    async def delete_block(self, block_id: str) -> None:
        await asyncio.to_thread(self.client.delete_block, block_id)

    async def save_working_hours(
        self, config_name: str, hours: WorkingHours
    ) -> Optional[Mapping[str, Any]]:
        return await asyncio.to_thread(self.client.save_working_hours, config_name, hours)


__all__ = ["AsyncCalendarBackend", "CalendarBackend"]
