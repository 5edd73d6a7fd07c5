"""Collaborators backing the calendar: HTTP client and async adapter."""

from .backend import AsyncCalendarBackend, CalendarBackend
from .client import CalendarApiClient, CalendarApiError
from .models import CalendarSnapshot, CalendarStats

__all__ = [
    "AsyncCalendarBackend",
    "CalendarApiClient",
    "CalendarApiError",
    "CalendarBackend",
    "CalendarSnapshot",
    "CalendarStats",
]
