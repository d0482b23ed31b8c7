"""Google Calendar integration for famcal."""

from __future__ import annotations

from famcal.calendar.auth import get_calendar_credentials
from famcal.calendar.client import GoogleCalendarClient
from famcal.calendar.dedup import dedup_signature, deduplicate
from famcal.calendar.event_mapper import build_draft, map_to_google_event
from famcal.calendar.ratelimit import RateLimiter
from famcal.calendar.sync import Reconciler

__all__ = [
    "GoogleCalendarClient",
    "RateLimiter",
    "Reconciler",
    "build_draft",
    "dedup_signature",
    "deduplicate",
    "get_calendar_credentials",
    "map_to_google_event",
]
