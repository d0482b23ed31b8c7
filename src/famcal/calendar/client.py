"""Google Calendar client for the reconciliation engine.

Provides :class:`GoogleCalendarClient`, a thin wrapper around the Google
Calendar API v3 covering exactly what the engine needs, on any of the
configured calendars:

- **List** -- events in a time window, all pages, provider order kept.
- **Get** -- one event by ID (used to confirm orphaned mappings).
- **Create** -- insert an :class:`~famcal.models.calendar.EventDraft`.
- **Delete** -- remove an event by ID.

Every create and delete first takes a token from the shared
:class:`~famcal.calendar.ratelimit.RateLimiter`.  All API calls are wrapped
with :func:`~famcal.calendar.exceptions.with_retry` for automatic retry on
transient failures.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from google.auth.credentials import Credentials
from googleapiclient.discovery import build

from famcal.calendar.event_mapper import map_to_google_event, parse_remote_event
from famcal.calendar.exceptions import with_retry
from famcal.calendar.ratelimit import RateLimiter
from famcal.models.calendar import EventDraft, RemoteEvent

logger = logging.getLogger(__name__)

# Largest page the events.list endpoint accepts.
_PAGE_SIZE = 2500


class GoogleCalendarClient:
    """Client for list/get/create/delete on any Google calendar.

    Args:
        credentials: Valid Google credentials (service account or OAuth).
        timezone: IANA timezone string sent with timed events.
        limiter: Rate limiter shared by all remote mutations.  ``None``
            disables limiting (tests, read-only diagnostics).
        max_retries: Retries for transient failures (read by
            ``@with_retry``).
        service: Optional pre-built ``googleapiclient`` service resource.
            If ``None``, one is built from *credentials*.  Pass a mock here
            in tests.
    """

    def __init__(
        self,
        credentials: Credentials,
        timezone: str,
        limiter: RateLimiter | None = None,
        max_retries: int = 3,
        service: Any | None = None,
    ) -> None:
        self._credentials = credentials
        self._timezone = timezone
        self._limiter = limiter
        self.max_retries = max_retries
        self._service = service or build(
            "calendar", "v3", credentials=credentials, cache_discovery=False
        )

    # ------------------------------------------------------------------
    # Credential refresh hook (used by @with_retry on 401)
    # ------------------------------------------------------------------

    def _refresh_credentials(self) -> None:
        """Refresh the credentials and rebuild the service resource."""
        from google.auth.transport.requests import Request

        self._credentials.refresh(Request())
        self._service = build(
            "calendar", "v3", credentials=self._credentials, cache_discovery=False
        )
        logger.info("Credentials refreshed and service rebuilt")

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    @with_retry()
    def list_events(
        self,
        calendar_id: str,
        time_min: datetime,
        time_max: datetime,
    ) -> list[RemoteEvent]:
        """List events on *calendar_id* between *time_min* and *time_max*.

        Recurring events are expanded into single instances.  The
        provider's order (by start time) is preserved; deduplication
        relies on it.

        Args:
            calendar_id: The calendar to list.
            time_min: Start of the range (inclusive).
            time_max: End of the range (exclusive).

        Returns:
            All events in the window, across all pages.
        """
        items: list[dict] = []
        page_token: str | None = None

        while True:
            response = (
                self._service.events()
                .list(
                    calendarId=calendar_id,
                    timeMin=_rfc3339(time_min),
                    timeMax=_rfc3339(time_max),
                    singleEvents=True,
                    orderBy="startTime",
                    maxResults=_PAGE_SIZE,
                    pageToken=page_token,
                )
                .execute()
            )
            items.extend(response.get("items", []))
            page_token = response.get("nextPageToken")
            if page_token is None:
                break

        logger.info(
            "Listed %d event(s) on %s between %s and %s",
            len(items),
            calendar_id,
            time_min.date().isoformat(),
            time_max.date().isoformat(),
        )
        return [parse_remote_event(item, calendar_id) for item in items]

    @with_retry()
    def get_event(self, event_id: str, calendar_id: str) -> RemoteEvent:
        """Fetch one event.

        Raises:
            CalendarNotFoundError: If the event does not exist (404/410).
        """
        item = self._service.events().get(calendarId=calendar_id, eventId=event_id).execute()
        return parse_remote_event(item, calendar_id)

    @with_retry()
    def list_calendars(self) -> list[dict]:
        """Calendars visible to the authenticated account (connection test)."""
        calendars: list[dict] = []
        page_token: str | None = None
        while True:
            response = self._service.calendarList().list(pageToken=page_token).execute()
            calendars.extend(
                {"id": item.get("id", ""), "summary": item.get("summary", "")}
                for item in response.get("items", [])
            )
            page_token = response.get("nextPageToken")
            if page_token is None:
                break
        return calendars

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    @with_retry()
    def create_event(self, calendar_id: str, draft: EventDraft) -> RemoteEvent:
        """Create *draft* on *calendar_id*.

        Args:
            calendar_id: Target calendar.
            draft: The event payload.

        Returns:
            The created event as returned by the API.

        Raises:
            ValueError: If the draft has invalid times (no API call made).
        """
        body = map_to_google_event(draft, self._timezone)
        self._throttle()
        result = self._service.events().insert(calendarId=calendar_id, body=body).execute()
        logger.info(
            "Created event '%s' on %s (id=%s)",
            draft.title,
            calendar_id,
            result.get("id", "?"),
        )
        return parse_remote_event(result, calendar_id)

    @with_retry()
    def delete_event(self, event_id: str, calendar_id: str) -> None:
        """Delete an event by its ID.

        Raises:
            CalendarNotFoundError: If the event does not exist.
            CalendarForbiddenError: If the account may not modify it.
        """
        self._throttle()
        self._service.events().delete(calendarId=calendar_id, eventId=event_id).execute()
        logger.info("Deleted event %s from %s", event_id, calendar_id)

    def _throttle(self) -> None:
        if self._limiter is not None:
            self._limiter.acquire()


def _rfc3339(moment: datetime) -> str:
    """Format *moment* for timeMin/timeMax; naive values are taken as UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.isoformat()
