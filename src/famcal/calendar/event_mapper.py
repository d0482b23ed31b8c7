"""Map between local events and the Google Calendar API format.

- :func:`build_draft` turns a :class:`~famcal.models.event.LocalEvent`
  into an :class:`~famcal.models.calendar.EventDraft` for a given target.
- :func:`map_to_google_event` turns a draft into an ``events().insert()``
  body: summary, location, description, start/end (``dateTime`` with the
  configured timezone, or ``date`` for all-day events) and private extended
  properties carrying the local uid and source.
- :func:`parse_remote_event` turns an API resource dict into a
  :class:`~famcal.models.calendar.RemoteEvent`.
"""

from __future__ import annotations

import contextlib
import logging
from datetime import date, datetime
from typing import Any

from famcal.models.calendar import EventDraft, RemoteEvent
from famcal.models.event import LocalEvent
from famcal.routing import CalendarTarget, Household, relevant_persons, summary_prefix_name

logger = logging.getLogger(__name__)

# Private extended property keys written on every created event.
UID_PROPERTY = "famcalUid"
SOURCE_PROPERTY = "source"


def build_draft(event: LocalEvent, target: CalendarTarget, household: Household) -> EventDraft:
    """Build the create payload for *event* routed to *target*.

    On the shared family calendar an event that concerns exactly one child
    gets that child's name as a title prefix (``"Algot: Handbollsträning"``)
    so the family can tell whose it is.  Titles that already carry a
    ``"Name:"`` prefix are left alone.
    """
    title = event.summary or "Händelse"
    if target is CalendarTarget.FAMILY:
        persons = relevant_persons(event, household)
        if len(persons) == 1 and household.is_child(persons[0]) and summary_prefix_name(title) is None:
            title = f"{household.member(persons[0])}: {title}"

    return EventDraft(
        title=title,
        start=event.start,
        end=event.end if event.end is not None else event.start,
        location=event.location or None,
        description=event.description or None,
        local_uid=event.uid or None,
        source=event.source or None,
    )


def map_to_google_event(draft: EventDraft, timezone: str) -> dict:
    """Convert a draft into a Google Calendar API event body.

    Args:
        draft: The event to create.
        timezone: IANA timezone applied to naive start/end datetimes.

    Returns:
        A ``dict`` conforming to the Google Calendar Event resource schema.

    Raises:
        ValueError: If the end is before the start, or only one of them is
            date-only.
    """
    start_all_day = not isinstance(draft.start, datetime)
    end_all_day = not isinstance(draft.end, datetime)
    if start_all_day != end_all_day:
        raise ValueError("start and end must both be dates or both be datetimes")
    if _comparable(draft.start, draft.end) and draft.end < draft.start:
        raise ValueError(
            f"end ({draft.end.isoformat()}) must not be before start ({draft.start.isoformat()})"
        )

    body: dict = {
        "summary": draft.title,
        "start": _format_when(draft.start, timezone),
        "end": _format_when(draft.end, timezone),
    }

    if draft.location:
        body["location"] = draft.location
    if draft.description:
        body["description"] = draft.description

    private: dict[str, str] = {}
    if draft.local_uid:
        private[UID_PROPERTY] = draft.local_uid
    if draft.source:
        private[SOURCE_PROPERTY] = draft.source
    if private:
        body["extendedProperties"] = {"private": private}

    logger.debug(
        "Mapped '%s' (%s -> %s) to Google Calendar body",
        draft.title,
        draft.start.isoformat(),
        draft.end.isoformat(),
    )
    return body


def parse_remote_event(item: dict[str, Any], calendar_id: str) -> RemoteEvent:
    """Build a :class:`RemoteEvent` from a Google Calendar resource dict."""
    private = (item.get("extendedProperties") or {}).get("private") or {}
    return RemoteEvent(
        id=item.get("id", ""),
        calendar_id=calendar_id,
        summary=item.get("summary") or "",
        start=parse_when(item.get("start")),
        end=parse_when(item.get("end")),
        status=item.get("status") or "confirmed",
        created=item.get("created"),
        local_uid=private.get(UID_PROPERTY),
        source=private.get(SOURCE_PROPERTY),
        raw=item,
    )


def parse_when(value: dict[str, Any] | None) -> datetime | date | None:
    """Parse a Google ``{"dateTime": ...}`` / ``{"date": ...}`` object.

    Returns ``None`` when the field is missing or unparsable.
    """
    if not value:
        return None
    if value.get("dateTime"):
        text = value["dateTime"]
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        with contextlib.suppress(ValueError):
            return datetime.fromisoformat(text)
        return None
    if value.get("date"):
        with contextlib.suppress(ValueError):
            return date.fromisoformat(value["date"])
    return None


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _format_when(value: datetime | date, timezone: str) -> dict:
    if not isinstance(value, datetime):
        return {"date": value.isoformat()}
    return {"dateTime": value.isoformat(), "timeZone": timezone}


def _comparable(start: datetime | date, end: datetime | date) -> bool:
    """Whether *start* and *end* can be ordered (both naive or both aware)."""
    if isinstance(start, datetime) and isinstance(end, datetime):
        return (start.tzinfo is None) == (end.tzinfo is None)
    return True
