"""Shared fixtures for famcal tests."""

from __future__ import annotations

import itertools
import logging
from collections.abc import Generator
from datetime import date, datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from googleapiclient.errors import HttpError
from httplib2 import Response

from famcal.calendar.client import GoogleCalendarClient
from famcal.config import Settings

FAMILY_CAL = "family@group.calendar.google.com"
PERSON_A_CAL = "svante@example.com"
PERSON_B_CAL = "sarah@example.com"

_ENV_KEYS = (
    "GOOGLE_CREDENTIALS_PATH",
    "GOOGLE_TOKEN_PATH",
    "CALENDAR_FAMILY",
    "CALENDAR_PERSON_A",
    "CALENDAR_PERSON_B",
    "DATA_DIR",
    "LOCAL_EVENTS_PATH",
    "PERSON_A_NAME",
    "PERSON_B_NAME",
    "HOUSEHOLD_CHILDREN",
    "TIMEZONE",
    "LOG_LEVEL",
    "SYNC_RATE_LIMIT",
    "SYNC_MAX_RETRIES",
    "SYNC_WINDOW_PAST_MONTHS",
    "SYNC_WINDOW_FUTURE_MONTHS",
    "SYNC_STRICT",
    "ELIGIBLE_KEYWORDS",
    "PERSONAL_SOURCES",
    "EXCLUDED_SOURCES",
    "OVERRIDE_KEYWORDS",
    "BLOCKED_SOURCES",
)


@pytest.fixture()
def monkeypatch_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> dict[str, str]:
    """Set all required environment variables to valid defaults.

    Also patches ``load_dotenv`` so that a real ``.env`` file on disk does not
    override the test values, and points ``DATA_DIR`` at a temp directory.

    Returns the dict of variables so tests can inspect or override values.
    """
    monkeypatch.setattr("famcal.config.load_dotenv", lambda *_a, **_kw: None)
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    env_vars = {
        "GOOGLE_CREDENTIALS_PATH": str(tmp_path / "service-account.json"),
        "CALENDAR_FAMILY": FAMILY_CAL,
        "CALENDAR_PERSON_A": PERSON_A_CAL,
        "CALENDAR_PERSON_B": PERSON_B_CAL,
        "DATA_DIR": str(tmp_path / "data"),
    }
    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)
    return env_vars


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove all famcal-related environment variables.

    Patches ``load_dotenv`` so a real ``.env`` file cannot re-inject values
    that the test explicitly removed.
    """
    monkeypatch.setattr("famcal.config.load_dotenv", lambda *_a, **_kw: None)
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture(autouse=True)
def _reset_root_logger() -> Generator[None, None, None]:
    """Reset the root logger after each test to prevent handler leaks."""
    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level
    yield
    root.handlers = original_handlers
    root.setLevel(original_level)


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """Settings for the Svante/Sarah household with a temp data directory."""
    return Settings(
        credentials_path=tmp_path / "service-account.json",
        calendar_family=FAMILY_CAL,
        calendar_person_a=PERSON_A_CAL,
        calendar_person_b=PERSON_B_CAL,
        data_dir=tmp_path / "data",
        timezone="Europe/Stockholm",
    )


# ---------------------------------------------------------------------------
# In-memory Google Calendar service
# ---------------------------------------------------------------------------


def make_http_error(status: int, content: bytes = b"simulated error") -> HttpError:
    """Create a ``googleapiclient.errors.HttpError`` with the given status code."""
    return HttpError(Response({"status": str(status)}), content)


class _Request:
    """Mimics ``googleapiclient.http.HttpRequest``: work happens on execute()."""

    def __init__(self, service: FakeCalendarService, op: str, calendar_id: str, func) -> None:
        self._service = service
        self._op = op
        self._calendar_id = calendar_id
        self._func = func

    def execute(self) -> dict | None:
        self._service.calls.append((self._op, self._calendar_id))
        self._service.raise_injected(self._op, self._calendar_id)
        return self._func()


class _EventsResource:
    def __init__(self, service: FakeCalendarService) -> None:
        self._service = service

    def list(self, calendarId: str, pageToken: str | None = None, maxResults: int = 250, **kwargs) -> _Request:
        def run() -> dict:
            items = self._service.listing(calendarId, kwargs.get("timeMin"), kwargs.get("timeMax"))
            size = min(maxResults, self._service.page_size)
            offset = int(pageToken or 0)
            page = {"items": [dict(item) for item in items[offset : offset + size]]}
            if offset + size < len(items):
                page["nextPageToken"] = str(offset + size)
            return page

        return _Request(self._service, "list", calendarId, run)

    def get(self, calendarId: str, eventId: str) -> _Request:
        def run() -> dict:
            item = self._service.find(calendarId, eventId)
            if item is None:
                raise make_http_error(404)
            return dict(item)

        return _Request(self._service, "get", calendarId, run)

    def insert(self, calendarId: str, body: dict) -> _Request:
        def run() -> dict:
            return dict(self._service.add(calendarId, body))

        return _Request(self._service, "insert", calendarId, run)

    def delete(self, calendarId: str, eventId: str) -> _Request:
        def run() -> None:
            item = self._service.find(calendarId, eventId)
            if item is None:
                raise make_http_error(404)
            self._service.events_by_calendar[calendarId].remove(item)
            return None

        return _Request(self._service, "delete", calendarId, run)


class _CalendarListResource:
    def __init__(self, service: FakeCalendarService) -> None:
        self._service = service

    def list(self, pageToken: str | None = None) -> _Request:
        def run() -> dict:
            return {
                "items": [
                    {"id": calendar_id, "summary": calendar_id}
                    for calendar_id in self._service.events_by_calendar
                ]
            }

        return _Request(self._service, "calendarList", "", run)


class FakeCalendarService:
    """Enough of the Calendar v3 resource for the client: list/get/insert/delete.

    Events live in ``events_by_calendar`` in insertion order; listings are
    returned ordered by start like ``orderBy="startTime"``.  Use
    :meth:`fail` to make the next calls of one operation raise an
    ``HttpError``.
    """

    def __init__(self, calendar_ids: tuple[str, ...] = (FAMILY_CAL, PERSON_A_CAL, PERSON_B_CAL)) -> None:
        self.events_by_calendar: dict[str, list[dict]] = {cid: [] for cid in calendar_ids}
        self.calls: list[tuple[str, str]] = []
        self.page_size = 2500
        self._ids = itertools.count(1)
        self._failures: list[list] = []

    # -- googleapiclient surface ---------------------------------------

    def events(self) -> _EventsResource:
        return _EventsResource(self)

    def calendarList(self) -> _CalendarListResource:
        return _CalendarListResource(self)

    # -- test helpers ---------------------------------------------------

    def add(self, calendar_id: str, body: dict, event_id: str | None = None) -> dict:
        """Store *body* on *calendar_id* and return the stored resource."""
        item = dict(body)
        item["id"] = event_id or f"evt{next(self._ids)}"
        item.setdefault("status", "confirmed")
        self.events_by_calendar.setdefault(calendar_id, []).append(item)
        return item

    def seed(
        self,
        calendar_id: str,
        summary: str,
        start: datetime | date,
        event_id: str | None = None,
        **extra,
    ) -> dict:
        """Add an existing remote event directly (not counted as a call)."""
        if isinstance(start, datetime):
            when = {"dateTime": start.isoformat()}
        else:
            when = {"date": start.isoformat()}
        return self.add(calendar_id, {"summary": summary, "start": when, "end": when, **extra}, event_id)

    def find(self, calendar_id: str, event_id: str) -> dict | None:
        for item in self.events_by_calendar.get(calendar_id, []):
            if item["id"] == event_id:
                return item
        return None

    def titles(self, calendar_id: str) -> list[str]:
        return [item.get("summary", "") for item in self.events_by_calendar.get(calendar_id, [])]

    def count(self, op: str) -> int:
        return sum(1 for called, _ in self.calls if called == op)

    def fail(self, op: str, status: int, times: int = 1, calendar_id: str | None = None) -> None:
        """Make the next *times* calls of *op* raise an ``HttpError(status)``."""
        self._failures.append([op, calendar_id, status, times])

    def raise_injected(self, op: str, calendar_id: str) -> None:
        for failure in self._failures:
            failed_op, failed_calendar, status, remaining = failure
            if failed_op != op or remaining <= 0:
                continue
            if failed_calendar is not None and failed_calendar != calendar_id:
                continue
            failure[3] -= 1
            raise make_http_error(status)

    def listing(self, calendar_id: str, time_min: str | None, time_max: str | None) -> list[dict]:
        if calendar_id not in self.events_by_calendar:
            raise make_http_error(404)
        lower = _parse_bound(time_min)
        upper = _parse_bound(time_max)
        selected = []
        for item in self.events_by_calendar[calendar_id]:
            start = _item_start(item)
            if lower is not None and start < lower:
                continue
            if upper is not None and start >= upper:
                continue
            selected.append(item)
        return sorted(selected, key=_item_start)


def _parse_bound(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _item_start(item: dict) -> datetime:
    start = item.get("start") or {}
    if start.get("dateTime"):
        moment = datetime.fromisoformat(start["dateTime"].replace("Z", "+00:00"))
    else:
        moment = datetime.combine(date.fromisoformat(start["date"]), datetime.min.time())
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


@pytest.fixture()
def fake_service() -> FakeCalendarService:
    """A fresh in-memory Calendar service with the three household calendars."""
    return FakeCalendarService()


@pytest.fixture()
def fake_client(fake_service: FakeCalendarService) -> GoogleCalendarClient:
    """A client wired to :func:`fake_service`, without rate limiting or retries."""
    return GoogleCalendarClient(
        credentials=MagicMock(),
        timezone="Europe/Stockholm",
        max_retries=0,
        service=fake_service,
    )


@pytest.fixture()
def http_error():
    """Factory fixture: ``http_error(404)`` builds an ``HttpError``."""
    return make_http_error
