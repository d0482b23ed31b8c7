"""Pydantic model for locally known household events.

Local events are written by the ingestion side (ICS subscriptions, the UI's
"new event" form) into a JSON cache.  :class:`LocalEvent` validates one such
record and normalises its times:

- ``start`` / ``end`` may be ISO 8601 strings, ``datetime`` or ``date``
  values.  A bare ``YYYY-MM-DD`` string is an all-day event.
- ``dtstart`` / ``dtend`` are accepted as aliases (raw ICS field names).
- A missing ``end`` defaults to one hour after ``start`` (one day for
  all-day events).
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, tzinfo
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

_DEFAULT_DURATION = timedelta(hours=1)
_ALL_DAY_DURATION = timedelta(days=1)


def _parse_when(value: Any) -> Any:
    """Parse an ISO 8601 string into ``date`` or ``datetime``.

    Non-string values are returned unchanged for pydantic to validate.
    A trailing ``Z`` is accepted as UTC.
    """
    if not isinstance(value, str):
        return value
    text = value.strip()
    if len(text) == 10:
        return date.fromisoformat(text)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


class LocalEvent(BaseModel):
    """A household event known before any remote sync.

    Attributes:
        uid: Stable identifier, unique and never reused.  Once the event has
            been pushed, this is the only key used to find its remote copy.
        summary: Event title.
        start: Start as ``datetime`` (timed) or ``date`` (all-day).
        end: End as ``datetime`` or ``date``; defaulted when missing.
        location: Free-text location.
        description: Free-text description.
        assignees: People the event concerns; empty means the whole family.
        source: Provenance tag (subscription name, ``"Lokal"``...).
        category: Optional category tag (``"Handboll"``, ``"Fotboll"``...).
        cancelled: Whether the event was cancelled locally.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    uid: str = ""
    summary: str = ""
    start: datetime | date = Field(validation_alias=AliasChoices("start", "dtstart"))
    end: datetime | date | None = Field(
        default=None, validation_alias=AliasChoices("end", "dtend")
    )
    location: str | None = None
    description: str | None = None
    assignees: list[str] = Field(default_factory=list)
    source: str = ""
    category: str | None = None
    cancelled: bool = False

    @field_validator("start", "end", mode="before")
    @classmethod
    def _coerce_when(cls, value: Any) -> Any:
        return _parse_when(value)

    @field_validator("assignees", mode="before")
    @classmethod
    def _coerce_assignees(cls, value: Any) -> Any:
        """Accept ``None`` and a single name as well as a list."""
        if value is None:
            return []
        if isinstance(value, str):
            return [value] if value.strip() else []
        return value

    @field_validator("summary", "source", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @model_validator(mode="after")
    def _default_end(self) -> LocalEvent:
        if self.end is None:
            self.end = self.start + (_ALL_DAY_DURATION if self.all_day else _DEFAULT_DURATION)
        return self

    @property
    def all_day(self) -> bool:
        """Whether the event is date-only."""
        return not isinstance(self.start, datetime)

    def start_date(self, tz: tzinfo) -> date:
        """Calendar date the event starts on, as seen in *tz*.

        Naive datetimes are taken to already be in *tz*.
        """
        if not isinstance(self.start, datetime):
            return self.start
        if self.start.tzinfo is None:
            return self.start.date()
        return self.start.astimezone(tz).date()
