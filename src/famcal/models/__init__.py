"""Data models for famcal."""

from __future__ import annotations

from famcal.models.calendar import (
    DedupReport,
    DeleteOutcome,
    EventDraft,
    MappingEntry,
    ReconcileOutcome,
    RemoteEvent,
    RunReport,
    TimeWindow,
)
from famcal.models.event import LocalEvent

__all__ = [
    "DedupReport",
    "DeleteOutcome",
    "EventDraft",
    "LocalEvent",
    "MappingEntry",
    "ReconcileOutcome",
    "RemoteEvent",
    "RunReport",
    "TimeWindow",
]
