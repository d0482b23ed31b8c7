"""famcal: household calendar reconciliation with Google Calendar.

Pushes locally known household events to the right Google calendar (shared
family calendar or a parent's private one) exactly once, propagates local
deletions, and removes duplicate remote copies.
"""

from __future__ import annotations

from famcal.config import ConfigError, Settings, load_settings
from famcal.events import load_local_events, select_candidates
from famcal.exceptions import LocalEventsError, MappingStoreError
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
from famcal.routing import CalendarTarget, EligibilityRules, Household, classify
from famcal.store import IgnoreList, MappingStore

__version__ = "0.1.0"

__all__ = [
    "CalendarTarget",
    "ConfigError",
    "DedupReport",
    "DeleteOutcome",
    "EligibilityRules",
    "EventDraft",
    "Household",
    "IgnoreList",
    "LocalEvent",
    "LocalEventsError",
    "MappingEntry",
    "MappingStore",
    "MappingStoreError",
    "ReconcileOutcome",
    "RemoteEvent",
    "RunReport",
    "Settings",
    "TimeWindow",
    "classify",
    "load_local_events",
    "load_settings",
    "select_candidates",
]
