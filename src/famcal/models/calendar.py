"""Data models for remote calendar state and workflow outcomes.

- :class:`RemoteEvent` -- an event as it exists on Google Calendar.
- :class:`EventDraft` -- the payload for creating a remote event.
- :class:`MappingEntry` -- durable link from a local uid to its remote copy.
- :class:`TimeWindow` -- the bounded range used for remote listings.
- :class:`ReconcileOutcome` / :class:`DeleteOutcome` -- per-event results.
- :class:`DedupReport` -- result of deduplicating one calendar.
- :class:`RunReport` -- the operator-facing counters of a workflow run.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Literal

# ---------------------------------------------------------------------------
# Remote side
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RemoteEvent:
    """A Google Calendar event.

    Attributes:
        id: Provider-assigned event ID, scoped to *calendar_id*.
        calendar_id: The calendar the event was listed from.
        summary: Event title (empty when the provider has none).
        start: Parsed start (``datetime`` or ``date``), or ``None``.
        end: Parsed end, or ``None``.
        status: Provider status (``"confirmed"``, ``"cancelled"``...).
        created: Provider creation timestamp string, if present.
        local_uid: Local uid carried in the private extended properties
            of events this tool created.
        source: Provenance tag carried in the extended properties.
        raw: The untouched API resource.
    """

    id: str
    calendar_id: str
    summary: str = ""
    start: datetime | date | None = None
    end: datetime | date | None = None
    status: str = "confirmed"
    created: str | None = None
    local_uid: str | None = None
    source: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class EventDraft:
    """Payload for a remote create.

    Attributes:
        title: Event title as it should appear remotely.
        start: Start (``datetime`` or ``date`` for all-day).
        end: End (``datetime`` or ``date``).
        location: Optional location.
        description: Optional description.
        local_uid: Local uid stored as private metadata for traceability.
        source: Provenance tag stored as private metadata.
    """

    title: str
    start: datetime | date
    end: datetime | date
    location: str | None = None
    description: str | None = None
    local_uid: str | None = None
    source: str | None = None


# ---------------------------------------------------------------------------
# Mapping
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MappingEntry:
    """Durable link between a local event and its remote counterpart.

    Attributes:
        remote_event_id: Google event ID.
        remote_calendar_id: Calendar the remote ID belongs to.
        last_updated: ISO 8601 timestamp of the last write.
    """

    remote_event_id: str
    remote_calendar_id: str
    last_updated: str | None = None


# ---------------------------------------------------------------------------
# Time window
# ---------------------------------------------------------------------------


def _shift_months(moment: datetime, months: int) -> datetime:
    """Move *moment* by whole calendar months, clamping the day."""
    index = moment.month - 1 + months
    year = moment.year + index // 12
    month = index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


@dataclass(frozen=True)
class TimeWindow:
    """A ``[start, end)`` range bounding remote listings."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.end <= self.start:
            raise ValueError(
                f"window end ({self.end.isoformat()}) must be after "
                f"start ({self.start.isoformat()})"
            )

    @classmethod
    def around(cls, now: datetime, past_months: int, future_months: int) -> TimeWindow:
        """Window from *past_months* before *now* to *future_months* after."""
        return cls(_shift_months(now, -past_months), _shift_months(now, future_months))


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------

ReconcileStatus = Literal["pushed", "skipped_mapped", "skipped_ineligible", "failed"]
DeleteStatus = Literal["deleted", "already_gone", "not_mapped", "failed"]


@dataclass(frozen=True)
class ReconcileOutcome:
    """Result of reconciling a single local event.

    Attributes:
        uid: Local uid of the event.
        status: ``"pushed"``, ``"skipped_mapped"``, ``"skipped_ineligible"``
            or ``"failed"``.
        remote_event_id: The created (or already mapped) remote ID.
        calendar_id: The target (or already mapped) calendar ID.
        reason: Why the event was skipped or failed.
    """

    uid: str
    status: ReconcileStatus
    remote_event_id: str | None = None
    calendar_id: str | None = None
    reason: str | None = None


@dataclass(frozen=True)
class DeleteOutcome:
    """Result of propagating a local deletion to the remote calendar."""

    uid: str
    status: DeleteStatus
    remote_event_id: str | None = None
    calendar_id: str | None = None
    reason: str | None = None

    @property
    def succeeded(self) -> bool:
        """Whether the remote copy is now gone."""
        return self.status in ("deleted", "already_gone")


@dataclass
class DedupReport:
    """Result of deduplicating one calendar window.

    Attributes:
        calendar_id: The calendar that was scanned.
        total_scanned: Number of remote events listed.
        duplicate_groups: Number of signatures shared by more than one event.
        deleted: Redundant copies removed (or that would be, in a dry run).
        failed: Deletions that raised an error.
        kept: Remote IDs chosen as the survivor of each group.
        dry_run: Whether deletions were skipped.
    """

    calendar_id: str
    total_scanned: int = 0
    duplicate_groups: int = 0
    deleted: int = 0
    failed: int = 0
    kept: list[str] = field(default_factory=list)
    dry_run: bool = False


@dataclass
class RunReport:
    """Counters of a workflow run, printed at the end of every run.

    Attributes:
        workflow: Workflow name (``"migrate"``, ``"cleanup"``...).
        pushed: Remote events created.
        skipped: Events already mapped.
        ineligible: Events filtered out by eligibility or the ignore list.
        deleted: Remote events removed (local deletions and duplicates).
        pruned: Orphaned mapping entries removed.
        errors: Items that failed.
        failures: One dict per failure with ``uid``, ``summary``,
            ``calendar`` and ``error`` keys.
        dedup: Per-calendar deduplication results.
        notes: Free-form diagnostic lines.
        aborted: Fatal error message when the run stopped early.
        duration_seconds: Wall-clock time of the run.
    """

    workflow: str
    pushed: int = 0
    skipped: int = 0
    ineligible: int = 0
    deleted: int = 0
    pruned: int = 0
    errors: int = 0
    failures: list[dict[str, str]] = field(default_factory=list)
    dedup: list[DedupReport] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)
    aborted: str | None = None
    duration_seconds: float = 0.0

    def record_failure(self, uid: str, summary: str, calendar_id: str, error: str) -> None:
        """Count a failed item and keep enough context to resolve it by hand."""
        self.errors += 1
        self.failures.append(
            {"uid": uid, "summary": summary, "calendar": calendar_id, "error": error}
        )

    def add_dedup(self, report: DedupReport) -> None:
        """Fold a calendar's dedup result into the run counters."""
        self.dedup.append(report)
        if not report.dry_run:
            self.deleted += report.deleted
        self.errors += report.failed

    @property
    def has_failures(self) -> bool:
        """Whether any item failed or the run was aborted."""
        return self.errors > 0 or self.aborted is not None
