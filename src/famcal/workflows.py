"""Batch workflows run by the CLI.

Each workflow takes a :class:`SyncContext` (settings plus the wired-up
client, stores and reconciler) and fills in a
:class:`~famcal.models.calendar.RunReport`:

- :func:`run_migration` -- push eligible future local events.
- :func:`run_cleanup` -- propagate local cancellations, prune orphaned
  mappings, deduplicate every calendar.
- :func:`run_dedup` -- deduplicate one or all calendars (optionally dry).
- :func:`run_diagnostics` -- read-only health report.
- :func:`run_delete` -- propagate deletion of given local uids.

Per-item failures are counted in the report and the run continues.
:class:`~famcal.calendar.exceptions.CalendarAuthError` and
:class:`~famcal.exceptions.LocalEventsError` propagate: the caller records
them as an abort and still prints the report, which is why every workflow
accepts a caller-owned ``report``.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from famcal.calendar.auth import get_calendar_credentials
from famcal.calendar.client import GoogleCalendarClient
from famcal.calendar.dedup import deduplicate, find_duplicate_groups
from famcal.calendar.exceptions import CalendarAPIError, CalendarAuthError
from famcal.calendar.ratelimit import RateLimiter
from famcal.calendar.sync import Reconciler
from famcal.config import Settings
from famcal.events import load_local_events, select_candidates
from famcal.models.calendar import ReconcileOutcome, RemoteEvent, RunReport, TimeWindow
from famcal.models.event import LocalEvent
from famcal.routing import EligibilityRules
from famcal.store import IgnoreList, MappingStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


@dataclass
class SyncContext:
    """Everything a workflow needs, built once per process.

    Attributes:
        settings: Validated settings.
        client: Calendar client shared by all steps.
        store: Identity mapping store.
        ignored: Ignore list.
        reconciler: Reconciler wired to the above.
    """

    settings: Settings
    client: GoogleCalendarClient
    store: MappingStore
    ignored: IgnoreList
    reconciler: Reconciler


def build_context(settings: Settings, client: GoogleCalendarClient | None = None) -> SyncContext:
    """Wire settings into a ready-to-use :class:`SyncContext`.

    Args:
        settings: Validated settings.
        client: Pre-built client (tests).  When ``None``, credentials are
            loaded and a rate-limited client is created.

    Raises:
        CalendarAuthError: If credentials cannot be obtained.
    """
    if client is None:
        credentials = get_calendar_credentials(settings.credentials_path, settings.token_path)
        client = GoogleCalendarClient(
            credentials=credentials,
            timezone=settings.timezone,
            limiter=RateLimiter(settings.rate_limit),
            max_retries=settings.max_retries,
        )

    store = MappingStore(settings.mapping_path)
    ignored = IgnoreList(settings.ignored_path)
    reconciler = Reconciler.from_settings(
        settings,
        client,
        store,
        eligibility=EligibilityRules.from_settings(settings),
        ignored=ignored,
    )
    return SyncContext(
        settings=settings, client=client, store=store, ignored=ignored, reconciler=reconciler
    )


# ---------------------------------------------------------------------------
# Workflows
# ---------------------------------------------------------------------------


def run_migration(
    context: SyncContext,
    report: RunReport | None = None,
    now: datetime | None = None,
) -> RunReport:
    """Push every eligible local event that starts today or later.

    Args:
        context: Wired components.
        report: Report to fill in; a new one is created when ``None``.
        now: Current time (for testing).  Defaults to now in the
            configured timezone.

    Returns:
        The filled-in report.

    Raises:
        LocalEventsError: If the local events file cannot be read.
        CalendarAuthError: If credentials are rejected mid-run.
    """
    report = report if report is not None else RunReport(workflow="migrate")
    started = time.monotonic()
    try:
        now = _now(context.settings, now)
        events = load_local_events(context.settings.events_path)
        candidates = select_candidates(events, now.date(), context.settings.tz)
        logger.info(
            "Migrating %d candidate(s) of %d local event(s)", len(candidates), len(events)
        )
        report.notes.append(
            f"{len(candidates)} of {len(events)} local event(s) start today or later"
        )

        for event in candidates:
            try:
                outcome = context.reconciler.reconcile(event)
            except CalendarAuthError:
                raise
            except Exception as exc:
                logger.error("Unexpected error reconciling %s '%s': %s", event.uid, event.summary, exc)
                report.record_failure(event.uid, event.summary, "", str(exc))
                continue
            _tally(report, event, outcome)
    finally:
        report.duration_seconds = time.monotonic() - started

    logger.info(
        "Migration complete: %d pushed, %d skipped, %d ineligible, %d error(s)",
        report.pushed,
        report.skipped,
        report.ineligible,
        report.errors,
    )
    return report


def run_cleanup(
    context: SyncContext,
    report: RunReport | None = None,
    now: datetime | None = None,
) -> RunReport:
    """Periodic cleanup.

    1. Delete the remote copy of every locally cancelled event that is
       still mapped.
    2. Prune mappings whose remote event was deleted on the provider.
    3. Deduplicate every configured calendar, keeping mapped events.

    Raises:
        LocalEventsError: If the local events file cannot be read.
        CalendarAuthError: If credentials are rejected mid-run.
    """
    report = report if report is not None else RunReport(workflow="cleanup")
    started = time.monotonic()
    try:
        now = _now(context.settings, now)
        window = _window(context.settings, now)

        events = load_local_events(context.settings.events_path)
        cancelled = [e for e in events if e.cancelled and e.uid and e.uid in context.store]
        logger.info("Propagating %d local cancellation(s)", len(cancelled))
        for event in cancelled:
            _delete_one(context, report, event.uid, event.summary)

        try:
            pruned = context.reconciler.prune_orphans(
                window,
                on_error=lambda uid, calendar_id, exc: report.record_failure(
                    uid, "", calendar_id, f"orphan check failed: {exc}"
                ),
            )
        except CalendarAuthError:
            raise
        except CalendarAPIError as exc:
            logger.error("Orphan check aborted: %s", exc)
            report.record_failure("", "", "", f"orphan check failed: {exc}")
        else:
            report.pruned += len(pruned)

        _dedup_calendars(context, report, _unique(context.settings.calendar_ids.values()), window)
    finally:
        report.duration_seconds = time.monotonic() - started
    return report


def run_dedup(
    context: SyncContext,
    calendar: str | None = None,
    dry_run: bool = False,
    report: RunReport | None = None,
    now: datetime | None = None,
) -> RunReport:
    """Deduplicate one calendar, or all configured calendars.

    Args:
        context: Wired components.
        calendar: Routing target name (``"family"``, ``"person_a"``,
            ``"person_b"``) or a raw calendar ID.  ``None`` means all.
        dry_run: Report what would be deleted without deleting.
        report: Report to fill in.
        now: Current time (for testing).
    """
    report = report if report is not None else RunReport(workflow="dedup")
    started = time.monotonic()
    try:
        now = _now(context.settings, now)
        configured = context.settings.calendar_ids
        if calendar is None:
            calendar_ids = _unique(configured.values())
        else:
            calendar_ids = [configured.get(calendar, calendar)]
        _dedup_calendars(context, report, calendar_ids, _window(context.settings, now), dry_run)
    finally:
        report.duration_seconds = time.monotonic() - started
    return report


def run_diagnostics(
    context: SyncContext,
    report: RunReport | None = None,
    now: datetime | None = None,
) -> RunReport:
    """Read-only health report; makes no remote or local changes.

    Notes cover: calendars visible to the account and whether each
    configured calendar is among them, per-calendar event and duplicate
    counts, remote events tagged with a local uid that the mapping does not
    know, and mappings whose remote event is not in the listing window.
    """
    report = report if report is not None else RunReport(workflow="diagnose")
    started = time.monotonic()
    try:
        now = _now(context.settings, now)
        window = _window(context.settings, now)
        store = context.store

        report.notes.append(
            f"Mapping store: {len(store)} entr{'y' if len(store) == 1 else 'ies'} "
            f"at {store.path}"
        )
        report.notes.append(f"Ignored uids: {len(context.ignored)}")

        try:
            visible = {c["id"] for c in context.client.list_calendars()}
        except CalendarAuthError:
            raise
        except CalendarAPIError as exc:
            report.record_failure("", "", "", f"calendar list failed: {exc}")
            visible = None
        else:
            report.notes.append(f"Accessible calendars: {len(visible)}")

        for target, calendar_id in context.settings.calendar_ids.items():
            if visible is not None:
                state = "accessible" if calendar_id in visible else "NOT accessible"
                report.notes.append(f"{target} ({calendar_id}): {state}")

            try:
                remote = context.client.list_events(calendar_id, window.start, window.end)
            except CalendarAuthError:
                raise
            except CalendarAPIError as exc:
                report.record_failure("", "", calendar_id, f"listing failed: {exc}")
                continue

            groups = find_duplicate_groups(remote)
            redundant = sum(len(group) - 1 for group in groups)
            report.notes.append(
                f"{target}: {len(remote)} event(s), {len(groups)} duplicate group(s), "
                f"{redundant} redundant cop{'y' if redundant == 1 else 'ies'}"
            )

            listed = {event.id for event in remote}
            untracked = [event for event in remote if _is_untracked(event, store)]
            if untracked:
                report.notes.append(
                    f"{target}: {len(untracked)} event(s) carry a local uid but are not mapped"
                )
            stale = store.remote_ids(calendar_id) - listed
            if stale:
                report.notes.append(
                    f"{target}: {len(stale)} mapping(s) point outside the window or to deleted events"
                )
    finally:
        report.duration_seconds = time.monotonic() - started
    return report


def run_delete(
    context: SyncContext,
    uids: Iterable[str],
    report: RunReport | None = None,
) -> RunReport:
    """Propagate deletion of *uids* to the remote calendars."""
    report = report if report is not None else RunReport(workflow="delete")
    started = time.monotonic()
    try:
        for uid in uids:
            _delete_one(context, report, uid, "")
    finally:
        report.duration_seconds = time.monotonic() - started
    return report


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _now(settings: Settings, now: datetime | None) -> datetime:
    if now is None:
        return datetime.now(settings.tz)
    if now.tzinfo is None:
        return now.replace(tzinfo=settings.tz)
    return now.astimezone(settings.tz)


def _window(settings: Settings, now: datetime) -> TimeWindow:
    return TimeWindow.around(now, settings.window_past_months, settings.window_future_months)


def _unique(calendar_ids: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(calendar_ids))


def _tally(report: RunReport, event: LocalEvent, outcome: ReconcileOutcome) -> None:
    if outcome.status == "pushed":
        report.pushed += 1
    elif outcome.status == "skipped_mapped":
        report.skipped += 1
    elif outcome.status == "skipped_ineligible":
        report.ineligible += 1
    else:
        report.record_failure(
            event.uid, event.summary, outcome.calendar_id or "", outcome.reason or "failed"
        )


def _delete_one(context: SyncContext, report: RunReport, uid: str, summary: str) -> None:
    try:
        outcome = context.reconciler.delete(uid)
    except CalendarAuthError:
        raise
    except Exception as exc:
        logger.error("Unexpected error deleting %s: %s", uid, exc)
        report.record_failure(uid, summary, "", str(exc))
        return

    if outcome.succeeded:
        report.deleted += 1
    elif outcome.status == "not_mapped":
        report.skipped += 1
        report.notes.append(f"{uid}: no mapping, nothing deleted")
    else:
        report.record_failure(uid, summary, outcome.calendar_id or "", outcome.reason or "failed")


def _dedup_calendars(
    context: SyncContext,
    report: RunReport,
    calendar_ids: Iterable[str],
    window: TimeWindow,
    dry_run: bool = False,
) -> None:
    for calendar_id in calendar_ids:
        try:
            result = deduplicate(
                context.client,
                calendar_id,
                window,
                mapped_ids=context.store.remote_ids(calendar_id),
                dry_run=dry_run,
            )
        except CalendarAuthError:
            raise
        except CalendarAPIError as exc:
            logger.error("Deduplication of %s failed: %s", calendar_id, exc)
            report.record_failure("", "", calendar_id, f"deduplication failed: {exc}")
            continue
        report.add_dedup(result)


def _is_untracked(event: RemoteEvent, store: MappingStore) -> bool:
    """Whether *event* was created for a local uid the mapping does not link to it."""
    if not event.local_uid:
        return False
    entry = store.get(event.local_uid)
    return entry is None or entry.remote_event_id != event.id
