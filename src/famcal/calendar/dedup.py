"""Duplicate detection and removal on a remote calendar.

Two remote events are duplicates when they share a signature: the
normalized title (lowercased, one leading ``"Name: "`` prefix removed) and
the exact start instant.  ``"Algot: Handboll"`` and ``"handboll"`` at the
same minute are therefore the same event, which is what a re-push with a
different title prefix produces.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from datetime import date, datetime, timezone

from famcal.calendar.client import GoogleCalendarClient
from famcal.calendar.exceptions import CalendarAuthError, CalendarNotFoundError
from famcal.models.calendar import DedupReport, RemoteEvent, TimeWindow

logger = logging.getLogger(__name__)

_NAME_PREFIX = re.compile(r"^[^\W\d_]+:\s+")


def dedup_signature(event: RemoteEvent) -> str | None:
    """Signature of *event*, or ``None`` when it has no usable start.

    Example::

        >>> dedup_signature(RemoteEvent(id="a", calendar_id="c",
        ...     summary="Algot: Handboll", start=datetime(2025, 1, 1, tzinfo=timezone.utc)))
        'handboll_1735689600000'
    """
    if event.start is None:
        return None
    title = _NAME_PREFIX.sub("", event.summary.lower().strip(), count=1)
    return f"{title}_{_epoch_millis(event.start)}"


def _epoch_millis(value: datetime | date) -> int:
    # All-day events compare at UTC midnight; naive datetimes are taken as UTC.
    if not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def find_duplicate_groups(
    events: Iterable[RemoteEvent],
) -> list[list[RemoteEvent]]:
    """Group *events* by signature, keeping listing order.

    Cancelled events and events without a start are ignored.

    Returns:
        Only the groups with more than one member.
    """
    groups: dict[str, list[RemoteEvent]] = {}
    for event in events:
        if event.status == "cancelled":
            continue
        signature = dedup_signature(event)
        if signature is None:
            continue
        groups.setdefault(signature, []).append(event)
    return [group for group in groups.values() if len(group) > 1]


def choose_survivor(group: list[RemoteEvent], mapped_ids: set[str]) -> RemoteEvent:
    """First event in *group* that is mapped, else the first listed."""
    for event in group:
        if event.id in mapped_ids:
            return event
    return group[0]


def deduplicate(
    client: GoogleCalendarClient,
    calendar_id: str,
    window: TimeWindow,
    mapped_ids: Iterable[str] = (),
    dry_run: bool = False,
    on_mutation: Callable[[RemoteEvent], None] | None = None,
) -> DedupReport:
    """Remove duplicate events from *calendar_id* within *window*.

    Every group keeps exactly one survivor (see :func:`choose_survivor`);
    all other members are deleted one by one.  A delete answered with
    not-found counts as deleted.  Any other failure is counted in
    ``report.failed`` and logged, never retried here; the next run picks
    the copy up again.  Running twice in a row deletes nothing the second
    time.

    Args:
        client: Calendar client (its limiter paces the deletions).
        calendar_id: Calendar to scan.
        window: Listing range.
        mapped_ids: Remote IDs referenced by the mapping store.
        dry_run: Count what would be deleted without deleting.
        on_mutation: Called with each event just before it is deleted.

    Returns:
        A :class:`DedupReport` for the calendar.

    Raises:
        CalendarAPIError: If the listing itself fails.
        CalendarAuthError: If credentials are rejected mid-run.
    """
    mapped = set(mapped_ids)
    events = client.list_events(calendar_id, window.start, window.end)
    report = DedupReport(calendar_id=calendar_id, total_scanned=len(events), dry_run=dry_run)

    groups = find_duplicate_groups(events)
    report.duplicate_groups = len(groups)
    logger.info(
        "Scanned %d event(s) on %s, %d duplicate group(s)",
        len(events),
        calendar_id,
        len(groups),
    )

    for group in groups:
        survivor = choose_survivor(group, mapped)
        report.kept.append(survivor.id)
        for event in group:
            if event.id == survivor.id:
                continue
            if dry_run:
                logger.info("Would delete duplicate '%s' (%s)", event.summary, event.id)
                report.deleted += 1
                continue
            if on_mutation is not None:
                on_mutation(event)
            try:
                client.delete_event(event.id, calendar_id)
            except CalendarNotFoundError:
                logger.info("Duplicate %s already gone", event.id)
            except CalendarAuthError:
                raise
            except Exception as exc:
                logger.error(
                    "Failed to delete duplicate '%s' (%s) on %s: %s",
                    event.summary,
                    event.id,
                    calendar_id,
                    exc,
                )
                report.failed += 1
                continue
            report.deleted += 1

    return report
