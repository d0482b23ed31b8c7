"""Reconciliation engine: make each local event exist exactly once remotely.

Provides :class:`Reconciler`, which owns the per-event protocol:

``reconcile``
    classify -> look up mapping -> (skip | create) -> write mapping.
    The mapping lookup happens strictly before any create and the mapping
    write strictly after a successful create, so one run creates at most
    one remote event per local uid.

``delete``
    Propagate a local deletion through the mapping.  A remote 404 means
    the event is already gone and counts as success.  The mapping entry is
    pruned afterwards.

``prune_orphans``
    Find mapping entries whose remote event no longer exists (deleted by a
    user directly on Google Calendar), drop them, and put the uid on the
    ignore list so the deletion sticks.

Known window: if a create succeeds but the mapping write then fails (disk
error, or the process is killed between the two calls), nothing records the
remote copy.  The next run pushes the event again and Deduplication has to
remove the extra copy.  This is accepted; the engine does not try to recover
mappings by searching the remote calendar.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from famcal.calendar.client import GoogleCalendarClient
from famcal.calendar.event_mapper import build_draft
from famcal.calendar.exceptions import CalendarAuthError, CalendarNotFoundError
from famcal.config import Settings
from famcal.exceptions import MappingStoreError
from famcal.models.calendar import DeleteOutcome, ReconcileOutcome, TimeWindow
from famcal.models.event import LocalEvent
from famcal.routing import CalendarTarget, EligibilityRules, Household, classify
from famcal.store import IgnoreList, MappingStore

logger = logging.getLogger(__name__)


class Reconciler:
    """Push local events to, and delete them from, the remote calendars.

    Args:
        client: Calendar client used for all remote calls.
        store: Identity mapping store.
        calendars: Calendar ID per routing target.
        household: Household member names for routing.
        eligibility: Rules applied before pushing; ``None`` pushes any
            event not otherwise excluded.
        ignored: User-suppressed uids; never pushed.
    """

    def __init__(
        self,
        client: GoogleCalendarClient,
        store: MappingStore,
        calendars: dict[CalendarTarget, str],
        household: Household,
        eligibility: EligibilityRules | None = None,
        ignored: IgnoreList | None = None,
    ) -> None:
        missing = [target.value for target in CalendarTarget if not calendars.get(target)]
        if missing:
            raise ValueError(f"No calendar ID configured for: {', '.join(missing)}")
        self._client = client
        self._store = store
        self._calendars = dict(calendars)
        self._household = household
        self._eligibility = eligibility
        self._ignored = ignored

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        client: GoogleCalendarClient,
        store: MappingStore,
        *,
        eligibility: EligibilityRules | None = None,
        ignored: IgnoreList | None = None,
    ) -> Reconciler:
        calendars = {
            CalendarTarget(target): calendar_id
            for target, calendar_id in settings.calendar_ids.items()
        }
        return cls(
            client,
            store,
            calendars,
            Household.from_settings(settings),
            eligibility=eligibility,
            ignored=ignored,
        )

    def calendar_for(self, event: LocalEvent) -> str:
        """Calendar ID *event* routes to."""
        return self._calendars[classify(event, self._household)]

    # ------------------------------------------------------------------
    # Push
    # ------------------------------------------------------------------

    def reconcile(self, event: LocalEvent) -> ReconcileOutcome:
        """Ensure *event* has exactly one remote counterpart.

        Never raises for ordinary API failures; they come back as a
        ``"failed"`` outcome.  :class:`~famcal.calendar.exceptions.CalendarAuthError`
        does propagate, since no later call can succeed either.

        Args:
            event: The local event.

        Returns:
            The :class:`ReconcileOutcome` for this event.
        """
        uid = event.uid
        reason = self._ineligible_reason(event)
        if reason is not None:
            logger.debug("Skip %s '%s': %s", uid, event.summary, reason)
            return ReconcileOutcome(uid=uid, status="skipped_ineligible", reason=reason)

        target = classify(event, self._household)
        calendar_id = self._calendars[target]

        existing = self._store.get(uid)
        if existing is not None:
            logger.info("Skip '%s' (already mapped to %s)", event.summary, existing.remote_event_id)
            return ReconcileOutcome(
                uid=uid,
                status="skipped_mapped",
                remote_event_id=existing.remote_event_id,
                calendar_id=existing.remote_calendar_id,
            )

        draft = build_draft(event, target, self._household)
        try:
            created = self._client.create_event(calendar_id, draft)
        except CalendarAuthError:
            raise
        except Exception as exc:
            return self._failed(event, calendar_id, f"create failed: {exc}")

        if not created.id:
            return self._failed(event, calendar_id, "create returned no event ID")

        try:
            self._store.put(uid, created.id, calendar_id)
        except MappingStoreError as exc:
            logger.error(
                "Created %s on %s for %s but could not record the mapping (%s). "
                "The next run will push it again; run dedup afterwards.",
                created.id,
                calendar_id,
                uid,
                exc,
            )
            return ReconcileOutcome(
                uid=uid,
                status="failed",
                remote_event_id=created.id,
                calendar_id=calendar_id,
                reason=f"mapping write failed after create of {created.id}: {exc}",
            )

        logger.info("Pushed '%s' -> %s (%s)", draft.title, target.value, created.id)
        return ReconcileOutcome(
            uid=uid, status="pushed", remote_event_id=created.id, calendar_id=calendar_id
        )

    def _ineligible_reason(self, event: LocalEvent) -> str | None:
        if not event.uid:
            return "missing uid"
        if self._ignored is not None and event.uid in self._ignored:
            return "ignored by user"
        if event.cancelled:
            return "cancelled"
        if self._eligibility is not None:
            return self._eligibility.explain(event)
        return None

    def _failed(self, event: LocalEvent, calendar_id: str, reason: str) -> ReconcileOutcome:
        logger.error(
            "Failed to push %s '%s' to %s: %s", event.uid, event.summary, calendar_id, reason
        )
        return ReconcileOutcome(uid=event.uid, status="failed", calendar_id=calendar_id, reason=reason)

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete(self, uid: str) -> DeleteOutcome:
        """Delete the remote counterpart of *uid* and prune its mapping.

        Args:
            uid: Local uid of an event deleted or cancelled locally.

        Returns:
            ``"deleted"``, ``"already_gone"`` (remote 404), ``"not_mapped"``
            or ``"failed"``.
        """
        entry = self._store.get(uid)
        if entry is None:
            logger.info("No mapping for %s, nothing to delete remotely", uid)
            return DeleteOutcome(uid=uid, status="not_mapped")

        status = "deleted"
        try:
            self._client.delete_event(entry.remote_event_id, entry.remote_calendar_id)
        except CalendarNotFoundError:
            logger.info("Remote event %s already gone", entry.remote_event_id)
            status = "already_gone"
        except CalendarAuthError:
            raise
        except Exception as exc:
            logger.error(
                "Failed to delete %s (%s on %s): %s",
                uid,
                entry.remote_event_id,
                entry.remote_calendar_id,
                exc,
            )
            return DeleteOutcome(
                uid=uid,
                status="failed",
                remote_event_id=entry.remote_event_id,
                calendar_id=entry.remote_calendar_id,
                reason=str(exc),
            )

        try:
            self._store.remove(uid)
        except MappingStoreError as exc:
            # Remote copy is gone; a stale entry is pruned on the next cleanup.
            logger.error("Deleted %s remotely but could not prune its mapping: %s", uid, exc)

        return DeleteOutcome(
            uid=uid,
            status=status,
            remote_event_id=entry.remote_event_id,
            calendar_id=entry.remote_calendar_id,
        )

    # ------------------------------------------------------------------
    # Orphans
    # ------------------------------------------------------------------

    def prune_orphans(
        self,
        window: TimeWindow,
        on_error: Callable[[str, str, Exception], None] | None = None,
    ) -> list[str]:
        """Drop mappings whose remote event was deleted on the provider.

        Each calendar that has mappings is listed once over *window*.  A
        mapped ID absent from the listing may simply lie outside the window,
        so it is confirmed with a direct fetch: only a not-found response or
        a ``cancelled`` status marks it as orphaned.

        Args:
            window: Listing window.
            on_error: Called with ``(uid, calendar_id, error)`` when a
                confirmation fetch or a state write fails; the entry is
                then kept and the remaining mappings are still checked.

        Returns:
            The uids whose mappings were pruned.
        """
        by_calendar: dict[str, list[tuple[str, str]]] = {}
        for uid, entry in self._store.all():
            by_calendar.setdefault(entry.remote_calendar_id, []).append(
                (uid, entry.remote_event_id)
            )

        pruned: list[str] = []
        for calendar_id, pairs in by_calendar.items():
            listed = {
                event.id
                for event in self._client.list_events(calendar_id, window.start, window.end)
                if event.status != "cancelled"
            }
            for uid, remote_id in pairs:
                if remote_id in listed:
                    continue
                try:
                    remote = self._client.get_event(remote_id, calendar_id)
                except CalendarNotFoundError:
                    remote = None
                except CalendarAuthError:
                    raise
                except Exception as exc:
                    logger.error("Could not check mapping %s (%s): %s", uid, remote_id, exc)
                    if on_error is not None:
                        on_error(uid, calendar_id, exc)
                    continue

                if remote is not None and remote.status != "cancelled":
                    continue

                logger.info("Remote event %s for %s was deleted on the provider", remote_id, uid)
                try:
                    if self._ignored is not None:
                        self._ignored.add(uid)
                    self._store.remove(uid)
                except MappingStoreError as exc:
                    logger.error("Could not prune mapping %s: %s", uid, exc)
                    if on_error is not None:
                        on_error(uid, calendar_id, exc)
                    continue
                pruned.append(uid)

        return pruned

