"""Durable local state: the identity mapping and the ignore list.

Both are small JSON files under the data directory, read fully into memory
when opened and rewritten fully on every mutation.

The identity mapping links a local event uid to the Google event created for
it::

    {
      "ev-123@laget.se": {
        "remote_event_id": "abc123",
        "remote_calendar_id": "family@group.calendar.google.com",
        "last_updated": "2026-01-05T18:00:00+00:00"
      }
    }

.. warning::

   Read-modify-write of a whole file is only safe with a single writer.
   Two workflow processes sharing a data directory can lose each other's
   updates; run them one at a time.

Reads fail closed: a missing, unreadable or corrupt file is treated as empty
so the workflow can continue, but corruption is logged at ERROR level because
an empty mapping makes the next migration re-push everything (Deduplication
then has to remove the copies).  Writes never fail silently; they raise
:class:`~famcal.exceptions.MappingStoreError`.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from famcal.exceptions import MappingStoreError
from famcal.models.calendar import MappingEntry

logger = logging.getLogger(__name__)

# Field names written by earlier versions of the mapping file.
_LEGACY_KEYS = {
    "googleEventId": "remote_event_id",
    "calendarId": "remote_calendar_id",
    "lastUpdated": "last_updated",
}


def _read_json(path: Path, what: str) -> Any:
    """Load a JSON file, returning ``None`` when missing or unreadable."""
    if not path.exists():
        logger.info("No %s found at %s, starting empty", what, path)
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.error(
            "Could not read %s at %s (%s); treating it as EMPTY. "
            "Events may be pushed again and will need deduplication.",
            what,
            path,
            exc,
        )
        return None


def _write_json(path: Path, data: Any) -> None:
    """Replace *path* with *data* via a temp file in the same directory."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2, ensure_ascii=False)
                fh.write("\n")
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
    except OSError as exc:
        raise MappingStoreError(f"Failed to write {path}: {exc}", path=path) from exc


class MappingStore:
    """Identity mapping from local uid to ``(remote event, remote calendar)``.

    At most one entry per uid.  Entries are created when a push succeeds,
    overwritten only by an explicit re-push, and removed only by explicit
    cleanup (local-deletion propagation or orphan pruning).

    Args:
        path: Location of the JSON mapping file.
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._entries: dict[str, MappingEntry] = self._load()

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, uid: str) -> MappingEntry | None:
        """Return the mapping for *uid*, or ``None`` if it was never pushed."""
        return self._entries.get(uid)

    def all(self) -> list[tuple[str, MappingEntry]]:
        """Return every ``(uid, entry)`` pair in file order."""
        return list(self._entries.items())

    def remote_ids(self, calendar_id: str | None = None) -> set[str]:
        """Remote event IDs in the mapping, optionally for one calendar."""
        return {
            entry.remote_event_id
            for entry in self._entries.values()
            if calendar_id is None or entry.remote_calendar_id == calendar_id
        }

    def __contains__(self, uid: object) -> bool:
        return uid in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def put(self, uid: str, remote_event_id: str, remote_calendar_id: str) -> None:
        """Record that *uid* now lives at *remote_event_id* on *remote_calendar_id*.

        Raises:
            MappingStoreError: If the file cannot be written.  The in-memory
                state is rolled back so it keeps matching the file.
        """
        previous = self._entries.get(uid)
        self._entries[uid] = MappingEntry(
            remote_event_id=remote_event_id,
            remote_calendar_id=remote_calendar_id,
            last_updated=datetime.now(timezone.utc).isoformat(timespec="seconds"),
        )
        try:
            self._save()
        except MappingStoreError:
            if previous is None:
                del self._entries[uid]
            else:
                self._entries[uid] = previous
            raise
        logger.info("Saved mapping: %s -> %s", uid, remote_event_id)

    def remove(self, uid: str) -> None:
        """Drop the mapping for *uid* (no-op when absent).

        Raises:
            MappingStoreError: If the file cannot be written.
        """
        previous = self._entries.pop(uid, None)
        if previous is None:
            return
        try:
            self._save()
        except MappingStoreError:
            self._entries[uid] = previous
            raise
        logger.info("Removed mapping: %s", uid)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> dict[str, MappingEntry]:
        raw = _read_json(self._path, "event mapping")
        if raw is None:
            return {}
        if not isinstance(raw, dict):
            logger.error(
                "Event mapping at %s is not a JSON object; treating it as EMPTY. "
                "Events may be pushed again and will need deduplication.",
                self._path,
            )
            return {}

        entries: dict[str, MappingEntry] = {}
        for uid, record in raw.items():
            entry = _parse_entry(record)
            if entry is None:
                logger.error("Dropping malformed mapping entry for %s: %r", uid, record)
                continue
            entries[uid] = entry
        logger.info("Loaded %d mapping entries from %s", len(entries), self._path)
        return entries

    def _save(self) -> None:
        _write_json(
            self._path,
            {
                uid: {
                    "remote_event_id": entry.remote_event_id,
                    "remote_calendar_id": entry.remote_calendar_id,
                    "last_updated": entry.last_updated,
                }
                for uid, entry in self._entries.items()
            },
        )


def _parse_entry(record: Any) -> MappingEntry | None:
    if not isinstance(record, dict):
        return None
    fields = {_LEGACY_KEYS.get(key, key): value for key, value in record.items()}
    remote_id = fields.get("remote_event_id")
    calendar_id = fields.get("remote_calendar_id")
    if not isinstance(remote_id, str) or not remote_id:
        return None
    if not isinstance(calendar_id, str) or not calendar_id:
        return None
    last_updated = fields.get("last_updated")
    return MappingEntry(
        remote_event_id=remote_id,
        remote_calendar_id=calendar_id,
        last_updated=last_updated if isinstance(last_updated, str) else None,
    )


class IgnoreList:
    """Local uids the user suppressed; they are never reconciled.

    Stored as a JSON array of strings.  Same fail-closed read and
    raise-on-write behaviour as :class:`MappingStore`.
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._uids: list[str] = self._load()

    def __contains__(self, uid: object) -> bool:
        return uid in self._uids

    def __len__(self) -> int:
        return len(self._uids)

    def __iter__(self):
        return iter(list(self._uids))

    def add(self, uid: str) -> bool:
        """Suppress *uid*.  Returns ``False`` if it was already ignored."""
        if uid in self._uids:
            return False
        self._uids.append(uid)
        try:
            _write_json(self._path, self._uids)
        except MappingStoreError:
            self._uids.remove(uid)
            raise
        logger.info("Added %s to ignore list", uid)
        return True

    def _load(self) -> list[str]:
        raw = _read_json(self._path, "ignore list")
        if raw is None:
            return []
        if not isinstance(raw, list):
            logger.error("Ignore list at %s is not a JSON array; treating it as empty", self._path)
            return []
        return [uid for uid in raw if isinstance(uid, str) and uid]
