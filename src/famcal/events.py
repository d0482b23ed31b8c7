"""Loading the local events file and picking push candidates.

The local events file is a JSON array of event records, or an object with
an ``"events"`` array (the cache format written by the ingestion side).
Records that fail validation are logged and skipped; a file that cannot be
read at all raises :class:`~famcal.exceptions.LocalEventsError`.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from datetime import date, tzinfo
from pathlib import Path

from pydantic import ValidationError

from famcal.exceptions import LocalEventsError
from famcal.models.event import LocalEvent

logger = logging.getLogger(__name__)


def load_local_events(file_path: str | Path) -> list[LocalEvent]:
    """Read and validate all local events in *file_path*.

    Args:
        file_path: Path to the local events JSON file.

    Returns:
        Valid events, in file order.

    Raises:
        LocalEventsError: If the file is missing, unreadable, not JSON, or
            not a list / ``{"events": [...]}`` object.
    """
    path = Path(file_path)
    if not path.exists():
        raise LocalEventsError(f"Local events file not found: {path}")

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise LocalEventsError(f"Cannot read local events file {path}: {exc}") from exc

    if isinstance(data, dict):
        data = data.get("events")
    if not isinstance(data, list):
        raise LocalEventsError(
            f"Local events file {path} must contain a list or an object with an 'events' list"
        )

    events: list[LocalEvent] = []
    for index, record in enumerate(data):
        if not isinstance(record, dict):
            logger.warning("Skipping local event #%d: not an object", index)
            continue
        try:
            events.append(LocalEvent.model_validate(record))
        except (ValidationError, ValueError) as exc:
            logger.warning(
                "Skipping local event #%d (%s): %s",
                index,
                record.get("uid") or record.get("summary") or "?",
                exc,
            )

    logger.info("Loaded %d local event(s) from %s", len(events), path)
    return events


def select_candidates(events: Iterable[LocalEvent], today: date, tz: tzinfo) -> list[LocalEvent]:
    """Events starting *today* or later in *tz*.

    Past events are never pushed; they are dropped here without being
    counted anywhere.
    """
    return [event for event in events if event.start_date(tz) >= today]
