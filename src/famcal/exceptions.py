"""Errors raised by the local state layer of famcal.

Remote API errors live in :mod:`famcal.calendar.exceptions`; configuration
errors in :mod:`famcal.config`.
"""

from __future__ import annotations

from pathlib import Path


class MappingStoreError(Exception):
    """Raised when the identity mapping (or ignore list) cannot be written.

    Reads never raise: an unreadable store is treated as empty and logged.
    A failed write, however, means a remote event may exist without a local
    record of it, so callers must see it.

    Attributes:
        path: The file that could not be written.
    """

    def __init__(self, message: str, path: Path | None = None) -> None:
        super().__init__(message)
        self.path = path


class LocalEventsError(Exception):
    """Raised when the local events file is missing or cannot be parsed.

    Fatal for the workflow that needed it: running a migration against an
    empty event list would silently do nothing.
    """
