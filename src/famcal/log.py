"""Logging setup for famcal.

Every workflow writes a human-readable progress log to stderr, so the run
report on stdout stays clean when it is piped or mailed from cron.
"""

from __future__ import annotations

import logging
import sys

_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

# Marks the handler we install so repeated setup calls reuse it.
_HANDLER_ATTR = "_famcal_log_handler"

# Floors for the Google client stack.  `famcal migrate -v` should show our
# per-event decisions, not every HTTP request or discovery-cache miss.
_LIBRARY_FLOORS = {
    "googleapiclient.discovery_cache": logging.ERROR,
    "googleapiclient.discovery": logging.WARNING,
    "google_auth_httplib2": logging.WARNING,
    "google.auth": logging.WARNING,
    "urllib3": logging.WARNING,
}


def _quiet_libraries(numeric_level: int) -> None:
    for name, floor in _LIBRARY_FLOORS.items():
        logging.getLogger(name).setLevel(max(floor, numeric_level))


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger for a workflow run.

    Safe to call more than once: the handler installed by the first call
    is reused and only the levels change.  Google client libraries never
    log below their floor in ``_LIBRARY_FLOORS``.

    Raises:
        ValueError: If *level* is not a recognised logging level string.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {level!r}")

    root = logging.getLogger()
    root.setLevel(numeric_level)
    _quiet_libraries(numeric_level)

    for handler in root.handlers:
        if getattr(handler, _HANDLER_ATTR, False):
            handler.setLevel(numeric_level)
            return

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(numeric_level)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S"))
    setattr(handler, _HANDLER_ATTR, True)
    root.addHandler(handler)
