"""Configuration loading for famcal.

Reads settings from environment variables (with .env support via python-dotenv)
and validates that all required values are present.  The resulting
:class:`Settings` object is built once at process start and passed into every
component; nothing reads the environment after that.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv


class ConfigError(Exception):
    """Raised when required configuration is missing or invalid."""


# Mounted durable volume used when DATA_DIR is not set (e.g. a Home Assistant add-on).
_DURABLE_DATA_DIR = Path("/data")
_LOCAL_DATA_DIR = Path("data")

DEFAULT_ELIGIBLE_KEYWORDS: tuple[str, ...] = (
    "laget",
    "sportsadmin",
    "ibk",
    "hkl",
    "villa",
    "råda",
    "handboll",
    "bandy",
    "innebandy",
    "match",
    "träning",
    "lidköping",
)
DEFAULT_PERSONAL_SOURCES: tuple[str, ...] = ("svante", "sarah")
DEFAULT_EXCLUDED_SOURCES: tuple[str, ...] = ("svante", "sarah", "örtendahls", "familj", "vklass")
DEFAULT_OVERRIDE_KEYWORDS: tuple[str, ...] = ("träning", "match")
DEFAULT_BLOCKED_SOURCES: tuple[str, ...] = ("vklass",)
DEFAULT_CHILDREN: tuple[str, ...] = ("Algot", "Leon", "Tuva")

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment variables.

    Attributes:
        credentials_path: Google service account JSON or OAuth client secrets.
        calendar_family: Calendar ID of the shared family calendar.
        calendar_person_a: Calendar ID of person A's private calendar.
        calendar_person_b: Calendar ID of person B's private calendar.
        data_dir: Directory holding the mapping store and ignore list.
        token_path: Cached OAuth token (only used with client secrets).
        local_events_path: JSON file with the locally known events.
        person_a_name: Display name of person A (default ``"Svante"``).
        person_b_name: Display name of person B (default ``"Sarah"``).
        children: Names of the household's children.
        timezone: IANA timezone string (default ``"Europe/Stockholm"``).
        log_level: Logging level (default ``"INFO"``).
        rate_limit: Remote mutations allowed per second (default 5).
        max_retries: Retries for transient API errors (default 3).
        window_past_months: Months before today included in remote listings.
        window_future_months: Months after today included in remote listings.
        strict: Exit non-zero when a workflow reports item failures.
        eligible_keywords: Allow-list for migration eligibility.
        personal_sources: Private calendars whose events need an override
            keyword in the summary.
        excluded_sources: Sources whose name alone never makes an event
            eligible.
        override_keywords: Summary terms that re-admit a personal source.
        blocked_sources: Sources that are never eligible.
    """

    credentials_path: Path
    calendar_family: str
    calendar_person_a: str
    calendar_person_b: str
    data_dir: Path = _LOCAL_DATA_DIR
    token_path: Path | None = None
    local_events_path: Path | None = None
    person_a_name: str = "Svante"
    person_b_name: str = "Sarah"
    children: tuple[str, ...] = DEFAULT_CHILDREN
    timezone: str = "Europe/Stockholm"
    log_level: str = "INFO"
    rate_limit: float = 5.0
    max_retries: int = 3
    window_past_months: int = 1
    window_future_months: int = 6
    strict: bool = False
    eligible_keywords: tuple[str, ...] = DEFAULT_ELIGIBLE_KEYWORDS
    personal_sources: tuple[str, ...] = DEFAULT_PERSONAL_SOURCES
    excluded_sources: tuple[str, ...] = DEFAULT_EXCLUDED_SOURCES
    override_keywords: tuple[str, ...] = DEFAULT_OVERRIDE_KEYWORDS
    blocked_sources: tuple[str, ...] = DEFAULT_BLOCKED_SOURCES

    @property
    def mapping_path(self) -> Path:
        """Location of the identity mapping file."""
        return self.data_dir / "google_event_map.json"

    @property
    def ignored_path(self) -> Path:
        """Location of the ignore list."""
        return self.data_dir / "ignored_events.json"

    @property
    def events_path(self) -> Path:
        """Location of the local events file."""
        return self.local_events_path or self.data_dir / "calendar_cache.json"

    @property
    def tz(self) -> ZoneInfo:
        """The configured timezone as a ``tzinfo``."""
        return ZoneInfo(self.timezone)

    @property
    def calendar_ids(self) -> dict[str, str]:
        """Configured calendar IDs keyed by routing target name."""
        return {
            "family": self.calendar_family,
            "person_a": self.calendar_person_a,
            "person_b": self.calendar_person_b,
        }

    def __repr__(self) -> str:
        return (
            f"Settings(credentials_path='***', "
            f"calendar_family={self.calendar_family!r}, "
            f"calendar_person_a={self.calendar_person_a!r}, "
            f"calendar_person_b={self.calendar_person_b!r}, "
            f"data_dir={str(self.data_dir)!r}, "
            f"timezone={self.timezone!r}, "
            f"log_level={self.log_level!r}, "
            f"strict={self.strict!r})"
        )


def load_settings() -> Settings:
    """Load and validate settings from environment variables.

    Calls :func:`dotenv.load_dotenv` so a ``.env`` file in the project root
    is picked up automatically.

    Returns:
        A validated :class:`Settings` instance.

    Raises:
        ConfigError: If any required environment variable is missing,
            empty, or whitespace-only, or an optional value cannot be
            parsed.  The missing-variable message names **all** missing
            variables.
    """
    load_dotenv()

    required = {
        "GOOGLE_CREDENTIALS_PATH": "credentials_path",
        "CALENDAR_FAMILY": "calendar_family",
        "CALENDAR_PERSON_A": "calendar_person_a",
        "CALENDAR_PERSON_B": "calendar_person_b",
    }

    values: dict = {}
    missing: list[str] = []

    for env_var, field_name in required.items():
        raw = os.environ.get(env_var, "")
        if not raw.strip():
            missing.append(env_var)
        else:
            values[field_name] = raw.strip()

    if missing:
        names = ", ".join(missing)
        raise ConfigError(f"Missing required environment variables: {names}")

    values["credentials_path"] = Path(values["credentials_path"])
    values["data_dir"] = _resolve_data_dir(_optional("DATA_DIR"))

    token_path = _optional("GOOGLE_TOKEN_PATH")
    if token_path:
        values["token_path"] = Path(token_path)
    events_path = _optional("LOCAL_EVENTS_PATH")
    if events_path:
        values["local_events_path"] = Path(events_path)

    # Optional settings with defaults handled by the dataclass.
    for env_var, field_name in (
        ("PERSON_A_NAME", "person_a_name"),
        ("PERSON_B_NAME", "person_b_name"),
        ("TIMEZONE", "timezone"),
        ("LOG_LEVEL", "log_level"),
    ):
        raw = _optional(env_var)
        if raw:
            values[field_name] = raw

    for env_var, field_name in (
        ("HOUSEHOLD_CHILDREN", "children"),
        ("ELIGIBLE_KEYWORDS", "eligible_keywords"),
        ("PERSONAL_SOURCES", "personal_sources"),
        ("EXCLUDED_SOURCES", "excluded_sources"),
        ("OVERRIDE_KEYWORDS", "override_keywords"),
        ("BLOCKED_SOURCES", "blocked_sources"),
    ):
        raw = os.environ.get(env_var)
        if raw is not None:
            values[field_name] = _parse_list(raw)

    rate_limit = _optional("SYNC_RATE_LIMIT")
    if rate_limit:
        values["rate_limit"] = _parse_number(
            "SYNC_RATE_LIMIT", rate_limit, float, minimum=0.01
        )
    for env_var, field_name, minimum in (
        ("SYNC_MAX_RETRIES", "max_retries", 0),
        ("SYNC_WINDOW_PAST_MONTHS", "window_past_months", 0),
        ("SYNC_WINDOW_FUTURE_MONTHS", "window_future_months", 1),
    ):
        raw = _optional(env_var)
        if raw:
            values[field_name] = _parse_number(env_var, raw, int, minimum=minimum)

    log_level = values.get("log_level")
    if log_level:
        if log_level.upper() not in _LOG_LEVELS:
            choices = ", ".join(_LOG_LEVELS)
            raise ConfigError(f"LOG_LEVEL must be one of {choices}, got {log_level!r}")
        values["log_level"] = log_level.upper()

    timezone = values.get("timezone")
    if timezone:
        try:
            ZoneInfo(timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise ConfigError(f"TIMEZONE is not a known IANA timezone: {timezone!r}") from None

    strict = _optional("SYNC_STRICT")
    if strict:
        values["strict"] = _parse_bool("SYNC_STRICT", strict)

    return Settings(**values)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _optional(env_var: str) -> str:
    return os.environ.get(env_var, "").strip()


def _resolve_data_dir(override: str) -> Path:
    """Pick the data directory: explicit override, mounted volume, local default."""
    if override:
        return Path(override)
    if _DURABLE_DATA_DIR.is_dir():
        return _DURABLE_DATA_DIR
    return _LOCAL_DATA_DIR


def _parse_list(raw: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _parse_number(env_var: str, raw: str, kind: type, minimum: float) -> float | int:
    try:
        value = kind(raw)
    except ValueError:
        raise ConfigError(f"{env_var} must be a number, got {raw!r}") from None
    if value < minimum:
        raise ConfigError(f"{env_var} must be at least {minimum}, got {raw!r}")
    return value


def _parse_bool(env_var: str, raw: str) -> bool:
    lowered = raw.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigError(f"{env_var} must be a boolean, got {raw!r}")
