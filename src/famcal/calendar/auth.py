"""Authentication for the Google Calendar API.

Two kinds of credential file are supported at ``GOOGLE_CREDENTIALS_PATH``:

- **Service account key** (``"type": "service_account"``) -- the normal case
  for an unattended sync; the three calendars are shared with the service
  account's email address.
- **OAuth client secrets** (``"installed"`` or ``"web"``) -- the Desktop
  application flow from ``google-auth-oauthlib``, with the user token cached
  at ``GOOGLE_TOKEN_PATH`` and refreshed or re-obtained when it expires.

Usage::

    from famcal.calendar.auth import get_calendar_credentials

    creds = get_calendar_credentials(
        credentials_path=Path("credentials/google-service-account.json"),
        token_path=Path("data/token.json"),
    )
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from google.auth.credentials import Credentials as BaseCredentials
from google.auth.transport.requests import Request
from google.oauth2 import service_account
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from famcal.calendar.exceptions import CalendarAuthError

logger = logging.getLogger(__name__)

SCOPES: list[str] = ["https://www.googleapis.com/auth/calendar"]
"""OAuth 2.0 scopes required for listing, creating and deleting events."""


def get_calendar_credentials(
    credentials_path: Path | str,
    token_path: Path | str | None = None,
) -> BaseCredentials:
    """Obtain valid Google Calendar credentials.

    A service account key is loaded directly.  For OAuth client secrets the
    strategy is:

    1. **Cached token** -- load ``token_path`` and return if still valid.
    2. **Refresh** -- if the cached token is expired but has a refresh token,
       attempt to refresh it.  On success, save the updated token and return.
    3. **Browser flow** -- if no cached token exists, or refresh fails,
       launch the ``InstalledAppFlow`` local-server OAuth flow.

    Args:
        credentials_path: Service account key or OAuth client secrets file.
        token_path: Where the OAuth user token is cached.  Defaults to
            ``token.json`` next to *credentials_path*.

    Returns:
        Credentials with the ``calendar`` scope.

    Raises:
        CalendarAuthError: If ``credentials_path`` does not exist or cannot be
            parsed, or if all authentication strategies fail.
    """
    credentials_path = Path(credentials_path)
    if not credentials_path.exists():
        msg = f"Google credentials file not found: {credentials_path}"
        logger.error(msg)
        raise CalendarAuthError(msg)

    if _is_service_account(credentials_path):
        return _load_service_account(credentials_path)

    token_path = Path(token_path) if token_path else credentials_path.with_name("token.json")

    # Step 1: Try loading a cached token.
    creds = _load_cached_token(token_path)

    if creds is not None and creds.valid:
        logger.info("Loaded valid cached token from %s", token_path)
        return creds

    # Step 2: Try refreshing an expired token.
    if creds is not None and creds.expired and creds.refresh_token:
        logger.info("Cached token expired, attempting refresh")
        refreshed = _refresh_token(creds)
        if refreshed is not None:
            _save_token(refreshed, token_path)
            return refreshed
        logger.warning("Token refresh failed, falling back to browser flow")

    # Step 3: Run the full browser-based OAuth flow.
    logger.info("Starting browser-based OAuth flow")
    creds = _run_browser_flow(credentials_path)
    _save_token(creds, token_path)
    return creds


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _is_service_account(credentials_path: Path) -> bool:
    """Whether *credentials_path* holds a service account key."""
    try:
        info = json.loads(credentials_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise CalendarAuthError(f"Unreadable credentials file {credentials_path}: {exc}") from exc
    return isinstance(info, dict) and info.get("type") == "service_account"


def _load_service_account(credentials_path: Path) -> BaseCredentials:
    try:
        creds = service_account.Credentials.from_service_account_file(
            str(credentials_path), scopes=SCOPES
        )
    except (ValueError, KeyError) as exc:
        raise CalendarAuthError(f"Invalid service account key {credentials_path}: {exc}") from exc
    logger.info("Loaded service account credentials from %s", credentials_path)
    return creds


def _load_cached_token(token_path: Path) -> Credentials | None:
    """Load credentials from a cached token file.

    Returns:
        A :class:`Credentials` instance, or ``None`` if the file does not
        exist or cannot be parsed.
    """
    if not token_path.exists():
        logger.info("No cached token found at %s", token_path)
        return None

    try:
        return Credentials.from_authorized_user_file(str(token_path), SCOPES)
    except (json.JSONDecodeError, ValueError, KeyError) as exc:
        logger.warning("Failed to parse cached token at %s: %s", token_path, exc)
        return None


def _refresh_token(creds: Credentials) -> Credentials | None:
    """Attempt to refresh expired credentials; ``None`` on failure."""
    try:
        creds.refresh(Request())
        logger.info("Token refresh succeeded")
        return creds
    except Exception as exc:
        logger.warning("Token refresh failed: %s", exc)
        return None


def _run_browser_flow(credentials_path: Path) -> Credentials:
    """Launch the InstalledAppFlow to authenticate via browser."""
    try:
        flow = InstalledAppFlow.from_client_secrets_file(str(credentials_path), scopes=SCOPES)
    except ValueError as exc:
        raise CalendarAuthError(f"Invalid OAuth client secrets {credentials_path}: {exc}") from exc
    creds = flow.run_local_server(port=0)
    logger.info("Browser OAuth flow completed successfully")
    return creds


def _save_token(creds: Credentials, token_path: Path) -> None:
    """Persist credentials to a token file, creating parent directories."""
    token_path.parent.mkdir(parents=True, exist_ok=True)
    token_path.write_text(creds.to_json())
    logger.info("Token saved to %s", token_path)
