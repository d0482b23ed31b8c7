"""Custom exceptions and retry logic for Google Calendar API operations.

Defines a hierarchy of calendar-specific exceptions and a ``@with_retry``
decorator that handles transient failures (rate limits, server errors,
expired tokens, network errors) with exponential backoff.

Exception hierarchy::

    CalendarAPIError            (base for all Calendar API errors)
    +-- CalendarAuthError       (authentication / 401 failures)
    +-- CalendarForbiddenError  (403 without a quota reason)
    +-- CalendarNotFoundError   (404 / 410 on get or delete)
    +-- CalendarRateLimitError  (429, or 403 with a rate-limit reason)
    +-- CalendarServerError     (5xx)
"""

from __future__ import annotations

import functools
import logging
import time
from collections.abc import Callable
from typing import Any, TypeVar

from googleapiclient.errors import HttpError

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

# ---------------------------------------------------------------------------
# Exception classes
# ---------------------------------------------------------------------------


class CalendarAPIError(Exception):
    """Base exception for Google Calendar API errors.

    Attributes:
        status_code: HTTP status code from the API, or ``None`` if the
            error did not originate from an HTTP response.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CalendarAuthError(CalendarAPIError):
    """Raised when Calendar API authentication fails.

    Covers HTTP 401 responses, token refresh failures and missing
    credential files.  Always fatal for a workflow run.
    """

    def __init__(self, message: str = "Calendar authentication failed") -> None:
        super().__init__(message, status_code=401)


class CalendarForbiddenError(CalendarAPIError):
    """Raised on HTTP 403 when the account lacks access to a calendar or event."""

    def __init__(self, message: str = "Calendar access forbidden") -> None:
        super().__init__(message, status_code=403)


class CalendarNotFoundError(CalendarAPIError):
    """Raised when a Calendar resource is not found (HTTP 404 or 410).

    On delete this means the goal state is already reached; callers treat
    it as success.
    """

    def __init__(self, message: str = "Calendar resource not found", status_code: int = 404) -> None:
        super().__init__(message, status_code=status_code)


class CalendarRateLimitError(CalendarAPIError):
    """Raised when the Calendar API rejects a call for quota reasons."""

    def __init__(self, message: str = "Calendar API rate limit exceeded", status_code: int = 429) -> None:
        super().__init__(message, status_code=status_code)


class CalendarServerError(CalendarAPIError):
    """Raised on HTTP 5xx responses."""


# ---------------------------------------------------------------------------
# Retry decorator
# ---------------------------------------------------------------------------

_DEFAULT_MAX_RETRIES = 3
_DEFAULT_BASE_DELAY = 1.0  # seconds
_AUTH_RETRY_LIMIT = 1  # 401 gets one retry after token refresh

# Google reports per-user quota exhaustion as 403 with one of these reasons.
_RATE_LIMIT_REASONS = (b"ratelimitexceeded", b"userratelimitexceeded", b"quotaexceeded")

_RETRYABLE = (CalendarRateLimitError, CalendarServerError)


def _classify_http_error(error: HttpError) -> CalendarAPIError:
    """Map an ``HttpError`` to the appropriate calendar exception.

    Args:
        error: The ``googleapiclient.errors.HttpError`` to classify.

    Returns:
        A :class:`CalendarAPIError` subclass matching the HTTP status code.
    """
    status = int(error.resp.status)

    if status in (404, 410):
        return CalendarNotFoundError(str(error), status_code=status)
    if status == 429:
        return CalendarRateLimitError(str(error))
    if status == 403:
        content = (error.content or b"").lower()
        if any(reason in content for reason in _RATE_LIMIT_REASONS):
            return CalendarRateLimitError(str(error), status_code=403)
        return CalendarForbiddenError(str(error))
    if status == 401:
        return CalendarAuthError(str(error))
    if status >= 500:
        return CalendarServerError(str(error), status_code=status)
    return CalendarAPIError(str(error), status_code=status)


def with_retry(
    max_retries: int | None = None,
    base_delay: float = _DEFAULT_BASE_DELAY,
) -> Callable[[F], F]:
    """Decorator that retries Calendar API calls on transient failures.

    Retry policy:
    - **HTTP 429 / quota 403 / 5xx**: exponential backoff, up to
      *max_retries*.
    - **HTTP 401** (auth expired): refresh credentials via
      ``self._refresh_credentials()`` (if available), retry once.
    - **Network errors** (``OSError``, ``TimeoutError``): exponential
      backoff, up to *max_retries*.
    - **HTTP 404 / 410**: raise :class:`CalendarNotFoundError` immediately.
    - Other HTTP errors: raise the classified error immediately.

    The decorated function must be a method on an object.  When
    *max_retries* is ``None`` the instance's ``max_retries`` attribute is
    used (falling back to 3), so each client can be configured separately.

    Args:
        max_retries: Maximum number of retry attempts for transient errors.
        base_delay: Initial backoff delay in seconds.  Doubled on each
            subsequent retry.  Defaults to 1.0.

    Returns:
        A decorator that wraps the target function with retry logic.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            instance = args[0] if args else None
            retries = max_retries
            if retries is None:
                retries = getattr(instance, "max_retries", _DEFAULT_MAX_RETRIES)
            auth_retries = 0
            attempt = 0

            while True:
                try:
                    return func(*args, **kwargs)

                except HttpError as exc:
                    cal_error = _classify_http_error(exc)

                    if isinstance(cal_error, CalendarNotFoundError):
                        logger.debug("Resource not found (%s): %s", cal_error.status_code, exc)
                        raise cal_error from exc

                    if isinstance(cal_error, _RETRYABLE):
                        if attempt >= retries:
                            logger.error(
                                "Calendar API error (HTTP %s) after %d retries: %s",
                                cal_error.status_code,
                                retries,
                                exc,
                            )
                            raise cal_error from exc
                        delay = base_delay * (2**attempt)
                        attempt += 1
                        logger.warning(
                            "Transient API error (HTTP %s), retrying in %.1fs (attempt %d/%d)",
                            cal_error.status_code,
                            delay,
                            attempt,
                            retries,
                        )
                        time.sleep(delay)
                        continue

                    if isinstance(cal_error, CalendarAuthError):
                        if auth_retries >= _AUTH_RETRY_LIMIT:
                            logger.error("Auth failed after token refresh: %s", exc)
                            raise cal_error from exc
                        auth_retries += 1
                        logger.warning("Auth expired (401), attempting token refresh")
                        refresh = getattr(instance, "_refresh_credentials", None)
                        if callable(refresh):
                            try:
                                refresh()
                            except Exception as refresh_exc:
                                logger.error("Token refresh failed: %s", refresh_exc)
                                raise CalendarAuthError(
                                    f"Token refresh failed: {refresh_exc}"
                                ) from refresh_exc
                        else:
                            logger.warning("No _refresh_credentials method available")
                        continue

                    logger.error("Calendar API error (HTTP %s): %s", cal_error.status_code, exc)
                    raise cal_error from exc

                except (OSError, TimeoutError) as exc:
                    if attempt >= retries:
                        logger.error("Network error after %d retries: %s", retries, exc)
                        raise CalendarAPIError(
                            f"Network error after {retries} retries: {exc}"
                        ) from exc
                    delay = base_delay * (2**attempt)
                    attempt += 1
                    logger.warning(
                        "Network error, retrying in %.1fs (attempt %d/%d): %s",
                        delay,
                        attempt,
                        retries,
                        exc,
                    )
                    time.sleep(delay)

        return wrapper  # type: ignore[return-value]

    return decorator
