"""Token-bucket rate limiter for remote mutations.

Google Calendar enforces an undocumented burst quota on writes.  Every
create and delete goes through one shared :class:`RateLimiter` so that all
workflows respect the same pace, instead of sleeping inline after each call.

With the default ``burst=1`` the limiter degenerates to a fixed interval of
``1 / calls_per_second`` between consecutive mutations.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)


class RateLimiter:
    """Blocking token bucket.

    Args:
        calls_per_second: Sustained rate.  Must be positive.
        burst: Bucket capacity (calls allowed back-to-back after idling).
        clock: Monotonic clock, injectable for tests.
        sleep: Sleep function, injectable for tests.
    """

    def __init__(
        self,
        calls_per_second: float,
        burst: int = 1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if calls_per_second <= 0:
            raise ValueError(f"calls_per_second must be positive, got {calls_per_second!r}")
        if burst < 1:
            raise ValueError(f"burst must be at least 1, got {burst!r}")
        self._rate = float(calls_per_second)
        self._capacity = float(burst)
        self._tokens = float(burst)
        self._clock = clock
        self._sleep = sleep
        self._last = clock()
        self.total_wait = 0.0

    @property
    def interval(self) -> float:
        """Seconds between calls at the sustained rate."""
        return 1.0 / self._rate

    def acquire(self) -> float:
        """Take one token, sleeping until one is available.

        Returns:
            The number of seconds spent waiting.
        """
        self._refill()
        waited = 0.0
        if self._tokens < 1.0:
            waited = (1.0 - self._tokens) / self._rate
            logger.debug("Rate limit: waiting %.3fs", waited)
            self._sleep(waited)
            self.total_wait += waited
            self._refill()
            # The sleep may return a hair early; never go negative.
            self._tokens = max(self._tokens, 1.0)
        self._tokens -= 1.0
        return waited

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last)
        self._last = now
        self._tokens = min(self._capacity, self._tokens + elapsed * self._rate)
