"""Fixed-window request limiter, keyed by client address."""
from __future__ import annotations

import math
from datetime import datetime, timedelta

from ..domain.clock import Clock, utc_now
from ..errors import RateLimitedError
from ..logging_conf import get_logger

__all__ = ["FixedWindowLimiter"]

logger = get_logger("service.ratelimit")


class FixedWindowLimiter:
    """Allow ``limit`` hits per key in each ``window`` that starts at the key's first hit.

    A ``limit`` of 0 disables the check. Windows that have ended are dropped on
    the next hit, so the table only holds keys seen within the last window.
    """

    def __init__(self, limit: int, window: timedelta, *, clock: Clock = utc_now) -> None:
        self.limit = limit
        self.window = window
        self._clock = clock
        self._windows: dict[str, tuple[datetime, int]] = {}

    def hit(self, key: str) -> None:
        """Count one request for ``key``; raise RateLimitedError past the limit."""
        if self.limit <= 0:
            return
        now = self._clock()
        self._prune(now)

        started, count = self._windows.get(key, (now, 0))
        if count >= self.limit:
            retry_after = math.ceil((started + self.window - now).total_seconds())
            logger.warning(
                "ratelimit.rejected",
                extra={"event": "ratelimit_rejected", "client": key, "retry_after": retry_after},
            )
            raise RateLimitedError(
                "Too many order requests; please try again in "
                f"{math.ceil(self.window.total_seconds() / 60)} minutes",
                retry_after=max(retry_after, 1),
            )
        self._windows[key] = (started, count + 1)

    def _prune(self, now: datetime) -> None:
        expired = [k for k, (started, _) in self._windows.items() if now >= started + self.window]
        for k in expired:
            del self._windows[k]
