"""
Per-key cool-down gate.

A fixed window measured from the last accepted call. Rejected calls never
touch the record, so spamming cannot keep the gate closed or push the
window forward. There is no burst allowance.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Hashable, Optional

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RateLimiter:
    """Accepts at most one call per key per window."""

    def __init__(
        self,
        window_sec: float,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if window_sec <= 0:
            raise ValueError(f"window_sec must be > 0, got {window_sec}")
        self.window_sec = window_sec
        self._clock = clock or _utc_now
        self._last_accepted: dict[Hashable, datetime] = {}
        self._lock = threading.Lock()

    def allow(self, key: Hashable) -> bool:
        now = self._clock()
        with self._lock:
            last = self._last_accepted.get(key)
            if last is None or (now - last).total_seconds() > self.window_sec:
                self._last_accepted[key] = now
                return True
        logger.debug("Rate limited: %s", key)
        return False

    def reset(self) -> None:
        with self._lock:
            self._last_accepted.clear()
