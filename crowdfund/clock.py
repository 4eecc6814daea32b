"""
Time sources for the campaign ledger. Timestamps are whole seconds since epoch.
"""

import threading
import time


class SystemClock:
    """Wall-clock time"""

    def now(self) -> int:
        return int(time.time())


class ManualClock:
    """Clock that only moves when told to; used by tests and simulations"""

    def __init__(self, start: int = 1_700_000_000):
        self._now = start
        self._lock = threading.Lock()

    def now(self) -> int:
        with self._lock:
            return self._now

    def set(self, timestamp: int) -> None:
        with self._lock:
            self._now = timestamp

    def advance(self, seconds: int) -> int:
        with self._lock:
            self._now += seconds
            return self._now
