# Overview: Fixed-window admission limiter keyed by client IP.

"""
Rate Limiting Service

WHY: Stop burst submissions from a single client before any heavier check
runs. This is the first gate of order intake.

SEMANTICS (fixed window, not sliding):
- First request from an IP opens a window of WINDOW seconds with count=1
- Each further request inside the window increments the count
- Once count exceeds MAX_REQUESTS the request is denied
- The first request after the window ends resets count to 1 and opens a new window

KNOWN IMPRECISION:
A client can send MAX_REQUESTS at the end of one window and MAX_REQUESTS at
the start of the next, so up to 2 * MAX_REQUESTS may pass across a window
boundary. This is accepted behaviour of a fixed window.

MEMORY:
Records whose window has ended are swept at most once per window, so the
map only holds IPs seen during roughly the last two windows.

SCOPE:
State is in-process memory. A restart clears all counters and several
processes do not share counts. A shared backend can replace this class
behind the same allow(ip) contract.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from .concurrency import KeyedLocks


DEFAULT_WINDOW_SECONDS = 60
DEFAULT_MAX_REQUESTS = 10


@dataclass
class RateLimitRecord:
    key: str
    count: int
    window_reset_at: float


class RateLimiter:
    """In-memory fixed-window counter, one record per IP."""

    def __init__(
        self,
        *,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self._clock = clock
        self._records: dict[str, RateLimitRecord] = {}
        self._records_guard = threading.Lock()
        self._locks = KeyedLocks()
        self._next_sweep_at = clock() + window_seconds

    def allow(self, ip: str) -> bool:
        """Count one request from `ip`; False once the window's budget is spent."""
        with self._locks.hold(ip):
            now = self._clock()
            with self._records_guard:
                if now >= self._next_sweep_at:
                    self._sweep(now)
                record = self._records.get(ip)

            if record is None or now > record.window_reset_at:
                record = RateLimitRecord(key=ip, count=1, window_reset_at=now + self.window_seconds)
                with self._records_guard:
                    self._records[ip] = record
                return True

            record.count += 1
            return record.count <= self.max_requests

    def _sweep(self, now: float) -> None:
        # Caller holds _records_guard; runs at most once per window
        expired = [key for key, record in self._records.items() if now > record.window_reset_at]
        for key in expired:
            del self._records[key]
        self._next_sweep_at = now + self.window_seconds

    def retry_after(self, ip: str) -> int:
        """Whole seconds until the current window for `ip` resets (0 if none)."""
        with self._records_guard:
            record = self._records.get(ip)
        if record is None:
            return 0
        remaining = record.window_reset_at - self._clock()
        if remaining <= 0:
            return 0
        return math.ceil(remaining)

    def get_record(self, ip: str) -> RateLimitRecord | None:
        with self._records_guard:
            return self._records.get(ip)

    def reset(self, ip: str | None = None) -> None:
        """Forget one IP, or every IP when called without arguments."""
        with self._records_guard:
            if ip is None:
                self._records.clear()
            else:
                self._records.pop(ip, None)

    def tracked_count(self) -> int:
        with self._records_guard:
            return len(self._records)
