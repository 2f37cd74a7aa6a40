"""Single-slot throttle enforcing a minimum delay between API calls."""

import asyncio
import time


class Throttle:
    """Async token bucket with a bucket size of one.

    The first call goes through immediately; every later call waits until
    `min_interval` seconds have passed since the previous one. Calls are
    serialised behind a lock so concurrent callers queue up in order.
    """

    def __init__(self, min_interval: float):
        self.min_interval = max(0.0, min_interval)
        self._tokens = 1.0
        self._last_refill = time.monotonic()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        """Refill the single token based on elapsed time."""
        now = time.monotonic()
        if self.min_interval == 0:
            self._tokens = 1.0
        else:
            elapsed = now - self._last_refill
            self._tokens = min(1.0, self._tokens + elapsed / self.min_interval)
        self._last_refill = now

    async def acquire(self) -> None:
        """Wait for the slot, then take it."""
        async with self._lock:
            self._refill()
            while self._tokens < 1.0:
                await asyncio.sleep((1.0 - self._tokens) * self.min_interval)
                self._refill()
            self._tokens -= 1.0

    @property
    def seconds_until_ready(self) -> float:
        """Time the next caller would wait (for status reporting)."""
        self._refill()
        return max(0.0, (1.0 - self._tokens) * self.min_interval)
