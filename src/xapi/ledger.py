"""Per-endpoint rate-limit ledger fed by x-rate-limit-* response headers."""

import time
from typing import Mapping, Optional

import structlog

from .models import RateLimitInfo

logger = structlog.get_logger().bind(source="xapi.ledger")

# X resets most user-context windows every 15 minutes
DEFAULT_RESET_SECONDS = 15 * 60


class RateLimitLedger:
    """Tracks remaining budget and reset time for each endpoint.

    Entries are overwritten by the most recent response for the endpoint.
    """

    def __init__(self):
        self._entries: dict[str, RateLimitInfo] = {}

    def update_from_headers(self, endpoint: str, headers: Mapping[str, str]) -> Optional[RateLimitInfo]:
        """Record the budget reported by a response, if it carries one."""
        limit = headers.get("x-rate-limit-limit")
        remaining = headers.get("x-rate-limit-remaining")
        reset = headers.get("x-rate-limit-reset")
        if limit is None or remaining is None or reset is None:
            return None
        try:
            info = RateLimitInfo(limit=int(limit), remaining=int(remaining), reset_at=float(reset))
        except ValueError:
            logger.warning("bad_rate_limit_headers", endpoint=endpoint, limit=limit, remaining=remaining)
            return None
        self._entries[endpoint] = info
        return info

    def mark_exhausted(self, endpoint: str, reset_at: Optional[float] = None) -> float:
        """Block an endpoint until `reset_at` (default: 15 minutes from now)."""
        if reset_at is None or reset_at <= time.time():
            reset_at = time.time() + DEFAULT_RESET_SECONDS
        previous = self._entries.get(endpoint)
        self._entries[endpoint] = RateLimitInfo(
            limit=previous.limit if previous else 0,
            remaining=0,
            reset_at=reset_at,
        )
        return reset_at

    def blocked_until(self, endpoint: str) -> Optional[float]:
        """Reset time if the endpoint has no budget left, else None."""
        info = self._entries.get(endpoint)
        if info is None or info.remaining > 0:
            return None
        if info.reset_at <= time.time():
            return None
        return info.reset_at

    def get(self, endpoint: str) -> Optional[RateLimitInfo]:
        return self._entries.get(endpoint)

    def seconds_until_reset(self, endpoint: str) -> float:
        info = self._entries.get(endpoint)
        if info is None:
            return 0.0
        return max(0.0, info.reset_at - time.time())

    def snapshot(self) -> dict[str, dict]:
        """Plain-dict view for status output."""
        return {
            endpoint: {
                "limit": info.limit,
                "remaining": info.remaining,
                "reset_at": info.reset_at,
                "blocked": self.blocked_until(endpoint) is not None,
            }
            for endpoint, info in sorted(self._entries.items())
        }
