"""Observability: metrics collection and run summary logging."""

import time
from contextlib import contextmanager
from typing import Any

import structlog

logger = structlog.get_logger().bind(source="observability")


class Metrics:
    """Simple dict-based metrics collector for counters and timers.

    Counters track bot activity within one process (mentions seen, replies
    posted, tool failures). Durable totals live in the cache store stats hash.
    """

    def __init__(self):
        self._counters: dict[str, int] = {}
        self._timers: dict[str, list[float]] = {}

    def counter(self, name: str, value: int = 1):
        """Increment a counter by the given value."""
        self._counters[name] = self._counters.get(name, 0) + value

    def get(self, name: str) -> int:
        return self._counters.get(name, 0)

    @contextmanager
    def timer(self, name: str):
        """Context manager to time an operation and store duration."""
        start = time.monotonic()
        try:
            yield
        finally:
            self._timers.setdefault(name, []).append(time.monotonic() - start)

    def summary(self) -> dict[str, Any]:
        """Return a summary of all collected metrics."""
        timer_summary = {}
        for name, durations in self._timers.items():
            if durations:
                timer_summary[name] = {
                    "count": len(durations),
                    "total": round(sum(durations), 3),
                    "avg": round(sum(durations) / len(durations), 3),
                    "max": round(max(durations), 3),
                }
            else:
                timer_summary[name] = {"count": 0}

        return {
            "counters": dict(self._counters),
            "timers": timer_summary,
        }

    def reset(self):
        """Clear all metrics."""
        self._counters.clear()
        self._timers.clear()


# Module-level singleton
metrics = Metrics()


def log_run_summary():
    """Log the current metrics summary via structlog."""
    summary = metrics.summary()
    logger.info("run_summary", **summary)
