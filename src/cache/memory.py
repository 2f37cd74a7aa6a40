"""In-process stand-in for the Redis operations the cache store uses."""

import time
from typing import Any, Optional


class MemoryBackend:
    """Dict-backed key/value, counter and scored-list storage with TTLs.

    Methods are synchronous and never await, so a read-check-write sequence
    inside one call cannot interleave with another coroutine.
    """

    def __init__(self):
        self._values: dict[str, tuple[Any, Optional[float]]] = {}
        self._scored: dict[str, list[tuple[float, str]]] = {}

    def _expired(self, key: str) -> bool:
        entry = self._values.get(key)
        if entry is None:
            return True
        _, expires_at = entry
        if expires_at is not None and expires_at <= time.monotonic():
            del self._values[key]
            return True
        return False

    def get(self, key: str) -> Optional[str]:
        if self._expired(key):
            return None
        return self._values[key][0]

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        expires_at = time.monotonic() + ttl if ttl else None
        self._values[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        self._values.pop(key, None)
        self._scored.pop(key, None)

    def incr(self, key: str, amount: int = 1, ttl: Optional[int] = None) -> int:
        if self._expired(key):
            current, expires_at = 0, (time.monotonic() + ttl if ttl else None)
        else:
            value, expires_at = self._values[key]
            current = int(value)
        current += amount
        self._values[key] = (current, expires_at)
        return current

    def zadd(self, key: str, member: str, score: float, max_entries: int) -> None:
        entries = self._scored.setdefault(key, [])
        entries.append((score, member))
        entries.sort(key=lambda e: e[0])
        if len(entries) > max_entries:
            del entries[: len(entries) - max_entries]

    def zrevrange(self, key: str, limit: int) -> list[str]:
        entries = self._scored.get(key, [])
        return [member for _, member in reversed(entries)][:limit]

    def clear_prefix(self, prefix: str) -> int:
        doomed = [k for k in self._values if k.startswith(prefix)]
        doomed_sets = [k for k in self._scored if k.startswith(prefix)]
        for k in doomed:
            del self._values[k]
        for k in doomed_sets:
            del self._scored[k]
        return len(doomed) + len(doomed_sets)
