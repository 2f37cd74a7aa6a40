"""Redis-backed cache store with an in-process fallback.

Every public operation is safe to call whether or not Redis is reachable and
never raises: failures are logged and answered with an empty value.
"""

import asyncio
import json
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import redis.asyncio as aioredis
import structlog

from .memory import MemoryBackend

logger = structlog.get_logger().bind(source="cache")

# Time-to-live per category, seconds
TTL_MENTION = 86400
TTL_TWEET = 3600
TTL_USER = 7200
TTL_INTERACTION = 604800

MAX_RECENT = 1000
MAX_PROCESSED_IDS = 1000

STAT_FIELDS = ("mentions_processed", "responses_generated", "errors")


@dataclass
class BotState:
    """Persisted monitor cursor and dedup snapshot."""

    last_mention_id: Optional[str] = None
    last_seen_ids: dict[str, str] = field(default_factory=dict)  # account -> newest handled id
    processed_ids: list[str] = field(default_factory=list)  # oldest first
    rate_limit_reset: Optional[float] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["processed_ids"] = self.processed_ids[-MAX_PROCESSED_IDS:]
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "BotState":
        return cls(
            last_mention_id=data.get("last_mention_id"),
            last_seen_ids=dict(data.get("last_seen_ids") or {}),
            processed_ids=list(data.get("processed_ids") or [])[-MAX_PROCESSED_IDS:],
            rate_limit_reset=data.get("rate_limit_reset"),
        )


class CacheStore:
    """Namespaced cache over Redis, degrading to process memory.

    `connect()` tries Redis once (with one quick retry). If that fails, or no
    URL is configured, the in-process backend is used for the rest of the
    process lifetime; this is logged once and never retried.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        namespace: str = "throp",
        connect_timeout: float = 2.0,
        redis_factory: Optional[Callable[..., Any]] = None,
    ):
        self.url = url
        self.namespace = namespace
        self.connect_timeout = connect_timeout
        self._redis_factory = redis_factory or aioredis.from_url
        self._redis = None
        self._memory = MemoryBackend()
        self._connect_attempted = False

    @property
    def connected(self) -> bool:
        return self._redis is not None

    @property
    def backend(self) -> str:
        return "redis" if self.connected else "memory"

    async def connect(self) -> bool:
        """Attempt the Redis connection. Returns True when Redis is in use."""
        if self._connect_attempted:
            return self.connected
        self._connect_attempted = True

        if not self.url:
            logger.info("cache_fallback", reason="no redis url configured")
            return False

        last_error: Optional[Exception] = None
        for attempt in range(2):
            client = None
            try:
                client = self._redis_factory(
                    self.url,
                    socket_connect_timeout=self.connect_timeout,
                    socket_timeout=self.connect_timeout,
                    decode_responses=True,
                )
                await asyncio.wait_for(client.ping(), timeout=self.connect_timeout)
                self._redis = client
                logger.info("cache_connected", backend="redis", namespace=self.namespace)
                return True
            except Exception as e:
                last_error = e
                if client is not None:
                    await self._close_quietly(client)
                if attempt == 0:
                    await asyncio.sleep(0.1)

        logger.warning("cache_fallback", reason=str(last_error) or type(last_error).__name__)
        return False

    async def close(self) -> None:
        if self._redis is not None:
            await self._close_quietly(self._redis)
            self._redis = None

    @staticmethod
    async def _close_quietly(client) -> None:
        try:
            await client.aclose()
        except Exception as e:
            logger.debug("cache_close_failed", error=str(e))

    def _k(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def _log_error(self, op: str, key: str, error: Exception) -> None:
        logger.error("cache_error", op=op, key=key, error=str(error))

    @staticmethod
    def _encode(value: Any) -> str:
        return json.dumps(value, default=str)

    @staticmethod
    def _decode(raw: Any) -> Any:
        if raw is None:
            return None
        if isinstance(raw, (int, float)):
            return raw
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            return raw

    # --- primitives ---

    async def get(self, key: str) -> Any:
        """Stored value, or None when missing or expired."""
        if self._redis is None:
            return self._decode(self._memory.get(self._k(key)))
        try:
            raw = await self._redis.get(self._k(key))
        except Exception as e:
            self._log_error("get", key, e)
            return None
        return self._decode(raw)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        raw = self._encode(value)
        if self._redis is None:
            self._memory.set(self._k(key), raw, ttl)
            return
        try:
            await self._redis.set(self._k(key), raw, ex=ttl)
        except Exception as e:
            self._log_error("set", key, e)

    async def delete(self, key: str) -> None:
        if self._redis is None:
            self._memory.delete(self._k(key))
            return
        try:
            await self._redis.delete(self._k(key))
        except Exception as e:
            self._log_error("delete", key, e)

    async def increment_counter(self, name: str, amount: int = 1, ttl: Optional[int] = None) -> int:
        """Increment and return a counter. Returns 0 if the backend fails."""
        if self._redis is None:
            return self._memory.incr(self._k(name), amount, ttl)
        try:
            value = await self._redis.incrby(self._k(name), amount)
            if ttl:
                await self._redis.expire(self._k(name), ttl)
            return int(value)
        except Exception as e:
            self._log_error("increment_counter", name, e)
            return 0

    async def add_recent(
        self, key: str, value: Any, score: Optional[float] = None, max_entries: int = MAX_RECENT
    ) -> None:
        """Append to a score-ordered list, keeping the highest `max_entries` scores."""
        member = self._encode(value)
        score = time.time() if score is None else score
        if self._redis is None:
            self._memory.zadd(self._k(key), member, score, max_entries)
            return
        try:
            await self._redis.zadd(self._k(key), {member: score})
            await self._redis.zremrangebyrank(self._k(key), 0, -(max_entries + 1))
        except Exception as e:
            self._log_error("add_recent", key, e)

    async def recent_by_score(self, key: str, limit: int = 10) -> list:
        """Newest-first entries of a score-ordered list."""
        if limit <= 0:
            return []
        if self._redis is None:
            members = self._memory.zrevrange(self._k(key), limit)
        else:
            try:
                members = await self._redis.zrevrange(self._k(key), 0, limit - 1)
            except Exception as e:
                self._log_error("recent_by_score", key, e)
                return []
        return [self._decode(m) for m in members]

    async def clear_namespace(self) -> int:
        """Delete every key under this store's namespace. Returns count deleted."""
        prefix = f"{self.namespace}:"
        if self._redis is None:
            count = self._memory.clear_prefix(prefix)
        else:
            count = 0
            try:
                async for key in self._redis.scan_iter(match=f"{prefix}*"):
                    await self._redis.delete(key)
                    count += 1
            except Exception as e:
                self._log_error("clear_namespace", prefix, e)
        logger.info("cache_cleared", namespace=self.namespace, keys=count)
        return count

    # --- bot state ---

    async def get_state(self) -> BotState:
        data = await self.get("state:bot")
        if not isinstance(data, dict):
            return BotState()
        return BotState.from_dict(data)

    async def save_state(self, state: BotState) -> None:
        await self.set("state:bot", state.to_dict())

    async def is_processed(self, item_id: str) -> bool:
        return await self.get(f"mention:processed:{item_id}") is not None

    async def mark_processed(self, item_id: str, ttl: int = TTL_INTERACTION) -> None:
        await self.set(f"mention:processed:{item_id}", True, ttl=ttl)

    async def cache_mention(self, mention_id: str, data: dict) -> None:
        await self.set(f"mention:{mention_id}", data, ttl=TTL_MENTION)

    async def cache_user(self, username: str, data: dict) -> None:
        await self.set(f"user:{username.lower()}", data, ttl=TTL_USER)

    async def get_cached_user(self, username: str) -> Optional[dict]:
        return await self.get(f"user:{username.lower()}")

    # --- stats & interactions ---

    async def increment_stat(self, name: str, amount: int = 1) -> int:
        return await self.increment_counter(f"stats:{name}", amount)

    async def set_last_run(self) -> None:
        await self.set("stats:last_run", datetime.now(timezone.utc).isoformat())

    async def get_stats(self) -> dict:
        stats: dict[str, Any] = {}
        for name in STAT_FIELDS:
            value = await self.get(f"stats:{name}")
            stats[name] = int(value) if value is not None else 0
        stats["last_run"] = await self.get("stats:last_run")
        return stats

    async def cache_interaction(self, question: str, response: str, source: str = "web") -> None:
        """Record a question/answer pair in the recent-interactions list."""
        await self.add_recent(
            "interactions",
            {
                "question": question,
                "response": response,
                "source": source,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )

    async def get_recent_interactions(self, limit: int = 10) -> list[dict]:
        return await self.recent_by_score("interactions", limit)
