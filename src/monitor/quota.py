"""Hourly action quota, counted in process and mirrored to the cache store."""

from datetime import datetime, timezone
from typing import Callable, Optional

import structlog

from cache import CacheStore

logger = structlog.get_logger().bind(source="quota")

# Buckets outlive their hour slightly so late reads still see the count.
BUCKET_TTL = 2 * 3600


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class HourlyQuota:
    """Counts actions per wall-clock hour (UTC).

    The count for the current bucket is kept in memory; the cache copy only
    lets a restarted process see actions taken earlier in the same hour.
    Usage is the larger of the two, so a failing cache never frees capacity.
    Old buckets are never read again, so the count resets implicitly when
    the hour rolls over.
    """

    def __init__(
        self,
        cache: CacheStore,
        max_per_hour: int,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.cache = cache
        self.max_per_hour = max_per_hour
        self._clock = clock or utc_now
        self._bucket: Optional[str] = None
        self._count = 0

    def bucket(self) -> str:
        return self._clock().strftime("%Y%m%d%H")

    def _local_count(self, bucket: str) -> int:
        if bucket != self._bucket:
            self._bucket = bucket
            self._count = 0
        return self._count

    async def used(self) -> int:
        bucket = self.bucket()
        local = self._local_count(bucket)
        value = await self.cache.get(f"hourly:{bucket}")
        try:
            cached = int(value) if value is not None else 0
        except (TypeError, ValueError):
            cached = 0
        return max(local, cached)

    async def remaining(self) -> int:
        return max(0, self.max_per_hour - await self.used())

    async def has_capacity(self) -> bool:
        return await self.remaining() > 0

    async def record(self) -> int:
        bucket = self.bucket()
        self._count = self._local_count(bucket) + 1
        cached = await self.cache.increment_counter(f"hourly:{bucket}", ttl=BUCKET_TTL)
        if cached < self._count:
            logger.debug("quota_snapshot_behind", bucket=bucket, local=self._count, cached=cached)
        self._count = max(self._count, cached)
        return self._count
