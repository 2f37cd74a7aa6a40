"""Evidence tool base class and result types."""

import asyncio
import hashlib
import re
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Optional

import structlog

from cache import CacheStore
from observability import metrics

logger = structlog.get_logger().bind(source="evidence")

DEFAULT_TIMEOUT = 20.0
DEFAULT_CACHE_TTL = 3600


class ToolFailure(Exception):
    """Raised inside a tool; never escapes EvidenceTool.search()."""


@dataclass
class Candidate:
    """One of several equally plausible subjects for an ambiguous query."""

    name: str
    description: str = ""
    handle: Optional[str] = None


@dataclass
class PriceQuote:
    symbol: str
    price: float
    change_24h: Optional[float] = None
    volume_24h: Optional[float] = None
    liquidity: Optional[float] = None
    source_url: str = ""
    name: str = ""

    def describe(self) -> list[str]:
        """Facts stating each known figure."""
        facts = [f"{self.symbol} is trading at ${format_usd(self.price)}"]
        if self.change_24h is not None:
            facts.append(f"{self.symbol} 24h change: {self.change_24h:+.2f}%")
        if self.volume_24h is not None:
            facts.append(f"{self.symbol} 24h volume: ${compact_number(self.volume_24h)}")
        if self.liquidity is not None:
            facts.append(f"{self.symbol} liquidity: ${compact_number(self.liquidity)}")
        return facts


@dataclass
class ToolResult:
    facts: list[str] = field(default_factory=list)
    sources: list[str] = field(default_factory=list)
    candidates: list[Candidate] = field(default_factory=list)
    price: Optional[PriceQuote] = None

    @property
    def empty(self) -> bool:
        return not (self.facts or self.candidates or self.price)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ToolResult":
        price = data.get("price")
        return cls(
            facts=list(data.get("facts") or []),
            sources=list(data.get("sources") or []),
            candidates=[Candidate(**c) for c in data.get("candidates") or []],
            price=PriceQuote(**price) if price else None,
        )


def format_usd(value: float) -> str:
    if value >= 1:
        return f"{value:,.2f}"
    if value >= 0.01:
        return f"{value:.4f}"
    return f"{value:.8f}".rstrip("0").rstrip(".")


def compact_number(value: float) -> str:
    for threshold, suffix in ((1e9, "B"), (1e6, "M"), (1e3, "K")):
        if abs(value) >= threshold:
            return f"{value / threshold:.1f}{suffix}"
    return f"{value:.0f}"


def normalize_query(query: str) -> str:
    return re.sub(r"\s+", " ", query).strip().lower()


class EvidenceTool(ABC):
    """A side-effect-free fact source.

    `search()` enforces the tool's timeout, caches non-empty results for
    identical queries, and converts every failure into an empty result.
    Subclasses implement `_fetch()` and may raise freely.
    """

    name: str = "tool"
    default_timeout: float = DEFAULT_TIMEOUT

    def __init__(
        self,
        cache: Optional[CacheStore] = None,
        timeout: Optional[float] = None,
        cache_ttl: int = DEFAULT_CACHE_TTL,
    ):
        self.cache = cache
        self.timeout = timeout or self.default_timeout
        self.cache_ttl = cache_ttl

    def _cache_key(self, query: str) -> str:
        digest = hashlib.sha256(normalize_query(query).encode()).hexdigest()
        return f"tool:{self.name}:{digest}"

    async def search(self, query: str) -> ToolResult:
        """Evidence for a query. Never raises."""
        key = self._cache_key(query)
        if self.cache is not None:
            cached = await self.cache.get(key)
            if isinstance(cached, dict):
                metrics.counter(f"tool_{self.name}_cache_hit")
                return ToolResult.from_dict(cached)

        try:
            with metrics.timer(f"tool_{self.name}"):
                result = await asyncio.wait_for(self._fetch(query), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("tool_timeout", tool=self.name, timeout=self.timeout)
            metrics.counter(f"tool_{self.name}_failed")
            return ToolResult()
        except Exception as e:
            logger.warning("tool_failed", tool=self.name, error=str(e), error_type=type(e).__name__)
            metrics.counter(f"tool_{self.name}_failed")
            return ToolResult()

        if not result.empty and self.cache is not None:
            await self.cache.set(key, result.to_dict(), ttl=self.cache_ttl)
        logger.debug("tool_result", tool=self.name, facts=len(result.facts), candidates=len(result.candidates))
        return result

    @abstractmethod
    async def _fetch(self, query: str) -> ToolResult:
        ...

    async def aclose(self) -> None:
        """Release any HTTP resources the tool owns."""
