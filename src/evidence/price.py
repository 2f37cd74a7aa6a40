"""Token price evidence tool backed by GeckoTerminal DEX data."""

import re
from typing import Optional

import httpx
import structlog

from cache import CacheStore
from shared_types import ToolName

from .base import EvidenceTool, PriceQuote, ToolFailure, ToolResult

logger = structlog.get_logger().bind(source="price")

GECKO_BASE_URL = "https://api.geckoterminal.com/api/v2"

_TICKER = re.compile(r"\$([a-zA-Z][a-zA-Z0-9]{1,9})\b")
_EVM_ADDRESS = re.compile(r"\b0x[a-fA-F0-9]{40}\b")
_BASE58_ADDRESS = re.compile(r"\b[1-9A-HJ-NP-Za-km-z]{32,44}\b")

KNOWN_COINS = {
    "bitcoin": "BTC",
    "btc": "BTC",
    "ethereum": "ETH",
    "eth": "ETH",
    "solana": "SOL",
    "sol": "SOL",
    "dogecoin": "DOGE",
    "doge": "DOGE",
    "bonk": "BONK",
    "pepe": "PEPE",
}


def extract_token(query: str) -> Optional[str]:
    """Ticker, contract address, or well-known coin named in the query."""
    for pattern in (_EVM_ADDRESS, _BASE58_ADDRESS):
        match = pattern.search(query)
        if match:
            return match.group(0)
    match = _TICKER.search(query)
    if match:
        return match.group(1).upper()
    for word in re.findall(r"[a-z]+", query.lower()):
        if word in KNOWN_COINS:
            return KNOWN_COINS[word]
    return None


def looks_like_address(token: str) -> bool:
    return bool(_EVM_ADDRESS.fullmatch(token) or _BASE58_ADDRESS.fullmatch(token))


def _to_float(value) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class PriceLookupTool(EvidenceTool):
    """Current price, 24h change, volume and liquidity for a token."""

    name = ToolName.PRICE_LOOKUP
    default_timeout = 15.0

    def __init__(
        self,
        network: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        cache: Optional[CacheStore] = None,
        timeout: Optional[float] = None,
    ):
        super().__init__(cache=cache, timeout=timeout)
        self.network = network
        self.client = client or httpx.AsyncClient(base_url=GECKO_BASE_URL, timeout=15.0)

    async def _fetch(self, query: str) -> ToolResult:
        token = extract_token(query)
        if not token:
            raise ToolFailure(f"No token found in {query!r}")

        pools = await self._search_pools(token)
        if not pools:
            raise ToolFailure(f"No pools found for {token}")

        quote = self._quote_from_pool(self._best_pool(pools, token), token)
        logger.info("price_fetched", token=token, price=quote.price, change_24h=quote.change_24h)
        return ToolResult(facts=quote.describe(), sources=[quote.source_url], price=quote)

    async def _search_pools(self, token: str) -> list[dict]:
        if looks_like_address(token):
            network = self.network or ("eth" if token.startswith("0x") else "solana")
            response = await self.client.get(f"/networks/{network}/tokens/{token}/pools")
        else:
            params = {"query": token}
            if self.network:
                params["network"] = self.network
            response = await self.client.get("/search/pools", params=params)
        response.raise_for_status()
        return response.json().get("data") or []

    @staticmethod
    def _best_pool(pools: list[dict], token: str) -> dict:
        """Deepest pool whose name starts with the token symbol, else the deepest pool."""
        def liquidity(pool: dict) -> float:
            return _to_float((pool.get("attributes") or {}).get("reserve_in_usd")) or 0.0

        prefix = f"{token.upper()} /"
        named = [p for p in pools if (p.get("attributes") or {}).get("name", "").upper().startswith(prefix)]
        return max(named or pools, key=liquidity)

    @staticmethod
    def _quote_from_pool(pool: dict, token: str) -> PriceQuote:
        attrs = pool.get("attributes") or {}
        price = _to_float(attrs.get("base_token_price_usd"))
        if price is None:
            raise ToolFailure(f"Pool for {token} has no price")

        pool_id = pool.get("id", "")
        network, _, address = pool_id.partition("_")
        address = attrs.get("address") or address
        name = attrs.get("name", "")
        symbol = token if not looks_like_address(token) else (name.split(" /")[0] or token)

        return PriceQuote(
            symbol=symbol,
            name=name,
            price=price,
            change_24h=_to_float((attrs.get("price_change_percentage") or {}).get("h24")),
            volume_24h=_to_float((attrs.get("volume_usd") or {}).get("h24")),
            liquidity=_to_float(attrs.get("reserve_in_usd")),
            source_url=f"https://www.geckoterminal.com/{network}/pools/{address}",
        )

    async def aclose(self) -> None:
        await self.client.aclose()
