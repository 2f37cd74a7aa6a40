"""Web search evidence tool (Tavily or Perplexity)."""

import re
from dataclasses import dataclass
from typing import Optional

import httpx
import structlog

from cache import CacheStore
from shared_types import ToolName

from .base import EvidenceTool, ToolFailure, ToolResult

logger = structlog.get_logger().bind(source="web_search")

TAVILY_URL = "https://api.tavily.com/search"
PERPLEXITY_URL = "https://api.perplexity.ai/chat/completions"

_CITATION_MARKER = re.compile(r"\s*\[\d+\]")
_SENTENCE = re.compile(r"[^.!?]+[.!?]+|[^.!?]+$")


@dataclass
class SearchResult:
    """Single search result."""
    title: str
    url: str
    content: str
    score: float = 0.0


def first_sentences(text: str, count: int, max_chars: int = 220) -> list[str]:
    """Leading sentences of text with citation markers removed."""
    text = _CITATION_MARKER.sub("", text)
    sentences = [s.strip() for s in _SENTENCE.findall(text) if s.strip()]
    return [s[:max_chars] for s in sentences[:count]]


class WebSearchTool(EvidenceTool):
    """Searches the open web for current facts."""

    name = ToolName.WEB_SEARCH
    default_timeout = 20.0

    def __init__(
        self,
        api_key: Optional[str] = None,
        provider: str = "tavily",
        perplexity_api_key: Optional[str] = None,
        perplexity_model: str = "sonar",
        max_results: int = 5,
        max_content_chars: int = 500,
        client: Optional[httpx.AsyncClient] = None,
        cache: Optional[CacheStore] = None,
        timeout: Optional[float] = None,
    ):
        super().__init__(cache=cache, timeout=timeout)
        self.api_key = api_key
        self.provider = provider
        self.perplexity_api_key = perplexity_api_key
        self.perplexity_model = perplexity_model
        self.max_results = max_results
        self.max_content_chars = max_content_chars
        self.client = client or httpx.AsyncClient(timeout=30.0)

    async def _fetch(self, query: str) -> ToolResult:
        if self.provider == "perplexity":
            return await self._perplexity_search(query)
        results, answer = await self._tavily_search(query)
        return self._to_tool_result(results, answer)

    async def _tavily_search(self, query: str) -> tuple[list[SearchResult], Optional[str]]:
        """Execute Tavily API search."""
        if not self.api_key:
            raise ToolFailure("No Tavily API key configured")

        response = await self.client.post(
            TAVILY_URL,
            json={
                "api_key": self.api_key,
                "query": query,
                "search_depth": "basic",
                "include_answer": True,
                "include_raw_content": False,
                "max_results": self.max_results,
            },
        )
        response.raise_for_status()
        data = response.json()

        results = []
        for item in data.get("results", []):
            results.append(SearchResult(
                title=item.get("title", "Untitled"),
                url=item.get("url", ""),
                content=(item.get("content") or "")[:self.max_content_chars],
                score=item.get("score", 0.0),
            ))

        logger.info("tavily_search", query=query, results=len(results))
        return results, data.get("answer")

    def _to_tool_result(self, results: list[SearchResult], answer: Optional[str]) -> ToolResult:
        facts: list[str] = []
        if answer:
            facts.extend(first_sentences(answer, 2))
        for r in sorted(results, key=lambda r: r.score, reverse=True)[:3]:
            snippet = first_sentences(r.content, 1)
            if snippet:
                facts.append(snippet[0])
        sources = [r.url for r in results if r.url]
        return ToolResult(facts=facts, sources=sources)

    async def _perplexity_search(self, query: str) -> ToolResult:
        """Ask Perplexity's online model and keep its citations."""
        if not self.perplexity_api_key:
            raise ToolFailure("No Perplexity API key configured")

        response = await self.client.post(
            PERPLEXITY_URL,
            headers={"Authorization": f"Bearer {self.perplexity_api_key}"},
            json={
                "model": self.perplexity_model,
                "messages": [
                    {
                        "role": "system",
                        "content": "Provide concise factual information with sources. Focus on current data.",
                    },
                    {"role": "user", "content": query},
                ],
                "max_tokens": 300,
                "temperature": 0.2,
            },
        )
        response.raise_for_status()
        data = response.json()

        choices = data.get("choices") or []
        if not choices:
            raise ToolFailure("Perplexity returned no choices")
        content = choices[0].get("message", {}).get("content") or ""
        return ToolResult(
            facts=first_sentences(content, 3),
            sources=list(data.get("citations") or []),
        )

    async def aclose(self) -> None:
        await self.client.aclose()
