"""Social search evidence tool over X recent search."""

import re
from typing import Optional

from cache import CacheStore
from shared_types import ToolName
from xapi import XClient

from .base import EvidenceTool, ToolFailure, ToolResult

_STOPWORDS = {
    "a", "an", "and", "are", "about", "any", "can", "did", "do", "does", "for",
    "from", "happening", "how", "i", "in", "is", "it", "latest", "me", "of",
    "on", "or", "s", "tell", "the", "this", "to", "up", "was", "what", "whats",
    "when", "where", "who", "whos", "why", "with", "you",
}
_TOKEN = re.compile(r"[@$#]?[\w']+")

MAX_QUERY_TERMS = 5


def build_search_query(text: str) -> str:
    """Keep handles, tickers and content words; drop question filler."""
    terms = []
    for token in _TOKEN.findall(text.lower()):
        bare = token.replace("'", "")
        if token[0] in "@$#" or (bare not in _STOPWORDS and len(bare) > 1):
            terms.append(token)
    return " ".join(terms[:MAX_QUERY_TERMS])


class SocialSearchTool(EvidenceTool):
    """What people on X are saying right now."""

    name = ToolName.SOCIAL_SEARCH
    default_timeout = 15.0

    def __init__(
        self,
        client: XClient,
        max_results: int = 10,
        top_n: int = 3,
        cache: Optional[CacheStore] = None,
        timeout: Optional[float] = None,
    ):
        super().__init__(cache=cache, timeout=timeout)
        self.client = client
        self.max_results = max_results
        self.top_n = top_n

    async def _fetch(self, query: str) -> ToolResult:
        search_query = build_search_query(query)
        if not search_query:
            raise ToolFailure(f"Nothing searchable in {query!r}")

        tweets = await self.client.search_recent(search_query, self.max_results)
        top = tweets[: self.top_n]
        facts = []
        for t in top:
            text = re.sub(r"\s+", " ", t.text).strip()
            if len(text) > 150:
                text = text[:150] + "..."
            author = f"@{t.author_username}" if t.author_username else "someone"
            facts.append(f'{author} ({t.like_count} likes): "{text}"')
        return ToolResult(facts=facts, sources=[t.url for t in top])
