"""Routing table from (intent, domain) to evidence tools."""

from typing import Optional

from evidence import EvidenceTool
from shared_types import Domain, Intent, ToolName

Route = tuple[Intent, Optional[Domain]]

# (intent, None) is the default for every domain of that intent.
DEFAULT_ROUTES: dict[Route, tuple[str, ...]] = {
    (Intent.IDENTITY, None): (ToolName.WEB_SEARCH, ToolName.SOCIAL_SEARCH, ToolName.PROFILE_LOOKUP),
    (Intent.MARKET, None): (ToolName.PRICE_LOOKUP, ToolName.WEB_SEARCH),
    (Intent.CURRENT_EVENTS, None): (ToolName.WEB_SEARCH, ToolName.SOCIAL_SEARCH),
    (Intent.EXPLAINER, None): (ToolName.WEB_SEARCH,),
    (Intent.CASUAL, None): (),
}

MAX_TOOLS_PER_REQUEST = 3


class ToolRegistry:
    """Holds the available tools and decides which ones a request runs."""

    def __init__(
        self,
        tools: Optional[list[EvidenceTool]] = None,
        routes: Optional[dict[Route, tuple[str, ...]]] = None,
    ):
        self._tools: dict[str, EvidenceTool] = {}
        self._routes = dict(DEFAULT_ROUTES if routes is None else routes)
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: EvidenceTool) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool

    def route(self, intent: Intent, tool_names: tuple[str, ...], domain: Optional[Domain] = None) -> None:
        """Set the tools for an intent, optionally only within one domain."""
        if len(tool_names) > MAX_TOOLS_PER_REQUEST:
            raise ValueError(f"At most {MAX_TOOLS_PER_REQUEST} tools per route, got {len(tool_names)}")
        self._routes[(intent, domain)] = tuple(tool_names)

    def tools_for(self, intent: Intent, domain: Domain) -> list[EvidenceTool]:
        names = self._routes.get((intent, domain))
        if names is None:
            names = self._routes.get((intent, None), ())
        return [self._tools[n] for n in names if n in self._tools]

    def get(self, name: str) -> Optional[EvidenceTool]:
        return self._tools.get(name)

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    async def aclose(self) -> None:
        for tool in self._tools.values():
            await tool.aclose()
