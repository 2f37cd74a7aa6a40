"""Evidence tools: bounded, cached, never-raising fact sources."""

from .base import Candidate, EvidenceTool, PriceQuote, ToolFailure, ToolResult
from .price import PriceLookupTool
from .profile_lookup import ProfileLookupTool
from .social_search import SocialSearchTool
from .web_search import WebSearchTool

__all__ = [
    "EvidenceTool",
    "ToolResult",
    "ToolFailure",
    "Candidate",
    "PriceQuote",
    "WebSearchTool",
    "SocialSearchTool",
    "ProfileLookupTool",
    "PriceLookupTool",
]
