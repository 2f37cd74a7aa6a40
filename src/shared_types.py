"""Shared enums and types for throp."""

from enum import StrEnum


class Intent(StrEnum):
    IDENTITY = "identity"
    MARKET = "market"
    CURRENT_EVENTS = "current_events"
    EXPLAINER = "explainer"
    CASUAL = "casual"


class Domain(StrEnum):
    MARKET = "market"
    TECHNOLOGY = "technology"
    GAMING = "gaming"
    CULTURE = "culture"
    GENERAL = "general"


class ApiTier(StrEnum):
    BASIC = "basic"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class Platform(StrEnum):
    WEB = "web"
    TWITTER = "twitter"


class ToolName(StrEnum):
    WEB_SEARCH = "web_search"
    SOCIAL_SEARCH = "social_search"
    PROFILE_LOOKUP = "profile_lookup"
    PRICE_LOOKUP = "price_lookup"
