"""Pydantic configuration models for throp."""

import math
import os
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from shared_types import ApiTier

VALID_LLM_PROVIDERS = {"auto", "claude", "openai", "none"}
VALID_SEARCH_PROVIDERS = {"tavily", "perplexity"}

# Requests per 15-minute window for the endpoints the bot leans on hardest.
TIER_REQUESTS_PER_15_MIN = {
    ApiTier.BASIC: 15,
    ApiTier.PRO: 75,
    ApiTier.ENTERPRISE: 300,
}

TIER_TWEETS_PER_DAY = {
    ApiTier.BASIC: 50,
    ApiTier.PRO: 100,
    ApiTier.ENTERPRISE: 300,
}

# Fraction of the published budget we allow ourselves to use.
TIER_SAFETY_FACTOR = 0.8


def _expand_env(value: Optional[str]) -> Optional[str]:
    """Expand a ${VAR} placeholder; other values pass through."""
    if value and value.startswith("${") and value.endswith("}"):
        return os.getenv(value[2:-1], "")
    return value


class XConfig(BaseModel):
    """X (Twitter) API v2 configuration."""

    base_url: str = "https://api.twitter.com/2"
    bearer_token: Optional[str] = None
    user_access_token: Optional[str] = None
    bot_user_id: Optional[str] = None
    bot_username: str = "askthrop"
    tier: ApiTier = ApiTier.BASIC
    min_interval_seconds: Optional[float] = None  # None = derive from tier
    thread_delay_seconds: float = 2.0
    timeout_seconds: float = 30.0

    @field_validator("min_interval_seconds", "thread_delay_seconds")
    @classmethod
    def validate_non_negative(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v < 0:
            raise ValueError(f"Interval must be >= 0, got {v}")
        return v

    @property
    def throttle_interval(self) -> float:
        """Minimum seconds between calls; tier-derived unless overridden."""
        if self.min_interval_seconds is not None:
            return self.min_interval_seconds
        per_15 = TIER_REQUESTS_PER_15_MIN[self.tier]
        return float(math.ceil(900 / (per_15 * TIER_SAFETY_FACTOR)))


class CacheConfig(BaseModel):
    """Redis cache configuration. No URL = in-process fallback."""

    redis_url: Optional[str] = None
    namespace: str = "throp"
    connect_timeout: float = 2.0


class LLMConfig(BaseModel):
    """LLM provider configuration for persona rewriting."""

    provider: str = "auto"
    model: Optional[str] = None  # None = use provider default
    api_key: Optional[str] = None
    max_tokens: int = 400
    temperature: float = 0.9

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        if v not in VALID_LLM_PROVIDERS:
            raise ValueError(f"Invalid LLM provider: {v}. Must be one of {VALID_LLM_PROVIDERS}")
        return v


class SearchConfig(BaseModel):
    """Evidence tool configuration."""

    provider: str = "tavily"
    tavily_api_key: Optional[str] = None
    perplexity_api_key: Optional[str] = None
    perplexity_model: str = "sonar"
    max_results: int = 5
    tool_timeout_seconds: float = 20.0
    cache_ttl_seconds: int = 3600
    gecko_network: Optional[str] = None

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        if v not in VALID_SEARCH_PROVIDERS:
            raise ValueError(f"Invalid search provider: {v}. Must be one of {VALID_SEARCH_PROVIDERS}")
        return v

    @field_validator("tool_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if not 15.0 <= v <= 30.0:
            raise ValueError(f"tool_timeout_seconds must be 15-30, got {v}")
        return v


class MonitorConfig(BaseModel):
    """Quote/mention monitor configuration."""

    accounts: list[str] = Field(default_factory=list)
    check_interval_ms: int = 15 * 60 * 1000
    min_engagement: int = 100
    max_actions_per_hour: int = 5
    keywords: list[str] = Field(default_factory=list)
    reply_to_mentions: bool = True
    max_age_hours: float = 2.0
    max_mentions_per_batch: int = 20
    fetch_conversation_context: bool = False

    @field_validator("accounts")
    @classmethod
    def strip_at(cls, v: list[str]) -> list[str]:
        return [a.lstrip("@").strip() for a in v if a.strip()]

    @field_validator("check_interval_ms", "max_actions_per_hour")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"Value must be positive, got {v}")
        return v


class BotConfig(BaseModel):
    """Bot-wide behaviour switches."""

    dry_run: bool = False


class RetryConfig(BaseModel):
    """Retry/backoff configuration."""

    max_attempts: int = 3
    min_wait: float = 1.0
    max_wait: float = 10.0


VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    json_mode: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        v_upper = v.upper()
        if v_upper not in VALID_LOG_LEVELS:
            raise ValueError(f"Invalid log level: {v}. Must be one of {VALID_LOG_LEVELS}")
        return v_upper


class ThropConfig(BaseModel):
    """Main configuration model."""

    x: XConfig = Field(default_factory=XConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)
    bot: BotConfig = Field(default_factory=BotConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def expand_env_vars(self):
        """Expand ${VAR} patterns in secrets and URLs."""
        self.x.bearer_token = _expand_env(self.x.bearer_token)
        self.x.user_access_token = _expand_env(self.x.user_access_token)
        self.x.bot_user_id = _expand_env(self.x.bot_user_id)
        self.cache.redis_url = _expand_env(self.cache.redis_url)
        self.llm.api_key = _expand_env(self.llm.api_key)
        self.search.tavily_api_key = _expand_env(self.search.tavily_api_key)
        self.search.perplexity_api_key = _expand_env(self.search.perplexity_api_key)
        return self

    @classmethod
    def from_dict(cls, data: dict) -> "ThropConfig":
        """Create config from dict, accepting the legacy `twitter` section name."""
        data = dict(data)
        if "twitter" in data:
            legacy = data.pop("twitter") or {}
            data["x"] = {**legacy, **(data.get("x") or {})}
        return cls.model_validate(data)

    def to_dict(self) -> dict:
        return self.model_dump(mode="python")
