"""Cache store with Redis backing and in-process fallback."""

from .store import (
    MAX_PROCESSED_IDS,
    TTL_INTERACTION,
    TTL_MENTION,
    TTL_TWEET,
    TTL_USER,
    BotState,
    CacheStore,
)

__all__ = [
    "CacheStore",
    "BotState",
    "MAX_PROCESSED_IDS",
    "TTL_MENTION",
    "TTL_TWEET",
    "TTL_USER",
    "TTL_INTERACTION",
]
