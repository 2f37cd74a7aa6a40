"""Rate-limited X (Twitter) API v2 client."""

from .client import XClient, tweet_id_key
from .errors import (
    AuthError,
    NotFoundError,
    PartialThreadError,
    RateLimitError,
    TransientError,
    XAPIError,
)
from .ledger import RateLimitLedger
from .models import Mention, Post, RateLimitInfo, User
from .throttle import Throttle

__all__ = [
    "XClient",
    "tweet_id_key",
    "XAPIError",
    "AuthError",
    "RateLimitError",
    "NotFoundError",
    "TransientError",
    "PartialThreadError",
    "RateLimitLedger",
    "Throttle",
    "Mention",
    "Post",
    "User",
    "RateLimitInfo",
]
