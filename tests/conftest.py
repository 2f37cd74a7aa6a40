"""Shared test fixtures for throp."""

import sys
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cache import CacheStore  # noqa: E402
from cli.config_models import RetryConfig, XConfig  # noqa: E402
from observability import metrics  # noqa: E402
from xapi import Mention, XClient  # noqa: E402

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def cache():
    """Cache store on the in-process backend (no Redis URL)."""
    return CacheStore(url=None, namespace="test")


@pytest.fixture
def x_config():
    return XConfig(
        bearer_token="test-bearer-token",
        user_access_token="test-user-token",
        bot_user_id="999",
        bot_username="askthrop",
        min_interval_seconds=0,
        thread_delay_seconds=0,
    )


@pytest.fixture
def fast_retry():
    return RetryConfig(max_attempts=3, min_wait=0, max_wait=0)


@pytest.fixture
def make_x_client(x_config, fast_retry):
    """Build an XClient whose HTTP layer is an httpx.MockTransport handler."""

    def _make(handler, **kwargs):
        http = httpx.AsyncClient(
            base_url=x_config.base_url, transport=httpx.MockTransport(handler)
        )
        kwargs.setdefault("retry_config", fast_retry)
        return XClient(x_config, http_client=http, **kwargs)

    return _make


@pytest.fixture
def fake_x():
    """XClient stand-in with async methods and a real config."""
    client = MagicMock(spec=XClient)
    client.config = XConfig(bot_user_id="999", min_interval_seconds=0, thread_delay_seconds=0)
    for name in (
        "fetch_mentions", "get_tweet", "get_user", "get_user_by_username", "get_user_tweets",
        "search_recent", "search_recent_with_users", "get_conversation", "get_trending_topics",
        "post", "reply", "quote", "post_thread",
    ):
        setattr(client, name, AsyncMock())
    client.fetch_mentions.return_value = []
    client.get_user_tweets.return_value = []
    return client


@pytest.fixture
def mention_factory():
    """Build Mention records with sensible defaults."""
    return make_mention


def make_mention(
    id: str,
    text: str = "@askthrop who is vitalik",
    author_username: str = "alice",
    created_at: datetime = NOW,
    likes: int = 0,
    retweets: int = 0,
    replies: int = 0,
    conversation_id: str | None = None,
) -> Mention:
    return Mention(
        id=id,
        text=text,
        author_id=f"u-{author_username}",
        author_username=author_username,
        created_at=created_at,
        conversation_id=conversation_id or id,
        like_count=likes,
        retweet_count=retweets,
        reply_count=replies,
    )
