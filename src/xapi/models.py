"""Records returned by the X API client."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an X API ISO-8601 timestamp (e.g. 2024-01-01T00:00:00.000Z)."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


@dataclass
class User:
    id: str
    username: str
    name: str = ""
    description: str = ""
    verified: bool = False
    followers_count: int = 0
    following_count: int = 0
    tweet_count: int = 0
    created_at: Optional[datetime] = None

    @classmethod
    def from_api(cls, data: dict) -> "User":
        metrics = data.get("public_metrics") or {}
        return cls(
            id=str(data["id"]),
            username=data.get("username", ""),
            name=data.get("name", ""),
            description=data.get("description", ""),
            verified=bool(data.get("verified", False)),
            followers_count=metrics.get("followers_count", 0),
            following_count=metrics.get("following_count", 0),
            tweet_count=metrics.get("tweet_count", 0),
            created_at=parse_timestamp(data.get("created_at")),
        )


@dataclass
class Mention:
    """An inbound tweet: a mention of the bot or a post by a watched account.

    `id` is the deduplication key. `processed` flips only after a reply has
    been recorded.
    """

    id: str
    text: str
    author_id: str = ""
    author_username: str = ""
    created_at: Optional[datetime] = None
    conversation_id: Optional[str] = None
    like_count: int = 0
    retweet_count: int = 0
    reply_count: int = 0
    referenced_tweets: list[dict] = field(default_factory=list)
    processed: bool = False

    @property
    def engagement(self) -> int:
        return self.like_count + self.retweet_count

    @property
    def url(self) -> str:
        handle = self.author_username or "i"
        return f"https://x.com/{handle}/status/{self.id}"

    def age_hours(self, now: Optional[datetime] = None) -> Optional[float]:
        if self.created_at is None:
            return None
        now = now or datetime.now(timezone.utc)
        return (now - self.created_at).total_seconds() / 3600

    @classmethod
    def from_api(cls, data: dict, users: Optional[dict[str, User]] = None) -> "Mention":
        metrics = data.get("public_metrics") or {}
        author_id = str(data.get("author_id", ""))
        author = (users or {}).get(author_id)
        return cls(
            id=str(data["id"]),
            text=data.get("text", ""),
            author_id=author_id,
            author_username=author.username if author else "",
            created_at=parse_timestamp(data.get("created_at")),
            conversation_id=data.get("conversation_id"),
            like_count=metrics.get("like_count", 0),
            retweet_count=metrics.get("retweet_count", 0),
            reply_count=metrics.get("reply_count", 0),
            referenced_tweets=list(data.get("referenced_tweets") or []),
        )


@dataclass
class Post:
    """An outbound tweet we created (or would have, in dry-run)."""

    id: str
    text: str
    dry_run: bool = False


@dataclass
class RateLimitInfo:
    """Budget for one endpoint, from x-rate-limit-* headers."""

    limit: int
    remaining: int
    reset_at: float  # epoch seconds
