"""Rate-limited, retrying async client for the X API v2."""

import asyncio
import time
from typing import Optional

import httpx
import structlog

from cli.config_models import RetryConfig, XConfig
from cli.retry import retry_from_config

from .errors import (
    AuthError,
    NotFoundError,
    PartialThreadError,
    RateLimitError,
    TransientError,
    XAPIError,
)
from .ledger import RateLimitLedger
from .models import Mention, Post, User
from .throttle import Throttle

logger = structlog.get_logger().bind(source="xapi")

TWEET_FIELDS = "created_at,author_id,conversation_id,public_metrics,referenced_tweets"
USER_FIELDS = "username,name,description,verified,public_metrics,created_at"


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def tweet_id_key(tweet_id: str) -> int:
    """Sort key for snowflake ids (numeric strings grow over time)."""
    return int(tweet_id) if tweet_id.isdigit() else 0


class XClient:
    """Single gateway for every X read and write.

    Every network call passes through the same throttle and bounded retry.
    Responses feed a per-endpoint ledger; once an endpoint is exhausted, calls
    to it raise RateLimitError locally until its reset time.
    """

    def __init__(
        self,
        config: XConfig,
        dry_run: bool = False,
        retry_config: Optional[RetryConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        throttle: Optional[Throttle] = None,
    ):
        self.config = config
        self.dry_run = dry_run
        self.ledger = RateLimitLedger()
        self.throttle = throttle or Throttle(config.throttle_interval)
        self.client = http_client or httpx.AsyncClient(
            base_url=config.base_url, timeout=config.timeout_seconds
        )
        self._send_with_retry = retry_from_config(retry_config, exceptions=(TransientError,))(
            self._send
        )
        self._dry_run_count = 0

    # --- transport ---

    def _token(self, write: bool) -> str:
        if write:
            token = self.config.user_access_token or self.config.bearer_token
        else:
            token = self.config.bearer_token or self.config.user_access_token
        if not token:
            kind = "user access token" if write else "bearer token"
            raise AuthError(f"No X {kind} configured")
        return token

    async def _request(
        self,
        method: str,
        path: str,
        endpoint: str,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
        write: bool = False,
    ) -> dict:
        """Check the ledger, then send with throttle and retry."""
        reset_at = self.ledger.blocked_until(endpoint)
        if reset_at is not None:
            raise RateLimitError(
                f"{endpoint} rate limited for {reset_at - time.time():.0f}s",
                reset_at=reset_at,
                endpoint=endpoint,
            )
        token = self._token(write)
        return await self._send_with_retry(method, path, endpoint, token, params, json)

    async def _send(
        self,
        method: str,
        path: str,
        endpoint: str,
        token: str,
        params: Optional[dict],
        json: Optional[dict],
    ) -> dict:
        await self.throttle.acquire()
        try:
            response = await self.client.request(
                method,
                path,
                params=params,
                json=json,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.TransportError as e:
            raise TransientError(f"{endpoint} request failed: {e}", endpoint=endpoint) from e

        self.ledger.update_from_headers(endpoint, response.headers)
        self._raise_for_status(response, endpoint)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise TransientError(f"{endpoint} returned invalid JSON", endpoint=endpoint) from e

    def _raise_for_status(self, response: httpx.Response, endpoint: str) -> None:
        status = response.status_code
        if status < 400:
            return

        detail = response.text[:200]
        if status in (401, 403):
            raise AuthError(f"{endpoint} auth failed ({status}): {detail}", status, endpoint)
        if status == 404:
            raise NotFoundError(f"{endpoint} not found: {detail}", status, endpoint)
        if status == 429:
            header = response.headers.get("x-rate-limit-reset")
            try:
                reset_hint = float(header) if header else None
            except ValueError:
                reset_hint = None
            reset_at = self.ledger.mark_exhausted(endpoint, reset_hint)
            logger.warning("rate_limited", endpoint=endpoint, reset_in=round(reset_at - time.time()))
            raise RateLimitError(f"{endpoint} rate limited", reset_at=reset_at, endpoint=endpoint)
        if status >= 500:
            raise TransientError(f"{endpoint} server error {status}", status, endpoint)
        raise XAPIError(f"{endpoint} failed ({status}): {detail}", status, endpoint)

    @staticmethod
    def _data_or_not_found(payload: dict, what: str):
        data = payload.get("data")
        if not data:
            errors = payload.get("errors") or []
            detail = errors[0].get("detail", "") if errors else ""
            raise NotFoundError(f"{what} not found {detail}".strip())
        return data

    @staticmethod
    def _users_by_id(payload: dict) -> dict[str, User]:
        users = (payload.get("includes") or {}).get("users") or []
        return {str(u["id"]): User.from_api(u) for u in users}

    def _parse_tweets(self, payload: dict) -> list[Mention]:
        users = self._users_by_id(payload)
        return [Mention.from_api(item, users) for item in payload.get("data") or []]

    # --- reads ---

    async def fetch_mentions(self, since_id: Optional[str] = None, max_results: int = 100) -> list[Mention]:
        """Mentions of the bot newer than since_id, oldest first, own posts excluded."""
        bot_id = self.config.bot_user_id
        if not bot_id:
            raise AuthError("bot_user_id not configured; cannot fetch mentions")

        params = {
            "max_results": _clamp(max_results, 5, 100),
            "tweet.fields": TWEET_FIELDS,
            "expansions": "author_id",
            "user.fields": "username,name,verified",
        }
        if since_id:
            params["since_id"] = since_id

        payload = await self._request("GET", f"/users/{bot_id}/mentions", "mentions", params=params)
        mentions = [m for m in self._parse_tweets(payload) if m.author_id != bot_id]
        mentions.sort(key=lambda m: tweet_id_key(m.id))
        logger.info("mentions_fetched", count=len(mentions), since_id=since_id)
        return mentions

    async def get_tweet(self, tweet_id: str) -> Mention:
        payload = await self._request(
            "GET",
            f"/tweets/{tweet_id}",
            "tweet_lookup",
            params={"tweet.fields": TWEET_FIELDS, "expansions": "author_id", "user.fields": "username"},
        )
        data = self._data_or_not_found(payload, f"Tweet {tweet_id}")
        return Mention.from_api(data, self._users_by_id(payload))

    async def get_user(self, user_id: str) -> User:
        payload = await self._request(
            "GET", f"/users/{user_id}", "user_lookup", params={"user.fields": USER_FIELDS}
        )
        return User.from_api(self._data_or_not_found(payload, f"User {user_id}"))

    async def get_user_by_username(self, username: str) -> User:
        username = username.lstrip("@")
        payload = await self._request(
            "GET",
            f"/users/by/username/{username}",
            "user_lookup",
            params={"user.fields": USER_FIELDS},
        )
        return User.from_api(self._data_or_not_found(payload, f"User @{username}"))

    async def get_user_tweets(
        self, user_id: str, since_id: Optional[str] = None, max_results: int = 10
    ) -> list[Mention]:
        """Recent original tweets by a user, oldest first."""
        params = {
            "max_results": _clamp(max_results, 5, 100),
            "tweet.fields": TWEET_FIELDS,
            "exclude": "retweets,replies",
            "expansions": "author_id",
            "user.fields": "username",
        }
        if since_id:
            params["since_id"] = since_id
        payload = await self._request("GET", f"/users/{user_id}/tweets", "user_timeline", params=params)
        tweets = self._parse_tweets(payload)
        tweets.sort(key=lambda t: tweet_id_key(t.id))
        return tweets

    async def search_recent(self, query: str, max_results: int = 10) -> list[Mention]:
        """Recent tweets matching a query, most engaging first."""
        tweets, _ = await self.search_recent_with_users(query, max_results)
        tweets.sort(key=lambda t: t.engagement, reverse=True)
        return tweets

    async def search_recent_with_users(
        self, query: str, max_results: int = 10
    ) -> tuple[list[Mention], dict[str, User]]:
        """Recent tweets matching a query plus the expanded author records."""
        params = {
            "query": f"{query} -is:retweet",
            "max_results": _clamp(max_results, 10, 100),
            "tweet.fields": TWEET_FIELDS,
            "expansions": "author_id",
            "user.fields": USER_FIELDS,
        }
        payload = await self._request("GET", "/tweets/search/recent", "search", params=params)
        return self._parse_tweets(payload), self._users_by_id(payload)

    async def get_conversation(self, conversation_id: str, max_results: int = 20) -> list[Mention]:
        """Tweets in a conversation thread, oldest first."""
        params = {
            "query": f"conversation_id:{conversation_id}",
            "max_results": _clamp(max_results, 10, 100),
            "tweet.fields": TWEET_FIELDS,
            "expansions": "author_id",
            "user.fields": "username",
        }
        payload = await self._request("GET", "/tweets/search/recent", "search", params=params)
        tweets = self._parse_tweets(payload)
        tweets.sort(key=lambda t: tweet_id_key(t.id))
        return tweets

    async def get_trending_topics(self, woeid: int = 1) -> list[str]:
        """Trend names for a location. Best effort: [] on any failure."""
        try:
            payload = await self._request("GET", f"/trends/by/woeid/{woeid}", "trends")
            return [t["trend_name"] for t in payload.get("data") or [] if t.get("trend_name")]
        except (XAPIError, KeyError, TypeError) as e:
            logger.warning("trends_unavailable", woeid=woeid, error=str(e))
            return []

    # --- writes ---

    async def _create_tweet(self, body: dict, action: str) -> Post:
        if self.dry_run:
            self._dry_run_count += 1
            post = Post(id=f"dry-run-{self._dry_run_count}", text=body["text"], dry_run=True)
            logger.info("dry_run_write", action=action, text=body["text"], post_id=post.id)
            return post

        payload = await self._request("POST", "/tweets", "tweets", json=body, write=True)
        data = payload.get("data") or {}
        if "id" not in data:
            raise XAPIError(f"{action} response missing tweet id", endpoint="tweets")
        logger.info("tweet_created", action=action, post_id=data["id"])
        return Post(id=str(data["id"]), text=data.get("text", body["text"]))

    async def post(self, text: str) -> Post:
        return await self._create_tweet({"text": text}, "post")

    async def reply(self, text: str, parent_id: str) -> Post:
        return await self._create_tweet(
            {"text": text, "reply": {"in_reply_to_tweet_id": parent_id}}, "reply"
        )

    async def quote(self, text: str, quoted_id: str) -> Post:
        return await self._create_tweet({"text": text, "quote_tweet_id": quoted_id}, "quote")

    async def post_thread(self, texts: list[str], parent_id: Optional[str] = None) -> list[Post]:
        """Post texts as a chained thread, optionally under an existing tweet.

        Posts are strictly sequential. If the first post fails its error
        propagates unchanged. A later failure raises PartialThreadError with
        the posts already published; nothing is rolled back.
        """
        if not texts:
            return []

        posted: list[Post] = []
        previous = parent_id
        for i, text in enumerate(texts):
            if i > 0 and not self.dry_run and self.config.thread_delay_seconds:
                await asyncio.sleep(self.config.thread_delay_seconds)
            try:
                post = await (self.reply(text, previous) if previous else self.post(text))
            except XAPIError as e:
                if not posted:
                    raise
                logger.error("thread_aborted", posted=len(posted), total=len(texts), error=str(e))
                raise PartialThreadError(posted, e) from e
            posted.append(post)
            previous = post.id

        logger.info("thread_posted", parts=len(posted), parent_id=parent_id)
        return posted

    # --- status ---

    def rate_limit_status(self) -> dict:
        return {
            "endpoints": self.ledger.snapshot(),
            "throttle_interval": self.throttle.min_interval,
            "next_slot_in": round(self.throttle.seconds_until_ready, 1),
            "dry_run": self.dry_run,
        }

    def is_rate_limited(self, endpoint: str) -> bool:
        return self.ledger.blocked_until(endpoint) is not None

    def seconds_until_reset(self, endpoint: str) -> float:
        return self.ledger.seconds_until_reset(endpoint)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
