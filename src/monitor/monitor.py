"""Polling loop that replies to mentions and quotes watched accounts."""

import asyncio
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Optional

import structlog

from cache import MAX_PROCESSED_IDS, TTL_INTERACTION, BotState, CacheStore
from cli.config_models import MonitorConfig
from engine import AnswerOrchestrator, AuthorContext, ResponseGenerator
from observability import log_run_summary, metrics
from shared_types import Platform
from xapi import (
    AuthError,
    Mention,
    PartialThreadError,
    RateLimitError,
    XAPIError,
    XClient,
)

from .quota import HourlyQuota, utc_now

logger = structlog.get_logger().bind(source="monitor")


@dataclass
class TickResult:
    """What one polling pass did."""

    fetched: int = 0
    acted: int = 0
    duplicates: int = 0
    filtered: int = 0
    deferred: int = 0
    errors: int = 0
    rate_limited: bool = False
    cooling_down: bool = False


class QuoteMentionMonitor:
    """Watches mentions and configured accounts, acting within an hourly quota.

    Each item id is acted on at most once: ids are checked against the
    recent in-memory ids and the cache store before acting, and recorded right
    after a successful post. A RateLimitError pauses all actions until the
    endpoint's reset time; an AuthError stops the loop.
    """

    def __init__(
        self,
        client: XClient,
        orchestrator: AnswerOrchestrator,
        generator: ResponseGenerator,
        cache: CacheStore,
        config: Optional[MonitorConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.client = client
        self.orchestrator = orchestrator
        self.generator = generator
        self.cache = cache
        self.config = config or MonitorConfig()
        self._clock = clock or utc_now
        self.quota = HourlyQuota(cache, self.config.max_actions_per_hour, clock=self._clock)
        self.state = BotState()
        self.cooldown_until: Optional[float] = None
        self._processed: OrderedDict[str, None] = OrderedDict()  # newest last
        self._user_ids: dict[str, str] = {}
        self._state_loaded = False
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    # --- control surface ---

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self, config: Optional[MonitorConfig] = None) -> asyncio.Task:
        """Begin polling in a background task."""
        if self.running:
            logger.warning("monitor_already_running")
            return self._task
        if config is not None:
            self.config = config
            self.quota.max_per_hour = config.max_actions_per_hour
        await self._load_state()
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop(), name="throp-monitor")
        return self._task

    async def stop(self) -> None:
        """Stop after the current tick; an in-progress sleep ends immediately."""
        if self._task is None:
            return
        if self._stop_event is not None:
            self._stop_event.set()
        await asyncio.wait([self._task])
        self._task = None
        log_run_summary()

    async def _loop(self) -> None:
        logger.info(
            "monitor_started",
            accounts=self.config.accounts,
            mentions=self.config.reply_to_mentions,
            interval_s=self.config.check_interval_ms / 1000,
            max_per_hour=self.config.max_actions_per_hour,
        )
        try:
            while not self._stop_event.is_set():
                try:
                    await self.run_once()
                except AuthError as e:
                    logger.critical("monitor_auth_failed", error=str(e))
                    raise
                except Exception as e:
                    logger.exception("tick_failed", error=str(e))
                    await self.cache.increment_stat("errors")
                try:
                    await asyncio.wait_for(
                        self._stop_event.wait(), timeout=self.config.check_interval_ms / 1000
                    )
                except asyncio.TimeoutError:
                    pass
        finally:
            logger.info("monitor_stopped")

    # --- one pass ---

    async def run_once(self) -> TickResult:
        """One polling pass over mentions and watched accounts."""
        await self._load_state()
        result = TickResult()

        if self.cooldown_until is not None and time.time() < self.cooldown_until:
            logger.info("cooldown_active", resume_in=round(self.cooldown_until - time.time()))
            result.cooling_down = True
            return result

        try:
            if self.config.reply_to_mentions:
                await self._process_mentions(result)
            for account in self.config.accounts:
                await self._process_account(account, result)
        except RateLimitError as e:
            self.cooldown_until = e.reset_at
            self.state.rate_limit_reset = e.reset_at
            result.rate_limited = True
            metrics.counter("monitor_rate_limited")
            logger.warning("monitor_cooldown", endpoint=e.endpoint, resume_in=round(e.seconds_until_reset))
        finally:
            await self._persist()
            await self.cache.set_last_run()

        logger.info("tick_complete", **vars(result))
        return result

    async def _process_mentions(self, result: TickResult) -> None:
        mentions = await self.client.fetch_mentions(
            since_id=self.state.last_mention_id,
            max_results=self.config.max_mentions_per_batch,
        )
        result.fetched += len(mentions)

        def advance(mention_id: str) -> None:
            self.state.last_mention_id = mention_id

        await self._handle_batch(mentions, self._reply_to, advance, result, check_engagement=False)

    async def _process_account(self, username: str, result: TickResult) -> None:
        try:
            user_id = await self._resolve_user_id(username)
            tweets = await self.client.get_user_tweets(
                user_id, since_id=self.state.last_seen_ids.get(username), max_results=10
            )
        except (RateLimitError, AuthError):
            raise
        except XAPIError as e:
            logger.error("account_check_failed", account=username, error=str(e))
            result.errors += 1
            return
        result.fetched += len(tweets)

        def advance(tweet_id: str) -> None:
            self.state.last_seen_ids[username] = tweet_id

        await self._handle_batch(tweets, self._quote, advance, result, check_engagement=True)

    async def _handle_batch(
        self,
        items: list[Mention],
        act: Callable[[Mention], Awaitable[None]],
        advance: Callable[[str], None],
        result: TickResult,
        check_engagement: bool,
    ) -> None:
        """Act on items oldest first.

        The cursor advances past handled items only (acted on, filtered,
        duplicate, or failed). Items deferred by the quota stay ahead of the
        cursor and are fetched again next tick.
        """
        for index, item in enumerate(items):
            if await self._already_processed(item.id):
                result.duplicates += 1
            elif (reason := self._filter_reason(item, check_engagement)) is not None:
                logger.debug("item_filtered", item_id=item.id, reason=reason)
                result.filtered += 1
            elif not await self.quota.has_capacity():
                result.deferred += len(items) - index
                logger.info("hourly_quota_reached", deferred=len(items) - index)
                return
            else:
                try:
                    await act(item)
                except PartialThreadError as e:
                    # Part of the reply is live; never reply to this item again.
                    await self._record_processed(item)
                    advance(item.id)
                    if isinstance(e.cause, (RateLimitError, AuthError)):
                        raise e.cause from e
                    result.errors += 1
                    continue
                except (RateLimitError, AuthError):
                    raise
                except XAPIError as e:
                    logger.error("action_failed", item_id=item.id, error=str(e), error_type=type(e).__name__)
                    result.errors += 1
                    await self.cache.increment_stat("errors")
                else:
                    await self._record_processed(item)
                    result.acted += 1
            advance(item.id)

    def _filter_reason(self, item: Mention, check_engagement: bool) -> Optional[str]:
        keywords = self.config.keywords
        if keywords:
            lowered = item.text.lower()
            if not any(k.lower() in lowered for k in keywords):
                return "keyword"
        age = item.age_hours(self._clock())
        if self.config.max_age_hours and age is not None and age > self.config.max_age_hours:
            return "too_old"
        if check_engagement and item.engagement < self.config.min_engagement:
            return "low_engagement"
        return None

    # --- actions ---

    async def _reply_to(self, mention: Mention) -> None:
        history = None
        if self.config.fetch_conversation_context and mention.conversation_id not in (None, mention.id):
            history = await self._conversation_history(mention)

        author = AuthorContext(username=mention.author_username, platform=Platform.TWITTER)
        response = await self.orchestrator.generate_response(mention.text, author, history)
        if response.should_thread:
            await self.client.post_thread(response.thread_parts, parent_id=mention.id)
        else:
            await self.client.reply(response.text, mention.id)
        await self.cache.increment_stat("responses_generated")
        logger.info("mention_replied", mention_id=mention.id, author=mention.author_username,
                    intent=response.intent, threaded=response.should_thread)

    async def _quote(self, tweet: Mention) -> None:
        text = await self.generator.generate_reaction(tweet.text)
        await self.client.quote(text, tweet.id)
        logger.info("tweet_quoted", tweet_id=tweet.id, author=tweet.author_username)

    async def _conversation_history(self, mention: Mention) -> Optional[list[dict]]:
        try:
            thread = await self.client.get_conversation(mention.conversation_id)
        except (RateLimitError, AuthError):
            raise
        except XAPIError as e:
            logger.warning("conversation_unavailable", mention_id=mention.id, error=str(e))
            return None
        bot_id = self.client.config.bot_user_id
        return [
            {"role": "assistant" if t.author_id == bot_id else "user", "content": t.text}
            for t in thread
            if t.id != mention.id
        ]

    async def _resolve_user_id(self, username: str) -> str:
        if username in self._user_ids:
            return self._user_ids[username]
        cached = await self.cache.get_cached_user(username)
        if isinstance(cached, dict) and cached.get("id"):
            user_id = cached["id"]
        else:
            user = await self.client.get_user_by_username(username)
            user_id = user.id
            await self.cache.cache_user(username, {"id": user.id, "username": user.username})
        self._user_ids[username] = user_id
        return user_id

    # --- dedup & persistence ---

    def _remember(self, item_id: str) -> None:
        self._processed[item_id] = None
        self._processed.move_to_end(item_id)
        while len(self._processed) > MAX_PROCESSED_IDS:
            self._processed.popitem(last=False)

    async def _already_processed(self, item_id: str) -> bool:
        if item_id in self._processed:
            return True
        if await self.cache.is_processed(item_id):
            self._remember(item_id)
            return True
        return False

    async def _record_processed(self, item: Mention) -> None:
        item.processed = True
        self._remember(item.id)
        self.state.processed_ids.append(item.id)
        if len(self.state.processed_ids) > MAX_PROCESSED_IDS:
            del self.state.processed_ids[: -MAX_PROCESSED_IDS]
        await self.cache.mark_processed(item.id, ttl=TTL_INTERACTION)
        await self.cache.cache_mention(item.id, {
            "text": item.text,
            "author": item.author_username,
            "created_at": item.created_at.isoformat() if item.created_at else None,
        })
        await self.quota.record()
        await self.cache.increment_stat("mentions_processed")
        metrics.counter("monitor_actions")
        await self._persist()

    async def _load_state(self) -> None:
        if self._state_loaded:
            return
        self.state = await self.cache.get_state()
        for item_id in self.state.processed_ids:
            self._remember(item_id)
        if self.state.rate_limit_reset and self.state.rate_limit_reset > time.time():
            self.cooldown_until = self.state.rate_limit_reset
        self._state_loaded = True

    async def _persist(self) -> None:
        await self.cache.save_state(self.state)
