"""Tests for the quote/mention monitor."""

import asyncio
import time
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from cache import CacheStore
from cli.config_models import MonitorConfig
from engine import AnswerOrchestrator, ChatResponse, ResponseGenerator
from monitor import QuoteMentionMonitor
from xapi import AuthError, NotFoundError, PartialThreadError, Post, RateLimitError, User

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _orchestrator(text="ok here's the tea", parts=None):
    orchestrator = MagicMock(spec=AnswerOrchestrator)
    orchestrator.generate_response = AsyncMock(return_value=ChatResponse(
        text=text,
        should_thread=bool(parts),
        thread_parts=parts or [],
    ))
    return orchestrator


def _generator(reaction="counterpoint: no"):
    generator = MagicMock(spec=ResponseGenerator)
    generator.generate_reaction = AsyncMock(return_value=reaction)
    return generator


@pytest.fixture
def clock():
    current = {"now": NOW + timedelta(minutes=5)}

    def _clock():
        return current["now"]

    _clock.current = current
    return _clock


@pytest.fixture
def make_monitor(fake_x, cache, clock):
    def _make(orchestrator=None, generator=None, **config):
        config.setdefault("max_actions_per_hour", 5)
        fake_x.reply.side_effect = lambda text, parent_id: Post(id=f"r-{parent_id}", text=text)
        fake_x.quote.side_effect = lambda text, quoted_id: Post(id=f"q-{quoted_id}", text=text)
        return QuoteMentionMonitor(
            fake_x,
            orchestrator or _orchestrator(),
            generator or _generator(),
            cache,
            config=MonitorConfig(**config),
            clock=clock,
        )

    return _make


class TestHourlyQuota:
    @pytest.mark.asyncio
    async def test_quota_caps_replies_and_leaves_rest_unprocessed(self, make_monitor, fake_x, cache,
                                                                  mention_factory):
        mentions = [mention_factory(str(100 + i)) for i in range(1, 6)]
        fake_x.fetch_mentions.return_value = mentions
        monitor = make_monitor(max_actions_per_hour=2)

        result = await monitor.run_once()

        assert result.acted == 2
        assert result.deferred == 3
        assert fake_x.reply.await_count == 2
        assert [c.args[1] for c in fake_x.reply.await_args_list] == ["101", "102"]
        assert [m.processed for m in mentions] == [True, True, False, False, False]
        for m in mentions[2:]:
            assert await cache.is_processed(m.id) is False

        state = await cache.get_state()
        assert state.last_mention_id == "102"
        assert state.processed_ids == ["101", "102"]

    @pytest.mark.asyncio
    async def test_quota_enforced_when_redis_fails_mid_run(self, fake_x, clock, mention_factory):
        client = MagicMock()
        client.ping = AsyncMock(return_value=True)
        for name in ("get", "set", "delete", "incrby", "expire", "zadd", "zremrangebyrank", "zrevrange"):
            setattr(client, name, AsyncMock(side_effect=ConnectionError("redis went away")))
        store = CacheStore(url="redis://localhost:6379", redis_factory=MagicMock(return_value=client))
        assert await store.connect() is True

        fake_x.fetch_mentions.return_value = [mention_factory(str(100 + i)) for i in range(1, 6)]
        fake_x.reply.side_effect = lambda text, parent_id: Post(id=f"r-{parent_id}", text=text)
        monitor = QuoteMentionMonitor(
            fake_x, _orchestrator(), _generator(), store,
            config=MonitorConfig(max_actions_per_hour=2), clock=clock,
        )

        result = await monitor.run_once()

        assert fake_x.reply.await_count == 2
        assert result.acted == 2
        assert result.deferred == 3

    @pytest.mark.asyncio
    async def test_deferred_mentions_handled_next_hour(self, make_monitor, fake_x, clock, mention_factory):
        mentions = [mention_factory(str(100 + i)) for i in range(1, 6)]
        fake_x.fetch_mentions.return_value = mentions
        monitor = make_monitor(max_actions_per_hour=2, max_age_hours=24)

        await monitor.run_once()
        second = await monitor.run_once()
        assert second.acted == 0
        assert second.duplicates == 2

        clock.current["now"] += timedelta(hours=1)
        third = await monitor.run_once()
        assert third.acted == 2
        assert fake_x.fetch_mentions.await_args.kwargs["since_id"] == "102"
        assert [c.args[1] for c in fake_x.reply.await_args_list] == ["101", "102", "103", "104"]


class TestDedup:
    @pytest.mark.asyncio
    async def test_same_mention_replied_once(self, make_monitor, fake_x, mention_factory):
        fake_x.fetch_mentions.return_value = [mention_factory("101")]
        monitor = make_monitor()
        await monitor.run_once()
        result = await monitor.run_once()

        assert fake_x.reply.await_count == 1
        assert result.duplicates == 1

    @pytest.mark.asyncio
    async def test_processed_ids_survive_restart(self, make_monitor, fake_x, mention_factory):
        fake_x.fetch_mentions.return_value = [mention_factory("101")]
        await make_monitor().run_once()

        restarted = make_monitor()
        result = await restarted.run_once()
        assert result.duplicates == 1
        assert fake_x.reply.await_count == 1
        assert fake_x.fetch_mentions.await_args.kwargs["since_id"] == "101"

    @pytest.mark.asyncio
    async def test_cache_marker_alone_blocks_reply(self, make_monitor, fake_x, cache, mention_factory):
        await cache.mark_processed("101")
        fake_x.fetch_mentions.return_value = [mention_factory("101")]
        result = await make_monitor().run_once()
        assert result.duplicates == 1
        fake_x.reply.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_in_memory_ids_stay_bounded(self, make_monitor, fake_x, monkeypatch, mention_factory):
        monkeypatch.setattr("monitor.monitor.MAX_PROCESSED_IDS", 3)
        fake_x.fetch_mentions.return_value = [mention_factory(str(100 + i)) for i in range(1, 6)]
        monitor = make_monitor(max_actions_per_hour=10)

        result = await monitor.run_once()

        assert result.acted == 5
        assert list(monitor._processed) == ["103", "104", "105"]
        assert monitor.state.processed_ids == ["103", "104", "105"]


class TestFilters:
    @pytest.mark.asyncio
    async def test_old_mentions_skipped(self, make_monitor, fake_x, mention_factory):
        fake_x.fetch_mentions.return_value = [
            mention_factory("101", created_at=NOW - timedelta(hours=3)),
            mention_factory("102"),
        ]
        monitor = make_monitor(max_age_hours=2)
        result = await monitor.run_once()

        assert result.filtered == 1
        assert result.acted == 1
        assert monitor.state.last_mention_id == "102"

    @pytest.mark.asyncio
    async def test_keyword_filter(self, make_monitor, fake_x, mention_factory):
        fake_x.fetch_mentions.return_value = [
            mention_factory("101", text="@askthrop gm"),
            mention_factory("102", text="@askthrop what about Bitcoin"),
        ]
        result = await make_monitor(keywords=["bitcoin"]).run_once()
        assert result.filtered == 1
        assert [c.args[1] for c in fake_x.reply.await_args_list] == ["102"]

    @pytest.mark.asyncio
    async def test_mentions_ignore_engagement_threshold(self, make_monitor, fake_x, mention_factory):
        fake_x.fetch_mentions.return_value = [mention_factory("101", likes=0)]
        result = await make_monitor(min_engagement=1000).run_once()
        assert result.acted == 1


class TestAccounts:
    @pytest.mark.asyncio
    async def test_quotes_engaging_posts_from_watched_accounts(self, make_monitor, fake_x, cache,
                                                              mention_factory):
        fake_x.get_user_by_username.return_value = User(id="42", username="elonmusk")
        fake_x.get_user_tweets.return_value = [
            mention_factory("201", text="hot take", author_username="elonmusk", likes=5000),
            mention_factory("202", text="meh", author_username="elonmusk", likes=3),
        ]
        generator = _generator("source: trust me bro")
        monitor = make_monitor(generator=generator, accounts=["@elonmusk"], reply_to_mentions=False,
                               min_engagement=100)

        result = await monitor.run_once()

        fake_x.fetch_mentions.assert_not_awaited()
        fake_x.get_user_tweets.assert_awaited_once_with("42", since_id=None, max_results=10)
        fake_x.quote.assert_awaited_once_with("source: trust me bro", "201")
        generator.generate_reaction.assert_awaited_once_with("hot take")
        assert result.filtered == 1
        assert await cache.get_cached_user("elonmusk") == {"id": "42", "username": "elonmusk"}

    @pytest.mark.asyncio
    async def test_account_cursor_carries_to_next_tick(self, make_monitor, fake_x, cache,
                                                       mention_factory):
        fake_x.get_user_by_username.return_value = User(id="42", username="elonmusk")
        fake_x.get_user_tweets.return_value = [
            mention_factory("201", author_username="elonmusk", likes=5000),
            mention_factory("202", author_username="elonmusk", likes=1),
        ]
        monitor = make_monitor(accounts=["elonmusk"], reply_to_mentions=False, min_engagement=100)

        await monitor.run_once()
        fake_x.get_user_tweets.return_value = []
        await monitor.run_once()

        assert fake_x.get_user_tweets.await_args.kwargs["since_id"] == "202"
        assert (await cache.get_state()).last_seen_ids == {"elonmusk": "202"}

    @pytest.mark.asyncio
    async def test_user_id_resolved_once(self, make_monitor, fake_x):
        fake_x.get_user_by_username.return_value = User(id="42", username="elonmusk")
        fake_x.get_user_tweets.return_value = []
        monitor = make_monitor(accounts=["elonmusk"], reply_to_mentions=False)
        await monitor.run_once()
        await monitor.run_once()
        fake_x.get_user_by_username.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_account_does_not_stop_tick(self, make_monitor, fake_x, mention_factory):
        fake_x.get_user_by_username.side_effect = NotFoundError("User @ghost not found")
        fake_x.fetch_mentions.return_value = [mention_factory("101")]
        monitor = make_monitor(accounts=["ghost"])

        result = await monitor.run_once()
        assert result.errors == 1
        assert result.acted == 1


class TestReplies:
    @pytest.mark.asyncio
    async def test_long_answer_posted_as_thread(self, make_monitor, fake_x, mention_factory):
        fake_x.fetch_mentions.return_value = [mention_factory("101")]
        fake_x.post_thread.return_value = [Post(id="t1", text="a"), Post(id="t2", text="b")]
        orchestrator = _orchestrator(parts=["[1/2] a", "[2/2] b"])
        await make_monitor(orchestrator=orchestrator).run_once()

        fake_x.post_thread.assert_awaited_once_with(["[1/2] a", "[2/2] b"], parent_id="101")
        fake_x.reply.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_author_and_platform_passed(self, make_monitor, fake_x, mention_factory):
        fake_x.fetch_mentions.return_value = [mention_factory("101", author_username="carol")]
        orchestrator = _orchestrator()
        await make_monitor(orchestrator=orchestrator).run_once()

        question, author, history = orchestrator.generate_response.await_args.args
        assert question == "@askthrop who is vitalik"
        assert author.username == "carol"
        assert author.platform == "twitter"
        assert history is None

    @pytest.mark.asyncio
    async def test_conversation_context_fetched_when_enabled(self, make_monitor, fake_x, mention_factory):
        mention = mention_factory("105", conversation_id="100")
        fake_x.fetch_mentions.return_value = [mention]
        fake_x.get_conversation.return_value = [
            mention_factory("100", text="original question", author_username="dave"),
            mention_factory("103", text="earlier bot reply", author_username="askthrop"),
            mention,
        ]
        fake_x.get_conversation.return_value[1].author_id = "999"
        orchestrator = _orchestrator()
        await make_monitor(orchestrator=orchestrator, fetch_conversation_context=True).run_once()

        history = orchestrator.generate_response.await_args.args[2]
        assert history == [
            {"role": "user", "content": "original question"},
            {"role": "assistant", "content": "earlier bot reply"},
        ]

    @pytest.mark.asyncio
    async def test_failed_reply_not_marked_processed(self, make_monitor, fake_x, cache, mention_factory):
        fake_x.fetch_mentions.return_value = [mention_factory("101"), mention_factory("102")]
        monitor = make_monitor()
        fake_x.reply.side_effect = [NotFoundError("deleted"), Post(id="r2", text="ok")]

        result = await monitor.run_once()

        assert result.errors == 1
        assert result.acted == 1
        assert await cache.is_processed("101") is False
        assert monitor.state.last_mention_id == "102"
        assert (await cache.get_stats())["errors"] == 1


class TestRateLimits:
    @pytest.mark.asyncio
    async def test_rate_limit_starts_cooldown(self, make_monitor, fake_x, cache, mention_factory):
        fake_x.fetch_mentions.return_value = [mention_factory("101"), mention_factory("102")]
        monitor = make_monitor()
        reset_at = time.time() + 600
        fake_x.reply.side_effect = RateLimitError("tweets rate limited", reset_at=reset_at, endpoint="tweets")

        result = await monitor.run_once()

        assert result.rate_limited is True
        assert fake_x.reply.await_count == 1
        assert monitor.cooldown_until == reset_at
        assert monitor.state.last_mention_id is None
        assert (await cache.get_state()).rate_limit_reset == reset_at

        fake_x.fetch_mentions.reset_mock()
        paused = await monitor.run_once()
        assert paused.cooling_down is True
        fake_x.fetch_mentions.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cooldown_restored_after_restart(self, make_monitor, fake_x, cache):
        fake_x.fetch_mentions.side_effect = RateLimitError("mentions", reset_at=time.time() + 300)
        await make_monitor().run_once()

        restarted = make_monitor()
        fake_x.fetch_mentions.reset_mock()
        result = await restarted.run_once()
        assert result.cooling_down is True
        fake_x.fetch_mentions.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_partial_thread_marks_processed_and_cools_down(self, make_monitor, fake_x, cache,
                                                                mention_factory):
        fake_x.fetch_mentions.return_value = [mention_factory("101"), mention_factory("102")]
        cause = RateLimitError("tweets", reset_at=time.time() + 900, endpoint="tweets")
        fake_x.post_thread.side_effect = PartialThreadError([Post(id="t1", text="a")], cause)
        monitor = make_monitor(orchestrator=_orchestrator(parts=["[1/2] a", "[2/2] b"]))

        result = await monitor.run_once()

        assert result.rate_limited is True
        assert await cache.is_processed("101") is True
        assert monitor.state.last_mention_id == "101"
        assert fake_x.post_thread.await_count == 1


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_and_stop(self, make_monitor, fake_x):
        monitor = make_monitor()
        task = await monitor.start(MonitorConfig(check_interval_ms=60_000, max_actions_per_hour=3))

        for _ in range(20):
            if fake_x.fetch_mentions.await_count:
                break
            await asyncio.sleep(0.01)

        assert monitor.running
        assert monitor.quota.max_per_hour == 3
        await asyncio.wait_for(monitor.stop(), timeout=1.0)
        assert task.done()
        assert not monitor.running
        assert fake_x.fetch_mentions.await_count == 1

    @pytest.mark.asyncio
    async def test_auth_error_stops_loop(self, make_monitor, fake_x):
        fake_x.fetch_mentions.side_effect = AuthError("token revoked", 401)
        monitor = make_monitor(check_interval_ms=10)
        task = await monitor.start()

        await asyncio.wait_for(asyncio.wait([task]), timeout=1.0)
        assert isinstance(task.exception(), AuthError)
        await monitor.stop()

    @pytest.mark.asyncio
    async def test_other_errors_keep_loop_running(self, make_monitor, fake_x):
        fake_x.fetch_mentions.side_effect = [RuntimeError("boom"), []]
        monitor = make_monitor(check_interval_ms=10)
        await monitor.start()

        for _ in range(50):
            if fake_x.fetch_mentions.await_count >= 2:
                break
            await asyncio.sleep(0.01)

        assert fake_x.fetch_mentions.await_count >= 2
        await monitor.stop()

    @pytest.mark.asyncio
    async def test_stop_without_start(self, make_monitor):
        await make_monitor().stop()
