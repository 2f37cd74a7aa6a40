"""CLI commands for throp."""

import asyncio
import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import click
import structlog
from rich.console import Console
from rich.table import Table

from cache import CacheStore
from cli.config import load_config_model
from cli.config_models import ThropConfig
from cli.logging_config import setup_logging
from engine import AnswerOrchestrator, AuthorContext, ResponseGenerator, ToolRegistry
from evidence import PriceLookupTool, ProfileLookupTool, SocialSearchTool, WebSearchTool
from llm import create_optional_provider
from monitor import QuoteMentionMonitor
from observability import log_run_summary
from shared_types import Platform
from xapi import AuthError, PartialThreadError, RateLimitError, XAPIError, XClient

console = Console()
logger = structlog.get_logger().bind(source="cli")


@dataclass
class Components:
    config: ThropConfig
    cache: CacheStore
    client: XClient
    registry: ToolRegistry
    generator: ResponseGenerator
    orchestrator: AnswerOrchestrator
    monitor: QuoteMentionMonitor

    async def aclose(self) -> None:
        await self.registry.aclose()
        await self.client.aclose()
        await self.cache.close()


def build_components(config: ThropConfig) -> Components:
    """Wire every component from config. Nothing touches the network here."""
    cache = CacheStore(
        url=config.cache.redis_url,
        namespace=config.cache.namespace,
        connect_timeout=config.cache.connect_timeout,
    )
    client = XClient(config.x, dry_run=config.bot.dry_run, retry_config=config.retry)

    search = config.search
    tools = [
        WebSearchTool(
            api_key=search.tavily_api_key,
            provider=search.provider,
            perplexity_api_key=search.perplexity_api_key,
            perplexity_model=search.perplexity_model,
            max_results=search.max_results,
            cache=cache,
            timeout=search.tool_timeout_seconds,
        ),
        SocialSearchTool(client, cache=cache),
        ProfileLookupTool(client, cache=cache),
        PriceLookupTool(network=search.gecko_network, cache=cache),
    ]
    for tool in tools:
        tool.cache_ttl = search.cache_ttl_seconds
    registry = ToolRegistry(tools)

    provider = create_optional_provider(
        provider=config.llm.provider, api_key=config.llm.api_key, model=config.llm.model
    )
    if provider is None:
        logger.info("llm_disabled", reason="no provider configured; using templates")
    generator = ResponseGenerator(
        provider, max_tokens=config.llm.max_tokens, temperature=config.llm.temperature
    )
    orchestrator = AnswerOrchestrator(registry, generator, cache=cache)
    monitor = QuoteMentionMonitor(client, orchestrator, generator, cache, config=config.monitor)

    return Components(
        config=config,
        cache=cache,
        client=client,
        registry=registry,
        generator=generator,
        orchestrator=orchestrator,
        monitor=monitor,
    )


async def _with_components(config: ThropConfig, func):
    c = build_components(config)
    await c.cache.connect()
    try:
        return await func(c)
    finally:
        await c.aclose()


def _fail(message: str) -> None:
    console.print(f"[red]Error:[/] {message}")
    sys.exit(1)


@click.group()
@click.version_option(version="0.1.0")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option("--json-logs", is_flag=True, help="Emit JSON log lines")
@click.option("--dry-run", is_flag=True, help="Never post; log what would be posted")
@click.option("-c", "--config", "config_path", type=click.Path(exists=True, dir_okay=False),
              help="Path to config.yaml")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, json_logs: bool, dry_run: bool, config_path: Optional[str]):
    """throp - chaotic persona bot for X."""
    config = load_config_model(Path(config_path) if config_path else None)
    if verbose:
        config.logging.level = "DEBUG"
    if json_logs:
        config.logging.json_mode = True
    if dry_run:
        config.bot.dry_run = True
    setup_logging(json_mode=config.logging.json_mode, level=config.logging.level)
    ctx.obj = config


@cli.command()
@click.argument("question")
@click.option("--platform", type=click.Choice([p.value for p in Platform]), default="web",
              help="Format the answer for this surface")
@click.option("--author", default="", help="Username asking the question")
@click.option("--as-json", is_flag=True, help="Print the full response as JSON")
@click.pass_obj
def ask(config: ThropConfig, question: str, platform: str, author: str, as_json: bool):
    """Answer a question the way the bot would."""

    async def run(c: Components):
        return await c.orchestrator.generate_response(
            question, AuthorContext(username=author, platform=Platform(platform))
        )

    with console.status("thinking..."):
        response = asyncio.run(_with_components(config, run))

    if as_json:
        click.echo(json.dumps(response.to_dict(), indent=2))
        return
    if response.should_thread:
        for part in response.thread_parts:
            console.print(part)
            console.print()
    else:
        console.print(response.text)
    if response.citations:
        console.print()
        for url in response.citations:
            console.print(f"[dim]{url}[/]")
    console.print(f"\n[dim]{response.intent} / {response.domain} / confidence {response.confidence}[/]")


@cli.command()
@click.option("--once", is_flag=True, help="Run a single polling pass and exit")
@click.pass_obj
def monitor(config: ThropConfig, once: bool):
    """Watch mentions and configured accounts."""

    async def run(c: Components):
        if once:
            result = await c.monitor.run_once()
            log_run_summary()
            return result
        task = await c.monitor.start()
        try:
            await task
        finally:
            await c.monitor.stop()

    try:
        result = asyncio.run(_with_components(config, run))
    except AuthError as e:
        _fail(f"X credentials rejected: {e}")
    except KeyboardInterrupt:
        console.print("[yellow]stopped.[/]")
        return
    if once and result is not None:
        console.print(
            f"fetched {result.fetched}, acted {result.acted}, duplicates {result.duplicates}, "
            f"filtered {result.filtered}, deferred {result.deferred}, errors {result.errors}"
        )
        if result.rate_limited:
            console.print("[yellow]rate limited; cooling down until reset[/]")


@cli.command()
@click.argument("text", required=False)
@click.option("--topic", help="Compose a post about this topic instead")
@click.pass_obj
def tweet(config: ThropConfig, text: Optional[str], topic: Optional[str]):
    """Post a single tweet, or compose one about a topic."""
    if not text and not topic:
        raise click.UsageError("Give TEXT or --topic")

    async def run(c: Components):
        if not topic:
            return [await c.client.post(text)]
        composed = await c.orchestrator.compose_post(topic)
        if composed.should_thread:
            return await c.client.post_thread(composed.thread_parts)
        return [await c.client.post(composed.text)]

    try:
        posts = asyncio.run(_with_components(config, run))
    except PartialThreadError as e:
        _fail(f"thread stopped after {len(e.posted)} posts ({', '.join(e.posted_ids)}): {e.cause}")
    except (RateLimitError, AuthError, XAPIError) as e:
        _fail(str(e))
    for post in posts:
        label = "[yellow]dry run[/]" if post.dry_run else "[green]posted[/]"
        console.print(f"{label} {post.id}: {post.text}")


@cli.command()
@click.argument("parts", nargs=-1, required=True)
@click.option("--reply-to", help="Post the thread as a reply to this tweet id")
@click.pass_obj
def thread(config: ThropConfig, parts: tuple[str, ...], reply_to: Optional[str]):
    """Post PARTS as a thread, in order."""

    async def run(c: Components):
        return await c.client.post_thread(list(parts), parent_id=reply_to)

    try:
        posts = asyncio.run(_with_components(config, run))
    except PartialThreadError as e:
        _fail(f"thread stopped after {len(e.posted)} of {len(parts)} posts "
              f"({', '.join(e.posted_ids)}): {e.cause}")
    except (RateLimitError, AuthError, XAPIError) as e:
        _fail(str(e))
    for post in posts:
        console.print(f"[green]{post.id}[/] {post.text}")


@cli.command()
@click.pass_obj
def status(config: ThropConfig):
    """Show cache backend, stats, and rate limit state."""

    async def run(c: Components):
        return c.cache.backend, await c.cache.get_stats(), await c.monitor.quota.used(), \
            c.client.rate_limit_status()

    backend, stats, used, limits = asyncio.run(_with_components(config, run))

    table = Table(title="throp status")
    table.add_column("Item", style="cyan")
    table.add_column("Value")
    table.add_row("Cache backend", backend)
    table.add_row("Dry run", str(config.bot.dry_run))
    table.add_row("API tier", str(config.x.tier))
    table.add_row("Throttle interval", f"{limits['throttle_interval']:g}s")
    for endpoint, info in limits["endpoints"].items():
        state = "blocked" if info["blocked"] else f"{info['remaining']}/{info['limit']}"
        table.add_row(f"Endpoint {endpoint}", state)
    table.add_row("Actions this hour", f"{used}/{config.monitor.max_actions_per_hour}")
    for name in ("mentions_processed", "responses_generated", "errors"):
        table.add_row(name.replace("_", " ").capitalize(), str(stats.get(name, 0)))
    table.add_row("Last run", str(stats.get("last_run") or "never"))
    console.print(table)


if __name__ == "__main__":
    cli()
