"""Persona rewrite of evidence into throp's voice."""

import random
import re
from dataclasses import dataclass
from typing import Optional

import structlog

from evidence.profile_lookup import extract_subject
from llm import LLMError, LLMProvider
from observability import metrics
from shared_types import Intent, Platform

from .bundle import EvidenceBundle
from .formatting import TWITTER_MAX_LENGTH, ensure_persona_formatting
from .prompts import (
    CASUAL_REPLIES,
    CLOSERS,
    FALLBACK_REACTIONS,
    INTENT_LEADS,
    NO_EVIDENCE_TEXT,
    PROACTIVE_SYSTEM,
    PROMPT_FISHING_REPLIES,
    REACTION_SYSTEM,
    build_system_prompt,
    build_user_prompt,
)

logger = structlog.get_logger().bind(source="generator")

_FIGURE = re.compile(r"\d[\d,.]*\d|\d")


@dataclass
class AuthorContext:
    """Who is asking and where the answer will be shown."""

    username: str = ""
    name: str = ""
    bio: str = ""
    verified: bool = False
    platform: Platform = Platform.WEB


def _figures(text: str) -> set[str]:
    return {m.replace(",", "").rstrip(".") for m in _FIGURE.findall(text)}


def preserves_figures(text: str, facts: list[str]) -> bool:
    """True when every number in the facts survives in the rewritten text."""
    wanted = set()
    for fact in facts:
        wanted |= _figures(fact)
    return wanted <= _figures(text)


class ResponseGenerator:
    """Turns an EvidenceBundle into persona-voiced text.

    With an LLM provider the facts are rewritten by the model; the rewrite is
    rejected if it drops any figure from the facts. Without a provider, or on
    any provider failure, a template embeds every fact verbatim.
    """

    def __init__(
        self,
        provider: Optional[LLMProvider] = None,
        max_tokens: int = 400,
        temperature: float = 0.9,
        rng: Optional[random.Random] = None,
    ):
        self.provider = provider
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._rng = rng or random.Random()

    async def _complete(self, system: str, prompt: str, max_tokens: Optional[int] = None) -> Optional[str]:
        if self.provider is None:
            return None
        try:
            with metrics.timer("llm_generate"):
                text = await self.provider.generate(
                    messages=[{"role": "user", "content": prompt}],
                    system=system,
                    max_tokens=max_tokens or self.max_tokens,
                    temperature=self.temperature,
                )
        except LLMError as e:
            logger.warning("llm_failed", provider=self.provider.provider_name, error=str(e))
            metrics.counter("llm_failures")
            return None
        return text.strip() or None

    async def generate(
        self,
        bundle: EvidenceBundle,
        author: Optional[AuthorContext] = None,
        history: Optional[list[dict]] = None,
    ) -> str:
        author = author or AuthorContext()
        text = await self._complete(
            build_system_prompt(bundle.intent, bundle.domain, bundle.confidence),
            build_user_prompt(bundle.query, bundle.facts, author.username, history),
        )
        if text:
            rewritten = ensure_persona_formatting(text)
            if preserves_figures(rewritten, bundle.facts):
                return rewritten
            logger.info("rewrite_dropped_figures", intent=bundle.intent)
        return self.template(bundle)

    def template(self, bundle: EvidenceBundle) -> str:
        """Deterministic persona text containing every fact."""
        if not bundle.facts:
            if bundle.intent == Intent.CASUAL:
                return self._rng.choice(CASUAL_REPLIES)
            return NO_EVIDENCE_TEXT

        body = ". ".join(fact.rstrip(". ") for fact in bundle.facts)
        lead = INTENT_LEADS.get(bundle.intent, "")
        closer = self._rng.choice(CLOSERS)
        return ensure_persona_formatting(f"{lead} {body}. {closer}")

    def generate_disambiguation(self, bundle: EvidenceBundle) -> str:
        """Ask which of the candidates the user meant, listing all of them."""
        options = [
            f"{c.name} ({c.description})" if c.description else c.name
            for c in bundle.candidates
        ]
        subject = extract_subject(bundle.query) or "one"
        text = f"which {subject} we talking about? {' or '.join(options)}? be specific bestie"
        return ensure_persona_formatting(text)

    def prompt_fishing_reply(self) -> str:
        return self._rng.choice(PROMPT_FISHING_REPLIES)

    async def generate_reaction(self, tweet_text: str) -> str:
        """Short sarcastic quote-tweet reaction."""
        text = await self._complete(REACTION_SYSTEM, f"React to this post:\n\n{tweet_text}", max_tokens=150)
        if text:
            return ensure_persona_formatting(text)[:TWITTER_MAX_LENGTH]
        return self._rng.choice(FALLBACK_REACTIONS)

    async def generate_proactive(self, topic: str, facts: Optional[list[str]] = None) -> str:
        """Original post about a topic, grounded in facts when there are any."""
        facts = facts or []
        prompt = build_user_prompt(f"write a post about: {topic}", facts)
        text = await self._complete(PROACTIVE_SYSTEM, prompt)
        if text:
            rewritten = ensure_persona_formatting(text)
            if preserves_figures(rewritten, facts):
                return rewritten
        if facts:
            body = ". ".join(f.rstrip(". ") for f in facts)
            return ensure_persona_formatting(f"thoughts on {topic}: {body}. {self._rng.choice(CLOSERS)}")
        return ensure_persona_formatting(f"{topic} discourse is wild today and nobody is ok. {self._rng.choice(CLOSERS)}")
