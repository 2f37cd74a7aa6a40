"""Ordered keyword rules mapping a question to an intent and a domain.

Rules are checked top to bottom; the first rule with a matching pattern wins.
"""

import re
from dataclasses import dataclass

from shared_types import Domain, Intent


@dataclass(frozen=True)
class Rule:
    label: str
    patterns: tuple[re.Pattern, ...]

    def matches(self, text: str) -> bool:
        return any(p.search(text) for p in self.patterns)


def _rule(label, *patterns: str) -> Rule:
    return Rule(label, tuple(re.compile(p, re.IGNORECASE) for p in patterns))


INTENT_RULES: tuple[Rule, ...] = (
    _rule(
        Intent.IDENTITY,
        r"\bwho\s+(is|are|was)\b",
        r"\bwho'?s\b",
        r"(?<![\w@])@\w{1,15}",
    ),
    _rule(
        Intent.MARKET,
        r"\bprices?\b",
        r"(?<!\w)\$[a-z][a-z0-9]{1,9}\b",
        r"\bmarket\s*cap\b",
        r"\b(bitcoin|btc|eth|ethereum|sol|solana|doge|tokens?|crypto|coins?|memecoins?|pump|dump|charts?)\b",
    ),
    _rule(
        Intent.CURRENT_EVENTS,
        r"\b(latest|news|drama|happening|happened|today|tonight|trending|tea|beef|update|announced)\b",
        r"\bthis\s+week\b",
    ),
    _rule(
        Intent.EXPLAINER,
        r"\bwhat\s+(is|are|does|do)\b",
        r"\bwhat'?s\s+(a|an|the)\b",
        r"\bhow\s+(does|do|did|can|to|is)\b",
        r"\bwhy\s+(is|are|does|do|did)\b",
        r"\b(explain|eli5|define|meaning\s+of)\b",
    ),
)

DOMAIN_RULES: tuple[Rule, ...] = (
    _rule(
        Domain.MARKET,
        r"(?<!\w)\$[a-z][a-z0-9]{1,9}\b",
        r"\b(prices?|stocks?|crypto|bitcoin|btc|eth|ethereum|sol|solana|tokens?|market|trading|defi|nfts?|memecoins?)\b",
    ),
    _rule(
        Domain.TECHNOLOGY,
        r"\b(ai|openai|anthropic|claude|gpt\w*|llms?|tech|software|javascript|python|startup|apple|google|coding|iphone)\b",
    ),
    _rule(
        Domain.GAMING,
        r"\b(games?|gaming|fortnite|valorant|patch|esports|twitch|xbox|playstation|nintendo|minecraft|gta|steam)\b",
    ),
    _rule(
        Domain.CULTURE,
        r"\b(memes?|music|movies?|celebrity|celebs?|tiktok|viral|album|rapper|fashion|netflix|influencer)\b",
    ),
)

PROMPT_FISHING_PATTERNS = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"show.*prompt",
        r"reveal.*system",
        r"system.*prompt",
        r"ignore.*previous",
        r"forget.*instructions",
        r"programming.*instructions",
    )
)

_LEADING_HANDLES = re.compile(r"^(\s*@\w{1,15})+\s*")


@dataclass(frozen=True)
class Classification:
    intent: Intent
    domain: Domain


def strip_reply_handles(text: str) -> str:
    """Drop the @handles X prepends to replies, keeping the question."""
    return _LEADING_HANDLES.sub("", text).strip()


def is_prompt_fishing(text: str) -> bool:
    return any(p.search(text) for p in PROMPT_FISHING_PATTERNS)


def classify_intent(text: str) -> Intent:
    for rule in INTENT_RULES:
        if rule.matches(text):
            return Intent(rule.label)
    return Intent.CASUAL


def classify_domain(text: str) -> Domain:
    for rule in DOMAIN_RULES:
        if rule.matches(text):
            return Domain(rule.label)
    return Domain.GENERAL


def classify(text: str) -> Classification:
    intent = classify_intent(text)
    domain = Domain.MARKET if intent == Intent.MARKET else classify_domain(text)
    return Classification(intent=intent, domain=domain)
