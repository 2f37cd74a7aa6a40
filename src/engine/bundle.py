"""Per-request evidence accumulator."""

from dataclasses import dataclass, field
from typing import Optional

from evidence import Candidate, PriceQuote, ToolResult
from shared_types import Domain, Intent

MAX_FACTS = 10

LOW_CONFIDENCE = 0.3
MEDIUM_CONFIDENCE = 0.6
HIGH_CONFIDENCE = 0.9

NO_EVIDENCE_FACT = "no evidence found"


def confidence_for(fact_count: int) -> float:
    """0 facts -> low, 1-2 -> medium, 3+ -> high."""
    if fact_count >= 3:
        return HIGH_CONFIDENCE
    if fact_count >= 1:
        return MEDIUM_CONFIDENCE
    return LOW_CONFIDENCE


@dataclass
class EvidenceBundle:
    """Facts, sources and candidates gathered for one question.

    Created per request and consumed once by the generator; never persisted.
    Facts keep discovery order and are capped at MAX_FACTS. Sources are
    unique. Confidence follows the fact count, so it never drops as
    evidence is added.
    """

    intent: Intent
    domain: Domain
    query: str
    facts: list[str] = field(default_factory=list)
    sources: list[str] = field(default_factory=list)
    candidates: list[Candidate] = field(default_factory=list)
    price: Optional[PriceQuote] = None
    tool_errors: list[str] = field(default_factory=list)

    @property
    def confidence(self) -> float:
        return confidence_for(len(self.facts))

    @property
    def needs_disambiguation(self) -> bool:
        return bool(self.candidates)

    def add_facts(self, facts: list[str]) -> None:
        for fact in facts:
            if len(self.facts) >= MAX_FACTS:
                break
            if fact:
                self.facts.append(fact)

    def add_sources(self, sources: list[str]) -> None:
        for source in sources:
            if source and source not in self.sources:
                self.sources.append(source)

    def add_result(self, tool_name: str, result: ToolResult) -> None:
        if result.empty:
            self.tool_errors.append(tool_name)
            return
        self.add_facts(result.facts)
        self.add_sources(result.sources)
        self.candidates.extend(result.candidates)
        if result.price is not None and self.price is None:
            self.price = result.price

    def facts_or_fallback(self) -> list[str]:
        """Facts, or the explicit no-evidence marker when there are none."""
        return list(self.facts) if self.facts else [NO_EVIDENCE_FACT]
