"""Answer orchestration: classify, gather evidence, disambiguate, generate."""

import asyncio
from dataclasses import asdict, dataclass, field
from typing import Optional

import structlog

from cache import CacheStore
from observability import metrics
from shared_types import Domain, Intent, Platform

from .bundle import LOW_CONFIDENCE, EvidenceBundle
from .classifier import Classification, classify, is_prompt_fishing, strip_reply_handles
from .formatting import TWITTER_MAX_LENGTH, format_for_platform
from .generator import AuthorContext, ResponseGenerator
from .prompts import FAILURE_TEXT
from .registry import ToolRegistry

logger = structlog.get_logger().bind(source="orchestrator")


@dataclass
class ChatResponse:
    """What the chat boundary hands back to callers."""

    text: str
    citations: list[str] = field(default_factory=list)
    should_thread: bool = False
    thread_parts: list[str] = field(default_factory=list)
    confidence: float = LOW_CONFIDENCE
    intent: Intent = Intent.CASUAL
    domain: Domain = Domain.GENERAL
    facts: list[str] = field(default_factory=list)
    disambiguation: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


class AnswerOrchestrator:
    """Runs one question through Classify -> GatherEvidence -> Disambiguate -> Generate.

    Which tools run is decided entirely by the ToolRegistry; tools for one
    request run concurrently and all of them settle before generation.
    Disambiguation is checked before any text is generated.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        generator: ResponseGenerator,
        cache: Optional[CacheStore] = None,
    ):
        self.registry = registry
        self.generator = generator
        self.cache = cache

    def classify(self, question: str) -> Classification:
        return classify(question)

    async def gather_evidence(self, question: str, classification: Classification) -> EvidenceBundle:
        bundle = EvidenceBundle(
            intent=classification.intent,
            domain=classification.domain,
            query=question,
        )
        tools = self.registry.tools_for(classification.intent, classification.domain)
        if not tools:
            return bundle

        with metrics.timer("gather_evidence"):
            results = await asyncio.gather(*(tool.search(question) for tool in tools), return_exceptions=True)

        for tool, result in zip(tools, results):
            if isinstance(result, BaseException):
                logger.error("tool_escaped", tool=tool.name, error=str(result))
                bundle.tool_errors.append(tool.name)
                continue
            bundle.add_result(tool.name, result)

        logger.info(
            "evidence_gathered",
            intent=bundle.intent,
            domain=bundle.domain,
            tools=[t.name for t in tools],
            facts=len(bundle.facts),
            failed=bundle.tool_errors,
            confidence=bundle.confidence,
        )
        return bundle

    async def answer(
        self,
        question: str,
        author: Optional[AuthorContext] = None,
        history: Optional[list[dict]] = None,
    ) -> ChatResponse:
        """Full pipeline. May raise; use generate_response() at boundaries."""
        author = author or AuthorContext()
        cleaned = strip_reply_handles(question) or question.strip()

        if is_prompt_fishing(cleaned):
            logger.info("prompt_fishing_deflected", author=author.username)
            return self._finish(self.generator.prompt_fishing_reply(), author, confidence=1.0)

        classification = self.classify(cleaned)
        bundle = await self.gather_evidence(cleaned, classification)
        tools_ran = bool(self.registry.tools_for(classification.intent, classification.domain))

        if bundle.needs_disambiguation:
            logger.info("disambiguation_needed", candidates=len(bundle.candidates))
            text = self.generator.generate_disambiguation(bundle)
        else:
            text = await self.generator.generate(bundle, author, history)

        return self._finish(
            text,
            author,
            citations=list(bundle.sources),
            confidence=bundle.confidence,
            intent=bundle.intent,
            domain=bundle.domain,
            facts=bundle.facts_or_fallback() if tools_ran else list(bundle.facts),
            disambiguation=bundle.needs_disambiguation,
        )

    def _finish(self, text: str, author: AuthorContext, **fields) -> ChatResponse:
        parts: list[str] = []
        if author.platform == Platform.TWITTER:
            parts = format_for_platform(text, TWITTER_MAX_LENGTH)
        should_thread = len(parts) > 1
        return ChatResponse(
            text=text,
            should_thread=should_thread,
            thread_parts=parts if should_thread else [],
            **fields,
        )

    async def generate_response(
        self,
        question: str,
        author: Optional[AuthorContext] = None,
        history: Optional[list[dict]] = None,
    ) -> ChatResponse:
        """Chat boundary. Always returns a response, never raises."""
        author = author or AuthorContext()
        metrics.counter("questions")
        try:
            with metrics.timer("generate_response"):
                response = await self.answer(question, author, history)
        except Exception as e:
            logger.exception("response_failed", error=str(e), author=author.username)
            metrics.counter("response_failures")
            response = self._finish(FAILURE_TEXT, author, confidence=LOW_CONFIDENCE)

        if self.cache is not None:
            await self.cache.cache_interaction(question, response.text, source=str(author.platform))
        return response

    async def compose_post(self, topic: str) -> ChatResponse:
        """Original post (or thread) about a topic, grounded in fresh evidence."""
        classification = self.classify(topic)
        bundle = await self.gather_evidence(topic, classification)
        text = await self.generator.generate_proactive(topic, bundle.facts)
        return self._finish(
            text,
            AuthorContext(platform=Platform.TWITTER),
            citations=list(bundle.sources),
            confidence=bundle.confidence,
            intent=bundle.intent,
            domain=bundle.domain,
            facts=list(bundle.facts),
        )
