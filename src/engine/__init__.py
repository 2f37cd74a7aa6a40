"""Answer orchestration and persona response generation."""

from .bundle import (
    HIGH_CONFIDENCE,
    LOW_CONFIDENCE,
    MAX_FACTS,
    MEDIUM_CONFIDENCE,
    NO_EVIDENCE_FACT,
    EvidenceBundle,
    confidence_for,
)
from .classifier import Classification, classify
from .formatting import ensure_persona_formatting, format_for_platform
from .generator import AuthorContext, ResponseGenerator
from .orchestrator import AnswerOrchestrator, ChatResponse
from .registry import ToolRegistry

__all__ = [
    "AnswerOrchestrator",
    "ChatResponse",
    "AuthorContext",
    "ResponseGenerator",
    "ToolRegistry",
    "EvidenceBundle",
    "Classification",
    "classify",
    "confidence_for",
    "format_for_platform",
    "ensure_persona_formatting",
    "MAX_FACTS",
    "LOW_CONFIDENCE",
    "MEDIUM_CONFIDENCE",
    "HIGH_CONFIDENCE",
    "NO_EVIDENCE_FACT",
]
