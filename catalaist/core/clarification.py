"""Clarifying question generation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional, Sequence

from ..llm.base import LLMProvider, build_messages
from .conversation.parser import MAX_QUESTIONS_PER_BATCH, parse_questions
from .models import ClarificationQuestion, TerminationReason
from .prompts import CLARIFICATION_PROMPT_ID, PromptLibrary

if TYPE_CHECKING:
    from .conversation.summarizer import SummarizedContext
    from .models import ClarificationExchange, InterimClassification

LOGGER = logging.getLogger(__name__)

MAX_QUESTIONS_PER_SESSION = 5
MIN_CLARIFY_CONFIDENCE = 0.6
MAX_CLARIFY_CONFIDENCE = 0.85


@dataclass
class ClarificationDecision:
    should_clarify: bool
    reason: str
    stop_reason: Optional[TerminationReason] = None


@dataclass
class QuestionBatch:
    questions: List[ClarificationQuestion] = field(default_factory=list)
    reason: str = ""
    raw_response: str = ""


class ClarificationService:
    """Decides whether to ask more questions and asks the LLM for them."""

    def __init__(
        self,
        provider: LLMProvider,
        model: str,
        prompts: PromptLibrary | None = None,
        *,
        max_questions: int = MAX_QUESTIONS_PER_SESSION,
        min_confidence: float = MIN_CLARIFY_CONFIDENCE,
        max_confidence: float = MAX_CLARIFY_CONFIDENCE,
        batch_size: int = MAX_QUESTIONS_PER_BATCH,
    ) -> None:
        self.provider = provider
        self.model = model
        self.prompts = prompts or PromptLibrary()
        self.max_questions = max_questions
        self.min_confidence = min_confidence
        self.max_confidence = max_confidence
        self.batch_size = batch_size

    def can_ask_more(self, exchanges: Sequence[ClarificationExchange]) -> bool:
        return len(exchanges) < self.max_questions

    def remaining_questions(self, exchanges: Sequence[ClarificationExchange]) -> int:
        return max(0, self.max_questions - len(exchanges))

    def should_clarify(
        self,
        confidence: float,
        exchanges: Sequence[ClarificationExchange],
    ) -> ClarificationDecision:
        """Gate clarification on the question budget and the confidence band."""
        if not self.can_ask_more(exchanges):
            return ClarificationDecision(
                False,
                f"Maximum question limit ({self.max_questions}) reached",
                TerminationReason.MAX_QUESTIONS,
            )
        if confidence > self.max_confidence:
            return ClarificationDecision(
                False,
                f"High confidence classification (>{self.max_confidence}), no clarification needed",
                TerminationReason.EVALUATION,
            )
        if confidence < self.min_confidence:
            return ClarificationDecision(
                False,
                f"Low confidence classification (<{self.min_confidence}), flagged for manual review",
                TerminationReason.MANUAL_REVIEW,
            )
        return ClarificationDecision(True, f"Medium confidence ({confidence:.2f})")

    async def generate_questions(
        self,
        context: SummarizedContext,
        classification: InterimClassification,
        exchanges: Sequence[ClarificationExchange],
    ) -> QuestionBatch:
        """
        Ask the LLM for the next batch of clarifying questions.

        The batch never exceeds the per-batch limit or the remaining session
        budget. An empty batch means the LLM has nothing left to ask.

        Args:
            context: Condensed conversation, including earlier questions
            classification: The current interim classification
            exchanges: All answered exchanges so far

        Returns:
            QuestionBatch with the parsed questions and the raw response

        Raises:
            LLMProviderError: The provider call failed after retries
            LLMResponseError: The response held no JSON array
        """
        remaining = self.remaining_questions(exchanges)
        user_content = (
            f"{context.render()}\n"
            "Current Classification:\n"
            f"- Category: {classification.category.value}\n"
            f"- Confidence: {classification.confidence:.2f}\n"
            f"- Rationale: {classification.rationale}\n\n"
            f"Remaining questions allowed: {remaining}\n"
            f"Generate 1-{self.batch_size} clarifying questions."
        )
        messages = build_messages(self.prompts.get(CLARIFICATION_PROMPT_ID), user_content, self.model)
        completion = await self.provider.chat(messages, self.model)

        questions = parse_questions(completion.content, limit=min(self.batch_size, remaining))
        LOGGER.info(
            "Generated %d clarifying question(s) at confidence %.2f",
            len(questions),
            classification.confidence,
        )
        return QuestionBatch(
            questions=questions,
            reason=f"Medium confidence ({classification.confidence:.2f}), generating {len(questions)} question(s)",
            raw_response=completion.content,
        )
