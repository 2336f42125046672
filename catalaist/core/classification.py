"""LLM classification, routing and attribute extraction."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any, Dict, Sequence

from ..llm.base import LLMProvider, build_messages
from .conversation.parser import parse_attributes, parse_classification
from .errors import LLMResponseError
from .matrix.attributes import heuristic_attributes
from .models import ConfidenceAction, InterimClassification
from .prompts import (
    ATTRIBUTE_EXTRACTION_PROMPT_ID,
    CLASSIFICATION_PROMPT_ID,
    PromptLibrary,
)

if TYPE_CHECKING:
    from .conversation.summarizer import SummarizedContext
    from .models import ClarificationExchange

LOGGER = logging.getLogger(__name__)

MANUAL_REVIEW_THRESHOLD = 0.5
AUTO_CLASSIFY_THRESHOLD = 0.98
GOOD_AFTER_EXCHANGES = 3

_CORE_SIGNALS = (
    re.compile(r"\b(daily|weekly|monthly|hourly|quarterly|annually|every|once|twice|times? per)\b"),
    re.compile(r"\b(\d+|many|few|several|multiple|hundreds?|thousands?|transactions|users|people)\b"),
    re.compile(
        r"\b(currently|now|today|manual|paper|digital|automated|system|tool|software|spreadsheet|excel|legacy)\b"
    ),
    re.compile(r"\b(steps?|process|workflow|involves?|requires?|needs?|systems?|departments?|approvals)\b"),
    re.compile(
        r"\b(problem|issue|slow|error|mistake|difficult|time-consuming|inefficient|frustrating|pain|bottleneck)\b"
    ),
)

_STRATEGIC_SIGNALS = (
    re.compile(r"\b(success|outcome|goal|achieve|benefit|metric|kpi|target)\b"),
    re.compile(r"\b(save|cost|money|revenue|value|hours|roi|investment)\b"),
    re.compile(r"\b(risk|constraint|blocker|dependency|security|compliance|safety)\b"),
    re.compile(r"\b(sponsor|owner|stakeholder|manager|legal|budget|approved|buy-in)\b"),
)


class ClassificationService:
    """Classifies process descriptions and decides what happens next."""

    def __init__(
        self,
        provider: LLMProvider,
        model: str,
        prompts: PromptLibrary | None = None,
        *,
        manual_review_threshold: float = MANUAL_REVIEW_THRESHOLD,
        auto_classify_threshold: float = AUTO_CLASSIFY_THRESHOLD,
    ) -> None:
        self.provider = provider
        self.model = model
        self.prompts = prompts or PromptLibrary()
        self.manual_review_threshold = manual_review_threshold
        self.auto_classify_threshold = auto_classify_threshold

    async def classify(self, context: SummarizedContext) -> InterimClassification:
        """
        Ask the LLM for a category and confidence.

        Args:
            context: Condensed conversation for this round

        Returns:
            The parsed InterimClassification

        Raises:
            LLMProviderError: The provider call failed after retries
            LLMResponseError: The response carried no usable classification
        """
        messages = build_messages(
            self.prompts.get(CLASSIFICATION_PROMPT_ID),
            context.render(),
            self.model,
        )
        completion = await self.provider.chat(messages, self.model)
        LOGGER.debug(
            "Classification call used %d tokens (%s)",
            completion.usage.total_tokens,
            completion.model,
        )
        classification = parse_classification(completion.content)
        LOGGER.info(
            "Classified as %s (confidence %.2f)",
            classification.category.value,
            classification.confidence,
        )
        return classification

    def determine_action(
        self,
        confidence: float,
        process_description: str,
        exchanges: Sequence[ClarificationExchange] = (),
    ) -> ConfidenceAction:
        """Route a classification by confidence and how much we know about the process."""
        if confidence < self.manual_review_threshold:
            return ConfidenceAction.MANUAL_REVIEW

        quality = self.assess_description_quality(process_description, exchanges)
        if quality in ("poor", "marginal"):
            return ConfidenceAction.CLARIFY

        if confidence >= self.auto_classify_threshold:
            return ConfidenceAction.AUTO_CLASSIFY
        return ConfidenceAction.CLARIFY

    @staticmethod
    def assess_description_quality(
        process_description: str,
        exchanges: Sequence[ClarificationExchange] = (),
    ) -> str:
        """
        Grade a description as "good", "marginal" or "poor".

        Scores core signals (frequency, volume, current state, complexity,
        pain points) and strategic signals (success criteria, value, risk,
        sponsorship) across the description and all answers. Three or more
        answered questions count as good regardless.
        """
        if len(exchanges) >= GOOD_AFTER_EXCHANGES:
            return "good"

        word_count = len(process_description.split())
        text = " ".join([process_description, *(e.answer for e in exchanges)]).lower()
        core = sum(1 for pattern in _CORE_SIGNALS if pattern.search(text))
        strategic = sum(1 for pattern in _STRATEGIC_SIGNALS if pattern.search(text))

        if word_count < 30 or core < 3 or strategic < 1:
            return "poor"
        if word_count > 100 and core >= 4 and strategic >= 3:
            return "good"
        return "marginal"

    async def extract_attributes(
        self,
        process_description: str,
        exchanges: Sequence[ClarificationExchange],
    ) -> Dict[str, Dict[str, Any]]:
        """
        Extract decision-matrix attributes with the LLM.

        Falls back to keyword heuristics when the response cannot be parsed.

        Returns:
            {attribute: {"value": ..., "explanation": ...}}
        """
        lines = [f"Process Description:\n{process_description}\n"]
        if exchanges:
            lines.append("Conversation:")
            for exchange in exchanges:
                lines.append(f"Q: {exchange.question}")
                lines.append(f"A: {exchange.answer}")
                lines.append("")
        messages = build_messages(
            self.prompts.get(ATTRIBUTE_EXTRACTION_PROMPT_ID),
            "\n".join(lines),
            self.model,
        )
        completion = await self.provider.chat(messages, self.model)
        try:
            return parse_attributes(completion.content, extra_keys=self.prompts.strategic_keys)
        except LLMResponseError as exc:
            LOGGER.warning("Attribute extraction failed (%s); using keyword heuristics", exc)
            return heuristic_attributes(process_description, exchanges)
