"""Condense clarification history into a size-bounded context for the LLM."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Sequence

from ..validation import MAX_DESCRIPTION_LENGTH

if TYPE_CHECKING:
    from ..models import ClarificationExchange, ConversationState

LOGGER = logging.getLogger(__name__)

RECENT_EXCHANGES = 3
SUMMARIZE_AFTER = 5
MAX_FIELD_CHARS = 800
MAX_EARLIER_QUESTIONS = 5
MAX_QUESTION_CHARS = 100
MAX_KEY_FACTS = 12
MAX_FACT_CHARS = 80

# (pattern, label) pairs; the first match of each pattern becomes a fact.
_MATCH_FACTS = (
    (
        re.compile(
            r"\b(daily|weekly|monthly|hourly|quarterly|annually|every\s+\w+|once|twice|\d+\s+times?\s+per)\b",
            re.IGNORECASE,
        ),
        "Process frequency",
    ),
    (re.compile(r"\b(\d+)\s+(users?|people|employees?|transactions?|requests?|cases?)\b", re.IGNORECASE), "Scale"),
    (re.compile(r"\b(\d+)\s+(steps?|stages?|phases?)\b", re.IGNORECASE), "Process complexity"),
    (re.compile(r"\b(\d+)\s+(systems?|applications?|tools?)\b", re.IGNORECASE), "Systems involved"),
)

_MANUAL = re.compile(r"\b(manual|paper-based|spreadsheet|excel)\b", re.IGNORECASE)
_DIGITAL = re.compile(r"\b(digital|system|automated|software|tool)\b", re.IGNORECASE)

# (pattern, fact) pairs; the fact is emitted verbatim when the pattern matches.
_FLAG_FACTS = (
    (re.compile(r"\b(slow|time-consuming|takes\s+\d+\s+(hours?|minutes?|days?))\b", re.IGNORECASE),
     "Pain point: Time-consuming process"),
    (re.compile(r"\b(error-prone|mistakes?|errors?)\b", re.IGNORECASE), "Pain point: Error-prone"),
    (re.compile(r"\b(critical|essential|vital|important|high\s+priority)\b", re.IGNORECASE),
     "Business value: High/Critical"),
    (re.compile(r"\b(sensitive|confidential|restricted|pii|personal\s+data)\b", re.IGNORECASE),
     "Data sensitivity: High"),
)


@dataclass
class SummarizedContext:
    """Bounded digest of a conversation, rebuilt every round."""

    process_description: str
    total_exchanges: int
    summarized: bool
    key_facts: List[str] = field(default_factory=list)
    earlier_questions: List[str] = field(default_factory=list)
    recent_exchanges: List[tuple[str, str]] = field(default_factory=list)

    def render(self) -> str:
        """Full context block: description followed by the conversation digest."""
        history = self.render_history()
        block = f"Process Description:\n{self.process_description}\n\n"
        return f"{block}{history}" if history else block

    def render_history(self) -> str:
        if not self.recent_exchanges:
            return ""

        lines: list[str] = []
        if not self.summarized:
            lines.append("Clarification Questions and Answers:")
            lines.extend(_format_pairs(self.recent_exchanges))
            return "\n".join(lines)

        if self.key_facts:
            lines.append("Key Information Gathered:")
            lines.extend(f"- {fact}" for fact in self.key_facts)
            lines.append("")

        if self.earlier_questions:
            lines.append("Questions already asked (do not repeat):")
            lines.extend(f"- {question}" for question in self.earlier_questions)
            lines.append("")

        lines.append(
            f"Recent Clarifications (last {len(self.recent_exchanges)} of {self.total_exchanges}):"
        )
        lines.extend(_format_pairs(self.recent_exchanges))
        return "\n".join(lines)


class ContextSummarizer:
    """Builds the per-round context sent to the LLM."""

    def __init__(
        self,
        recent_count: int = RECENT_EXCHANGES,
        summarize_after: int = SUMMARIZE_AFTER,
        max_field_chars: int = MAX_FIELD_CHARS,
    ) -> None:
        self.recent_count = recent_count
        self.summarize_after = summarize_after
        self.max_field_chars = max_field_chars

    def summarize(self, state: ConversationState) -> SummarizedContext:
        """
        Build the digest for the next LLM call.

        Short conversations are passed through whole. From `summarize_after`
        exchanges onwards only key facts, a capped list of earlier questions
        and the last `recent_count` exchanges are kept, so the digest size
        does not grow with the conversation.

        Args:
            state: The conversation to condense

        Returns:
            A SummarizedContext ready to render into a prompt
        """
        exchanges = state.exchanges
        description = _truncate(state.process_description, MAX_DESCRIPTION_LENGTH)

        if len(exchanges) < self.summarize_after:
            return SummarizedContext(
                process_description=description,
                total_exchanges=len(exchanges),
                summarized=False,
                recent_exchanges=[self._clip(exchange) for exchange in exchanges],
            )

        facts = state.key_facts or self.extract_key_facts(exchanges)
        recent = exchanges[-self.recent_count:] if self.recent_count else []
        earlier = exchanges[: len(exchanges) - len(recent)]

        LOGGER.debug(
            "Summarizing %d exchanges for session %s (%d facts)",
            len(exchanges),
            state.session_id,
            len(facts),
        )
        return SummarizedContext(
            process_description=description,
            total_exchanges=len(exchanges),
            summarized=True,
            key_facts=[_truncate(fact, MAX_FACT_CHARS) for fact in facts[:MAX_KEY_FACTS]],
            earlier_questions=[
                _truncate(exchange.question, MAX_QUESTION_CHARS)
                for exchange in earlier[-MAX_EARLIER_QUESTIONS:]
            ],
            recent_exchanges=[self._clip(exchange) for exchange in recent],
        )

    def update_key_facts(self, state: ConversationState) -> List[str]:
        """Merge newly extracted facts into the state's running set."""
        for fact in self.extract_key_facts(state.exchanges):
            if fact not in state.key_facts:
                state.key_facts.append(fact)
        return state.key_facts

    @staticmethod
    def render_full_history(exchanges: Sequence[ClarificationExchange]) -> str:
        """Untruncated history, the baseline the digest is measured against."""
        if not exchanges:
            return ""
        lines = ["Clarification Questions and Answers:"]
        lines.extend(_format_pairs([(e.question, e.answer) for e in exchanges]))
        return "\n".join(lines)

    def compression_ratio(self, state: ConversationState) -> float:
        """Digest tokens divided by full-history tokens (1.0 when nothing to compress)."""
        full = estimate_tokens(self.render_full_history(state.exchanges))
        if full == 0:
            return 1.0
        return estimate_tokens(self.summarize(state).render_history()) / full

    @staticmethod
    def extract_key_facts(exchanges: Sequence[ClarificationExchange]) -> List[str]:
        """
        Pull frequency, scale, current state, complexity, pain points, value
        and sensitivity facts out of the answers.

        Args:
            exchanges: Clarification exchanges to scan

        Returns:
            Human-readable fact strings, at most one per kind
        """
        text = " ".join(exchange.answer for exchange in exchanges).lower()
        if not text.strip():
            return []

        facts: list[str] = []
        for pattern, label in _MATCH_FACTS[:2]:
            match = pattern.search(text)
            if match:
                facts.append(f"{label}: {match.group(0)}")

        if _MANUAL.search(text):
            facts.append("Current state: Manual/paper-based process")
        elif _DIGITAL.search(text):
            facts.append("Current state: Digital/system-based")

        for pattern, label in _MATCH_FACTS[2:]:
            match = pattern.search(text)
            if match:
                facts.append(f"{label}: {match.group(0)}")

        for pattern, fact in _FLAG_FACTS:
            if pattern.search(text):
                facts.append(fact)

        return facts

    def _clip(self, exchange: ClarificationExchange) -> tuple[str, str]:
        return (
            _truncate(exchange.question, self.max_field_chars),
            _truncate(exchange.answer, self.max_field_chars),
        )


def estimate_tokens(text: str) -> int:
    """Rough token count (about four characters per token)."""
    if not text:
        return 0
    return max(1, (len(text) + 3) // 4)


def _format_pairs(pairs: Sequence[tuple[str, str]]) -> list[str]:
    lines: list[str] = []
    for question, answer in pairs:
        lines.append(f"Q: {question}")
        lines.append(f"A: {answer}")
        lines.append("")
    return lines


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    clipped = text[:limit].rsplit(" ", 1)[0]
    return (clipped or text[:limit]) + "..."
