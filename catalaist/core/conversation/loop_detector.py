"""Detect degenerate, repeating LLM output during the clarification interview."""

from __future__ import annotations

import difflib
import logging
import re
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from ..models import ClarificationQuestion, ConversationState

LOGGER = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 3
DEFAULT_SIMILARITY = 0.9

TEMPLATE_PATTERN = re.compile(r"^\s*clarification\s*#?\s*\d+\s*[:.]?\s*$", re.IGNORECASE)
_NON_WORD = re.compile(r"[^a-z0-9 ]+")


class LoopDetector:
    """Tracks consecutive degenerate responses and decides when to stop asking."""

    def __init__(self, threshold: int = DEFAULT_THRESHOLD, similarity: float = DEFAULT_SIMILARITY) -> None:
        if threshold < 1:
            raise ValueError("threshold must be at least 1")
        self.threshold = threshold
        self.similarity = similarity

    @staticmethod
    def is_template(text: str) -> bool:
        """True for bare placeholders such as "Clarification 3"."""
        return bool(TEMPLATE_PATTERN.match(text or ""))

    def is_degenerate_batch(
        self,
        questions: Sequence[ClarificationQuestion],
        asked: Sequence[str],
    ) -> bool:
        """
        A batch is degenerate when it carries no new information: every
        question is a placeholder or a near-duplicate of one already asked.

        An empty batch is not degenerate; it means the LLM has nothing left
        to ask.
        """
        if not questions:
            return False
        return all(
            self.is_template(q.question) or self._already_asked(q.question, asked)
            for q in questions
        )

    def observe(self, state: ConversationState, degenerate: bool) -> bool:
        """
        Record one LLM response against the session's streak.

        Returns:
            True once the streak of consecutive degenerate responses reaches
            the threshold
        """
        if not degenerate:
            state.degenerate_streak = 0
            return False

        state.degenerate_streak += 1
        LOGGER.warning(
            "Degenerate LLM response for session %s (%d/%d consecutive)",
            state.session_id,
            state.degenerate_streak,
            self.threshold,
        )
        return state.degenerate_streak >= self.threshold

    def _already_asked(self, question: str, asked: Sequence[str]) -> bool:
        candidate = _normalize(question)
        if not candidate:
            return True
        for previous in asked:
            ratio = difflib.SequenceMatcher(None, candidate, _normalize(previous)).ratio()
            if ratio >= self.similarity:
                return True
        return False


def _normalize(text: str) -> str:
    return " ".join(_NON_WORD.sub(" ", text.lower()).split())
