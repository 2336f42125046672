"""Drive one classification interview from description to final result."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Tuple

from ..errors import LLMProviderError, LLMResponseError, ValidationError
from ..matrix.attributes import heuristic_attributes
from ..matrix.evaluator import DecisionMatrixEvaluator
from ..models import (
    ClarificationQuestion,
    ClassificationResult,
    ConfidenceAction,
    ControllerPhase,
    ConversationState,
    InterimClassification,
    TerminationReason,
    TransformationCategory,
)
from ..pii import PIIMatch, PIIScrubResult, describe_matches, scrub_pii
from ..validation import sanitize_input, validate_answer, validate_process_description
from .loop_detector import LoopDetector
from .parser import flatten_attributes
from .summarizer import ContextSummarizer, SummarizedContext

if TYPE_CHECKING:
    from ..classification import ClassificationService
    from ..clarification import ClarificationService
    from ..matrix.schema import DecisionMatrix
    from ..storage.audit_log import AuditLog

LOGGER = logging.getLogger(__name__)

LOOP_CONFIDENCE_CAP = 0.5
FALLBACK_CONFIDENCE = 0.3
LOW_CONFIDENCE_THRESHOLD = 0.5


@dataclass
class TurnOutcome:
    """What the caller sees after a turn: a question batch or a final result."""

    phase: ControllerPhase
    questions: List[ClarificationQuestion] = field(default_factory=list)
    result: Optional[ClassificationResult] = None

    @property
    def is_terminal(self) -> bool:
        return self.result is not None


class ConversationController:
    """State machine for the clarification interview.

    Start -> AwaitingAnswer -> (Evaluating | LoopDetected) -> Terminal.
    Every question-generation response goes through the loop detector;
    degenerate responses are re-requested until the streak threshold forces
    a best-effort result.
    """

    def __init__(
        self,
        classifier: ClassificationService,
        clarifier: ClarificationService,
        *,
        summarizer: ContextSummarizer | None = None,
        loop_detector: LoopDetector | None = None,
        evaluator: DecisionMatrixEvaluator | None = None,
        matrix: DecisionMatrix | None = None,
        audit_log: AuditLog | None = None,
        llm_provider: str = "",
        mask_pii: bool = True,
    ) -> None:
        self.classifier = classifier
        self.clarifier = clarifier
        self.summarizer = summarizer or ContextSummarizer()
        self.loop_detector = loop_detector or LoopDetector()
        self.evaluator = evaluator or DecisionMatrixEvaluator()
        self.matrix = matrix
        self.audit_log = audit_log
        self.llm_provider = llm_provider or getattr(classifier.provider, "name", "")
        self.mask_pii = mask_pii
        self._pending_audit: Dict[str, List[Tuple[str, Dict[str, Any]]]] = {}

    async def start(
        self,
        process_description: str,
        session_id: str | None = None,
    ) -> Tuple[ConversationState, TurnOutcome]:
        """
        Validate a description, open a session and run the first turn.

        Emails, phone numbers, card numbers and social security numbers are
        masked before the description is validated, stored or sent to the LLM.

        Args:
            process_description: Free-text description of the business process
            session_id: Existing session id to reuse, or None for a new one

        Returns:
            (state, outcome) where outcome holds questions or the final result

        Raises:
            ValidationError: The description is missing, too short or too long
            LLMProviderError: The LLM could not be reached
            LLMResponseError: The LLM returned no parseable classification
        """
        scrubbed = self._scrub(sanitize_input(process_description or ""))
        valid, message = validate_process_description(scrubbed.text)
        if not valid:
            raise ValidationError(message)

        state = ConversationState(process_description=scrubbed.text, has_pii=scrubbed.has_pii)
        if session_id:
            state.session_id = session_id
        if scrubbed.has_pii:
            LOGGER.info("Session %s: masked personal data (%s)", state.session_id, ", ".join(scrubbed.types))

        self._audit(
            "input",
            state,
            {"process_description": scrubbed.text, **_pii_details(scrubbed.matches)},
        )
        outcome = await self._run_turn(state)
        return state, outcome

    async def submit_answers(self, state: ConversationState, answers: Sequence[str]) -> TurnOutcome:
        """
        Record one answer per pending question and run the next turn.

        If the LLM fails during the turn the state is rolled back to what it
        was before the call, so the same answers can be submitted again.

        Raises:
            InvalidTransition: The session is not waiting for answers
            ValidationError: Wrong number of answers or an invalid answer
        """
        cleaned = [sanitize_input(answer or "") for answer in answers]
        for answer in cleaned:
            valid, message = validate_answer(answer)
            if not valid:
                raise ValidationError(message)
        scrubbed = [self._scrub(answer) for answer in cleaned]
        masked = [match for result in scrubbed for match in result.matches]

        snapshot = state.snapshot()
        recorded = state.record_answers([result.text for result in scrubbed])
        if masked:
            state.has_pii = True
            LOGGER.info("Session %s: masked personal data in answers", state.session_id)
        # Events of this turn are held back until it succeeds so a retried turn is logged once.
        pending = self._pending_audit[state.session_id] = []
        self._audit(
            "clarification",
            state,
            {
                "answers": [{"question": e.question, "answer": e.answer} for e in recorded],
                **_pii_details(masked),
            },
        )
        try:
            self.summarizer.update_key_facts(state)
            outcome = await self._run_turn(state)
        except (LLMProviderError, LLMResponseError):
            state.restore(snapshot)
            raise
        finally:
            self._pending_audit.pop(state.session_id, None)

        for event_type, data in pending:
            self._write_audit(state, event_type, data)
        return outcome

    async def _run_turn(self, state: ConversationState) -> TurnOutcome:
        context = self.summarizer.summarize(state)
        classification = await self.classifier.classify(context)
        state.last_classification = classification
        state.round += 1

        action = self.classifier.determine_action(
            classification.confidence, state.process_description, state.exchanges
        )
        LOGGER.info("Session %s round %d: %s", state.session_id, state.round, action.value)

        if action == ConfidenceAction.MANUAL_REVIEW:
            return self._finish(
                state,
                classification,
                TerminationReason.MANUAL_REVIEW,
                attributes={},
                low_confidence=True,
            )
        if action == ConfidenceAction.AUTO_CLASSIFY:
            return await self._evaluate(state, classification, TerminationReason.EVALUATION)

        decision = self.clarifier.should_clarify(classification.confidence, state.exchanges)
        if not decision.should_clarify:
            LOGGER.info("Session %s stops clarifying: %s", state.session_id, decision.reason)
            self._audit("clarification", state, {"stop_reason": decision.reason})
            return await self._evaluate(state, classification, decision.stop_reason)

        questions = await self._request_questions(state, context, classification)
        if questions is None:
            return self._loop_detected(state)
        if not questions:
            LOGGER.info("Session %s: no further questions proposed", state.session_id)
            self._audit("clarification", state, {"stop_reason": "No further questions proposed"})
            return await self._evaluate(state, classification, TerminationReason.EVALUATION)

        questions = [ClarificationQuestion(self._scrub(q.question).text, q.purpose) for q in questions]
        state.begin_batch(questions)
        self._audit(
            "clarification",
            state,
            {"questions": [{"question": q.question, "purpose": q.purpose} for q in questions]},
        )
        return TurnOutcome(phase=state.phase, questions=list(questions))

    async def _request_questions(
        self,
        state: ConversationState,
        context: SummarizedContext,
        classification: InterimClassification,
    ) -> Optional[List[ClarificationQuestion]]:
        """Questions for the next batch, or None once the loop threshold is hit."""
        while True:
            try:
                batch = await self.clarifier.generate_questions(context, classification, state.exchanges)
                degenerate = self.loop_detector.is_degenerate_batch(batch.questions, state.asked_questions)
            except LLMResponseError as exc:
                if not self.loop_detector.is_template(exc.raw_response.strip()):
                    raise
                degenerate = True

            if self.loop_detector.observe(state, degenerate):
                return None
            if not degenerate:
                return batch.questions

    async def _evaluate(
        self,
        state: ConversationState,
        classification: InterimClassification,
        reason: TerminationReason,
    ) -> TurnOutcome:
        state.phase = ControllerPhase.EVALUATING
        attributes = await self.classifier.extract_attributes(state.process_description, state.exchanges)
        return self._finish(state, classification, reason, attributes=attributes)

    def _loop_detected(self, state: ConversationState) -> TurnOutcome:
        state.phase = ControllerPhase.LOOP_DETECTED
        LOGGER.warning(
            "Loop detected for session %s after %d degenerate responses; returning best-effort result",
            state.session_id,
            state.degenerate_streak,
        )
        attributes = heuristic_attributes(state.process_description, state.exchanges)
        flat = flatten_attributes(attributes)

        last = state.last_classification
        if last is not None:
            classification = InterimClassification(
                category=last.category,
                confidence=min(last.confidence, LOOP_CONFIDENCE_CAP),
                rationale=last.rationale,
                category_progression=last.category_progression,
                future_opportunities=last.future_opportunities,
            )
        else:
            classification = InterimClassification(
                category=best_scoring_category(self.evaluator.weighted_scores(flat)),
                confidence=FALLBACK_CONFIDENCE,
                rationale="Best-effort classification from attributes mentioned in the conversation.",
            )
        return self._finish(
            state,
            classification,
            TerminationReason.LOOP_DETECTED,
            attributes=attributes,
            low_confidence=True,
        )

    def _finish(
        self,
        state: ConversationState,
        classification: InterimClassification,
        reason: TerminationReason,
        *,
        attributes: Dict[str, Any],
        low_confidence: bool = False,
    ) -> TurnOutcome:
        evaluation = None
        final = classification
        if self.matrix is not None and self.matrix.active and attributes:
            evaluation = self.evaluator.evaluate(self.matrix, classification, flatten_attributes(attributes))
            final = evaluation.final_classification

        if final.confidence < LOW_CONFIDENCE_THRESHOLD:
            low_confidence = True

        result = ClassificationResult(
            category=final.category,
            confidence=final.confidence,
            rationale=final.rationale,
            terminated_by=reason,
            category_progression=final.category_progression,
            future_opportunities=final.future_opportunities,
            key_facts=tuple(state.key_facts),
            attributes=attributes,
            matrix_evaluation=evaluation,
            low_confidence=low_confidence,
            model_used=self.classifier.model,
            llm_provider=self.llm_provider,
        )
        state.result = result
        state.pending_questions = []
        state.pending_answers = []
        state.phase = ControllerPhase.TERMINAL
        state.touch()

        LOGGER.info(
            "Session %s finished (%s): %s at %.2f%s",
            state.session_id,
            reason.value,
            result.category.value,
            result.confidence,
            " [needs review]" if result.needs_review else "",
        )
        self._audit("classification", state, result.to_dict())
        return TurnOutcome(phase=state.phase, result=result)

    def _scrub(self, text: str) -> PIIScrubResult:
        return scrub_pii(text) if self.mask_pii else PIIScrubResult(text=text)

    def _audit(self, event_type: str, state: ConversationState, data: Dict[str, Any]) -> None:
        pending = self._pending_audit.get(state.session_id)
        if pending is not None:
            pending.append((event_type, data))
            return
        self._write_audit(state, event_type, data)

    def _write_audit(self, state: ConversationState, event_type: str, data: Dict[str, Any]) -> None:
        if self.audit_log is None:
            return
        self.audit_log.record(state.session_id, event_type, data)


def best_scoring_category(scores: Dict[str, float]) -> TransformationCategory:
    """Highest score wins; ties go to the earlier category in sequence order."""
    best = TransformationCategory.ELIMINATE
    best_score = float("-inf")
    for category in TransformationCategory.ordered():
        score = scores.get(category.value, 0.0)
        if score > best_score:
            best, best_score = category, score
    return best


def _pii_details(matches: Sequence[PIIMatch]) -> Dict[str, Any]:
    return {"pii_detected": describe_matches(matches)} if matches else {}
