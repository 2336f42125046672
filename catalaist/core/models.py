"""Domain models for CatalAIst."""

from __future__ import annotations

import copy
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

from .errors import InvalidTransition, ValidationError


class TransformationCategory(str, Enum):
    ELIMINATE = "Eliminate"
    SIMPLIFY = "Simplify"
    DIGITISE = "Digitise"
    RPA = "RPA"
    AI_AGENT = "AI Agent"
    AGENTIC_AI = "Agentic AI"

    @classmethod
    def ordered(cls) -> List["TransformationCategory"]:
        """Categories in the sequence they are evaluated."""
        return list(cls)

    @classmethod
    def values(cls) -> List[str]:
        return [member.value for member in cls]


class ControllerPhase(str, Enum):
    START = "start"
    AWAITING_ANSWER = "awaiting_answer"
    EVALUATING = "evaluating"
    LOOP_DETECTED = "loop_detected"
    TERMINAL = "terminal"


class ConfidenceAction(str, Enum):
    AUTO_CLASSIFY = "auto_classify"
    CLARIFY = "clarify"
    MANUAL_REVIEW = "manual_review"


class TerminationReason(str, Enum):
    EVALUATION = "evaluation"
    LOOP_DETECTED = "loop_detected"
    MAX_QUESTIONS = "max_questions"
    MANUAL_REVIEW = "manual_review"


@dataclass
class ClarificationExchange:
    question: str
    answer: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class ClarificationQuestion:
    question: str
    purpose: str = "General clarification"


@dataclass(frozen=True)
class InterimClassification:
    """Classification as returned by the LLM, before matrix evaluation."""

    category: TransformationCategory
    confidence: float
    rationale: str = ""
    category_progression: str = ""
    future_opportunities: str = ""


@dataclass(frozen=True)
class TriggeredRule:
    rule_id: str
    rule_name: str
    action: Dict[str, Any]


@dataclass(frozen=True)
class MatrixEvaluation:
    matrix_version: str
    original_classification: InterimClassification
    final_classification: InterimClassification
    extracted_attributes: Dict[str, Any]
    triggered_rules: Tuple[TriggeredRule, ...] = ()
    overridden: bool = False
    warnings: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ClassificationResult:
    """Terminal outcome of a session. Never mutated once created."""

    category: TransformationCategory
    confidence: float
    rationale: str
    terminated_by: TerminationReason
    category_progression: str = ""
    future_opportunities: str = ""
    key_facts: Tuple[str, ...] = ()
    attributes: Dict[str, Any] = field(default_factory=dict)
    matrix_evaluation: Optional[MatrixEvaluation] = None
    low_confidence: bool = False
    model_used: str = ""
    llm_provider: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def needs_review(self) -> bool:
        return self.low_confidence or self.terminated_by == TerminationReason.MANUAL_REVIEW

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["category"] = self.category.value
        data["terminated_by"] = self.terminated_by.value
        data["timestamp"] = self.timestamp.isoformat()
        data["key_facts"] = list(self.key_facts)
        if self.matrix_evaluation is not None:
            evaluation = data["matrix_evaluation"]
            for key in ("original_classification", "final_classification"):
                evaluation[key]["category"] = getattr(self.matrix_evaluation, key).category.value
            evaluation["triggered_rules"] = list(evaluation["triggered_rules"])
            evaluation["warnings"] = list(evaluation["warnings"])
        return data


@dataclass
class ConversationState:
    """Everything the controller knows about one classification session."""

    process_description: str
    session_id: str = field(default_factory=lambda: str(uuid4()))
    conversation_id: str = field(default_factory=lambda: str(uuid4()))
    exchanges: List[ClarificationExchange] = field(default_factory=list)
    key_facts: List[str] = field(default_factory=list)
    round: int = 0
    phase: ControllerPhase = ControllerPhase.START
    pending_questions: List[ClarificationQuestion] = field(default_factory=list)
    pending_answers: List[str] = field(default_factory=list)
    last_classification: Optional[InterimClassification] = None
    degenerate_streak: int = 0
    has_pii: bool = False
    result: Optional[ClassificationResult] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def asked_questions(self) -> List[str]:
        return [exchange.question for exchange in self.exchanges]

    @property
    def is_terminal(self) -> bool:
        return self.phase == ControllerPhase.TERMINAL

    def begin_batch(self, questions: Sequence[ClarificationQuestion]) -> None:
        """Replace the current question batch; every slot starts empty."""
        self.pending_questions = list(questions)
        self.pending_answers = [""] * len(self.pending_questions)
        self.phase = ControllerPhase.AWAITING_ANSWER
        self.touch()

    def record_answers(self, answers: Sequence[str]) -> List[ClarificationExchange]:
        if self.phase != ControllerPhase.AWAITING_ANSWER:
            raise InvalidTransition(
                f"Session {self.session_id} is {self.phase.value}, not awaiting answers"
            )
        if len(answers) != len(self.pending_questions):
            raise ValidationError(
                f"Expected {len(self.pending_questions)} answer(s), got {len(answers)}"
            )
        if any(not answer.strip() for answer in answers):
            raise ValidationError("Answer cannot be empty")

        self.pending_answers = list(answers)
        recorded = [
            ClarificationExchange(question=q.question, answer=a)
            for q, a in zip(self.pending_questions, self.pending_answers)
        ]
        self.exchanges.extend(recorded)
        self.pending_questions = []
        self.pending_answers = []
        self.touch()
        return recorded

    def touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)

    def snapshot(self) -> "ConversationState":
        """Deep copy used to roll back a turn that failed part way."""
        return copy.deepcopy(self)

    def restore(self, snapshot: "ConversationState") -> None:
        for item in fields(self):
            setattr(self, item.name, getattr(snapshot, item.name))
