"""Persisted record shapes, validated on every save and load."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from ..models import TerminationReason, TransformationCategory

SessionStatus = Literal["active", "completed", "manual_review"]
AuditEventType = Literal["input", "clarification", "classification", "feedback"]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ExchangeRecord(BaseModel):
    question: str
    answer: str


class ConversationRecord(BaseModel):
    conversation_id: str
    timestamp: datetime = Field(default_factory=_now)
    process_description: str = Field(min_length=10)
    clarification_qa: List[ExchangeRecord] = Field(default_factory=list)
    key_facts: List[str] = Field(default_factory=list)
    rounds: int = Field(default=0, ge=0)
    phase: str = "start"
    has_pii: bool = False

    @field_validator("conversation_id")
    @classmethod
    def _check_uuid(cls, value: str) -> str:
        UUID(value)
        return value


class ClassificationRecord(BaseModel):
    category: TransformationCategory
    confidence: float = Field(ge=0, le=1)
    rationale: str
    category_progression: str = ""
    future_opportunities: str = ""
    terminated_by: TerminationReason
    low_confidence: bool = False
    key_facts: List[str] = Field(default_factory=list)
    attributes: Dict[str, Any] = Field(default_factory=dict)
    matrix_evaluation: Optional[Dict[str, Any]] = None
    model_used: str = ""
    llm_provider: str = ""
    timestamp: datetime = Field(default_factory=_now)


class FeedbackRecord(BaseModel):
    confirmed: bool
    corrected_category: Optional[TransformationCategory] = None
    timestamp: datetime = Field(default_factory=_now)

    @model_validator(mode="after")
    def _correction_required(self) -> "FeedbackRecord":
        if not self.confirmed and self.corrected_category is None:
            raise ValueError("corrected_category is required when the classification is not confirmed")
        return self


class SessionRecord(BaseModel):
    session_id: str
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    status: SessionStatus = "active"
    model_used: str = ""
    conversations: List[ConversationRecord] = Field(default_factory=list)
    classification: Optional[ClassificationRecord] = None
    feedback: Optional[FeedbackRecord] = None

    @field_validator("session_id")
    @classmethod
    def _check_uuid(cls, value: str) -> str:
        UUID(value)
        return value


class AuditEvent(BaseModel):
    session_id: str
    timestamp: datetime = Field(default_factory=_now)
    event_type: AuditEventType
    data: Dict[str, Any] = Field(default_factory=dict)
