"""Session persistence and audit trail."""

from .audit_log import AuditLog
from .schemas import (
    AuditEvent,
    ClassificationRecord,
    ConversationRecord,
    FeedbackRecord,
    SessionRecord,
)
from .session_store import SessionStore

__all__ = [
    "AuditLog",
    "AuditEvent",
    "ClassificationRecord",
    "ConversationRecord",
    "FeedbackRecord",
    "SessionRecord",
    "SessionStore",
]
