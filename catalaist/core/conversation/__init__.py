"""Conversation management - interview state, context summarization and loop detection."""

from .controller import ConversationController, TurnOutcome
from .loop_detector import LoopDetector
from .session_manager import SessionManager
from .summarizer import ContextSummarizer, SummarizedContext

__all__ = [
    "ConversationController",
    "TurnOutcome",
    "LoopDetector",
    "SessionManager",
    "ContextSummarizer",
    "SummarizedContext",
]
