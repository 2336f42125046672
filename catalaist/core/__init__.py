"""Core domain logic for CatalAIst."""

from .config import Config, ConversationSettings, load_config
from .errors import (
    CatalaistError,
    ConfigError,
    DecisionMatrixError,
    InvalidTransition,
    LLMProviderError,
    LLMResponseError,
    SessionCorrupted,
    SessionNotFound,
    SessionValidationError,
    ValidationError,
)
from .models import (
    ClarificationExchange,
    ClarificationQuestion,
    ClassificationResult,
    ConfidenceAction,
    ControllerPhase,
    ConversationState,
    InterimClassification,
    MatrixEvaluation,
    TerminationReason,
    TransformationCategory,
)
from .conversation import ConversationController, SessionManager

__all__ = [
    "Config",
    "ConversationSettings",
    "load_config",
    "ClarificationExchange",
    "ClarificationQuestion",
    "ClassificationResult",
    "ConfidenceAction",
    "ControllerPhase",
    "ConversationState",
    "InterimClassification",
    "MatrixEvaluation",
    "TerminationReason",
    "TransformationCategory",
    "CatalaistError",
    "ConfigError",
    "DecisionMatrixError",
    "InvalidTransition",
    "LLMProviderError",
    "LLMResponseError",
    "SessionCorrupted",
    "SessionNotFound",
    "SessionValidationError",
    "ValidationError",
    "ConversationController",
    "SessionManager",
]
