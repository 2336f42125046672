"""Custom exception hierarchy for CatalAIst."""


class CatalaistError(Exception):
    """Base error type."""


class ConfigError(CatalaistError):
    pass


class ValidationError(CatalaistError):
    """Raised when user-supplied input fails validation."""
    pass


class SessionNotFound(CatalaistError):
    pass


class SessionValidationError(CatalaistError):
    """Raised when a session record fails schema validation on save."""
    pass


class SessionCorrupted(CatalaistError):
    """Raised when a stored session file cannot be parsed or validated."""
    pass


class InvalidTransition(CatalaistError):
    """Raised when a conversation operation is not allowed in the current phase."""
    pass


class LLMProviderError(CatalaistError):
    pass


class LLMResponseError(CatalaistError):
    """Raised when an LLM response contains no parseable result."""

    def __init__(self, message: str, raw_response: str = "") -> None:
        super().__init__(message)
        self.raw_response = raw_response


class DecisionMatrixError(CatalaistError):
    pass
