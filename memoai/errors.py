"""
Exception hierarchy for MemoAI.

Every error is scoped to the single operation that raised it; none of them
is fatal to the process.
"""


class MemoAIError(Exception):
    """Base exception for all MemoAI errors."""

    pass


class ConfigurationError(MemoAIError):
    """Raised when required service credentials or settings are missing."""

    pass


class ExternalServiceError(MemoAIError):
    """Raised when an LLM call fails or returns an unusable payload."""

    pass


class NotFoundError(MemoAIError):
    """Raised when an operation references an unknown chunk, push or note."""

    pass


class ValidationError(MemoAIError):
    """Raised for empty content, out-of-range grades or bad enum values."""

    pass


class InvalidStateError(ValidationError):
    """Raised when a push transition is not allowed from its current state."""

    pass
