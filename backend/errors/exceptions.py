"""
Custom exception hierarchy for the meeting co-pilot.

All exceptions inherit from CopilotError and include:
- code: ErrorCode for categorization
- message: Human-readable error message
- details: Optional additional context
- recoverable: Whether the client can retry/fix the issue
- context: Additional key-value pairs for debugging
"""

from typing import Any, Optional
from .codes import ErrorCode


class CopilotError(Exception):
    """Base exception for all co-pilot errors.

    Attributes:
        code: The ErrorCode categorizing this error
        message: Human-readable error message
        details: Optional additional context for the client
        recoverable: Whether the error can be resolved by client action
        context: Additional debugging information
    """

    code: ErrorCode = ErrorCode.INTERNAL_UNEXPECTED
    recoverable: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        code: Optional[ErrorCode] = None,
        recoverable: Optional[bool] = None,
        **context: Any,
    ):
        self.message = message
        self.details = details
        self.context = context if context else None

        # Allow overriding class defaults
        if code is not None:
            self.code = code
        if recoverable is not None:
            self.recoverable = recoverable

        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message

    def to_dict(self) -> dict:
        """Convert exception to dictionary for JSON serialization."""
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
            "context": self.context,
        }


class ValidationError(CopilotError):
    """Error during inbound event validation."""

    code = ErrorCode.VALIDATION_MISSING_PARAM
    recoverable = True

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        parameter: Optional[str] = None,
        expected: Optional[str] = None,
        received: Optional[str] = None,
        **context: Any,
    ):
        ctx = {**context}
        if parameter:
            ctx["parameter"] = parameter
        if expected:
            ctx["expected"] = expected
        if received:
            ctx["received"] = received
        super().__init__(message, details, **ctx)


class NotFoundError(CopilotError):
    """Error when a required resource is not found."""

    code = ErrorCode.NOT_FOUND_EMPLOYEE
    recoverable = True

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        **context: Any,
    ):
        # Set appropriate code based on resource type
        if resource_type == "meeting":
            code = ErrorCode.NOT_FOUND_MEETING
        elif resource_type == "debug_log":
            code = ErrorCode.NOT_FOUND_DEBUG_LOG
        elif resource_type == "session":
            code = ErrorCode.NOT_FOUND_SESSION
        else:
            code = ErrorCode.NOT_FOUND_EMPLOYEE

        ctx = {**context}
        if resource_type:
            ctx["resource_type"] = resource_type
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message, details, code=code, **ctx)


class LLMError(CopilotError):
    """Error during text generation."""

    code = ErrorCode.LLM_UNAVAILABLE
    recoverable = False

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        model: Optional[str] = None,
        error_type: Optional[str] = None,
        **context: Any,
    ):
        # Set appropriate code based on error type
        if error_type == "timeout":
            code = ErrorCode.LLM_TIMEOUT
        elif error_type == "cancelled":
            code = ErrorCode.LLM_CANCELLED
        elif error_type == "circuit_open":
            code = ErrorCode.LLM_CIRCUIT_OPEN
        elif error_type == "invalid":
            code = ErrorCode.LLM_RESPONSE_INVALID
        else:
            code = ErrorCode.LLM_UNAVAILABLE

        self.error_type = error_type or "unavailable"
        ctx = {**context}
        if model:
            ctx["model"] = model
        super().__init__(message, details, code=code, **ctx)


class GenerationCancelledError(LLMError):
    """A text generation call was aborted because its run was cancelled."""

    recoverable = True

    def __init__(self, message: str = "Generation cancelled", reason: Optional[str] = None, **context: Any):
        super().__init__(message, details=reason, error_type="cancelled", **context)
        self.reason = reason


class NormalizationError(CopilotError):
    """Model output could not be turned into a structured value.

    Carries the raw text so callers can log or store it.
    """

    code = ErrorCode.NORMALIZATION_FAILED
    recoverable = True

    def __init__(self, message: str, raw_text: str = "", details: Optional[str] = None, **context: Any):
        code = ErrorCode.NORMALIZATION_EMPTY if not raw_text.strip() else ErrorCode.NORMALIZATION_FAILED
        super().__init__(message, details, code=code, **context)
        self.raw_text = raw_text


class ContextReadError(CopilotError):
    """Error reading meeting/employee context from a provider."""

    code = ErrorCode.CONTEXT_READ_FAILED
    recoverable = True

    def __init__(self, message: str, details: Optional[str] = None, source: Optional[str] = None, **context: Any):
        ctx = {**context}
        if source:
            ctx["source"] = source
        super().__init__(message, details, **ctx)
