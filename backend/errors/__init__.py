"""
Co-pilot Error Handling Module

Provides standardized error codes, exceptions, and response builders
for consistent error handling across the application.

Usage:
    from errors import (
        # Error codes
        ErrorCode,

        # Exceptions
        CopilotError,
        ValidationError,
        NotFoundError,
        LLMError,
        GenerationCancelledError,
        NormalizationError,
        ContextReadError,

        # Response builders
        error_response,
        success_response,
        error_event,

        # Decorators
        degrade_on_error,
        log_error,
    )

Example:
    from errors import ValidationError

    def parse_session_key(key):
        meeting_id, sep, employee_id = key.partition(":")
        if not sep or not meeting_id or not employee_id:
            raise ValidationError(
                "Invalid session key",
                details="Expected '<meetingId>:<employeeId>'",
                parameter="session_key",
                received=key,
            )
        return meeting_id, employee_id
"""

from .codes import ErrorCode
from .exceptions import (
    CopilotError,
    ValidationError,
    NotFoundError,
    LLMError,
    GenerationCancelledError,
    NormalizationError,
    ContextReadError,
)
from .response import (
    error_response,
    success_response,
    error_event,
)
from .handlers import (
    degrade_on_error,
    log_error,
)

__all__ = [
    # Error codes
    "ErrorCode",
    # Exceptions
    "CopilotError",
    "ValidationError",
    "NotFoundError",
    "LLMError",
    "GenerationCancelledError",
    "NormalizationError",
    "ContextReadError",
    # Response builders
    "error_response",
    "success_response",
    "error_event",
    # Decorators
    "degrade_on_error",
    "log_error",
]
