"""
Standard error response builders for the co-pilot.

Provides consistent response formats for REST routes and WebSocket events.
"""

from typing import Any, Optional
from .codes import ErrorCode
from .exceptions import CopilotError


def error_response(error: CopilotError | Exception, source: Optional[str] = None, include_context: bool = True) -> dict:
    """Build a standard error response dictionary.

    Args:
        error: The exception to convert to a response
        source: Optional component name for context
        include_context: Whether to include the context dict (disable for privacy)

    Returns:
        Standard error response dict with success=False

    Example:
        >>> from errors import ValidationError, error_response
        >>> err = ValidationError("Missing parameter", parameter="meetingId")
        >>> error_response(err, source="assistant_ws")
        {
            "success": False,
            "error": {
                "code": "VALIDATION_MISSING_PARAM",
                "message": "Missing parameter",
                "details": None,
                "source": "assistant_ws",
                "recoverable": True,
                "context": {"parameter": "meetingId"}
            }
        }
    """
    if isinstance(error, CopilotError):
        return {
            "success": False,
            "error": {
                "code": error.code.value,
                "message": error.message,
                "details": error.details,
                "source": source,
                "recoverable": error.recoverable,
                "context": error.context if include_context else None,
            },
        }

    # Fallback for foreign exceptions
    return {
        "success": False,
        "error": {
            "code": ErrorCode.INTERNAL_UNEXPECTED.value,
            "message": str(error),
            "details": None,
            "source": source,
            "recoverable": False,
            "context": None,
        },
    }


def success_response(data: Optional[dict] = None, **kwargs: Any) -> dict:
    """Build a standard success response dictionary.

    Args:
        data: Optional data dict to include in response
        **kwargs: Additional key-value pairs to include at top level

    Returns:
        Standard success response dict with success=True

    Example:
        >>> success_response(count=3)
        {"success": True, "count": 3}
    """
    response = {"success": True}

    if data:
        response.update(data)
    if kwargs:
        response.update(kwargs)

    return response


def error_event(error: CopilotError | Exception) -> dict:
    """Build an outbound WebSocket `error` event from an exception."""
    if isinstance(error, CopilotError):
        return {"type": "error", "code": error.code.value, "message": error.message, "details": error.details}
    return {"type": "error", "code": ErrorCode.INTERNAL_UNEXPECTED.value, "message": str(error), "details": None}
