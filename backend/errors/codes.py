"""
Error codes for the meeting co-pilot.

Provides a standardized taxonomy of error codes organized by category.
Use these codes consistently across all error responses and outbound
`error` events.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Standardized error codes for the co-pilot.

    Categories:
    - VALIDATION_*: Inbound event / input validation errors
    - NOT_FOUND_*: Resource not found errors
    - LLM_*: Text generation errors
    - NORMALIZATION_*: Model output could not be turned into a structured value
    - CONTEXT_*: Context provider read errors
    - INTERNAL_*: Internal/unexpected errors
    """

    # Validation errors (inbound events)
    VALIDATION_MISSING_PARAM = "VALIDATION_MISSING_PARAM"
    VALIDATION_INVALID_TYPE = "VALIDATION_INVALID_TYPE"
    VALIDATION_OUT_OF_RANGE = "VALIDATION_OUT_OF_RANGE"
    VALIDATION_INVALID_FORMAT = "VALIDATION_INVALID_FORMAT"
    VALIDATION_NOT_JOINED = "VALIDATION_NOT_JOINED"

    # Not found errors (missing resources)
    NOT_FOUND_EMPLOYEE = "NOT_FOUND_EMPLOYEE"
    NOT_FOUND_MEETING = "NOT_FOUND_MEETING"
    NOT_FOUND_DEBUG_LOG = "NOT_FOUND_DEBUG_LOG"
    NOT_FOUND_SESSION = "NOT_FOUND_SESSION"

    # LLM errors (text generation)
    LLM_UNAVAILABLE = "LLM_UNAVAILABLE"
    LLM_TIMEOUT = "LLM_TIMEOUT"
    LLM_CANCELLED = "LLM_CANCELLED"
    LLM_CIRCUIT_OPEN = "LLM_CIRCUIT_OPEN"
    LLM_RESPONSE_INVALID = "LLM_RESPONSE_INVALID"

    # Normalization errors (model output parsing)
    NORMALIZATION_FAILED = "NORMALIZATION_FAILED"
    NORMALIZATION_EMPTY = "NORMALIZATION_EMPTY"

    # Context provider errors
    CONTEXT_READ_FAILED = "CONTEXT_READ_FAILED"

    # Internal errors (unexpected failures)
    INTERNAL_UNEXPECTED = "INTERNAL_UNEXPECTED"
    INTERNAL_CONFIG_ERROR = "INTERNAL_CONFIG_ERROR"
    INTERNAL_STATE_ERROR = "INTERNAL_STATE_ERROR"
