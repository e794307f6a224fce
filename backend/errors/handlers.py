"""
Error handling decorators and utilities for the co-pilot.

Provides a decorator that degrades failing reads to a default value and
a consistent error logger.
"""

import logging
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

from .exceptions import CopilotError

# Type variable for decorated functions
F = TypeVar("F", bound=Callable[..., Any])


def degrade_on_error(source: str, default: Any = None, logger: Optional[logging.Logger] = None):
    """Decorator for async reads that returns `default` instead of raising.

    Used by context readers: a single failing read (characteristic, history,
    agreements) degrades to "absent" and never aborts the turn.

    Args:
        source: Name of the read for log context
        default: Value returned on failure. Callables are invoked to build a fresh value.
        logger: Optional logger instance (defaults to a source-specific logger)

    Example:
        >>> @degrade_on_error("previous_meetings", default=list)
        ... async def read_history(provider, employee_id):
        ...     return await provider.list_previous_meetings(employee_id)
    """

    def decorator(func: F) -> F:
        log = logger or logging.getLogger(f"copilot.{source}")

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return await func(*args, **kwargs)
            except CopilotError as e:
                log.warning(f"[{source}] {e.code.value}: {e.message}")
            except Exception as e:
                log.warning(f"[{source}] read failed: {e}")
            return default() if callable(default) else default

        return wrapper  # type: ignore

    return decorator


def log_error(
    logger: logging.Logger, error: Exception, context: Optional[str] = None, include_traceback: bool = True
) -> None:
    """Log an error with consistent formatting.

    Args:
        logger: Logger instance to use
        error: The exception to log
        context: Optional context string to prefix the message
        include_traceback: Whether to include the full stack trace

    Example:
        >>> log_error(logger, err, context="Pipeline")
        # Logs: "[Pipeline] LLM_TIMEOUT: Generation timed out after 5000ms"
    """
    if isinstance(error, CopilotError):
        message = f"{error.code.value}: {error.message}"
    else:
        message = str(error)

    if context:
        message = f"[{context}] {message}"

    logger.error(message, exc_info=include_traceback)
