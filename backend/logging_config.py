"""
Co-pilot Logging Configuration - Color-Coded Logs

Provides:
- ColorFormatter: ANSI color-coded log output
- Helper functions: log_message_in, log_stage, log_llm, log_turn_end
- setup_logging(): Configure application logging

Usage:
    from logging_config import setup_logging, log_message_in, log_stage
    setup_logging()
    logger = logging.getLogger(__name__)
    log_message_in(logger, "notes text", session="m1:e1", kind="text-changed")
"""

import logging
import sys

# ANSI color codes
COLORS = {
    "RESET": "\033[0m",
    "BOLD": "\033[1m",
    "DIM": "\033[2m",
    # Event colors
    "MSG_IN": "\033[96m",  # Cyan - incoming notes/message
    "MSG_OUT": "\033[92m",  # Green - emitted intervention
    "STAGE": "\033[95m",  # Magenta - pipeline stage
    "SILENT": "\033[90m",  # Gray - turn ended silently
    "LLM": "\033[94m",  # Blue - LLM operations
    "ERROR": "\033[91m",  # Red - errors
    "WARN": "\033[33m",  # Orange/Yellow - warnings
    "DEBUG": "\033[90m",  # Gray - debug info
}


class ColorFormatter(logging.Formatter):
    """Custom formatter with colors for different log levels."""

    LEVEL_COLORS = {
        logging.DEBUG: COLORS["DEBUG"],
        logging.INFO: COLORS["RESET"],
        logging.WARNING: COLORS["WARN"],
        logging.ERROR: COLORS["ERROR"],
        logging.CRITICAL: COLORS["ERROR"] + COLORS["BOLD"],
    }

    def format(self, record: logging.LogRecord) -> str:
        # Apply level-based color
        color = self.LEVEL_COLORS.get(record.levelno, COLORS["RESET"])

        # Format: timestamp [LEVEL] message (no module name for compactness)
        timestamp = self.formatTime(record, "%H:%M:%S")
        level = record.levelname[:4]

        formatted = (
            f"{COLORS['DIM']}{timestamp}{COLORS['RESET']} "
            f"[{color}{level}{COLORS['RESET']}] "
            f"{record.getMessage()}"
        )

        if record.exc_info:
            formatted += "\n" + self.formatException(record.exc_info)

        return formatted


def setup_logging(level: int = logging.INFO) -> None:
    """Configure colored logging for the application."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ColorFormatter())

    # Configure root logger
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]

    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


# =============================================================================
# COLORED LOG HELPER FUNCTIONS
# =============================================================================


def log_message_in(logger: logging.Logger, message: str, **context) -> None:
    """Log an inbound notes update or explicit message.

    Args:
        logger: Logger instance
        message: Notes or message text
        **context: Additional context (session, kind, etc.)
    """
    flat = " ".join(message.split())
    preview = flat[:80] + "..." if len(flat) > 80 else flat
    ctx = " ".join(f"{k}={v}" for k, v in context.items())
    logger.info(f"{COLORS['MSG_IN']}>>> INPUT{COLORS['RESET']} {preview} [{ctx}]")


def log_stage(logger: logging.Logger, stage: str, message: str, duration_ms: float = None) -> None:
    """Log a pipeline stage result.

    Args:
        logger: Logger instance
        stage: Stage name (immediate, analyst, deviation, decision, composer)
        message: Short result description
        duration_ms: Stage duration in milliseconds
    """
    timing = f" ({duration_ms:.0f}ms)" if duration_ms is not None else ""
    logger.info(f"{COLORS['STAGE']}--- {stage.upper()}{COLORS['RESET']} {message}{timing}")


def log_turn_end(logger: logging.Logger, result: str, outputs: int = 0, duration_ms: float = 0) -> None:
    """Log the end of a pipeline turn.

    Args:
        logger: Logger instance
        result: 'silence', 'message', 'deviation_only', 'cancelled' or 'error'
        outputs: Number of outbound items emitted
        duration_ms: Total turn duration in milliseconds
    """
    color = COLORS["MSG_OUT"] if outputs else COLORS["SILENT"]
    logger.info(f"{color}<<< TURN{COLORS['RESET']} {result} outputs={outputs} in {duration_ms:.0f}ms")


def log_llm(
    logger: logging.Logger,
    state: str,
    model: str = "",
    duration: float = 0,
) -> None:
    """Log LLM call.

    Args:
        logger: Logger instance
        state: 'start' or 'end'
        model: Model name
        duration: Call duration in seconds (for end state)
    """
    if state == "start":
        logger.info(f"{COLORS['LLM']}>>> LLM{COLORS['RESET']} calling {model}")
    else:
        logger.info(f"{COLORS['LLM']}<<< LLM{COLORS['RESET']} " f"{model} completed in {duration:.1f}s")
