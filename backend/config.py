"""
Runtime Configuration for the meeting co-pilot.

Provides a singleton RuntimeConfig class that allows dynamic adjustment of
gates, timeouts and model names at runtime, without requiring service restart.

Usage:
    from config import runtime_config
    interval = runtime_config.min_interval_ms
    runtime_config.update(min_interval_ms=8000, debounce_ms=3000)
"""

import os
import re
import logging
from dataclasses import dataclass, field
from typing import Dict, Any
from threading import Lock

logger = logging.getLogger(__name__)


def _first_env(*keys: str, default: str) -> str:
    """Return the first non-empty environment value from keys, else default."""
    for key in keys:
        value = os.environ.get(key, "").strip()
        if value:
            return value
    return default


def _env_int(key: str, default: int) -> int:
    return int(os.environ.get(key, str(default)))


def _env_float(key: str, default: float) -> float:
    return float(os.environ.get(key, str(default)))


@dataclass
class RuntimeConfig:
    """
    Singleton configuration for runtime-adjustable parameters.

    All values have defaults from environment variables, but can be
    changed at runtime via the update() method. Components take a
    RuntimeConfig instance so tests can construct one with overrides.
    """

    # Text generation gateway (OpenAI-compatible)
    llm_base_url: str = field(
        default_factory=lambda: _first_env("LLM_BASE_URL", "OPENAI_BASE_URL", default="http://localhost:8080/v1")
    )
    llm_api_key: str = field(
        default_factory=lambda: _first_env("LLM_API_KEY", "OPENAI_API_KEY", default="not-needed"),
        repr=False,
    )
    llm_request_timeout: float = field(default_factory=lambda: _env_float("LLM_REQUEST_TIMEOUT", 60.0))
    llm_max_retries: int = field(default_factory=lambda: _env_int("LLM_MAX_RETRIES", 2))
    llm_retry_delay: float = field(default_factory=lambda: _env_float("LLM_RETRY_DELAY", 0.5))

    # Model names (can be hot-swapped)
    model_default: str = field(default_factory=lambda: _first_env("LLM_MODEL", default="gpt-4o-mini"))
    model_pipeline: str = field(
        default_factory=lambda: _first_env("LLM_PIPELINE_MODEL", "LLM_MODEL", default="gpt-4o-mini")
    )  # Deep analysis, deviation, decision, composition
    model_fast: str = field(
        default_factory=lambda: _first_env("LLM_FAST_MODEL", "LLM_PIPELINE_MODEL", "LLM_MODEL", default="gpt-4o-mini")
    )  # Fast-path analyst

    # Throttle and debounce gates
    min_interval_ms: int = field(default_factory=lambda: _env_int("ASSISTANT_MIN_INTERVAL_MS", 5000))
    debounce_ms: int = field(default_factory=lambda: _env_int("ASSISTANT_DEBOUNCE_MS", 5000))
    min_words_for_analysis: int = field(default_factory=lambda: _env_int("ASSISTANT_MIN_WORDS", 5))
    min_words_delta: int = field(default_factory=lambda: _env_int("ASSISTANT_MIN_WORDS_DELTA", 5))
    deletion_threshold_percent: float = field(
        default_factory=lambda: _env_float("ASSISTANT_DELETION_THRESHOLD_PERCENT", 30.0)
    )
    deletion_threshold_words: int = field(
        default_factory=lambda: _env_int("ASSISTANT_DELETION_THRESHOLD_WORDS", 10)
    )

    # Per-agent and total budgets (milliseconds)
    timeout_immediate_ms: int = field(default_factory=lambda: _env_int("ASSISTANT_TIMEOUT_IMMEDIATE_MS", 4000))
    timeout_analyst_ms: int = field(default_factory=lambda: _env_int("ASSISTANT_TIMEOUT_ANALYST_MS", 8000))
    timeout_deviation_ms: int = field(default_factory=lambda: _env_int("ASSISTANT_TIMEOUT_DEVIATION_MS", 5000))
    timeout_decision_ms: int = field(default_factory=lambda: _env_int("ASSISTANT_TIMEOUT_DECISION_MS", 5000))
    timeout_composer_ms: int = field(default_factory=lambda: _env_int("ASSISTANT_TIMEOUT_COMPOSER_MS", 8000))
    pipeline_timeout_ms: int = field(default_factory=lambda: _env_int("ASSISTANT_PIPELINE_TIMEOUT_MS", 20000))

    # Analysis tuning
    min_insight_confidence: float = field(
        default_factory=lambda: _env_float("ASSISTANT_MIN_INSIGHT_CONFIDENCE", 0.25)
    )
    survey_richness_chars: int = field(default_factory=lambda: _env_int("ASSISTANT_SURVEY_RICHNESS_CHARS", 120))
    recent_messages_max: int = field(default_factory=lambda: _env_int("ASSISTANT_RECENT_MESSAGES_MAX", 10))
    history_meetings_limit: int = field(default_factory=lambda: _env_int("ASSISTANT_HISTORY_MEETINGS", 3))

    # Transport / debug
    max_message_length: int = field(default_factory=lambda: _env_int("ASSISTANT_MAX_MESSAGE_LENGTH", 20000))
    debug_log_max: int = field(default_factory=lambda: _env_int("ASSISTANT_DEBUG_LOG_MAX", 200))
    debug_enabled: bool = field(
        default_factory=lambda: os.environ.get("ASSISTANT_DEBUG_ENABLED", "true").lower() == "true"
    )
    app_env: str = field(default_factory=lambda: os.environ.get("APP_ENV", "development"))

    # Internal state
    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)
    _update_count: int = field(default=0, repr=False)

    # Validation ranges for numeric config values
    _VALIDATION_RANGES: Dict[str, tuple] = field(default_factory=lambda: {
        "llm_request_timeout": (1.0, 600.0),
        "llm_max_retries": (0, 10),
        "llm_retry_delay": (0.0, 30.0),
        "min_interval_ms": (0, 600000),
        "debounce_ms": (0, 60000),
        "min_words_for_analysis": (0, 1000),
        "min_words_delta": (0, 1000),
        "deletion_threshold_percent": (0.0, 100.0),
        "deletion_threshold_words": (0, 10000),
        "timeout_immediate_ms": (100, 120000),
        "timeout_analyst_ms": (100, 120000),
        "timeout_deviation_ms": (100, 120000),
        "timeout_decision_ms": (100, 120000),
        "timeout_composer_ms": (100, 120000),
        "pipeline_timeout_ms": (100, 600000),
        "min_insight_confidence": (0.0, 1.0),
        "survey_richness_chars": (0, 100000),
        "recent_messages_max": (1, 100),
        "history_meetings_limit": (0, 50),
        "max_message_length": (1, 1000000),
        "debug_log_max": (1, 10000),
    })

    def update(self, **kwargs) -> Dict[str, Any]:
        """
        Update configuration values at runtime.

        Args:
            **kwargs: Key-value pairs to update (e.g., debounce_ms=3000)

        Returns:
            Dict with 'updated' (changed keys) and 'ignored' (unknown or invalid keys)
        """
        updated = []
        ignored = []

        with self._lock:
            for key, value in kwargs.items():
                if key.startswith("_"):
                    ignored.append(key)
                    continue

                if hasattr(self, key):
                    if key == "llm_base_url" and isinstance(value, str):
                        cleaned = value.strip()
                        if not cleaned.startswith(("http://", "https://")):
                            ignored.append(key)
                            logger.warning(f"Config rejected invalid URL: {key}={value!r}")
                            continue
                        value = cleaned.rstrip("/")

                    # Validate model names (alphanumeric, slashes, colons, dots, dashes only)
                    if key.startswith("model_") and isinstance(value, str) and value:
                        if not re.match(r"^[a-zA-Z0-9._:/-]+$", value) or len(value) > 100:
                            ignored.append(key)
                            logger.warning(f"Config rejected invalid model name: {key}={value!r}")
                            continue

                    # Validate numeric ranges
                    if key in self._VALIDATION_RANGES:
                        lo, hi = self._VALIDATION_RANGES[key]
                        if not isinstance(value, (int, float)) or isinstance(value, bool) or not (lo <= value <= hi):
                            ignored.append(key)
                            logger.warning(f"Config rejected {key}={value} (must be {lo}-{hi})")
                            continue

                    old_value = getattr(self, key)
                    setattr(self, key, value)
                    updated.append(key)
                    if key == "llm_api_key":
                        logger.info("Config updated: llm_api_key")
                    else:
                        logger.info(f"Config updated: {key} = {value} (was {old_value})")
                else:
                    ignored.append(key)
                    logger.warning(f"Config ignored unknown key: {key}")

            self._update_count += 1

        return {"updated": updated, "ignored": ignored, "update_count": self._update_count}

    def agent_timeout_ms(self, agent: str) -> int:
        """Per-agent budget by agent name (immediate, analyst, deviation, decision, composer)."""
        return getattr(self, f"timeout_{agent}_ms", self.timeout_analyst_ms)

    def to_dict(self) -> Dict[str, Any]:
        """Export current config as dict (excludes internal fields and credentials)."""
        from dataclasses import fields as dataclass_fields

        result = {}
        for field_info in dataclass_fields(self):
            if field_info.name.startswith("_") or field_info.name == "llm_api_key":
                continue
            result[field_info.name] = getattr(self, field_info.name)
        return result

    def reset_to_defaults(self) -> Dict[str, Any]:
        """Reset all values to environment defaults."""
        defaults = RuntimeConfig()
        changes = {}

        with self._lock:
            for key in self.to_dict().keys():
                old_value = getattr(self, key)
                new_value = getattr(defaults, key)
                if old_value != new_value:
                    setattr(self, key, new_value)
                    changes[key] = {"old": old_value, "new": new_value}
                    logger.info(f"Config reset: {key} = {new_value}")

            self._update_count += 1

        return {"reset": True, "changes": changes, "update_count": self._update_count}


# Singleton instance
runtime_config = RuntimeConfig()


def get_config() -> RuntimeConfig:
    """Get the singleton config instance."""
    return runtime_config
