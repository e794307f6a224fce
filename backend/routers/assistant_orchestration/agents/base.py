"""
Base Agent - shared run loop for the reasoning agents.

Each agent knows how to:
1. Short-circuit without a model call (skip)
2. Build its system and user prompts
3. Turn the model's text into a validated output (decode)
4. Produce its least-assertive default

run() never raises: cancellation, timeouts, gateway errors and unparseable
output all come back as the agent's default inside an AgentResult.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Generic, List, Optional, Tuple, TypeVar

from config import runtime_config
from errors import GenerationCancelledError, LLMError, NormalizationError, log_error
from services.json_repair import parse_json_object
from services.llm_client import GenerationRequest
from utils.cancellation import CancellationToken

from .types import AgentResult

logger = logging.getLogger(__name__)

I = TypeVar("I")
O = TypeVar("O")


# =============================================================================
# FIELD VALIDATION HELPERS
# =============================================================================


def pick(value: Any, allowed, default):
    """Whitelist an enum-like value."""
    return value if isinstance(value, str) and value in allowed else default


def clamp_score(value: Any, default: float = 0.5) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return max(0.0, min(1.0, float(value)))


def clip_text(value: Any, limit: int, default: str = "") -> str:
    if not isinstance(value, str):
        return default
    return value.strip()[:limit]


def string_list(value: Any, limit: int) -> List[str]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, str) and v.strip()][:limit]


def strict_bool(value: Any, default: bool) -> bool:
    return value if isinstance(value, bool) else default


class BaseAgent(ABC, Generic[I, O]):
    """Shared contract: await agent.run(input, token) -> AgentResult."""

    name: str = "agent"
    temperature: float = 0.3
    max_tokens: int = 500

    def __init__(self, client, config=None):
        """
        Args:
            client: Text generation client (anything with async generate(request, token))
            config: RuntimeConfig instance (defaults to the singleton)
        """
        self.client = client
        self.config = config or runtime_config

    @property
    def model(self) -> str:
        return self.config.model_pipeline

    @property
    def timeout_ms(self) -> int:
        return self.config.agent_timeout_ms(self.name)

    @abstractmethod
    def default_output(self, data: I, reason: str) -> O:
        """Least-assertive output, used on cancellation and every failure."""

    @abstractmethod
    def build_prompts(self, data: I) -> Tuple[str, str]:
        """Return (system_prompt, user_prompt)."""

    @abstractmethod
    def parse(self, parsed: dict, data: I) -> O:
        """Validate a normalized JSON object field by field."""

    def skip(self, data: I) -> Optional[O]:
        """Return an output to short-circuit the model call, or None to proceed."""
        return None

    def decode(self, text: str, data: I) -> O:
        """Model text to output. Raises NormalizationError when unusable."""
        return self.parse(parse_json_object(text), data)

    async def run(self, data: I, token: Optional[CancellationToken] = None, trace=None) -> AgentResult[O]:
        """Run the agent once.

        Args:
            data: Agent input
            token: Cancellation token of the current run
            trace: Optional DebugLog to record the call in
        """
        start = time.monotonic()

        def elapsed() -> float:
            return (time.monotonic() - start) * 1000

        if token is not None and token.cancelled:
            return AgentResult(self.default_output(data, "cancelled"), elapsed())

        skipped = self.skip(data)
        if skipped is not None:
            return AgentResult(skipped, elapsed())

        system, prompt = self.build_prompts(data)
        request = GenerationRequest(
            system=system,
            prompt=prompt,
            model=self.model,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            timeout_ms=self.timeout_ms,
        )

        raw = ""
        try:
            result = await self.client.generate(request, token)
            raw = result.text
            output = self.decode(raw, data)
        except GenerationCancelledError:
            output = self.default_output(data, "cancelled")
        except NormalizationError as e:
            logger.warning(f"[{self.name}] {e.code.value}: {e.message} ({len(e.raw_text)} chars)")
            output = self.default_output(data, "unparseable response")
        except LLMError as e:
            logger.warning(f"[{self.name}] {e.code.value}: {e.message}")
            output = self.default_output(data, f"model error: {e.error_type}")
        except Exception as e:
            log_error(logger, e, context=self.name)
            output = self.default_output(data, "internal error")

        if token is not None and token.cancelled:
            output = self.default_output(data, "cancelled")

        duration = elapsed()
        if trace is not None:
            trace.add_agent_call(self.name, system, prompt, raw, output, duration)
        return AgentResult(output, duration)
