"""
LLM Client - wraps OpenAI SDK to talk to an OpenAI-compatible gateway.

One request shape for every agent: a system prompt, a user prompt, model,
temperature, max_tokens and a per-call timeout. The blocking SDK call runs
in the default executor under asyncio.wait_for, so a slow gateway never
stalls the event loop and a cancelled run can abandon the call.

Also manages:
- Retries for transient gateway errors (inside the call's timeout budget)
- A circuit breaker that fails fast while the gateway is down
- <think>...</think> blocks stripped from reasoning-model output
"""

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from functools import partial
from typing import Optional

import httpx
import openai
from openai import OpenAI

from config import runtime_config
from errors import GenerationCancelledError, LLMError
from logging_config import log_llm
from utils.cancellation import CancellationToken

logger = logging.getLogger(__name__)

_THINK_RE = re.compile(r"<think>.*?(?:</think>|$)", re.DOTALL)

_PERMANENT_ERROR_PATTERNS = [
    "model not found",
    "does not exist",
    "invalid model",
]

_TRANSIENT_ERROR_PATTERNS = [
    "model is loading",
    "connection refused",
    "connection reset",
    "temporarily unavailable",
    "rate limit",
]

_TRANSIENT_ERROR_TYPES = (
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


def is_retryable_error(error: Exception) -> bool:
    """Check if error is transient and worth retrying (not permanent failures)."""
    error_str = str(error).lower()
    # Never retry permanent errors
    if any(p in error_str for p in _PERMANENT_ERROR_PATTERNS):
        return False
    if isinstance(error, _TRANSIENT_ERROR_TYPES):
        return True
    # Retry known transient errors
    return any(p in error_str for p in _TRANSIENT_ERROR_PATTERNS)


def strip_thinking(content: str) -> str:
    """Remove <think> blocks (closed or left open by truncation) from content."""
    return _THINK_RE.sub("", content).strip()


class _CircuitBreaker:
    """Prevents cascading failures when the gateway is down."""

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 30):
        self.failures = 0
        self.threshold = failure_threshold
        self.timeout = recovery_timeout
        self.last_failure_time = 0.0
        self.state = "closed"  # closed, open, half_open

    def is_open(self) -> bool:
        if self.state == "open":
            if time.monotonic() - self.last_failure_time > self.timeout:
                self.state = "half_open"
                return False
            return True
        return False

    def record_success(self) -> None:
        self.failures = 0
        self.state = "closed"

    def record_failure(self) -> None:
        self.failures += 1
        self.last_failure_time = time.monotonic()
        if self.failures >= self.threshold:
            self.state = "open"
            logger.error("Circuit breaker OPEN - LLM gateway unavailable")


_circuit_breaker = _CircuitBreaker()


@dataclass
class GenerationRequest:
    """A single text generation call."""

    system: str
    prompt: str
    model: str
    temperature: float = 0.3
    max_tokens: int = 500
    timeout_ms: int = 8000


@dataclass
class GenerationResult:
    text: str
    model: str
    duration_ms: float = 0.0


class TextGenerationClient:
    """Async text generation over the OpenAI SDK."""

    def __init__(self, config=None, openai_client: Optional[OpenAI] = None):
        """
        Args:
            config: RuntimeConfig instance (defaults to the singleton)
            openai_client: Pre-built SDK client (tests inject a mock)
        """
        self.config = config or runtime_config
        self.base_url = self.config.llm_base_url.rstrip("/")
        self._openai = openai_client or OpenAI(
            base_url=self.base_url,
            api_key=self.config.llm_api_key or "not-needed",
            timeout=self.config.llm_request_timeout,
            max_retries=0,  # retries handled here, inside the per-call budget
        )

    def is_healthy(self, timeout: float = 3.0) -> bool:
        """Sync health check against the gateway /models endpoint."""
        try:
            resp = httpx.get(
                f"{self.base_url}/models",
                headers={"Authorization": f"Bearer {self.config.llm_api_key}"},
                timeout=timeout,
            )
            return resp.status_code == 200
        except httpx.HTTPError:
            return False

    def _complete(self, request: GenerationRequest) -> str:
        response = self._openai.chat.completions.create(
            model=request.model,
            messages=[
                {"role": "system", "content": request.system},
                {"role": "user", "content": request.prompt},
            ],
            temperature=request.temperature,
            max_tokens=request.max_tokens,
            stream=False,
        )
        raw_content = response.choices[0].message.content or ""
        return strip_thinking(raw_content)

    async def generate(
        self, request: GenerationRequest, token: Optional[CancellationToken] = None
    ) -> GenerationResult:
        """Run one generation call with timeout, retries and cancellation.

        Raises:
            GenerationCancelledError: the token was cancelled before or during the call
            LLMError: timeout, open circuit, or gateway failure
        """
        if token is not None:
            token.raise_if_cancelled()

        # Circuit breaker: fail fast if the gateway is down
        if _circuit_breaker.is_open():
            raise LLMError(
                message="LLM gateway temporarily unavailable (circuit breaker open)",
                error_type="circuit_open",
                model=request.model,
            )

        loop = asyncio.get_running_loop()
        deadline = loop.time() + request.timeout_ms / 1000
        max_retries = self.config.llm_max_retries
        last_error: Optional[Exception] = None

        for attempt in range(max_retries + 1):
            if attempt > 0:
                delay = self.config.llm_retry_delay * (2 ** (attempt - 1))
                if loop.time() + delay >= deadline:
                    break
                logger.info(f"Retry {attempt}/{max_retries} for {request.model} after {delay:.1f}s")
                await asyncio.sleep(delay)
                if token is not None:
                    token.raise_if_cancelled()

            remaining = deadline - loop.time()
            if remaining <= 0:
                break

            start_time = time.time()
            log_llm(logger, "start", model=request.model)
            future = loop.run_in_executor(None, partial(self._complete, request))
            remove_listener = token.add_listener(lambda _reason: future.cancel()) if token is not None else None

            try:
                text = await asyncio.wait_for(future, timeout=remaining)
                duration = time.time() - start_time
                log_llm(logger, "end", model=request.model, duration=duration)
                _circuit_breaker.record_success()
                return GenerationResult(text=text, model=request.model, duration_ms=duration * 1000)
            except asyncio.CancelledError:
                if token is not None and token.cancelled:
                    logger.info(f"LLM call abandoned ({token.reason}, model={request.model})")
                    raise GenerationCancelledError(reason=token.reason) from None
                raise
            except asyncio.TimeoutError:
                duration = time.time() - start_time
                logger.warning(
                    f"LLM call timed out after {duration:.2f}s (limit={request.timeout_ms}ms, model={request.model})"
                )
                _circuit_breaker.record_failure()
                raise LLMError(
                    message=f"Model response timed out after {request.timeout_ms}ms",
                    error_type="timeout",
                    model=request.model,
                ) from None
            except Exception as e:
                last_error = e
                _circuit_breaker.record_failure()
                if is_retryable_error(e) and attempt < max_retries:
                    logger.warning(f"Retryable error on {request.model}: {e}")
                    continue
                raise LLMError(
                    message=f"LLM call failed: {e}",
                    error_type="unavailable",
                    model=request.model,
                ) from e
            finally:
                if remove_listener is not None:
                    remove_listener()

        raise LLMError(
            message=f"Model response timed out after {request.timeout_ms}ms",
            details=str(last_error) if last_error else None,
            error_type="timeout",
            model=request.model,
        )


_client: Optional[TextGenerationClient] = None


def get_text_client() -> TextGenerationClient:
    """Get the singleton text generation client."""
    global _client
    if _client is None:
        _client = TextGenerationClient()
    return _client
