"""
Pipeline logging and process-wide metrics.

A PipelineLogger follows one turn: it logs each stage with its timing,
forwards `pipeline_log` payloads to the client for the stages the client
is allowed to see, and folds the turn result into the shared metrics.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional

from logging_config import log_stage, log_turn_end

logger = logging.getLogger(__name__)

AGENTS = ("immediate", "analyst", "deviation", "decision", "composer")
RESULTS = ("silence", "message", "deviation_only", "cancelled", "throttled", "error")

# Stages forwarded to the client by default; the rest stay in server logs.
CLIENT_LOG_STAGES = frozenset({"typing", "content_check", "timeout", "error"})

LogCallback = Callable[[dict], Awaitable[None]]


@dataclass
class PipelineMetrics:
    """Counters across all turns since start (or the last reset)."""

    total_calls: int = 0
    result_counts: Dict[str, int] = field(default_factory=lambda: {r: 0 for r in RESULTS})
    agent_time_sum_ms: Dict[str, float] = field(default_factory=lambda: {a: 0.0 for a in AGENTS})
    agent_calls: Dict[str, int] = field(default_factory=lambda: {a: 0 for a in AGENTS})
    intervention_types: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        averages = {
            agent: round(self.agent_time_sum_ms[agent] / self.agent_calls[agent], 1) if self.agent_calls[agent] else 0
            for agent in AGENTS
        }
        return {
            "total_calls": self.total_calls,
            "silence_count": self.result_counts["silence"],
            "intervene_count": self.result_counts["message"],
            "results": dict(self.result_counts),
            "agent_time_sum_ms": dict(self.agent_time_sum_ms),
            "agent_avg_ms": averages,
            "intervention_types": dict(self.intervention_types),
        }


_metrics = PipelineMetrics()


def get_metrics() -> Dict[str, Any]:
    return _metrics.to_dict()


def reset_metrics() -> None:
    global _metrics
    _metrics = PipelineMetrics()
    logger.info("Pipeline metrics reset")


class PipelineLogger:
    """Logs one pipeline turn."""

    def __init__(
        self,
        session_key: str,
        on_log: Optional[LogCallback] = None,
        client_stages: Optional[Iterable[str]] = None,
    ):
        self.session_key = session_key
        self.on_log = on_log
        self.client_stages = frozenset(client_stages) if client_stages is not None else CLIENT_LOG_STAGES
        self.start_time = time.monotonic()
        self.agent_times: Dict[str, float] = {}
        self.finished = False

    @property
    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.start_time) * 1000

    async def stage(
        self,
        stage: str,
        message: str,
        level: str = "info",
        duration_ms: Optional[float] = None,
        details: Optional[dict] = None,
    ) -> None:
        """Log a stage and forward it to the client if the stage is visible."""
        if level == "error":
            logger.error(f"[{self.session_key}] {stage}: {message}")
        elif level == "warn":
            logger.warning(f"[{self.session_key}] {stage}: {message}")
        else:
            log_stage(logger, stage, f"[{self.session_key}] {message}", duration_ms)

        if self.on_log is None or stage not in self.client_stages:
            return
        payload = {"type": "pipeline_log", "level": level, "stage": stage, "message": message}
        if duration_ms is not None:
            payload["durationMs"] = round(duration_ms)
        if details is not None:
            payload["details"] = details
        try:
            await self.on_log(payload)
        except Exception as e:
            logger.debug(f"pipeline_log delivery failed: {e}")

    async def agent(self, name: str, duration_ms: float, message: str) -> None:
        """Record an agent's timing and log its result."""
        self.agent_times[name] = duration_ms
        await self.stage(name, message, duration_ms=duration_ms)

    def finish(self, result: str, outputs: int = 0, intervention_type: Optional[str] = None) -> None:
        """Fold the turn into the metrics. Only the first call counts."""
        if self.finished:
            return
        self.finished = True

        _metrics.total_calls += 1
        _metrics.result_counts[result] = _metrics.result_counts.get(result, 0) + 1
        for name, duration in self.agent_times.items():
            _metrics.agent_time_sum_ms[name] = _metrics.agent_time_sum_ms.get(name, 0.0) + duration
            _metrics.agent_calls[name] = _metrics.agent_calls.get(name, 0) + 1
        if intervention_type:
            _metrics.intervention_types[intervention_type] = _metrics.intervention_types.get(intervention_type, 0) + 1

        log_turn_end(logger, result, outputs=outputs, duration_ms=self.elapsed_ms)
