"""
In-memory debug store for pipeline turns.

Keeps the last N turns with their inputs, every agent call (prompts, raw
and parsed responses, timing) and the final output, so a developer can
see exactly why the co-pilot spoke or stayed silent.
"""

import logging
import uuid
from collections import OrderedDict
from dataclasses import asdict, dataclass, field, is_dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from config import runtime_config

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _jsonable(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    return value


@dataclass
class AgentCall:
    agent: str
    system_prompt: str
    user_prompt: str
    raw_response: str
    parsed_response: Any
    duration_ms: float
    timestamp: str = field(default_factory=_now_iso)


@dataclass
class DebugLog:
    """Everything recorded about one turn."""

    id: str
    session_key: str
    input: Dict[str, Any]
    timestamp: str = field(default_factory=_now_iso)
    agent_calls: List[AgentCall] = field(default_factory=list)
    output: Dict[str, Any] = field(default_factory=lambda: {"decision": "silence", "messages": [], "reason": None})
    total_duration_ms: float = 0.0

    def add_agent_call(
        self,
        agent: str,
        system_prompt: str,
        user_prompt: str,
        raw_response: str,
        parsed_response: Any,
        duration_ms: float,
    ) -> None:
        self.agent_calls.append(
            AgentCall(
                agent=agent,
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                raw_response=raw_response,
                parsed_response=_jsonable(parsed_response),
                duration_ms=round(duration_ms, 1),
            )
        )

    def set_output(self, decision: str, messages: List[dict], reason: Optional[str], total_duration_ms: float) -> None:
        self.output = {"decision": decision, "messages": list(messages), "reason": reason}
        self.total_duration_ms = round(total_duration_ms, 1)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "session_key": self.session_key,
            "decision": self.output.get("decision"),
            "reason": self.output.get("reason"),
            "agents": [call.agent for call in self.agent_calls],
            "total_duration_ms": self.total_duration_ms,
        }


class DebugStore:
    """Bounded store; the oldest log is evicted first."""

    def __init__(self, max_logs: Optional[int] = None):
        self.max_logs = max_logs or runtime_config.debug_log_max
        self._logs: "OrderedDict[str, DebugLog]" = OrderedDict()

    def create(self, session_key: str, input_data: Dict[str, Any]) -> DebugLog:
        log = DebugLog(id=uuid.uuid4().hex[:8], session_key=session_key, input=input_data)
        self._logs[log.id] = log
        while len(self._logs) > self.max_logs:
            self._logs.popitem(last=False)
        return log

    def get(self, log_id: str) -> Optional[DebugLog]:
        return self._logs.get(log_id)

    def recent(self, limit: int = 20) -> List[DebugLog]:
        """Newest first."""
        if limit <= 0:
            return []
        return list(reversed(self._logs.values()))[:limit]

    def clear(self) -> int:
        count = len(self._logs)
        self._logs.clear()
        logger.info(f"Debug store cleared ({count} logs)")
        return count

    def __len__(self) -> int:
        return len(self._logs)


_store: Optional[DebugStore] = None


def get_debug_store() -> DebugStore:
    """Get the singleton debug store."""
    global _store
    if _store is None:
        _store = DebugStore()
    return _store
