"""
Meeting Co-pilot Orchestration - session engine behind the assistant WebSocket

Components:
- SessionStore / SessionState: Per-meeting state keyed by "meetingId:employeeId"
- SessionPolicy: Throttle and analysis gates
- TypingDetector: Pause detection and the content check after a pause
- AssistantOrchestrator: Agent pipeline, cancellation and outbound events
- DebugStore: Per-turn traces for the debug API
- PipelineLogger: Stage logging, client pipeline_log payloads and metrics

Pipeline:
    fast-path analyst -> (deep analyst -> deviation) -> decision -> composer

    Every stage has a least-assertive default. A failed or timed-out
    stage degrades toward silence; the manager never sees an error from
    the model side.
"""

from .session import SessionState, SessionStore, parse_session_key, session_key
from .policies import AnalyzeDecision, ResponseStamp, SessionPolicy
from .typing_detector import ContentCheck, TypingDetector
from .debug_store import DebugLog, DebugStore, get_debug_store
from .pipeline_log import PipelineLogger, get_metrics, reset_metrics
from .orchestrator import (
    EXPLICIT_MESSAGE,
    TEXT_CHANGED,
    AssistantOrchestrator,
    TurnListener,
    get_orchestrator,
)

__all__ = [
    "SessionState",
    "SessionStore",
    "parse_session_key",
    "session_key",
    "AnalyzeDecision",
    "ResponseStamp",
    "SessionPolicy",
    "ContentCheck",
    "TypingDetector",
    "DebugLog",
    "DebugStore",
    "get_debug_store",
    "PipelineLogger",
    "get_metrics",
    "reset_metrics",
    "EXPLICIT_MESSAGE",
    "TEXT_CHANGED",
    "AssistantOrchestrator",
    "TurnListener",
    "get_orchestrator",
]
