"""
Co-pilot Session State - per-meeting state management

One SessionState record per session key ("<meetingId>:<employeeId>"),
owned by a SessionStore shared by the policy gates, the pause detector and
the orchestrator. State lives in memory only.
"""

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, Iterator, Optional, Set, Tuple

from errors import ValidationError
from utils.cancellation import CancellationToken

Clock = Callable[[], float]


def session_key(meeting_id: str, employee_id: str) -> str:
    """Build the compound session key."""
    return f"{meeting_id}:{employee_id}"


def parse_session_key(key: str) -> Tuple[str, str]:
    """Split a session key into (meeting_id, employee_id).

    Raises:
        ValidationError: key is not '<meetingId>:<employeeId>'
    """
    meeting_id, sep, employee_id = (key or "").partition(":")
    if not sep or not meeting_id or not employee_id:
        raise ValidationError(
            "Invalid session key",
            details="Expected '<meetingId>:<employeeId>'",
            parameter="session_key",
            received=key,
        )
    return meeting_id, employee_id


@dataclass
class SessionState:
    """Holds co-pilot state for a single meeting session.

    Attributes:
        key: Session key
        last_intervention_at: Throttle anchor (clock seconds), None until first stamp
        last_input_change_at: Debounce anchor for analysis gating
        baseline_text: Notes text at the last analysed pause
        baseline_words: Lowercased word set of baseline_text
        last_text: Most recent notes text received
        recent_messages: Last messages the co-pilot sent (FIFO, bounded)
        intervention_count: Messages sent this session
        session_started_at: Clock reading when the session was created
        survey_offered: One-shot survey card flag
        active_token: Cancellation token of the run in flight, if any
    """

    key: str
    session_started_at: float
    recent_messages_max: int = 10
    last_intervention_at: Optional[float] = None
    last_input_change_at: Optional[float] = None
    baseline_text: str = ""
    baseline_words: Set[str] = field(default_factory=set)
    last_text: str = ""
    recent_messages: Deque[str] = field(init=False)
    intervention_count: int = 0
    survey_offered: bool = False
    active_token: Optional[CancellationToken] = None

    def __post_init__(self):
        self.recent_messages = deque(maxlen=self.recent_messages_max)

    def record_message(self, text: str) -> None:
        """Remember an emitted message; the oldest is evicted past the bound."""
        self.recent_messages.append(text)
        self.intervention_count += 1

    def minutes_elapsed(self, now: float) -> int:
        return max(0, int((now - self.session_started_at) // 60))


class SessionStore:
    """In-memory map of session key to SessionState."""

    def __init__(self, clock: Clock = time.monotonic, recent_messages_max: int = 10):
        self.clock = clock
        self.recent_messages_max = recent_messages_max
        self._sessions: Dict[str, SessionState] = {}

    def get(self, key: str) -> Optional[SessionState]:
        return self._sessions.get(key)

    def get_or_create(self, key: str) -> SessionState:
        state = self._sessions.get(key)
        if state is None:
            state = SessionState(
                key=key,
                session_started_at=self.clock(),
                recent_messages_max=self.recent_messages_max,
            )
            self._sessions[key] = state
        return state

    def remove(self, key: str) -> Optional[SessionState]:
        """Drop a session; returns the removed state (None if absent)."""
        return self._sessions.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._sessions))
