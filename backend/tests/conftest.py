"""
Shared pytest fixtures and fakes for the co-pilot tests.
"""

import asyncio
import json
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

import pytest

from config import RuntimeConfig
from errors import GenerationCancelledError, LLMError
from routers.assistant_orchestration.agents.prompts import (
    ANALYST_SYSTEM_PROMPT,
    COMPOSER_SYSTEM_PROMPT,
    DECISION_SYSTEM_PROMPT,
    DEVIATION_SYSTEM_PROMPT,
    IMMEDIATE_SYSTEM_PROMPT,
)
from services.context_provider import Agreement, EmployeeInfo, InMemoryContextProvider, MeetingSummary
from services.llm_client import GenerationRequest, GenerationResult
from utils.cancellation import CancellationToken

MEETING_ID = "m-1"
EMPLOYEE_ID = "e-1"
SESSION_KEY = f"{MEETING_ID}:{EMPLOYEE_ID}"

AGENT_BY_SYSTEM_PROMPT = {
    IMMEDIATE_SYSTEM_PROMPT: "immediate",
    ANALYST_SYSTEM_PROMPT: "analyst",
    DEVIATION_SYSTEM_PROMPT: "deviation",
    DECISION_SYSTEM_PROMPT: "decision",
    COMPOSER_SYSTEM_PROMPT: "composer",
}

# Scripted reply that blocks until the run's token is cancelled
HANG = object()


class FakeClock:
    """Manual monotonic clock (seconds)."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedClient:
    """Stands in for TextGenerationClient.

    Replies are scripted per agent (recognised by its system prompt). A
    reply can be a string, a dict (sent as JSON), an exception to raise,
    HANG, or a list of those consumed in order.
    """

    def __init__(self, replies: Optional[Dict[str, Any]] = None):
        self.replies: Dict[str, Any] = dict(replies or {})
        self.calls: List[Tuple[str, GenerationRequest]] = []

    def agents_called(self) -> List[str]:
        return [agent for agent, _ in self.calls]

    def _next_reply(self, agent: str) -> Any:
        reply = self.replies.get(agent)
        if isinstance(reply, list):
            return reply.pop(0) if reply else None
        return reply

    async def generate(
        self, request: GenerationRequest, token: Optional[CancellationToken] = None
    ) -> GenerationResult:
        agent = AGENT_BY_SYSTEM_PROMPT.get(request.system, "unknown")
        self.calls.append((agent, request))
        if token is not None:
            token.raise_if_cancelled()

        reply = self._next_reply(agent)
        if reply is HANG:
            assert token is not None, "HANG needs a cancellation token"
            cancelled = asyncio.get_running_loop().create_future()
            token.add_listener(lambda reason: cancelled.done() or cancelled.set_result(reason))
            reason = await cancelled
            raise GenerationCancelledError(reason=reason)
        if reply is None:
            raise LLMError(f"No scripted reply for {agent}", error_type="unavailable", model=request.model)
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            reply = reply(request)
        text = json.dumps(reply) if isinstance(reply, dict) else reply
        return GenerationResult(text=text, model=request.model, duration_ms=1.0)


def make_config(**overrides) -> RuntimeConfig:
    """RuntimeConfig with gates opened up for tests."""
    values = {
        "min_interval_ms": 0,
        "debounce_ms": 0,
        "min_words_for_analysis": 5,
        "min_words_delta": 5,
        "pipeline_timeout_ms": 5000,
        "llm_max_retries": 0,
        "llm_retry_delay": 0.0,
    }
    values.update(overrides)
    return RuntimeConfig(**values)


# Canned agent replies

FAST_NEEDS_DEEP = {
    "has_actionable_advice": False,
    "needs_deep_analysis": True,
    "reason": "Topic needs context",
    "situation_summary": "Discussing workload",
}

FAST_STOP = {
    "has_actionable_advice": False,
    "needs_deep_analysis": False,
    "reason": "Small talk",
    "situation_summary": "Warm-up",
}

FAST_ADVICE = {
    "has_actionable_advice": True,
    "needs_deep_analysis": False,
    "reason": "Clear signal of overload",
    "situation_summary": "Employee reports overload",
    "insight": {
        "type": "risk",
        "interpretation": "Overload is turning into burnout risk",
        "confidence": 0.8,
        "evidence": ["works weekends"],
    },
}

ANALYST_ONE_INSIGHT = {
    "insights": [
        {
            "type": "hidden_need",
            "interpretation": "Wants recognition for the migration work",
            "description": "Brings up migration twice",
            "confidence": 0.7,
            "evidence": ["mentioned migration twice"],
            "relevance": "high",
        }
    ],
    "employee_state": {
        "sentiment": "neutral",
        "engagement_level": "medium",
        "interaction_mode": "constructive",
        "key_topics": ["migration"],
    },
    "context_summary": "Talking about the migration project",
}

NO_DEVIATION = {"has_deviation": False, "explanation": "Consistent with profile"}

DEVIATION_FOUND = {
    "has_deviation": True,
    "explanation": "Usually proactive, now withdrawn",
    "deviation_type": "profile_mismatch",
    "severity": "significant",
    "message": "Unusually quiet compared to the profile",
    "recommended_action": "Ask an open question about their week",
}

INTERVENE = {
    "should_intervene": True,
    "reason": "Good moment for a question",
    "intervention_type": "proactive_question",
    "priority": "high",
    "insight_index": 0,
}

STAY_SILENT = {"should_intervene": False, "reason": "Conversation is flowing"}

COMPOSED_QUESTION = "What part of the migration are you proudest of?"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def employee():
    return EmployeeInfo(id=EMPLOYEE_ID, name="Alex Kim", position="Backend engineer", team="Platform")


@pytest.fixture
def provider(employee):
    """In-memory context with a profile, one past meeting and one open agreement."""
    p = InMemoryContextProvider()
    p.add_employee(employee)
    p.add_meeting(MeetingSummary(id=MEETING_ID, employee_id=EMPLOYEE_ID, date=date(2026, 10, 18), status="in_progress"))
    p.add_meeting(
        MeetingSummary(
            id="m-0",
            employee_id=EMPLOYEE_ID,
            date=date(2026, 10, 4),
            notes="Discussed the migration plan. Alex was upbeat.",
            satisfaction=4,
        )
    )
    p.set_characteristic(
        EMPLOYEE_ID,
        "Proactive and outspoken engineer who prefers direct feedback and ownership of large projects. "
        "Gets frustrated by unclear priorities.",
    )
    p.add_agreement(
        Agreement(
            id="a-1",
            employee_id=EMPLOYEE_ID,
            title="Write the migration runbook",
            created_at=date(2026, 10, 4),
            responsible_type="employee_task",
            due_date=date(2026, 10, 25),
        )
    )
    return p
