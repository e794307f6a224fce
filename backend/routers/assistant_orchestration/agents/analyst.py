"""
Deep Analyst - full-context analysis of the meeting.

Reads notes together with the profile, recent meetings and weighted open
commitments, and returns up to five insights plus the employee's state.
Runs only when the fast-path analyst found no immediate advice.
"""

import logging
from typing import Any, Optional, Tuple

from .prompts import ANALYST_SYSTEM_PROMPT, build_analyst_prompt
from .base import BaseAgent, clamp_score, clip_text, pick, string_list
from .types import (
    ENGAGEMENT_LEVELS,
    INSIGHT_TYPES,
    INTERACTION_MODES,
    RELEVANCE_LEVELS,
    SENTIMENTS,
    AnalystInput,
    AnalystOutput,
    EmployeeState,
    Insight,
)

logger = logging.getLogger(__name__)

MAX_INSIGHTS = 5
MIN_NOTES_CHARS = 5


def parse_insight(raw: Any) -> Optional[Insight]:
    """Validate one insight object; None if it carries no usable text."""
    if not isinstance(raw, dict):
        return None

    interpretation = clip_text(raw.get("interpretation"), 300)
    description = clip_text(raw.get("description"), 200, default=interpretation[:200])
    if not interpretation and not description:
        return None

    connection = clip_text(raw.get("profile_connection"), 200)
    return Insight(
        type=pick(raw.get("type"), INSIGHT_TYPES, "pattern"),
        interpretation=interpretation,
        description=description,
        confidence=clamp_score(raw.get("confidence")),
        evidence=string_list(raw.get("evidence"), 3),
        relevance=pick(raw.get("relevance"), RELEVANCE_LEVELS, "medium"),
        profile_connection=connection or None,
    )


def parse_employee_state(raw: Any) -> EmployeeState:
    if not isinstance(raw, dict):
        return EmployeeState()
    return EmployeeState(
        sentiment=pick(raw.get("sentiment"), SENTIMENTS, "unknown"),
        engagement_level=pick(raw.get("engagement_level"), ENGAGEMENT_LEVELS, "medium"),
        interaction_mode=pick(raw.get("interaction_mode"), INTERACTION_MODES, None),
        key_topics=string_list(raw.get("key_topics"), 5),
    )


class AnalystAgent(BaseAgent[AnalystInput, AnalystOutput]):
    name = "analyst"
    temperature = 0.4
    max_tokens = 2000

    def default_output(self, data: AnalystInput, reason: str) -> AnalystOutput:
        return AnalystOutput(context_summary=f"Meeting with {data.employee.name}. No analysis ({reason}).")

    def skip(self, data: AnalystInput) -> Optional[AnalystOutput]:
        if len((data.notes or "").strip()) < MIN_NOTES_CHARS:
            return AnalystOutput(context_summary=f"Meeting with {data.employee.name}. Waiting for notes.")
        return None

    def build_prompts(self, data: AnalystInput) -> Tuple[str, str]:
        return ANALYST_SYSTEM_PROMPT, build_analyst_prompt(data)

    def parse(self, parsed: dict, data: AnalystInput) -> AnalystOutput:
        insights = []
        raw_insights = parsed.get("insights")
        if isinstance(raw_insights, list):
            for raw in raw_insights[:MAX_INSIGHTS]:
                insight = parse_insight(raw)
                if insight is not None and insight.confidence >= self.config.min_insight_confidence:
                    insights.append(insight)

        return AnalystOutput(
            insights=insights,
            employee_state=parse_employee_state(parsed.get("employee_state")),
            context_summary=clip_text(parsed.get("context_summary"), 300, default=f"Meeting with {data.employee.name}."),
        )
