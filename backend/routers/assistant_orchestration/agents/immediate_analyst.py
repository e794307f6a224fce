"""
Fast-path Analyst - "here and now" check of the latest notes.

First stage of every turn. Looks at the notes and the profile only (no
history) and answers two questions: is there concrete advice right now,
and is a deep analysis worth running.
"""

import logging
from typing import Optional, Tuple

from .prompts import IMMEDIATE_SYSTEM_PROMPT, build_immediate_prompt
from .analyst import parse_insight
from .base import BaseAgent, clip_text, strict_bool
from .types import ImmediateInput, ImmediateOutput

logger = logging.getLogger(__name__)

MIN_NOTES_CHARS = 10


class ImmediateAnalystAgent(BaseAgent[ImmediateInput, ImmediateOutput]):
    name = "immediate"
    temperature = 0.3
    max_tokens = 500

    @property
    def model(self) -> str:
        return self.config.model_fast

    def default_output(self, data: ImmediateInput, reason: str) -> ImmediateOutput:
        return ImmediateOutput(
            has_actionable_advice=False,
            needs_deep_analysis=True,
            reason=reason,
            situation_summary=f"Meeting with {data.employee.name}.",
        )

    def skip(self, data: ImmediateInput) -> Optional[ImmediateOutput]:
        if len((data.notes or "").strip()) < MIN_NOTES_CHARS:
            return ImmediateOutput(
                has_actionable_advice=False,
                needs_deep_analysis=False,
                reason="Notes too short to analyse",
                situation_summary=f"Meeting with {data.employee.name}. Waiting for notes.",
            )
        return None

    def build_prompts(self, data: ImmediateInput) -> Tuple[str, str]:
        return IMMEDIATE_SYSTEM_PROMPT, build_immediate_prompt(data)

    def parse(self, parsed: dict, data: ImmediateInput) -> ImmediateOutput:
        has_advice = strict_bool(parsed.get("has_actionable_advice"), False)
        output = ImmediateOutput(
            has_actionable_advice=has_advice,
            needs_deep_analysis=strict_bool(parsed.get("needs_deep_analysis"), not has_advice),
            reason=clip_text(parsed.get("reason"), 300, default="No explanation"),
            situation_summary=clip_text(
                parsed.get("situation_summary"), 200, default=f"Meeting with {data.employee.name}."
            ),
        )

        if has_advice:
            insight = parse_insight(parsed.get("insight"))
            if insight is None or not insight.interpretation:
                # Advice without a usable insight cannot be composed
                output.has_actionable_advice = False
                output.needs_deep_analysis = True
                output.reason = "Advice flagged without a usable insight"
            else:
                output.insight = insight

        return output
