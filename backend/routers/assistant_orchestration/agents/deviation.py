"""
Profile Deviation - behavior vs profile and meeting history.

Runs after the deep analysis and flags significant changes from what the
profile or earlier meetings would predict. Its finding is delivered as a
separate card, even when the decision stage chooses silence.
"""

import logging
from typing import Optional, Tuple

from .prompts import DEVIATION_SYSTEM_PROMPT, build_deviation_prompt
from .base import BaseAgent, clip_text, pick, strict_bool
from .types import DEVIATION_SEVERITIES, DEVIATION_TYPES, DeviationInput, DeviationOutput

logger = logging.getLogger(__name__)

MIN_BEHAVIOR_CHARS = 10


class ProfileDeviationAgent(BaseAgent[DeviationInput, DeviationOutput]):
    name = "deviation"
    temperature = 0.2
    max_tokens = 400

    def default_output(self, data: DeviationInput, reason: str) -> DeviationOutput:
        return DeviationOutput(has_deviation=False, explanation=f"No deviation check ({reason})")

    def skip(self, data: DeviationInput) -> Optional[DeviationOutput]:
        if not data.profile and not data.previous_meetings:
            return DeviationOutput(has_deviation=False, explanation="No profile or history to compare with")
        if len((data.current_behavior or "").strip()) < MIN_BEHAVIOR_CHARS:
            return DeviationOutput(has_deviation=False, explanation="Not enough data about current behavior")
        return None

    def build_prompts(self, data: DeviationInput) -> Tuple[str, str]:
        return DEVIATION_SYSTEM_PROMPT, build_deviation_prompt(data)

    def parse(self, parsed: dict, data: DeviationInput) -> DeviationOutput:
        output = DeviationOutput(
            has_deviation=strict_bool(parsed.get("has_deviation"), False),
            explanation=clip_text(parsed.get("explanation"), 500, default="No explanation"),
        )
        if not output.has_deviation:
            return output

        output.deviation_type = pick(parsed.get("deviation_type"), DEVIATION_TYPES, "history_anomaly")
        output.severity = pick(parsed.get("severity"), DEVIATION_SEVERITIES, "significant")
        output.message = clip_text(parsed.get("message"), 200) or None
        output.recommended_action = clip_text(parsed.get("recommended_action"), 200) or None

        if not output.message:
            # Nothing to show the manager
            output.has_deviation = False
            output.explanation = "Deviation flagged without a message"
        return output
