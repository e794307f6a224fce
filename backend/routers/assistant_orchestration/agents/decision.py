"""
Decision - speak now or stay silent.

The gatekeeper against chatter. Any doubt about the model's answer
(missing or non-boolean should_intervene, unparseable text, timeout)
resolves to silence.
"""

import logging
from typing import Optional, Tuple

from .prompts import DECISION_SYSTEM_PROMPT, build_decision_prompt
from .base import BaseAgent, clip_text, pick
from .types import INTERVENTION_TYPES, PRIORITY_LEVELS, DecisionInput, DecisionOutput

logger = logging.getLogger(__name__)


class DecisionAgent(BaseAgent[DecisionInput, DecisionOutput]):
    name = "decision"
    temperature = 0.2
    max_tokens = 200

    def default_output(self, data: DecisionInput, reason: str) -> DecisionOutput:
        return DecisionOutput(should_intervene=False, reason=f"Silence ({reason})")

    def skip(self, data: DecisionInput) -> Optional[DecisionOutput]:
        if not data.analysis.insights:
            return DecisionOutput(should_intervene=False, reason="No insights to act on")
        return None

    def build_prompts(self, data: DecisionInput) -> Tuple[str, str]:
        return DECISION_SYSTEM_PROMPT, build_decision_prompt(data)

    def parse(self, parsed: dict, data: DecisionInput) -> DecisionOutput:
        should_intervene = parsed.get("should_intervene")
        if not isinstance(should_intervene, bool):
            logger.warning(f"[decision] invalid should_intervene: {should_intervene!r}")
            return self.default_output(data, "invalid should_intervene")

        output = DecisionOutput(
            should_intervene=should_intervene,
            reason=clip_text(parsed.get("reason"), 300, default="No explanation"),
        )
        if not should_intervene:
            return output

        output.intervention_type = pick(parsed.get("intervention_type"), INTERVENTION_TYPES, "insight")
        output.priority = pick(parsed.get("priority"), PRIORITY_LEVELS, "medium")

        index = parsed.get("insight_index")
        valid_index = (
            isinstance(index, int)
            and not isinstance(index, bool)
            and 0 <= index < len(data.analysis.insights)
        )
        output.insight_index = index if valid_index else 0
        return output
