"""
Composer - turns the chosen insight into what the manager sees.

Plain-text answers become a message (format "question" for proactive
questions or text ending in "?"). For action cards the model answers with
JSON; a card that fails validation falls back to a plain message.
"""

import logging
from typing import Optional, Tuple

from errors import NormalizationError
from services.json_repair import parse_json_object

from .prompts import COMPOSER_SYSTEM_PROMPT, build_composer_prompt
from .base import BaseAgent, clip_text
from .types import ACTION_CARD_KINDS, ActionCard, ComposedMessage, ComposerInput, ComposerOutput

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE = "Carry on, I'm following the conversation."
MAX_MESSAGE_CHARS = 1200


def parse_action_card(parsed: dict) -> Optional[ActionCard]:
    """Validate an action card; None if kind or title is unusable."""
    kind = parsed.get("kind")
    title = clip_text(parsed.get("title"), 100)
    if kind not in ACTION_CARD_KINDS or not title:
        return None

    raw_cta = parsed.get("cta")
    if isinstance(raw_cta, dict):
        params = raw_cta.get("params")
        cta = {
            "label": clip_text(raw_cta.get("label"), 50) or "Open",
            "action": clip_text(raw_cta.get("action"), 50) or kind,
            "params": params if isinstance(params, dict) else {},
        }
    else:
        cta = {"label": "Open", "action": kind, "params": {}}

    return ActionCard(
        kind=kind,
        title=title,
        subtitle=clip_text(parsed.get("subtitle"), 150) or None,
        cta=cta,
    )


def strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```") and text.endswith("```") and len(text) > 6:
        text = text[3:-3].strip()
    return text


class ComposerAgent(BaseAgent[ComposerInput, ComposerOutput]):
    name = "composer"
    temperature = 0.6
    max_tokens = 800

    def default_output(self, data: ComposerInput, reason: str) -> ComposerOutput:
        return ComposerOutput(message=ComposedMessage(text=DEFAULT_MESSAGE, format="plain"))

    def build_prompts(self, data: ComposerInput) -> Tuple[str, str]:
        return COMPOSER_SYSTEM_PROMPT, build_composer_prompt(data)

    def parse(self, parsed: dict, data: ComposerInput) -> ComposerOutput:
        card = parse_action_card(parsed)
        if card is None:
            raise NormalizationError("Invalid action card", raw_text=str(parsed))
        return ComposerOutput(action_card=card)

    def decode(self, text: str, data: ComposerInput) -> ComposerOutput:
        text = (text or "").strip()

        if data.intervention_type == "action_card":
            try:
                return super().decode(text, data)
            except NormalizationError as e:
                logger.info(f"[composer] action card rejected ({e.message}), sending as message")
                text = self._card_fallback_text(text)

        text = strip_fences(text)
        if not text:
            raise NormalizationError("Empty composer response", raw_text=text)

        text = text[:MAX_MESSAGE_CHARS]
        message_format = "plain"
        if data.intervention_type == "proactive_question" or text.endswith("?"):
            message_format = "question"
        elif all(line.lstrip().startswith(("-", "*", "•")) for line in text.splitlines() if line.strip()):
            message_format = "list"
        return ComposerOutput(message=ComposedMessage(text=text, format=message_format))

    @staticmethod
    def _card_fallback_text(text: str) -> str:
        """Readable text from a rejected card: its title if it has one, else the raw text."""
        try:
            parsed = parse_json_object(text)
        except NormalizationError:
            return text
        for key in ("title", "text", "message"):
            value = clip_text(parsed.get(key), MAX_MESSAGE_CHARS)
            if value:
                return value
        return ""
