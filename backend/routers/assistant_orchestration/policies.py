"""
Session policy gates - throttle, debounce, word-delta and one-shot flags.

All gates read and write SessionState through a shared SessionStore.
Passing gates stamp their anchor immediately (stamp-then-allow), so two
near-simultaneous callers on the same event loop cannot both pass.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, Optional, Set

from config import runtime_config

from .session import SessionStore

logger = logging.getLogger(__name__)

_SEPARATOR_RE = re.compile(r"[\s\x00-\x1f\x7f]+")


def split_words(text: str) -> list:
    """Split on runs of whitespace/control characters, dropping empties."""
    if not text:
        return []
    return [w for w in _SEPARATOR_RE.split(text) if w]


def words_set(text: str) -> Set[str]:
    """Lowercased set of words in text."""
    return {w.lower() for w in split_words(text)}


@dataclass
class AnalyzeDecision:
    allow: bool
    reason: str
    new_words: int = 0


@dataclass(eq=False)
class ResponseStamp:
    """Throttle stamp taken by one turn. Hand it back to commit or release."""

    key: str
    at: float


class SessionPolicy:
    """Throttle and analysis gates over a SessionStore."""

    def __init__(self, store: SessionStore, config=None):
        self.store = store
        self.config = config or runtime_config
        # newest outstanding stamp per key; only it may roll the anchor back
        self._latest: Dict[str, ResponseStamp] = {}
        # anchor value of the last turn that actually emitted something
        self._committed: Dict[str, float] = {}

    def _elapsed_ms(self, since: Optional[float]) -> Optional[float]:
        if since is None:
            return None
        return (self.store.clock() - since) * 1000

    def acquire_response(self, key: str) -> Optional[ResponseStamp]:
        """Throttle gate for a turn that may still end up silent.

        Returns None when min_interval_ms has not passed since the last
        intervention. Otherwise stamps last_intervention_at = now and returns
        the stamp, which the turn must pass to commit_response or
        release_response.
        """
        state = self.store.get_or_create(key)
        elapsed = self._elapsed_ms(state.last_intervention_at)
        if elapsed is not None and elapsed < self.config.min_interval_ms:
            logger.debug(f"[{key}] throttled ({elapsed:.0f}ms < {self.config.min_interval_ms}ms)")
            return None

        stamp = ResponseStamp(key=key, at=self.store.clock())
        self._latest[key] = stamp
        state.last_intervention_at = stamp.at
        return stamp

    def can_respond_now(self, key: str) -> bool:
        """True iff min_interval_ms has passed since the last intervention.

        On success stamps last_intervention_at = now and keeps the stamp.
        """
        stamp = self.acquire_response(key)
        if stamp is None:
            return False
        self.commit_response(stamp)
        return True

    def release_response(self, stamp: ResponseStamp) -> bool:
        """Undo a stamp whose turn emitted nothing.

        A stamp that a later turn has superseded is left alone, and the anchor
        falls back to the last committed intervention, not to whatever the
        stamp happened to overwrite.
        """
        if self._latest.get(stamp.key) is not stamp:
            return False
        del self._latest[stamp.key]
        state = self.store.get(stamp.key)
        if state is None or state.last_intervention_at != stamp.at:
            return False
        state.last_intervention_at = self._committed.get(stamp.key)
        return True

    def commit_response(self, stamp: ResponseStamp) -> None:
        """Keep a stamp whose turn emitted output."""
        if self._latest.get(stamp.key) is stamp:
            del self._latest[stamp.key]
        committed = self._committed.get(stamp.key)
        if committed is None or stamp.at > committed:
            self._committed[stamp.key] = stamp.at
        state = self.store.get(stamp.key)
        if state is not None and (state.last_intervention_at is None or state.last_intervention_at < stamp.at):
            state.last_intervention_at = stamp.at

    def should_analyze(self, key: str, current_text: str, min_new_words: Optional[int] = None) -> AnalyzeDecision:
        """Debounce plus minimum-new-words gate.

        New words are counted the way the pause detector counts them: distinct
        lowercased words now, minus distinct words in the baseline. On success
        stamps last_input_change_at = now. Never advances the baseline; that
        only happens after a real analysis.

        Args:
            key: Session key
            current_text: Notes text now
            min_new_words: Override for min_words_delta (0 after a detected deletion)
        """
        state = self.store.get_or_create(key)
        elapsed = self._elapsed_ms(state.last_input_change_at)
        if elapsed is not None and elapsed < self.config.debounce_ms:
            return AnalyzeDecision(
                allow=False,
                reason=f"Debounce: {elapsed:.0f}ms < {self.config.debounce_ms}ms",
            )

        threshold = self.config.min_words_delta if min_new_words is None else min_new_words
        new_words = max(0, len(words_set(current_text)) - len(words_set(state.baseline_text)))
        if new_words < threshold:
            return AnalyzeDecision(
                allow=False,
                reason=f"Not enough new words: {new_words} < {threshold}",
                new_words=new_words,
            )

        state.last_input_change_at = self.store.clock()
        return AnalyzeDecision(allow=True, reason=f"{new_words} new words", new_words=new_words)

    def was_survey_offered(self, key: str) -> bool:
        state = self.store.get(key)
        return bool(state and state.survey_offered)

    def mark_survey_offered(self, key: str) -> None:
        self.store.get_or_create(key).survey_offered = True

    def clear_session(self, key: str) -> None:
        """Remove all state for the key. Idempotent."""
        self._latest.pop(key, None)
        self._committed.pop(key, None)
        state = self.store.remove(key)
        if state is not None and state.active_token is not None:
            state.active_token.cancel("session cleared")
        if state is not None:
            logger.info(f"[{key}] session cleared")
