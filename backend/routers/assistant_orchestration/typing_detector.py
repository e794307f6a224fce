"""
Pause/change detector for the live notes stream.

Every notes update cancels the session's pending pause timer and schedules
a new one, so only the last text before a quiet period of debounce_ms is
examined. When the timer fires, the text is compared against the session
baseline:

    1. fewer than min_words_for_analysis words    -> skip ("too little text")
    2. significant deletion since the baseline     -> analyze, baseline reset
    3. at least min_words_delta new words          -> analyze
    4. otherwise                                   -> skip ("not enough new content")

The baseline only moves on a deletion (rule 2) or through mark_baseline()
after a completed analysis.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass
from typing import Awaitable, Callable, Dict, Optional

from config import runtime_config
from errors import log_error

from .policies import words_set
from .session import SessionStore

logger = logging.getLogger(__name__)


@dataclass
class ContentCheck:
    """Outcome of the content check at a pause."""

    should_analyze: bool
    reason: str
    deletion_detected: bool = False
    baseline_reset: bool = False
    new_words_count: int = 0
    current_words_count: int = 0
    deleted_words_count: int = 0
    deleted_percent: float = 0.0  # 0-100

    def to_dict(self) -> dict:
        return asdict(self)


PauseCallback = Callable[[str, ContentCheck], Awaitable[None]]
LogCallback = Callable[[dict], Awaitable[None]]


class TypingDetector:
    """Per-session debounce timers over a SessionStore."""

    def __init__(self, store: SessionStore, config=None):
        self.store = store
        self.config = config or runtime_config
        self._timers: Dict[str, asyncio.Task] = {}

    def on_text_change(
        self,
        key: str,
        text: str,
        on_pause: PauseCallback,
        on_log: Optional[LogCallback] = None,
    ) -> None:
        """Record a notes update and (re)start the session's pause timer."""
        self.store.get_or_create(key).last_text = text

        # Cancel existing timer if any
        existing = self._timers.pop(key, None)
        if existing is not None and not existing.done():
            existing.cancel()

        # Schedule new timer
        task = asyncio.create_task(self._wait_for_pause(key, on_pause, on_log))
        self._timers[key] = task

        # Auto-cleanup when the timer completes, unless it was already replaced
        def _cleanup_task(t, k=key):
            if self._timers.get(k) is t:
                self._timers.pop(k, None)

        task.add_done_callback(_cleanup_task)

    async def _wait_for_pause(self, key: str, on_pause: PauseCallback, on_log: Optional[LogCallback]) -> None:
        try:
            await asyncio.sleep(self.config.debounce_ms / 1000)
        except asyncio.CancelledError:
            return  # Normal cancellation, another keystroke arrived

        # The timer is done; a new keystroke from here on schedules a new one
        # instead of cancelling the analysis this one starts.
        if self._timers.get(key) is asyncio.current_task():
            self._timers.pop(key, None)

        state = self.store.get(key)
        if state is None:
            return
        text = state.last_text

        await self._log(on_log, "info", "typing", f"Pause of {self.config.debounce_ms}ms detected")
        check = self.check_content_after_pause(key, text)
        await self._log(
            on_log,
            "success" if check.should_analyze else "info",
            "content_check",
            check.reason,
            details=check.to_dict(),
        )
        if not check.should_analyze:
            return

        try:
            await on_pause(text, check)
        except Exception as e:
            log_error(logger, e, context=f"pause handler {key}")
            await self._log(on_log, "error", "error", f"Pause handler failed: {e}")

    def check_content_after_pause(self, key: str, text: str) -> ContentCheck:
        """Apply the pause decision table to text against the session baseline."""
        state = self.store.get_or_create(key)
        current = words_set(text)
        baseline = state.baseline_words
        current_count = len(current)

        if current_count < self.config.min_words_for_analysis:
            return ContentCheck(
                should_analyze=False,
                reason=f"Too little text: {current_count} < {self.config.min_words_for_analysis} words",
                current_words_count=current_count,
            )

        deleted = len(baseline - current)
        deleted_percent = (deleted / len(baseline) * 100) if baseline else 0.0
        significant = (
            deleted_percent > self.config.deletion_threshold_percent
            or deleted > self.config.deletion_threshold_words
        )
        if significant and deleted > 0:
            self.mark_baseline(key, text)
            logger.info(f"[{key}] deletion detected ({deleted} words, {deleted_percent:.0f}%), baseline reset")
            return ContentCheck(
                should_analyze=True,
                reason=f"Significant deletion: {deleted} words ({deleted_percent:.0f}%)",
                deletion_detected=True,
                baseline_reset=True,
                new_words_count=current_count,
                current_words_count=current_count,
                deleted_words_count=deleted,
                deleted_percent=deleted_percent,
            )

        new_words = max(0, current_count - len(baseline))
        if new_words >= self.config.min_words_delta:
            return ContentCheck(
                should_analyze=True,
                reason=f"{new_words} new words",
                new_words_count=new_words,
                current_words_count=current_count,
                deleted_words_count=deleted,
                deleted_percent=deleted_percent,
            )

        return ContentCheck(
            should_analyze=False,
            reason=f"Not enough new content: {new_words} < {self.config.min_words_delta} words",
            new_words_count=new_words,
            current_words_count=current_count,
            deleted_words_count=deleted,
            deleted_percent=deleted_percent,
        )

    def mark_baseline(self, key: str, text: str) -> None:
        """Snapshot text as the session baseline."""
        state = self.store.get_or_create(key)
        state.baseline_text = text
        state.baseline_words = words_set(text)

    def is_typing(self, key: str) -> bool:
        """True while a pause timer is pending for the key."""
        task = self._timers.get(key)
        return task is not None and not task.done()

    def clear_typing_session(self, key: str) -> None:
        """Cancel the key's pending timer. Idempotent."""
        task = self._timers.pop(key, None)
        if task is not None and not task.done():
            task.cancel()

    async def _log(
        self, on_log: Optional[LogCallback], level: str, stage: str, message: str, details: Optional[dict] = None
    ) -> None:
        if on_log is None:
            return
        payload = {"type": "pipeline_log", "level": level, "stage": stage, "message": message}
        if details is not None:
            payload["details"] = details
        try:
            await on_log(payload)
        except Exception as e:
            logger.debug(f"pipeline_log delivery failed: {e}")
