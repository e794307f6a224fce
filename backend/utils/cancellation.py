"""Cooperative cancellation for pipeline runs.

A CancellationToken is created per run and threaded through every agent and
text generation call. Cancelling it flips a flag and notifies listeners; the
LLM client registers a listener that aborts its in-flight call.
"""

import logging
from typing import Callable, List, Optional

from errors import GenerationCancelledError

logger = logging.getLogger(__name__)

Listener = Callable[[str], None]


class CancellationToken:
    """One-shot cancellation flag with listeners."""

    def __init__(self, label: str = ""):
        self.label = label
        self.reason: Optional[str] = None
        self._cancelled = False
        self._listeners: List[Listener] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = "cancelled") -> bool:
        """Cancel the token. Returns False if it was already cancelled."""
        if self._cancelled:
            return False
        self._cancelled = True
        self.reason = reason
        logger.debug(f"Token {self.label or id(self)} cancelled: {reason}")

        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            try:
                listener(reason)
            except Exception as e:
                logger.warning(f"Cancellation listener failed: {e}")
        return True

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it.

        A listener added to an already-cancelled token is called immediately.
        """
        if self._cancelled:
            listener(self.reason or "cancelled")
            return lambda: None

        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise GenerationCancelledError(reason=self.reason)

    def __repr__(self) -> str:
        state = f"cancelled={self.reason!r}" if self._cancelled else "active"
        return f"CancellationToken({self.label!r}, {state})"
