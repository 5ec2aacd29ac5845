"""Cooperative cancellation token.

A token is a monotonic flag plus a list of observers. Once cancelled it stays
cancelled; observers registered afterwards run immediately. The streaming
session binds the transport abort to a token observer so that cancelling from
another thread also unblocks a pending read.
"""

from collections.abc import Callable
import logging
from threading import Lock

from ._exceptions import CancelledError

logger = logging.getLogger(__name__)

Observer = Callable[[], None]


class CancellationToken:
    """Thread-safe cancellation flag with observers."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._cancelled = False
        self._reason: str | None = None
        self._observers: list[Observer] = []

    @property
    def cancelled(self) -> bool:
        """Whether cancellation has been requested."""
        return self._cancelled

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        """Request cancellation and notify observers. Idempotent."""
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            self._reason = reason
            observers = list(self._observers)
            self._observers.clear()
        for observer in observers:
            self._notify(observer)

    def add_observer(self, observer: Observer) -> None:
        """Register a callback run once on cancellation (immediately if already cancelled)."""
        with self._lock:
            if not self._cancelled:
                self._observers.append(observer)
                return
        self._notify(observer)

    def raise_if_cancelled(self) -> None:
        """Raise ``CancelledError`` if the token is cancelled."""
        if self._cancelled:
            raise CancelledError(self._reason or "operation cancelled")

    @staticmethod
    def _notify(observer: Observer) -> None:
        try:
            observer()
        except Exception:
            logger.exception("Cancellation observer %r failed", observer)

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self._cancelled}, reason={self._reason!r})"
