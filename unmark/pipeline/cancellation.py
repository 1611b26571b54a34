"""Cooperative cancellation for pipeline runs."""

from __future__ import annotations

import threading
import time

from unmark.pipeline.exceptions import PipelineCancelled


class CancellationToken:
    """Cancellation flag with an optional deadline, checked at every suspension point.

    The token is safe to cancel from another thread (e.g. a worker watching the
    job store) while the run is blocked in a pause.
    """

    def __init__(self, timeout_seconds: float | None = None) -> None:
        if timeout_seconds is not None and timeout_seconds <= 0:
            raise ValueError("Timeout must be positive.")
        self._event = threading.Event()
        self._reason: str | None = None
        self._timeout = timeout_seconds
        self._deadline = time.monotonic() + timeout_seconds if timeout_seconds is not None else None

    def cancel(self, reason: str = "Processing cancelled") -> None:
        if self._reason is None:
            self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or self._expired()

    @property
    def reason(self) -> str | None:
        if self._event.is_set():
            return self._reason
        if self._expired():
            return f"Processing timed out after {self._timeout:g}s"
        return None

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise PipelineCancelled(self.reason)

    def sleep(self, seconds: float) -> None:
        """Pause for ``seconds``, waking early and raising if the token trips."""

        if self._deadline is not None:
            seconds = min(seconds, max(0.0, self._deadline - time.monotonic()))
        self._event.wait(seconds)
        self.raise_if_cancelled()

    def _expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline
