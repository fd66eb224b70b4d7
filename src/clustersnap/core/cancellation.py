"""
Cooperative cancellation shared by every phase of an operation.
"""

import threading
import time
from typing import Optional

from .exceptions import CancellationError


class CancellationToken:
    """
    A cancellation signal with an optional deadline.

    Workers call ``is_cancelled()`` before starting each unit of work. Once
    the token is cancelled (explicitly or because the deadline passed) it
    stays cancelled.
    """

    def __init__(self, timeout: Optional[float] = None):
        """
        Args:
            timeout: Seconds from now after which the token counts as cancelled
        """
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled by caller") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def is_cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self.cancel("deadline exceeded")
            return True
        return False

    def raise_if_cancelled(self) -> None:
        """Raise CancellationError if the token has been cancelled."""
        if self.is_cancelled():
            raise CancellationError(self.reason or "operation cancelled")

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None without a deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def wait(self, seconds: float) -> bool:
        """
        Sleep up to ``seconds``, waking early on cancellation.

        Returns:
            True if the full delay elapsed, False if cancelled first
        """
        remaining = self.remaining()
        if remaining is not None and remaining < seconds:
            # The deadline expires before the delay does
            self._event.wait(remaining)
            self.cancel("deadline exceeded")
            return False
        self._event.wait(seconds)
        return not self.is_cancelled()
