"""
Cancellation Token
External stop signal for long-running waits (signal handlers, other threads)
"""

import threading
import time
from typing import Optional

from loguru import logger


class CancellationToken:
    """
    Thread-safe, one-shot cancellation flag

    Once cancelled the token stays cancelled until reset() is called.
    """

    def __init__(self):
        """Initialize an untriggered token"""
        self._event = threading.Event()
        self.reason: Optional[str] = None
        self.cancel_time: Optional[float] = None

    def cancel(self, reason: str = "Cancelled by caller"):
        """
        Trigger cancellation

        Args:
            reason: Human-readable reason, kept for status reporting
        """
        if self._event.is_set():
            logger.debug("Cancellation already requested")
            return

        self.reason = reason
        self.cancel_time = time.time()
        self._event.set()

        logger.warning(f"Cancellation requested: {reason}")

    def is_cancelled(self) -> bool:
        """Check if cancellation was requested"""
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until cancelled or the timeout passes

        Returns:
            True if the token was cancelled
        """
        return self._event.wait(timeout)

    def reset(self):
        """Clear the token so it can guard another wait"""
        self._event.clear()
        self.reason = None
        self.cancel_time = None

    def get_status(self) -> dict:
        """Get token status"""
        return {
            'cancelled': self.is_cancelled(),
            'reason': self.reason,
            'cancel_time': self.cancel_time
        }
