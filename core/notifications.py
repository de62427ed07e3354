"""
Transient user-facing notifications.

A single current notification with an optional expiry. Posting a new
notification cancels the previous one's expiry timer so a stale timer can
never clear the newer message.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    message: str
    posted_at: float
    expires_in: Optional[float] = None


class Notifier:
    """Owns the current notification and its expiry timer."""

    def __init__(self, default_expiry_sec: Optional[float] = 5.0):
        self.default_expiry_sec = default_expiry_sec
        self._current: Optional[Notification] = None
        self._timer: Optional[asyncio.TimerHandle] = None

    @property
    def current(self) -> Optional[Notification]:
        return self._current

    @property
    def message(self) -> Optional[str]:
        return self._current.message if self._current else None

    def notify(self, message: str, expires_in: Optional[float] = None) -> Notification:
        """
        Replace the current notification.

        Args:
            message: Text to show.
            expires_in: Seconds until it clears itself. Defaults to
                        default_expiry_sec; None with no default never expires.
        """
        self._cancel_timer()

        if expires_in is None:
            expires_in = self.default_expiry_sec

        notification = Notification(message, time.monotonic(), expires_in)
        self._current = notification

        if expires_in is not None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.debug("No running event loop; notification will not expire")
            else:
                self._timer = loop.call_later(expires_in, self._expire, notification)

        logger.info(f"Notification: {message}")
        return notification

    def _expire(self, notification: Notification) -> None:
        self._timer = None
        if self._current is notification:
            self._current = None

    def clear(self) -> None:
        self._cancel_timer()
        self._current = None

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def close(self) -> None:
        """Cancel any pending expiry; the current message is dropped."""
        self.clear()
