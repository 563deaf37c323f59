"""
Ultima - Typing presence.

Local side: keystrokes call notify_local_typing(), which sends at most one
typing frame per 1.5 seconds. Remote side: every received typing frame
re-arms a 3 second display window (re-armed, not stacked).
"""

import asyncio
import logging
import time
from typing import Callable, Optional

from .constants import TYPING_DISPLAY_WINDOW, TYPING_SEND_INTERVAL

logger = logging.getLogger(__name__)


class TypingIndicator:
    """Typing signal state for one session.

    Attributes:
        last_sent_at: Clock value of the last typing frame sent
        remote_typing_until: Clock value at which the remote display lapses
    """

    def __init__(
        self,
        send: Callable[[], None],
        clock: Callable[[], float] = time.monotonic,
        on_change: Optional[Callable[[bool], None]] = None,
        send_interval: float = TYPING_SEND_INTERVAL,
        display_window: float = TYPING_DISPLAY_WINDOW,
    ):
        self._send = send
        self._clock = clock
        self.on_change = on_change
        self.send_interval = send_interval
        self.display_window = display_window

        self.last_sent_at: Optional[float] = None
        self.remote_typing_until: Optional[float] = None
        self._timer: Optional[asyncio.TimerHandle] = None

    def notify_local_typing(self) -> bool:
        """Send a typing frame unless one went out within the send interval.

        Returns:
            True if a frame was sent
        """
        now = self._clock()
        if self.last_sent_at is not None and now - self.last_sent_at <= self.send_interval:
            return False

        self.last_sent_at = now
        self._send()
        return True

    def on_remote_typing(self) -> None:
        """Handle a received typing frame."""
        was_typing = self.is_remote_typing()
        self.remote_typing_until = self._clock() + self.display_window

        self._cancel_timer()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None:
            self._timer = loop.call_later(self.display_window, self._expire)

        if not was_typing:
            self._notify(True)

    def is_remote_typing(self, now: Optional[float] = None) -> bool:
        if self.remote_typing_until is None:
            return False
        if now is None:
            now = self._clock()
        return now < self.remote_typing_until

    def _expire(self) -> None:
        self._timer = None
        # Cleared in the meantime
        if self.remote_typing_until is None:
            return
        self.remote_typing_until = None
        self._notify(False)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _notify(self, typing: bool) -> None:
        if self.on_change:
            try:
                self.on_change(typing)
            except Exception as e:
                logger.error(f"Typing callback error: {e}")

    def clear(self) -> None:
        """Drop remote typing state and cancel the pending timer."""
        was_typing = self.remote_typing_until is not None
        self._cancel_timer()
        self.remote_typing_until = None
        self.last_sent_at = None
        if was_typing:
            self._notify(False)
