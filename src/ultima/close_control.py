"""
Ultima - Close controls.

The close button has two exits:

- Press and hold for 5 seconds: the session is closed and the chat
  history wiped.
- Release earlier: a confirmation opens with a 10 second countdown. It
  closes the session without wiping when the countdown runs out or the
  user confirms; the user may also dismiss it.

Each timer is owned by this controller as an optional handle that is
cancelled before being replaced and on every exit path.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Optional

from .constants import (
    CLOSE_COUNTDOWN_SECONDS,
    CLOSE_COUNTDOWN_TICK,
    CLOSE_HOLD_DURATION,
    CLOSE_HOLD_TICK,
)

logger = logging.getLogger(__name__)


class CloseController:
    """Hold-to-wipe / countdown-to-close state for the close button.

    Attributes:
        progress: Hold progress, 0-100
        countdown_remaining: Seconds left on the confirmation countdown
        awaiting_confirmation: Whether the confirmation is showing
    """

    def __init__(
        self,
        on_close: Callable[[bool], Any],
        hold_seconds: float = CLOSE_HOLD_DURATION,
        countdown_seconds: int = CLOSE_COUNTDOWN_SECONDS,
        hold_tick: float = CLOSE_HOLD_TICK,
        countdown_tick: float = CLOSE_COUNTDOWN_TICK,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            on_close: Called with wipe=True/False; may return an awaitable
            hold_seconds: Hold duration that triggers a wipe
            countdown_seconds: Countdown length before auto-close
            hold_tick: Progress refresh interval while holding
            countdown_tick: Interval of one countdown step
            clock: Monotonic clock
        """
        self._on_close = on_close
        self.hold_seconds = hold_seconds
        self.countdown_seconds = countdown_seconds
        self.hold_tick = hold_tick
        self.countdown_tick = countdown_tick
        self._clock = clock

        self.progress = 0.0
        self.countdown_remaining = 0
        self.awaiting_confirmation = False
        self.on_update: Optional[Callable[[], None]] = None

        self._hold_started: Optional[float] = None
        self._hold_timer: Optional[asyncio.TimerHandle] = None
        self._countdown_timer: Optional[asyncio.TimerHandle] = None
        self._pending: Optional[asyncio.Future] = None

    @property
    def holding(self) -> bool:
        return self._hold_timer is not None

    def press(self) -> None:
        """Start the hold."""
        if self.awaiting_confirmation:
            return
        self._cancel_hold()
        self._hold_started = self._clock()
        self.progress = 0.0
        self._hold_timer = asyncio.get_running_loop().call_later(self.hold_tick, self._hold_step)
        self._changed()

    def _hold_step(self) -> None:
        self._hold_timer = None
        if self._hold_started is None:
            return

        elapsed = self._clock() - self._hold_started
        self.progress = min(elapsed / self.hold_seconds * 100, 100.0)

        if elapsed >= self.hold_seconds:
            self._hold_started = None
            self.progress = 0.0
            logger.info("Close held to completion, wiping history")
            self._changed()
            self._fire(True)
            return

        self._hold_timer = asyncio.get_running_loop().call_later(self.hold_tick, self._hold_step)
        self._changed()

    def release(self) -> None:
        """End the hold; an early release opens the countdown confirmation."""
        if self._hold_started is None:
            return
        self._cancel_hold()
        self.progress = 0.0
        self._open_countdown()

    def _open_countdown(self) -> None:
        self._cancel_countdown()
        self.awaiting_confirmation = True
        self.countdown_remaining = self.countdown_seconds
        self._countdown_timer = asyncio.get_running_loop().call_later(
            self.countdown_tick, self._countdown_step
        )
        self._changed()

    def _countdown_step(self) -> None:
        self._countdown_timer = None
        if not self.awaiting_confirmation:
            return

        self.countdown_remaining -= 1
        if self.countdown_remaining <= 0:
            logger.info("Close countdown elapsed")
            self._dismiss()
            self._fire(False)
            return

        self._countdown_timer = asyncio.get_running_loop().call_later(
            self.countdown_tick, self._countdown_step
        )
        self._changed()

    def confirm(self) -> None:
        """Close now without wiping."""
        if not self.awaiting_confirmation:
            return
        self._dismiss()
        self._fire(False)

    def cancel(self) -> None:
        """Dismiss the confirmation and keep the session."""
        if self.awaiting_confirmation:
            self._dismiss()

    def dispose(self) -> None:
        """Cancel every timer (session teardown)."""
        self._cancel_hold()
        self.progress = 0.0
        self._cancel_countdown()
        self.awaiting_confirmation = False
        self.countdown_remaining = 0

    def _dismiss(self) -> None:
        self._cancel_countdown()
        self.awaiting_confirmation = False
        self.countdown_remaining = 0
        self._changed()

    def _cancel_hold(self) -> None:
        self._hold_started = None
        if self._hold_timer is not None:
            self._hold_timer.cancel()
            self._hold_timer = None

    def _cancel_countdown(self) -> None:
        if self._countdown_timer is not None:
            self._countdown_timer.cancel()
            self._countdown_timer = None

    def _fire(self, wipe: bool) -> None:
        result = self._on_close(wipe)
        if asyncio.iscoroutine(result):
            self._pending = asyncio.ensure_future(result)

    def _changed(self) -> None:
        if self.on_update:
            try:
                self.on_update()
            except Exception as e:
                logger.error(f"Close update callback error: {e}")
