"""
Ultima - Connection State Machine for the manual signaling lifecycle.

This module implements a finite state machine for one peer session:
host/join, offer/answer exchange, open channel, and teardown.
Provides transition validation, history, and event callbacks.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable, Dict, Optional

from .constants import STATE_HISTORY_LIMIT

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Connection states for one peer session."""

    IDLE = "IDLE"  # No session
    GENERATING = "GENERATING"  # Host is building its offer
    OFFERING = "OFFERING"  # Offer code ready, waiting for the answer
    ANSWERING = "ANSWERING"  # Joiner waiting for / answering an offer
    CONNECTED = "CONNECTED"  # Data channel open
    DISCONNECTED = "DISCONNECTED"  # Channel closed or session ended
    FAILED = "FAILED"  # Unrecoverable negotiation error


class ConnectionEvent(Enum):
    """Events that trigger state transitions."""

    HOST_REQUESTED = auto()  # User chose "host"
    OFFER_READY = auto()  # Local offer finished path enumeration
    JOIN_REQUESTED = auto()  # User chose "join"
    ANSWER_READY = auto()  # Local answer finished path enumeration
    CHANNEL_OPENED = auto()  # Transport reported the data channel open
    CHANNEL_CLOSED = auto()  # Transport reported the data channel closed
    END_CONFIRMED = auto()  # User confirmed end of session
    NEGOTIATION_FAILED = auto()  # Transport could not negotiate
    CLOSE_REQUESTED = auto()  # Explicit close/reset


@dataclass
class StateTransition:
    """Represents a state transition."""

    from_state: ConnectionState
    event: ConnectionEvent
    to_state: ConnectionState
    timestamp: float = field(default_factory=time.time)


class ConnectionStateMachine:
    """
    Finite state machine for the lifecycle of one peer session.

    Enforces valid state transitions and tracks state history. Exactly one
    state is active; reset() returns to IDLE from anywhere.
    """

    TRANSITIONS: Dict[ConnectionState, Dict[ConnectionEvent, ConnectionState]] = {
        ConnectionState.IDLE: {
            ConnectionEvent.HOST_REQUESTED: ConnectionState.GENERATING,
            ConnectionEvent.JOIN_REQUESTED: ConnectionState.ANSWERING,
            ConnectionEvent.NEGOTIATION_FAILED: ConnectionState.FAILED,
        },
        ConnectionState.GENERATING: {
            ConnectionEvent.OFFER_READY: ConnectionState.OFFERING,
            ConnectionEvent.NEGOTIATION_FAILED: ConnectionState.FAILED,
        },
        ConnectionState.OFFERING: {
            ConnectionEvent.CHANNEL_OPENED: ConnectionState.CONNECTED,
            ConnectionEvent.NEGOTIATION_FAILED: ConnectionState.FAILED,
        },
        ConnectionState.ANSWERING: {
            ConnectionEvent.ANSWER_READY: ConnectionState.ANSWERING,
            ConnectionEvent.CHANNEL_OPENED: ConnectionState.CONNECTED,
            ConnectionEvent.NEGOTIATION_FAILED: ConnectionState.FAILED,
        },
        ConnectionState.CONNECTED: {
            ConnectionEvent.CHANNEL_CLOSED: ConnectionState.DISCONNECTED,
            ConnectionEvent.END_CONFIRMED: ConnectionState.DISCONNECTED,
            ConnectionEvent.NEGOTIATION_FAILED: ConnectionState.FAILED,
            ConnectionEvent.CLOSE_REQUESTED: ConnectionState.IDLE,
        },
        ConnectionState.DISCONNECTED: {
            ConnectionEvent.NEGOTIATION_FAILED: ConnectionState.FAILED,
            ConnectionEvent.CLOSE_REQUESTED: ConnectionState.IDLE,
        },
        ConnectionState.FAILED: {
            ConnectionEvent.CLOSE_REQUESTED: ConnectionState.IDLE,
        },
    }

    def __init__(self, initial_state: ConnectionState = ConnectionState.IDLE):
        """
        Initialize state machine.

        Args:
            initial_state: Initial state (default: IDLE)
        """
        self.current_state = initial_state
        self.previous_state: Optional[ConnectionState] = None
        self.state_entry_time = time.time()
        self.error_message: Optional[str] = None
        self.transition_history: list[StateTransition] = []
        self.max_history = STATE_HISTORY_LIMIT

        # Callbacks
        self.on_state_change: Optional[Callable[[ConnectionState, ConnectionState], None]] = None
        self.on_error: Optional[Callable[[str], None]] = None
        self.on_connected: Optional[Callable[[], None]] = None
        self.on_disconnected: Optional[Callable[[], None]] = None

        logger.debug(f"State machine initialized in state: {self.current_state.name}")

    def transition(self, event: ConnectionEvent, error_msg: Optional[str] = None) -> bool:
        """
        Attempt state transition based on event.

        Args:
            event: Event triggering transition
            error_msg: Error message if event is NEGOTIATION_FAILED

        Returns:
            True if transition successful, False otherwise
        """
        if not self.is_valid_transition(self.current_state, event):
            logger.warning(
                f"Invalid transition: {self.current_state.name} + "
                f"{event.name} (no valid target state)"
            )
            return False

        new_state = self.TRANSITIONS[self.current_state][event]

        if event == ConnectionEvent.NEGOTIATION_FAILED:
            self.error_message = error_msg or "Unknown error"
        elif new_state == ConnectionState.CONNECTED:
            self.error_message = None

        self._enter(event, new_state)
        return True

    def _enter(self, event: ConnectionEvent, new_state: ConnectionState) -> None:
        old_state = self.current_state
        self.previous_state = old_state
        self.current_state = new_state
        self.state_entry_time = time.time()

        self.transition_history.append(StateTransition(old_state, event, new_state))
        if len(self.transition_history) > self.max_history:
            self.transition_history = self.transition_history[-self.max_history :]

        logger.info(
            f"State transition: {old_state.name} -> {new_state.name} " f"(event: {event.name})"
        )

        if self.on_state_change:
            try:
                self.on_state_change(old_state, new_state)
            except Exception as e:
                logger.error(f"State change callback error: {e}")

        if new_state == old_state:
            return

        if new_state == ConnectionState.CONNECTED and self.on_connected:
            try:
                self.on_connected()
            except Exception as e:
                logger.error(f"Connected callback error: {e}")

        if new_state == ConnectionState.DISCONNECTED and self.on_disconnected:
            try:
                self.on_disconnected()
            except Exception as e:
                logger.error(f"Disconnected callback error: {e}")

        if new_state == ConnectionState.FAILED and self.on_error:
            try:
                self.on_error(self.error_message or "Unknown error")
            except Exception as e:
                logger.error(f"Error callback error: {e}")

    def is_valid_transition(self, from_state: ConnectionState, event: ConnectionEvent) -> bool:
        """
        Check if a transition is valid.

        Args:
            from_state: Source state
            event: Event triggering transition

        Returns:
            True if valid, False otherwise
        """
        return from_state in self.TRANSITIONS and event in self.TRANSITIONS[from_state]

    def get_state(self) -> ConnectionState:
        """Get current state."""
        return self.current_state

    def get_previous_state(self) -> Optional[ConnectionState]:
        """Get previous state."""
        return self.previous_state

    def get_time_in_state(self) -> float:
        """Get time spent in current state (seconds)."""
        return time.time() - self.state_entry_time

    def is_idle(self) -> bool:
        return self.current_state == ConnectionState.IDLE

    def is_host_mode(self) -> bool:
        """Check if the local side is producing or holding an offer."""
        return self.current_state in (ConnectionState.GENERATING, ConnectionState.OFFERING)

    def is_join_mode(self) -> bool:
        return self.current_state == ConnectionState.ANSWERING

    def is_connected(self) -> bool:
        """Check if currently in connected state."""
        return self.current_state == ConnectionState.CONNECTED

    def is_failed(self) -> bool:
        return self.current_state == ConnectionState.FAILED

    def get_error_message(self) -> Optional[str]:
        """Get current error message."""
        return self.error_message

    def reset(self) -> None:
        """
        Return to IDLE unconditionally.

        Recorded as CLOSE_REQUESTED so the history shows every teardown,
        including those from states where CLOSE_REQUESTED is not a table entry.
        """
        self.error_message = None
        if self.current_state == ConnectionState.IDLE:
            return
        self._enter(ConnectionEvent.CLOSE_REQUESTED, ConnectionState.IDLE)

    def get_history(self, count: int = 10) -> list[StateTransition]:
        """
        Get recent transition history.

        Args:
            count: Number of recent transitions to return

        Returns:
            List of recent transitions
        """
        return self.transition_history[-count:]

    def get_statistics(self) -> Dict[str, Any]:
        """
        Get state machine statistics.

        Returns:
            Dictionary with statistics
        """
        event_counts: Dict[str, int] = {}
        for transition in self.transition_history:
            event_name = transition.event.name
            event_counts[event_name] = event_counts.get(event_name, 0) + 1

        return {
            "current_state": self.current_state.name,
            "previous_state": self.previous_state.name if self.previous_state else None,
            "time_in_state": self.get_time_in_state(),
            "error_message": self.error_message,
            "total_transitions": len(self.transition_history),
            "event_counts": event_counts,
            "is_connected": self.is_connected(),
        }

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"ConnectionStateMachine(state={self.current_state.name}, "
            f"time_in_state={self.get_time_in_state():.1f}s)"
        )
