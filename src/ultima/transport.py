"""
Ultima - Transport interface.

Defines the boundary between Ultima and the peer-connection stack that
performs path discovery and carries the data channel. The session code only
talks to these classes; ultima.webrtc provides the aiortc-backed
implementation.

Callbacks follow the attribute style used elsewhere in Ultima: assign a
callable to on_open / on_message / on_close / on_channel / on_failed.
"""

import json
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Union

from .errors import MalformedDescriptor

logger = logging.getLogger(__name__)

Payload = Union[str, bytes]

DESCRIPTOR_TYPES = ("offer", "answer")


@dataclass(frozen=True)
class SessionDescription:
    """An offer or answer. The sdp body is opaque and passed through verbatim."""

    type: str
    sdp: str

    @property
    def is_offer(self) -> bool:
        return self.type == "offer"

    def to_json(self) -> str:
        return json.dumps({"type": self.type, "sdp": self.sdp})

    @staticmethod
    def from_json(text: str) -> "SessionDescription":
        """
        Parse descriptor text.

        Raises:
            MalformedDescriptor: If the text is not an offer/answer document
        """
        try:
            data = json.loads(text)
        except (json.JSONDecodeError, TypeError):
            raise MalformedDescriptor("Connection code is not a descriptor document")

        if not isinstance(data, dict):
            raise MalformedDescriptor("Connection code is not a descriptor document")

        desc_type = data.get("type")
        sdp = data.get("sdp")
        if desc_type not in DESCRIPTOR_TYPES or not isinstance(sdp, str) or not sdp:
            raise MalformedDescriptor(
                "Connection code is missing its offer/answer body", {"type": desc_type}
            )

        return SessionDescription(type=desc_type, sdp=sdp)


class DataChannel:
    """A bidirectional, reliable, ordered message channel."""

    def __init__(self, label: str):
        self.label = label
        self.on_open: Optional[Callable[[], None]] = None
        self.on_message: Optional[Callable[[Payload], None]] = None
        self.on_close: Optional[Callable[[], None]] = None

    @property
    def is_open(self) -> bool:
        raise NotImplementedError

    def send(self, payload: Payload) -> None:
        """Send one whole message (text frame or binary chunk)."""
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError

    def _fire_open(self) -> None:
        if self.on_open:
            self.on_open()

    def _fire_message(self, payload: Payload) -> None:
        if self.on_message:
            self.on_message(payload)

    def _fire_close(self) -> None:
        if self.on_close:
            self.on_close()


class PeerTransport:
    """
    One negotiated peer connection.

    The initiator calls create_channel() then create_offer(); the responder
    waits for on_channel after apply_remote(offer) and create_answer().
    create_offer() and create_answer() only return once local path
    enumeration has finished, so the returned description is final.
    """

    def __init__(self, initiator: bool):
        self.initiator = initiator
        self.on_channel: Optional[Callable[[DataChannel], None]] = None
        self.on_failed: Optional[Callable[[str], None]] = None

    def create_channel(self, label: str) -> DataChannel:
        raise NotImplementedError

    async def create_offer(self) -> SessionDescription:
        raise NotImplementedError

    async def create_answer(self) -> SessionDescription:
        raise NotImplementedError

    async def apply_remote(self, description: SessionDescription) -> None:
        raise NotImplementedError

    async def attach_microphone(self) -> None:
        """
        Add the local microphone to the connection.

        Raises:
            MicrophoneDenied: If capture is refused or unavailable
        """
        raise NotImplementedError

    async def close(self) -> None:
        raise NotImplementedError


TransportFactory = Callable[[bool], PeerTransport]
