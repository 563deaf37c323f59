"""
Ultima - Signaling exchange controller.

Drives the manual offer/answer handshake for one connection attempt:

Host:  create transport + channel -> offer -> wait for path enumeration
       -> seal -> code shown to the operator (OFFERING)
Join:  paste offer code -> open -> create responder transport -> apply
       -> answer -> wait for path enumeration -> seal -> reply code (ANSWERING)
Host:  paste reply code -> open -> apply. CONNECTED follows asynchronously
       when the transport opens the channel.

A rejected paste (wrong passphrase, garbled text, wrong kind of code)
raises and leaves the state machine untouched so the operator can retry.
After close(), results of operations still in flight are discarded.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .connection_fsm import ConnectionEvent, ConnectionState, ConnectionStateMachine
from .constants import DATA_CHANNEL_LABEL
from .crypto import CryptoConfig, open_descriptor_async, seal_descriptor_async
from .errors import (
    ErrorCode,
    MalformedDescriptor,
    MediaError,
    NegotiationStalled,
    SignalingError,
    UltimaError,
)
from .transport import DataChannel, PeerTransport, SessionDescription, TransportFactory

logger = logging.getLogger(__name__)


class SignalingController:
    """Offer/answer exchange for one connection attempt.

    Attributes:
        transport: The peer transport, once created
        local_code: The code the operator copies out ("" until ready)
        on_channel: Called with the data channel (created or received)
        on_media_error: Called when the microphone cannot be attached
    """

    def __init__(
        self,
        state_machine: ConnectionStateMachine,
        crypto_config: CryptoConfig,
        transport_factory: TransportFactory,
        gather_timeout: Optional[float] = None,
    ):
        self.state_machine = state_machine
        self.crypto_config = crypto_config
        self.transport_factory = transport_factory
        self.gather_timeout = gather_timeout

        self.transport: Optional[PeerTransport] = None
        self.local_code = ""
        self.closed = False

        self.on_channel: Optional[Callable[[DataChannel], None]] = None
        self.on_media_error: Optional[Callable[[MediaError], None]] = None

    def _create_transport(self, initiator: bool) -> PeerTransport:
        transport = self.transport_factory(initiator)
        transport.on_failed = self._handle_transport_failed
        if not initiator:
            transport.on_channel = self._handle_incoming_channel
        self.transport = transport
        logger.info(f"Created {'initiator' if initiator else 'responder'} transport")
        return transport

    def _handle_incoming_channel(self, channel: DataChannel) -> None:
        if self.closed:
            return
        logger.info(f"Responder received data channel '{channel.label}'")
        if self.on_channel:
            self.on_channel(channel)

    def _handle_transport_failed(self, reason: str) -> None:
        if self.closed:
            return
        logger.warning(f"Transport failed: {reason}")
        self.state_machine.transition(ConnectionEvent.NEGOTIATION_FAILED, reason)

    async def _attach_microphone(self, transport: PeerTransport) -> None:
        if not self.crypto_config.use_mic:
            return
        try:
            await transport.attach_microphone()
        except MediaError as e:
            logger.warning(f"Continuing without audio: {e.message}")
            if self.on_media_error:
                self.on_media_error(e)

    async def _finalize(self, negotiation: Awaitable[SessionDescription]) -> SessionDescription:
        """Wait for a local description whose path enumeration is complete."""
        if self.gather_timeout is None:
            return await negotiation
        try:
            return await asyncio.wait_for(negotiation, timeout=self.gather_timeout)
        except asyncio.TimeoutError:
            if not self.closed:
                self.state_machine.transition(
                    ConnectionEvent.NEGOTIATION_FAILED, "Path enumeration stalled"
                )
            raise NegotiationStalled(self.gather_timeout)

    def _negotiation_failed(self, e: Exception) -> SignalingError:
        if not self.closed:
            self.state_machine.transition(ConnectionEvent.NEGOTIATION_FAILED, str(e))
        return SignalingError(
            ErrorCode.E200_SIGNALING_ERROR, f"Negotiation failed: {e}", {"error": str(e)}
        )

    async def host(self) -> Optional[str]:
        """
        Produce the initiator's offer code.

        Returns:
            The sealed offer, or None if the attempt was closed meanwhile

        Raises:
            SignalingError: If the transport cannot produce an offer
        """
        if not self.state_machine.transition(ConnectionEvent.HOST_REQUESTED):
            raise SignalingError(
                ErrorCode.E203_UNEXPECTED_DESCRIPTOR,
                f"Cannot host from state {self.state_machine.get_state().name}",
            )

        transport = self._create_transport(initiator=True)
        try:
            await self._attach_microphone(transport)
            channel = transport.create_channel(DATA_CHANNEL_LABEL)
            if self.on_channel:
                self.on_channel(channel)
            offer = await self._finalize(transport.create_offer())
        except UltimaError:
            raise
        except Exception as e:
            raise self._negotiation_failed(e)

        if self.closed:
            logger.debug("Discarding offer produced after close")
            return None

        code = await seal_descriptor_async(offer.to_json(), self.crypto_config)
        if self.closed:
            return None

        self.local_code = code
        self.state_machine.transition(ConnectionEvent.OFFER_READY)
        logger.info("Offer code ready")
        return code

    def join(self) -> None:
        """Enter ANSWERING and wait for the host's code."""
        if not self.state_machine.transition(ConnectionEvent.JOIN_REQUESTED):
            raise SignalingError(
                ErrorCode.E203_UNEXPECTED_DESCRIPTOR,
                f"Cannot join from state {self.state_machine.get_state().name}",
            )

    async def _read_code(self, text: str) -> SessionDescription:
        plaintext = await open_descriptor_async(text, self.crypto_config)
        return SessionDescription.from_json(plaintext)

    async def submit_remote(self, text: str) -> Optional[str]:
        """
        Apply a pasted code from the peer.

        Returns:
            The sealed answer when text was an offer, otherwise None

        Raises:
            DecryptionFailed: Wrong passphrase/level or corrupted code
            MalformedDescriptor: Not a descriptor, or the wrong kind of code
            SignalingError: No code is expected in the current state
        """
        if self.closed:
            raise SignalingError(ErrorCode.E203_UNEXPECTED_DESCRIPTOR, "Session is closed")

        state = self.state_machine.get_state()
        if state == ConnectionState.OFFERING:
            expected = "answer"
        elif state == ConnectionState.ANSWERING and not self.local_code:
            expected = "offer"
        else:
            raise SignalingError(
                ErrorCode.E203_UNEXPECTED_DESCRIPTOR,
                f"No connection code expected in state {state.name}",
            )

        description = await self._read_code(text)
        if description.type != expected:
            logger.warning(f"Rejected pasted {description.type}, expected {expected}")
            raise MalformedDescriptor(
                "This is your own kind of code, paste the one from your peer",
                {"expected": expected, "received": description.type},
            )

        if self.closed:
            return None

        if expected == "answer":
            await self._apply(self.transport, description)
            logger.info("Remote answer applied, waiting for channel")
            return None

        return await self._answer(description)

    async def _apply(self, transport: PeerTransport, description: SessionDescription) -> None:
        try:
            await transport.apply_remote(description)
        except Exception as e:
            raise MalformedDescriptor(
                f"Peer code was rejected by the transport: {e}", {"error": str(e)}
            )

    async def _answer(self, offer: SessionDescription) -> Optional[str]:
        transport = self.transport
        if transport is None:
            transport = self._create_transport(initiator=False)

        try:
            await self._apply(transport, offer)
        except MalformedDescriptor:
            # Next paste starts from a fresh responder
            self.transport = None
            await transport.close()
            raise

        try:
            await self._attach_microphone(transport)
            answer = await self._finalize(transport.create_answer())
        except UltimaError:
            raise
        except Exception as e:
            raise self._negotiation_failed(e)

        if self.closed:
            logger.debug("Discarding answer produced after close")
            return None

        code = await seal_descriptor_async(answer.to_json(), self.crypto_config)
        if self.closed:
            return None

        self.local_code = code
        self.state_machine.transition(ConnectionEvent.ANSWER_READY)
        logger.info("Answer code ready")
        return code

    async def close(self) -> None:
        """Close the transport and discard anything still in flight."""
        if self.closed:
            return
        self.closed = True
        self.local_code = ""
        transport, self.transport = self.transport, None
        if transport is not None:
            transport.on_channel = None
            transport.on_failed = None
            await transport.close()
