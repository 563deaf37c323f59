"""
Ultima - Session orchestration.

The SessionOrchestrator is the single owner of the live connection. Each
connection attempt gets a fresh PeerSession holding its transport, data
channel, inbound message queue, and incoming file assembly; teardown
returns all of them before another attempt may start. At most one peer
transport and one channel exist at any instant.

Operations exposed to the UI:
- start_hosting / start_joining / submit_remote_text: the handshake
- send_text / send_file / notify_local_typing: traffic on the open channel
- close_session(wipe_history): the two exits, wipe or ordinary disconnect
"""

import asyncio
import dataclasses
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional, Union

from .close_control import CloseController
from .connection_fsm import ConnectionEvent, ConnectionState, ConnectionStateMachine
from .constants import FILE_CHUNK_SIZE
from .crypto import CryptoConfig
from .errors import (
    ChannelClosedUnexpectedly,
    ErrorCode,
    FileTransferError,
    MediaError,
    SignalingError,
    UltimaError,
)
from .file_transfer import FileSink, IncomingFileAssembly, ReceivedFile, guess_mime, send_file
from .message import FileAttachment, Message, MessageKind, MessageLog
from .protocol import (
    BinaryChunk,
    FileEndFrame,
    FileMetaFrame,
    FileProgressFrame,
    PlainChatText,
    TypingFrame,
    decode_payload,
    encode_frame,
)
from .signaling import SignalingController
from .strings import get_strings
from .transport import DataChannel, Payload, TransportFactory
from .typing_indicator import TypingIndicator

logger = logging.getLogger(__name__)

FileHandle = Union[Path, str, bytes]


@dataclass(frozen=True)
class TransferProgress:
    """Progress of the inbound file shown to the user."""

    name: str
    percent: int


class PeerSession:
    """Resources of one connection attempt.

    Attributes:
        signaling: Handshake controller owning the transport
        channel: Data channel, once created or received
        assembly: Inbound file being reassembled
        closed: Set once teardown started
    """

    def __init__(self, signaling: SignalingController):
        self.signaling = signaling
        self.channel: Optional[DataChannel] = None
        self.assembly = IncomingFileAssembly()
        self.inbox: "asyncio.Queue[Payload]" = asyncio.Queue()
        self.closed = False
        self._consumer: Optional[asyncio.Task] = None

    @property
    def local_code(self) -> str:
        return self.signaling.local_code

    def start_consumer(self, handler: Callable) -> None:
        if self._consumer is None:
            self._consumer = asyncio.ensure_future(self._consume(handler))

    async def _consume(self, handler) -> None:
        while True:
            payload = await self.inbox.get()
            try:
                await handler(self, payload)
            except Exception as e:
                logger.error(f"Failed to handle channel message: {e}")

    async def teardown(self) -> None:
        """Close channel and transport; safe to call more than once."""
        if self.closed:
            return
        self.closed = True

        channel, self.channel = self.channel, None
        if channel is not None:
            channel.on_open = None
            channel.on_message = None
            channel.on_close = None
            channel.close()

        if self._consumer is not None:
            self._consumer.cancel()
            self._consumer = None

        await self.signaling.close()
        self.assembly.reset()
        logger.info("Peer session torn down")


class SessionOrchestrator:
    """
    Wires signaling, channel protocol, file transfer, and typing together.

    Attributes:
        crypto_config: Security choices for the next connection attempt
        state_machine: Connection lifecycle
        messages: In-memory chat log
        typing: Typing presence state
        close_control: Hold-to-wipe / countdown close button state
        transfer_progress: Inbound transfer progress, if any
    """

    def __init__(
        self,
        transport_factory: TransportFactory,
        crypto_config: Optional[CryptoConfig] = None,
        file_sink: Optional[FileSink] = None,
        clock: Callable[[], float] = time.monotonic,
        gather_timeout: Optional[float] = None,
        chunk_size: int = FILE_CHUNK_SIZE,
        strings: Optional[Dict[str, str]] = None,
    ):
        self.transport_factory = transport_factory
        self.crypto_config = crypto_config or CryptoConfig()
        self.file_sink = file_sink or FileSink()
        self.gather_timeout = gather_timeout
        self.chunk_size = chunk_size
        self.strings = strings or get_strings("en")

        self.state_machine = ConnectionStateMachine()
        self.messages = MessageLog()
        self.typing = TypingIndicator(
            send=self._send_typing_frame, clock=clock, on_change=self._typing_changed
        )
        self.close_control = CloseController(on_close=self.close_session)
        self.transfer_progress: Optional[TransferProgress] = None

        self._session: Optional[PeerSession] = None

        # UI callbacks
        self.on_typing_change: Optional[Callable[[bool], None]] = None
        self.on_progress: Optional[Callable[[Optional[TransferProgress]], None]] = None
        self.on_local_code: Optional[Callable[[str], None]] = None
        self.on_error: Optional[Callable[[UltimaError], None]] = None

        self.state_machine.on_error = self._handle_negotiation_failed

    # ------------------------------------------------------------------
    # Read-only views

    @property
    def state(self) -> ConnectionState:
        return self.state_machine.get_state()

    @property
    def local_code(self) -> str:
        return self._session.local_code if self._session else ""

    @property
    def remote_typing(self) -> bool:
        return self.typing.is_remote_typing()

    @property
    def channel(self) -> Optional[DataChannel]:
        return self._session.channel if self._session else None

    # ------------------------------------------------------------------
    # Handshake

    async def _new_session(self) -> PeerSession:
        self.crypto_config.validate()

        if self._session is not None or not self.state_machine.is_idle():
            await self._teardown()
            self.state_machine.reset()

        signaling = SignalingController(
            self.state_machine, self.crypto_config, self.transport_factory, self.gather_timeout
        )
        session = PeerSession(signaling)
        signaling.on_channel = lambda channel: self._attach_channel(session, channel)
        signaling.on_media_error = self._handle_media_error
        self._session = session
        return session

    async def start_hosting(self) -> Optional[str]:
        """
        Begin a session as initiator.

        Returns:
            The offer code to hand to the peer, or None if the attempt
            failed or was closed before the code was ready
        """
        session = await self._new_session()
        try:
            code = await session.signaling.host()
        except UltimaError as e:
            logger.error(f"Hosting failed: {e}")
            self._report(e)
            return None

        if code and self.on_local_code:
            self.on_local_code(code)
        return code

    async def start_joining(self) -> None:
        """Begin a session as responder and wait for the host's code."""
        session = await self._new_session()
        session.signaling.join()

    async def submit_remote_text(self, text: str) -> Optional[str]:
        """
        Apply the peer's pasted code.

        Returns:
            The reply code when an offer was pasted, None when an answer
            completed the handshake

        Raises:
            DecryptionFailed: Wrong passphrase/level or corrupted code
            MalformedDescriptor: Not a usable code
            SignalingError: No code is expected right now
        """
        if self._session is None:
            raise SignalingError(ErrorCode.E203_UNEXPECTED_DESCRIPTOR, "No session in progress")

        session = self._session
        code = await session.signaling.submit_remote(text)
        if code and self.on_local_code and session is self._session:
            self.on_local_code(code)
        return code

    # ------------------------------------------------------------------
    # Channel traffic

    def _open_channel(self) -> Optional[DataChannel]:
        if not self.state_machine.is_connected():
            return None
        channel = self.channel
        if channel is None or not channel.is_open:
            return None
        return channel

    def send_text(self, body: str) -> Optional[Message]:
        """Send a chat message; no-op unless connected."""
        if not body.strip():
            return None
        channel = self._open_channel()
        if channel is None:
            logger.debug("send_text ignored: not connected")
            return None

        channel.send(encode_frame(PlainChatText(body)))
        return self.messages.add(MessageKind.SENT, body)

    async def send_file(
        self, handle: FileHandle, name: Optional[str] = None, mime: Optional[str] = None
    ) -> Optional[Message]:
        """
        Send a file and record it as SENT right away.

        Returns:
            The log entry, or None if the channel is not open. A channel
            that closes mid-transfer is reported through on_error and the
            entry stays in the log.

        Raises:
            FileTransferError: If the file cannot be read
        """
        channel = self._open_channel()
        if channel is None:
            logger.debug("send_file ignored: not connected")
            return None

        if isinstance(handle, str):
            handle = Path(handle).expanduser()

        if isinstance(handle, Path):
            locator = str(handle.resolve())
        else:
            locator = await self.file_sink.store(name or "file", handle)

        entry: Optional[Message] = None

        def record(result) -> None:
            nonlocal entry
            attachment = FileAttachment(
                name=result.name, mime=result.mime, locator=locator, size=result.size
            )
            entry = self.messages.add(MessageKind.SENT, result.name, file=attachment)

        try:
            await send_file(
                channel,
                handle,
                name=name,
                mime=mime,
                chunk_size=self.chunk_size,
                on_started=record,
            )
        except FileTransferError as e:
            if e.code not in (ErrorCode.E301_CHANNEL_NOT_OPEN, ErrorCode.E302_CHANNEL_CLOSED):
                raise
            logger.warning(f"File transfer stopped: {e}")
            self._report(e)
        return entry

    def notify_local_typing(self) -> bool:
        """Report a keystroke; sends at most one typing frame per 1.5 s."""
        if self._open_channel() is None:
            return False
        return self.typing.notify_local_typing()

    def _send_typing_frame(self) -> None:
        channel = self._open_channel()
        if channel is not None:
            channel.send(encode_frame(TypingFrame()))

    def set_microphone(self, enabled: bool) -> None:
        """Choose whether the next attempt attaches the microphone."""
        self.crypto_config = dataclasses.replace(self.crypto_config, use_mic=enabled)

    def set_crypto_config(self, config: CryptoConfig) -> None:
        """Replace the security choices used by the next attempt."""
        config.validate()
        self.crypto_config = config

    # ------------------------------------------------------------------
    # Channel events

    def _attach_channel(self, session: PeerSession, channel: DataChannel) -> None:
        if session.closed:
            channel.close()
            return

        session.channel = channel
        channel.on_open = lambda: self._handle_channel_open(session)
        channel.on_message = lambda payload: session.inbox.put_nowait(payload)
        channel.on_close = lambda: self._handle_channel_close(session)
        session.start_consumer(self._handle_payload)

        if channel.is_open:
            self._handle_channel_open(session)

    def _is_current(self, session: PeerSession) -> bool:
        return session is self._session and not session.closed

    def _handle_channel_open(self, session: PeerSession) -> None:
        if not self._is_current(session):
            return
        if self.state_machine.transition(ConnectionEvent.CHANNEL_OPENED):
            self.messages.system(self.strings["connected"])

    def _handle_channel_close(self, session: PeerSession) -> None:
        if not self._is_current(session):
            return
        if not self.state_machine.is_connected():
            return

        error = ChannelClosedUnexpectedly()
        logger.warning(str(error))
        self.state_machine.transition(ConnectionEvent.CHANNEL_CLOSED)
        self.typing.clear()
        session.assembly.reset()
        self._set_progress(None)
        self.messages.system(self.strings["offline"])

    async def _handle_payload(self, session: PeerSession, payload: Payload) -> None:
        if not self._is_current(session):
            return

        frame = decode_payload(payload)

        if isinstance(frame, PlainChatText):
            self.messages.add(MessageKind.RECEIVED, frame.text)
        elif isinstance(frame, TypingFrame):
            self.typing.on_remote_typing()
        elif isinstance(frame, FileMetaFrame):
            session.assembly.begin(frame)
            self._set_progress(TransferProgress(frame.name, 0))
        elif isinstance(frame, FileProgressFrame):
            if session.assembly.meta is not None:
                self._set_progress(TransferProgress(session.assembly.meta.name, frame.percent))
        elif isinstance(frame, BinaryChunk):
            session.assembly.add_chunk(frame.data)
        elif isinstance(frame, FileEndFrame):
            received = session.assembly.finish()
            self._set_progress(None)
            if received is not None:
                await self._store_received(session, received)

    async def _store_received(self, session: PeerSession, received: ReceivedFile) -> None:
        try:
            locator = await self.file_sink.store(received.name, received.data)
        except FileTransferError as e:
            logger.error(f"Could not store {received.name}: {e}")
            self._report(e)
            return

        if not self._is_current(session):
            return

        attachment = FileAttachment(
            name=received.name,
            mime=received.mime or guess_mime(received.name),
            locator=locator,
            size=len(received.data),
        )
        self.messages.add(MessageKind.RECEIVED, received.name, file=attachment)

    # ------------------------------------------------------------------
    # Errors and notices

    def _handle_negotiation_failed(self, message: str) -> None:
        self.messages.system(message)

    def _handle_media_error(self, error: MediaError) -> None:
        self.messages.system(self.strings["mic_denied"])
        self._report(error)

    def _report(self, error: UltimaError) -> None:
        if self.on_error:
            try:
                self.on_error(error)
            except Exception as e:
                logger.error(f"Error callback error: {e}")

    def _typing_changed(self, typing: bool) -> None:
        if self.on_typing_change:
            self.on_typing_change(typing)

    def _set_progress(self, progress: Optional[TransferProgress]) -> None:
        self.transfer_progress = progress
        if self.on_progress:
            self.on_progress(progress)

    # ------------------------------------------------------------------
    # Teardown

    async def _teardown(self) -> None:
        self.close_control.dispose()
        self.typing.clear()
        self._set_progress(None)

        session, self._session = self._session, None
        if session is not None:
            await session.teardown()

    async def close_session(self, wipe_history: bool) -> None:
        """
        End the session and return to IDLE.

        Args:
            wipe_history: True clears the chat log; False keeps it and
                appends an offline notice unless the peer already closed
        """
        already_offline = self.state_machine.get_state() == ConnectionState.DISCONNECTED
        if self.state_machine.is_connected() and not wipe_history:
            self.state_machine.transition(ConnectionEvent.END_CONFIRMED)

        await self._teardown()
        self.state_machine.reset()

        if wipe_history:
            self.messages.wipe()
            self.file_sink.clear()
        elif not already_offline:
            self.messages.system(self.strings["offline"])
        logger.info(f"Session closed (wipe={wipe_history})")
