"""
Ultima - WebRTC transport built on aiortc.

Path discovery uses ICE with the configured STUN servers. There is no TURN
relay: if no direct path is found the negotiation simply never completes.
aiortc gathers candidates while applying the local description; the
returned description therefore already carries every local candidate,
which is what makes a single copy-paste exchange sufficient.
"""

import asyncio
import logging
import sys
from typing import List, Optional

from aiortc import (
    RTCConfiguration,
    RTCDataChannel,
    RTCIceServer,
    RTCPeerConnection,
    RTCSessionDescription,
)
from aiortc.contrib.media import MediaBlackhole, MediaPlayer

from .constants import DEFAULT_STUN_SERVERS
from .errors import MicrophoneDenied
from .transport import DataChannel, Payload, PeerTransport, SessionDescription

logger = logging.getLogger(__name__)


def default_microphone() -> MediaPlayer:
    """Open the platform's default audio capture device."""
    if sys.platform == "darwin":
        return MediaPlayer(":0", format="avfoundation")
    if sys.platform == "win32":
        return MediaPlayer("audio=Microphone", format="dshow")
    return MediaPlayer("default", format="pulse")


class AiortcDataChannel(DataChannel):
    """DataChannel adapter over an aiortc RTCDataChannel."""

    def __init__(self, channel: RTCDataChannel):
        super().__init__(channel.label)
        self._channel = channel

        channel.on("open", self._fire_open)
        channel.on("message", self._fire_message)
        channel.on("close", self._fire_close)

    @property
    def is_open(self) -> bool:
        return self._channel.readyState == "open"

    def send(self, payload: Payload) -> None:
        self._channel.send(payload)

    def close(self) -> None:
        self._channel.close()


class AiortcTransport(PeerTransport):
    """PeerTransport backed by an aiortc RTCPeerConnection."""

    def __init__(self, initiator: bool, stun_servers: Optional[List[str]] = None):
        super().__init__(initiator)
        servers = stun_servers if stun_servers is not None else DEFAULT_STUN_SERVERS
        config = RTCConfiguration(iceServers=[RTCIceServer(urls=url) for url in servers])
        self._pc = RTCPeerConnection(configuration=config)
        self._player: Optional[MediaPlayer] = None
        self._sink = MediaBlackhole()

        self._pc.on("datachannel", self._handle_datachannel)
        self._pc.on("connectionstatechange", self._handle_connection_state)
        self._pc.on("track", self._handle_track)

        logger.debug(f"Peer connection created (initiator={initiator}, stun={len(servers)})")

    def _handle_datachannel(self, channel: RTCDataChannel) -> None:
        logger.info(f"Incoming data channel: {channel.label}")
        if self.on_channel:
            self.on_channel(AiortcDataChannel(channel))

    def _handle_connection_state(self) -> None:
        state = self._pc.connectionState
        logger.debug(f"Peer connection state: {state}")
        if state == "failed" and self.on_failed:
            self.on_failed("Peer connection failed")

    def _handle_track(self, track) -> None:
        logger.info(f"Remote {track.kind} track received")
        if track.kind == "audio":
            self._sink.addTrack(track)
            asyncio.ensure_future(self._sink.start())

    def create_channel(self, label: str) -> DataChannel:
        return AiortcDataChannel(self._pc.createDataChannel(label))

    async def _wait_for_gathering(self) -> None:
        if self._pc.iceGatheringState == "complete":
            return

        done = asyncio.Event()

        def check() -> None:
            if self._pc.iceGatheringState == "complete":
                done.set()

        self._pc.on("icegatheringstatechange", check)
        try:
            await done.wait()
        finally:
            self._pc.remove_listener("icegatheringstatechange", check)

    def _local(self) -> SessionDescription:
        local = self._pc.localDescription
        return SessionDescription(type=local.type, sdp=local.sdp)

    async def create_offer(self) -> SessionDescription:
        offer = await self._pc.createOffer()
        await self._pc.setLocalDescription(offer)
        await self._wait_for_gathering()
        return self._local()

    async def create_answer(self) -> SessionDescription:
        answer = await self._pc.createAnswer()
        await self._pc.setLocalDescription(answer)
        await self._wait_for_gathering()
        return self._local()

    async def apply_remote(self, description: SessionDescription) -> None:
        await self._pc.setRemoteDescription(
            RTCSessionDescription(sdp=description.sdp, type=description.type)
        )

    async def attach_microphone(self) -> None:
        try:
            self._player = default_microphone()
        except Exception as e:
            raise MicrophoneDenied(str(e))

        if self._player.audio is None:
            raise MicrophoneDenied("no audio capture device")

        self._pc.addTrack(self._player.audio)
        logger.info("Microphone attached to peer connection")

    async def close(self) -> None:
        await self._sink.stop()
        if self._player is not None and self._player.audio is not None:
            self._player.audio.stop()
        await self._pc.close()
        logger.debug("Peer connection closed")


def aiortc_factory(stun_servers: Optional[List[str]] = None):
    """Build a TransportFactory bound to a STUN server list."""

    def factory(initiator: bool) -> PeerTransport:
        return AiortcTransport(initiator, stun_servers)

    return factory
