"""
Pytest configuration and fixtures for Ultima tests.

Provides common fixtures and test utilities for unit and integration tests,
including an in-process loopback transport that stands in for WebRTC: two
orchestrators sharing one LoopbackNetwork can complete the full
offer/answer exchange and talk over a paired data channel.
"""

import asyncio
import itertools
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Dict, Generator, List, Optional

import pytest

from ultima.errors import MicrophoneDenied
from ultima.transport import DataChannel, Payload, PeerTransport, SessionDescription


class LoopbackChannel(DataChannel):
    """Data channel whose messages are delivered to its peer on the next loop turn."""

    def __init__(self, label: str):
        super().__init__(label)
        self.peer: Optional["LoopbackChannel"] = None
        self.sent: List[Payload] = []
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def send(self, payload: Payload) -> None:
        if not self._open:
            raise RuntimeError("channel is not open")
        self.sent.append(payload)
        peer = self.peer
        asyncio.get_running_loop().call_soon(peer._fire_message, payload)

    def close(self) -> None:
        if not self._open:
            return
        self._open = False
        peer = self.peer
        if peer is not None and peer._open:
            peer._open = False
            asyncio.get_running_loop().call_soon(peer._fire_close)


class LoopbackTransport(PeerTransport):
    """PeerTransport paired through a LoopbackNetwork instead of ICE."""

    def __init__(self, network: "LoopbackNetwork", initiator: bool):
        super().__init__(initiator)
        self.network = network
        self.id = next(network.ids)
        self.channel: Optional[LoopbackChannel] = None
        self.remote: Optional["LoopbackTransport"] = None
        self.microphone_attached = False
        self.closed = False

    def create_channel(self, label: str) -> DataChannel:
        self.channel = LoopbackChannel(label)
        return self.channel

    async def create_offer(self) -> SessionDescription:
        await self.network.gathering()
        return SessionDescription("offer", f"loopback {self.id}")

    async def create_answer(self) -> SessionDescription:
        await self.network.gathering()
        return SessionDescription("answer", f"loopback {self.id}")

    async def apply_remote(self, description: SessionDescription) -> None:
        remote = self.network.lookup(description.sdp)
        self.remote = remote
        if description.type == "answer":
            asyncio.get_running_loop().call_soon(self.network.connect, self, remote)

    async def attach_microphone(self) -> None:
        if self.network.deny_microphone:
            raise MicrophoneDenied("no capture device")
        self.microphone_attached = True

    async def close(self) -> None:
        self.closed = True
        if self.channel is not None:
            self.channel.close()


class LoopbackNetwork:
    """Registry pairing loopback transports by the id carried in their sdp."""

    def __init__(self):
        self.ids = itertools.count(1)
        self.transports: Dict[int, LoopbackTransport] = {}
        self.deny_microphone = False
        self.stall_gathering = False

    def factory(self, initiator: bool) -> LoopbackTransport:
        transport = LoopbackTransport(self, initiator)
        self.transports[transport.id] = transport
        return transport

    async def gathering(self) -> None:
        if self.stall_gathering:
            await asyncio.Event().wait()

    def lookup(self, sdp: str) -> LoopbackTransport:
        prefix, _, number = sdp.partition(" ")
        if prefix != "loopback" or not number.isdigit() or int(number) not in self.transports:
            raise ValueError(f"unknown remote description: {sdp!r}")
        return self.transports[int(number)]

    def connect(self, initiator: LoopbackTransport, responder: LoopbackTransport) -> None:
        """Open the initiator's channel and hand its twin to the responder."""
        if initiator.closed or responder.closed or initiator.channel is None:
            return
        local = initiator.channel
        remote = LoopbackChannel(local.label)
        local.peer, remote.peer = remote, local
        responder.channel = remote
        local._open = remote._open = True

        if responder.on_channel:
            responder.on_channel(remote)
        local._fire_open()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """
    Create a temporary directory for test data.

    Yields:
        Path: Temporary directory path

    Cleanup:
        Automatically removes directory after test
    """
    tmp = Path(tempfile.mkdtemp(prefix="ultima_test_"))
    try:
        yield tmp
    finally:
        shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def network() -> LoopbackNetwork:
    """Provide a fresh loopback network for a pair of peers."""
    return LoopbackNetwork()


@pytest.fixture
def wait_until() -> Callable:
    """
    Provide a helper that polls a condition while the event loop runs.

    Returns:
        async function (predicate, timeout=5.0) raising AssertionError on timeout
    """

    async def _wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.01)

    return _wait_until


# Pytest marks
def pytest_configure(config):
    """
    Configure pytest markers.

    Args:
        config: Pytest configuration object
    """
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")


# Test collection hooks
def pytest_collection_modifyitems(config, items):
    """
    Modify test collection to add markers based on test location.

    Args:
        config: Pytest configuration
        items: List of collected test items
    """
    for item in items:
        # Add unit marker to tests in unit/ directory
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)

        # Add integration marker to tests in integration/ directory
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
