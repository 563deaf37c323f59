"""
Ultima - Signaling exchange tests.

Runs the offer/answer exchange over the loopback transport from conftest.
Rejected pastes must leave the state machine exactly where it was.
"""

import json

import pytest

from ultima import crypto
from ultima.connection_fsm import ConnectionState, ConnectionStateMachine
from ultima.crypto import CryptoConfig, EncLevel
from ultima.errors import (
    DecryptionFailed,
    MalformedDescriptor,
    MediaError,
    NegotiationStalled,
    SignalingError,
)
from ultima.signaling import SignalingController
from ultima.transport import SessionDescription


def make_controller(network, config=None, gather_timeout=None) -> SignalingController:
    return SignalingController(
        ConnectionStateMachine(),
        config or CryptoConfig(),
        network.factory,
        gather_timeout=gather_timeout,
    )


@pytest.mark.asyncio
async def test_host_produces_sealed_offer(network):
    host = make_controller(network)
    channels = []
    host.on_channel = channels.append

    code = await host.host()

    assert host.state_machine.get_state() == ConnectionState.OFFERING
    assert host.local_code == code
    assert len(channels) == 1
    assert channels[0].label == "chat"

    description = SessionDescription.from_json(crypto.open_descriptor(code, CryptoConfig()))
    assert description.type == "offer"


@pytest.mark.asyncio
async def test_full_exchange(network, wait_until):
    host = make_controller(network)
    guest = make_controller(network)
    guest_channels = []
    guest.on_channel = guest_channels.append

    offer_code = await host.host()
    guest.join()
    assert guest.state_machine.get_state() == ConnectionState.ANSWERING

    answer_code = await guest.submit_remote(offer_code)
    assert answer_code
    assert guest.state_machine.get_state() == ConnectionState.ANSWERING
    assert guest.local_code == answer_code

    assert await host.submit_remote(answer_code) is None
    await wait_until(lambda: len(guest_channels) == 1)
    assert guest_channels[0].is_open


@pytest.mark.asyncio
async def test_personal_exchange(network):
    config = CryptoConfig(enc_level=EncLevel.PERSONAL, passphrase="shared secret")
    host = make_controller(network, config)
    guest = make_controller(network, config)

    offer_code = await host.host()
    guest.join()
    answer_code = await guest.submit_remote(offer_code)

    assert await host.submit_remote(answer_code) is None


@pytest.mark.asyncio
async def test_open_exchange_accepts_raw_json(network):
    config = CryptoConfig(enc_level=EncLevel.OPEN)
    host = make_controller(network, config)
    guest = make_controller(network, config)

    offer_code = await host.host()
    raw_offer = crypto.open_descriptor(offer_code, config)
    guest.join()

    assert await guest.submit_remote(raw_offer)


@pytest.mark.asyncio
async def test_garbage_paste_is_rejected(network):
    guest = make_controller(network)
    guest.join()

    with pytest.raises(DecryptionFailed):
        await guest.submit_remote("definitely not a code")

    assert guest.state_machine.get_state() == ConnectionState.ANSWERING
    assert guest.local_code == ""
    assert guest.transport is None


@pytest.mark.asyncio
async def test_wrong_passphrase_is_rejected(network):
    host = make_controller(network, CryptoConfig(enc_level=EncLevel.PERSONAL, passphrase="a"))
    guest = make_controller(network, CryptoConfig(enc_level=EncLevel.PERSONAL, passphrase="b"))

    offer_code = await host.host()
    guest.join()

    with pytest.raises(DecryptionFailed):
        await guest.submit_remote(offer_code)
    assert guest.state_machine.get_state() == ConnectionState.ANSWERING


@pytest.mark.asyncio
async def test_own_offer_pasted_back_is_rejected(network):
    host = make_controller(network)
    offer_code = await host.host()

    with pytest.raises(MalformedDescriptor):
        await host.submit_remote(offer_code)
    assert host.state_machine.get_state() == ConnectionState.OFFERING


@pytest.mark.asyncio
async def test_answer_pasted_to_joiner_is_rejected(network):
    answer = json.dumps({"type": "answer", "sdp": "loopback 99"})
    guest = make_controller(network)
    guest.join()

    with pytest.raises(MalformedDescriptor):
        await guest.submit_remote(crypto.seal_descriptor(answer, CryptoConfig()))
    assert guest.state_machine.get_state() == ConnectionState.ANSWERING


@pytest.mark.asyncio
async def test_encrypted_non_descriptor_is_rejected(network):
    guest = make_controller(network)
    guest.join()

    with pytest.raises(MalformedDescriptor):
        await guest.submit_remote(crypto.seal_descriptor("hello there", CryptoConfig()))
    assert guest.state_machine.get_state() == ConnectionState.ANSWERING


@pytest.mark.asyncio
async def test_unusable_offer_resets_responder(network):
    """A descriptor the transport refuses leaves room for a fresh attempt."""
    host = make_controller(network)
    guest = make_controller(network)
    guest.join()

    bogus = json.dumps({"type": "offer", "sdp": "loopback 12345"})
    with pytest.raises(MalformedDescriptor):
        await guest.submit_remote(crypto.seal_descriptor(bogus, CryptoConfig()))
    assert guest.transport is None
    assert guest.state_machine.get_state() == ConnectionState.ANSWERING

    offer_code = await host.host()
    assert await guest.submit_remote(offer_code)


@pytest.mark.asyncio
async def test_paste_when_not_expected(network):
    idle = make_controller(network)
    with pytest.raises(SignalingError):
        await idle.submit_remote("anything")
    assert idle.state_machine.get_state() == ConnectionState.IDLE

    host = make_controller(network)
    guest = make_controller(network)
    offer_code = await host.host()
    guest.join()
    await guest.submit_remote(offer_code)

    # Reply already produced, a second offer is not expected
    with pytest.raises(SignalingError):
        await guest.submit_remote(offer_code)


@pytest.mark.asyncio
async def test_host_twice_is_rejected(network):
    host = make_controller(network)
    await host.host()

    with pytest.raises(SignalingError):
        await host.host()
    assert host.state_machine.get_state() == ConnectionState.OFFERING


@pytest.mark.asyncio
async def test_gathering_timeout_fails_attempt(network):
    network.stall_gathering = True
    host = make_controller(network, gather_timeout=0.05)

    with pytest.raises(NegotiationStalled):
        await host.host()
    assert host.state_machine.get_state() == ConnectionState.FAILED


@pytest.mark.asyncio
async def test_microphone_denied_continues_without_audio(network):
    network.deny_microphone = True
    host = make_controller(network, CryptoConfig(use_mic=True))
    media_errors = []
    host.on_media_error = media_errors.append

    code = await host.host()

    assert code
    assert len(media_errors) == 1
    assert isinstance(media_errors[0], MediaError)
    assert not host.transport.microphone_attached


@pytest.mark.asyncio
async def test_microphone_attached_when_enabled(network):
    host = make_controller(network, CryptoConfig(use_mic=True))
    await host.host()
    assert host.transport.microphone_attached


@pytest.mark.asyncio
async def test_transport_failure_moves_to_failed(network):
    host = make_controller(network)
    await host.host()

    host.transport.on_failed("ICE failed")

    assert host.state_machine.get_state() == ConnectionState.FAILED
    assert host.state_machine.get_error_message() == "ICE failed"


@pytest.mark.asyncio
async def test_close_releases_transport(network):
    host = make_controller(network)
    await host.host()
    transport = host.transport

    await host.close()

    assert transport.closed
    assert host.transport is None
    assert host.local_code == ""
    with pytest.raises(SignalingError):
        await host.submit_remote("anything")
