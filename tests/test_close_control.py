"""
Ultima - Close control tests.

Durations are scaled down; the hold and countdown logic is the same.
"""

import asyncio

import pytest

from ultima.close_control import CloseController


class CloseRecorder:
    def __init__(self):
        self.calls = []

    async def __call__(self, wipe: bool) -> None:
        self.calls.append(wipe)


def make_controller(recorder: CloseRecorder) -> CloseController:
    return CloseController(
        on_close=recorder,
        hold_seconds=0.1,
        countdown_seconds=3,
        hold_tick=0.01,
        countdown_tick=0.02,
    )


@pytest.mark.asyncio
async def test_full_hold_wipes():
    recorder = CloseRecorder()
    controller = make_controller(recorder)
    updates = []
    controller.on_update = lambda: updates.append(controller.progress)

    controller.press()
    assert controller.holding
    await asyncio.sleep(0.25)

    assert recorder.calls == [True]
    assert not controller.holding
    assert not controller.awaiting_confirmation
    assert controller.progress == 0.0
    assert any(0 < value < 100 for value in updates)


@pytest.mark.asyncio
async def test_early_release_opens_countdown_then_closes():
    recorder = CloseRecorder()
    controller = make_controller(recorder)

    controller.press()
    await asyncio.sleep(0.03)
    controller.release()

    assert controller.awaiting_confirmation
    assert controller.countdown_remaining == 3
    assert recorder.calls == []

    await asyncio.sleep(0.2)

    assert recorder.calls == [False]
    assert not controller.awaiting_confirmation


@pytest.mark.asyncio
async def test_countdown_decrements():
    recorder = CloseRecorder()
    controller = make_controller(recorder)
    seen = []

    controller.press()
    controller.on_update = lambda: seen.append(controller.countdown_remaining)
    controller.release()
    await asyncio.sleep(0.2)

    assert seen == [3, 2, 1, 0]
    assert recorder.calls == [False]


@pytest.mark.asyncio
async def test_confirm_closes_without_wipe():
    recorder = CloseRecorder()
    controller = make_controller(recorder)

    controller.press()
    controller.release()
    controller.confirm()
    await asyncio.sleep(0)

    assert recorder.calls == [False]
    assert not controller.awaiting_confirmation

    # The countdown was cancelled, nothing else fires
    await asyncio.sleep(0.2)
    assert recorder.calls == [False]


@pytest.mark.asyncio
async def test_cancel_keeps_session():
    recorder = CloseRecorder()
    controller = make_controller(recorder)

    controller.press()
    controller.release()
    controller.cancel()
    await asyncio.sleep(0.2)

    assert recorder.calls == []
    assert not controller.awaiting_confirmation
    assert controller.countdown_remaining == 0


@pytest.mark.asyncio
async def test_press_ignored_while_confirming():
    recorder = CloseRecorder()
    controller = make_controller(recorder)

    controller.press()
    controller.release()
    controller.press()

    assert not controller.holding
    assert controller.awaiting_confirmation
    controller.cancel()


@pytest.mark.asyncio
async def test_release_without_press_is_noop():
    recorder = CloseRecorder()
    controller = make_controller(recorder)

    controller.release()

    assert not controller.awaiting_confirmation
    await asyncio.sleep(0.05)
    assert recorder.calls == []


@pytest.mark.asyncio
async def test_dispose_cancels_everything():
    recorder = CloseRecorder()
    controller = make_controller(recorder)

    controller.press()
    controller.dispose()
    await asyncio.sleep(0.2)
    assert recorder.calls == []

    controller.press()
    controller.release()
    controller.dispose()
    await asyncio.sleep(0.2)
    assert recorder.calls == []
    assert not controller.awaiting_confirmation


@pytest.mark.asyncio
async def test_synchronous_close_callback():
    calls = []
    controller = CloseController(on_close=calls.append, hold_seconds=0.05, hold_tick=0.01)

    controller.press()
    await asyncio.sleep(0.15)

    assert calls == [True]
