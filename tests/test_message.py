"""
Ultima - Chat log and descriptor parsing tests.
"""

import json

import pytest

from ultima.errors import MalformedDescriptor
from ultima.message import FileAttachment, Message, MessageKind, MessageLog
from ultima.transport import SessionDescription


class TestMessageLog:
    """Tests for the in-memory chat log."""

    def test_append_order_and_notification(self):
        log = MessageLog()
        changes = []
        log.on_change = lambda: changes.append(len(log))

        log.add(MessageKind.SENT, "one")
        log.add(MessageKind.RECEIVED, "two")
        log.system("Connected")

        assert [m.content for m in log] == ["one", "two", "Connected"]
        assert changes == [1, 2, 3]
        assert log.last().kind == MessageKind.SYSTEM
        assert [m.content for m in log.of_kind(MessageKind.RECEIVED)] == ["two"]

    def test_wipe(self):
        log = MessageLog()
        log.add(MessageKind.SENT, "secret")
        log.wipe()

        assert len(log) == 0
        assert log.last() is None

    def test_callback_errors_are_contained(self):
        log = MessageLog()

        def explode():
            raise RuntimeError("ui gone")

        log.on_change = explode
        log.add(MessageKind.SENT, "still stored")
        assert len(log) == 1

    def test_ids_are_unique(self):
        log = MessageLog()
        ids = {log.add(MessageKind.SENT, str(i)).id for i in range(100)}
        assert len(ids) == 100


def test_message_to_dict():
    attachment = FileAttachment(name="a.png", mime="image/png", locator="memory://x/a.png", size=3)
    message = Message(kind=MessageKind.RECEIVED, content="a.png", timestamp=1.0, file=attachment)

    data = message.to_dict()
    assert data["type"] == "received"
    assert data["content"] == "a.png"
    assert data["timestamp"] == 1.0
    assert data["file"] == {"name": "a.png", "mime": "image/png", "url": "memory://x/a.png"}
    assert "file" not in Message(kind=MessageKind.SENT, content="hi").to_dict()


class TestSessionDescription:
    """Tests for descriptor documents carried inside connection codes."""

    def test_round_trip(self):
        description = SessionDescription("offer", "v=0\r\n")
        parsed = SessionDescription.from_json(description.to_json())

        assert parsed == description
        assert parsed.is_offer

    @pytest.mark.parametrize(
        "text",
        [
            "not json",
            "[]",
            json.dumps({"type": "offer"}),
            json.dumps({"type": "offer", "sdp": ""}),
            json.dumps({"type": "pranswer", "sdp": "v=0"}),
            json.dumps({"type": "answer", "sdp": 5}),
        ],
    )
    def test_rejects_malformed(self, text):
        with pytest.raises(MalformedDescriptor):
            SessionDescription.from_json(text)
