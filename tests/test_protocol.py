"""
Ultima - Channel message protocol tests.
"""

import json

import pytest

from ultima.protocol import (
    BinaryChunk,
    FileEndFrame,
    FileMetaFrame,
    FileProgressFrame,
    PlainChatText,
    TypingFrame,
    decode_payload,
    encode_frame,
)


def test_plain_text():
    assert decode_payload("hello") == PlainChatText("hello")
    assert decode_payload("") == PlainChatText("")


def test_binary_payload_is_chunk():
    assert decode_payload(b"\x00\x01") == BinaryChunk(b"\x00\x01")
    assert decode_payload(bytearray(b"ab")) == BinaryChunk(b"ab")


def test_control_frames():
    assert decode_payload('{"type": "typing"}') == TypingFrame()
    assert decode_payload('{"type": "file-end"}') == FileEndFrame()
    assert decode_payload('{"type": "file-progress", "percent": 45}') == FileProgressFrame(45)
    assert decode_payload(
        '{"type": "file-meta", "name": "a.png", "mime": "image/png", "size": 1024}'
    ) == FileMetaFrame(name="a.png", mime="image/png", size=1024)


@pytest.mark.parametrize(
    "text",
    [
        "{not json",
        "[1, 2, 3]",
        '"a string"',
        '{"type": "unknown"}',
        '{"no_type": true}',
        '{"type": "file-meta", "name": "a"}',
        '{"type": "file-meta", "name": "a", "mime": "x", "size": "big"}',
        '{"type": "file-meta", "name": "a", "mime": "x", "size": -1}',
        '{"type": "file-meta", "name": "a", "mime": "x", "size": true}',
        '{"type": "file-progress", "percent": "50"}',
    ],
)
def test_non_frames_are_chat_text(text):
    """Anything that is not a well-formed control frame is displayed as text."""
    assert decode_payload(text) == PlainChatText(text)


def test_deeply_nested_json_is_chat_text():
    text = '{"a":' + "[" * 100000 + "]" * 100000 + "}"
    assert decode_payload(text) == PlainChatText(text)


def test_encode_control_frames():
    assert json.loads(encode_frame(TypingFrame())) == {"type": "typing"}
    assert json.loads(encode_frame(FileEndFrame())) == {"type": "file-end"}
    assert json.loads(encode_frame(FileProgressFrame(100))) == {
        "type": "file-progress",
        "percent": 100,
    }
    assert json.loads(encode_frame(FileMetaFrame("a.txt", "text/plain", 3))) == {
        "type": "file-meta",
        "name": "a.txt",
        "mime": "text/plain",
        "size": 3,
    }


def test_encode_passthrough():
    assert encode_frame(PlainChatText("hi")) == "hi"
    assert encode_frame(BinaryChunk(b"\xff")) == b"\xff"


def test_encode_rejects_unknown():
    with pytest.raises(TypeError):
        encode_frame("not a frame")


def test_meta_with_unicode_name():
    frame = FileMetaFrame("звіт.pdf", "application/pdf", 10)
    assert decode_payload(encode_frame(frame)) == frame
