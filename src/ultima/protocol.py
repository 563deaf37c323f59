"""
Ultima - Channel message protocol.

Every message on the open data channel is one of:

- Plain chat text: any text payload that is not a recognised control frame
- Control frame: a UTF-8 JSON object with a "type" discriminator
    typing         {}
    file-meta      {"name", "mime", "size"}
    file-progress  {"percent"}
    file-end       {}
- Binary chunk: raw file bytes, appended to the open incoming assembly

The channel delivers whole messages reliably and in order, so no length
prefix, sequence number, or retransmission is layered on top.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

from .transport import Payload


class FrameType(str, Enum):
    """Control frame discriminators as they appear on the wire."""

    TYPING = "typing"
    FILE_META = "file-meta"
    FILE_PROGRESS = "file-progress"
    FILE_END = "file-end"


@dataclass(frozen=True)
class PlainChatText:
    text: str


@dataclass(frozen=True)
class TypingFrame:
    pass


@dataclass(frozen=True)
class FileMetaFrame:
    name: str
    mime: str
    size: int


@dataclass(frozen=True)
class FileProgressFrame:
    percent: int


@dataclass(frozen=True)
class FileEndFrame:
    pass


@dataclass(frozen=True)
class BinaryChunk:
    data: bytes


Frame = Union[PlainChatText, TypingFrame, FileMetaFrame, FileProgressFrame, FileEndFrame, BinaryChunk]


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _control_frame(data: Dict[str, Any]) -> Optional[Frame]:
    """Build a control frame from a decoded object, or None if it is not one."""
    frame_type = data.get("type")

    if frame_type == FrameType.TYPING.value:
        return TypingFrame()

    if frame_type == FrameType.FILE_END.value:
        return FileEndFrame()

    if frame_type == FrameType.FILE_META.value:
        name, mime, size = data.get("name"), data.get("mime"), data.get("size")
        if isinstance(name, str) and isinstance(mime, str) and _is_int(size) and size >= 0:
            return FileMetaFrame(name=name, mime=mime, size=size)
        return None

    if frame_type == FrameType.FILE_PROGRESS.value:
        percent = data.get("percent")
        if _is_int(percent):
            return FileProgressFrame(percent=percent)
        return None

    return None


def decode_payload(payload: Payload) -> Frame:
    """
    Classify one channel message.

    Never raises: text that is not a well-formed control frame is chat
    text by construction, and any bytes payload is a file chunk.
    """
    if isinstance(payload, (bytes, bytearray, memoryview)):
        return BinaryChunk(bytes(payload))

    stripped = payload.lstrip()
    if stripped.startswith("{"):
        try:
            data = json.loads(payload)
        except (ValueError, RecursionError):
            # Malformed or too deeply nested to be a control frame
            data = None
        if isinstance(data, dict):
            frame = _control_frame(data)
            if frame is not None:
                return frame

    return PlainChatText(payload)


def encode_frame(frame: Frame) -> Payload:
    """Serialize a frame for DataChannel.send()."""
    if isinstance(frame, PlainChatText):
        return frame.text
    if isinstance(frame, BinaryChunk):
        return frame.data
    if isinstance(frame, TypingFrame):
        return json.dumps({"type": FrameType.TYPING.value})
    if isinstance(frame, FileMetaFrame):
        return json.dumps(
            {
                "type": FrameType.FILE_META.value,
                "name": frame.name,
                "mime": frame.mime,
                "size": frame.size,
            }
        )
    if isinstance(frame, FileProgressFrame):
        return json.dumps({"type": FrameType.FILE_PROGRESS.value, "percent": frame.percent})
    if isinstance(frame, FileEndFrame):
        return json.dumps({"type": FrameType.FILE_END.value})
    raise TypeError(f"Unknown frame: {frame!r}")
