"""
Ultima - In-memory chat log.

Messages live only for the lifetime of the process. The log is cleared
on an explicit wipe and otherwise accumulates; nothing is written to disk.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional

from .utils import generate_random_id

logger = logging.getLogger(__name__)


class MessageKind(Enum):
    """Who a chat entry came from."""

    SENT = "sent"
    RECEIVED = "received"
    SYSTEM = "system"


@dataclass(frozen=True)
class FileAttachment:
    """A file attached to a chat entry.

    Attributes:
        name: File name
        mime: MIME type
        locator: Local path or memory:// locator of the bytes
        size: Size in bytes
    """

    name: str
    mime: str
    locator: str
    size: int = 0


@dataclass
class Message:
    """Represents one chat log entry."""

    kind: MessageKind
    content: str
    timestamp: float = field(default_factory=time.time)
    file: Optional[FileAttachment] = None
    id: str = field(default_factory=generate_random_id)

    def to_dict(self) -> Dict[str, Any]:
        """Convert message to dictionary."""
        data: Dict[str, Any] = {
            "id": self.id,
            "type": self.kind.value,
            "content": self.content,
            "timestamp": self.timestamp,
        }
        if self.file is not None:
            data["file"] = {
                "name": self.file.name,
                "mime": self.file.mime,
                "url": self.file.locator,
            }
        return data


class MessageLog:
    """Ordered chat log owned by the session orchestrator."""

    def __init__(self):
        self._messages: List[Message] = []
        self.on_change: Optional[Callable[[], None]] = None

    def append(self, message: Message) -> Message:
        self._messages.append(message)
        logger.debug(f"Log entry added: {message.kind.value} {message.id}")
        self._changed()
        return message

    def add(
        self, kind: MessageKind, content: str, file: Optional[FileAttachment] = None
    ) -> Message:
        return self.append(Message(kind=kind, content=content, file=file))

    def system(self, content: str) -> Message:
        """Append a system notice."""
        return self.add(MessageKind.SYSTEM, content)

    def wipe(self) -> None:
        """Remove every entry."""
        count = len(self._messages)
        self._messages.clear()
        logger.info(f"Chat history wiped ({count} entries)")
        self._changed()

    def last(self) -> Optional[Message]:
        return self._messages[-1] if self._messages else None

    def of_kind(self, kind: MessageKind) -> List[Message]:
        return [m for m in self._messages if m.kind == kind]

    def _changed(self) -> None:
        if self.on_change:
            try:
                self.on_change()
            except Exception as e:
                logger.error(f"Message log callback error: {e}")

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))
