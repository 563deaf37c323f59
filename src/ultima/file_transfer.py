"""
Ultima - File Transfer Implementation

This module handles chunked file transfer over the open data channel.
A transfer is framed as:

    file-meta {name, mime, size}
    <binary chunk> [file-progress {percent}]   (repeated)
    file-end

Chunks are fixed-size (16 KiB, last one possibly shorter). Progress frames
are only emitted when the completion percentage is a multiple of 5, which
bounds control traffic on large files. There is no acknowledgment: the
sender considers the file sent once the last frame is handed to the channel.
"""

import asyncio
import logging
import mimetypes
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Union

import aiofiles

from .constants import DEFAULT_MIME_TYPE, FILE_CHUNK_SIZE, PROGRESS_STEP_PERCENT
from .errors import ErrorCode, FileTransferError
from .protocol import (
    BinaryChunk,
    FileEndFrame,
    FileMetaFrame,
    FileProgressFrame,
    encode_frame,
)
from .transport import DataChannel
from .utils import generate_random_id, sanitize_filename

logger = logging.getLogger(__name__)

FileSource = Union[bytes, Path]


@dataclass
class OutboundFileResult:
    """Summary of a completed outbound transfer.

    Attributes:
        name: File name announced to the peer
        mime: MIME type announced to the peer
        size: Total bytes sent
        total_chunks: Number of binary chunks sent
        progress_frames: Percent values sent as file-progress frames
    """

    name: str
    mime: str
    size: int
    total_chunks: int
    progress_frames: List[int] = field(default_factory=list)


@dataclass
class ReceivedFile:
    """A reassembled inbound file."""

    name: str
    mime: str
    data: bytes


def total_chunks_for(size: int, chunk_size: int = FILE_CHUNK_SIZE) -> int:
    """Number of chunks needed for size bytes."""
    return (size + chunk_size - 1) // chunk_size


def split_chunks(data: bytes, chunk_size: int = FILE_CHUNK_SIZE) -> Iterator[bytes]:
    """Split data into chunk_size pieces; the last one may be shorter."""
    for offset in range(0, len(data), chunk_size):
        yield data[offset : offset + chunk_size]


def progress_percent(chunks_sent: int, total_chunks: int) -> int:
    """floor(chunks_sent / total_chunks * 100)."""
    if total_chunks <= 0:
        return 100
    return (chunks_sent * 100) // total_chunks


def should_emit_progress(percent: int) -> bool:
    return percent % PROGRESS_STEP_PERCENT == 0


def progress_checkpoints(total_chunks: int) -> List[int]:
    """Percent values a transfer of total_chunks chunks reports, in order."""
    return [
        percent
        for percent in (progress_percent(i, total_chunks) for i in range(1, total_chunks + 1))
        if should_emit_progress(percent)
    ]


def guess_mime(name: str) -> str:
    mime, _ = mimetypes.guess_type(name)
    return mime or DEFAULT_MIME_TYPE


async def _iter_source(source: FileSource, chunk_size: int):
    if isinstance(source, (bytes, bytearray)):
        for chunk in split_chunks(bytes(source), chunk_size):
            yield chunk
        return

    try:
        async with aiofiles.open(source, "rb") as f:
            while True:
                chunk = await f.read(chunk_size)
                if not chunk:
                    break
                yield chunk
    except OSError as e:
        raise FileTransferError(
            ErrorCode.E601_FILE_READ_FAILED,
            f"Failed to read file: {e}",
            {"path": str(source), "error": str(e)},
        )


def _source_size(source: FileSource) -> int:
    if isinstance(source, (bytes, bytearray)):
        return len(source)

    if not source.exists():
        raise FileTransferError(ErrorCode.E003_FILE_NOT_FOUND, f"File not found: {source}")
    if not source.is_file():
        raise FileTransferError(ErrorCode.E002_INVALID_ARGUMENT, f"Not a file: {source}")
    return source.stat().st_size


def _send_frame(channel: DataChannel, frame) -> None:
    """Hand one frame to the channel, which may close between chunks."""
    if not channel.is_open:
        raise FileTransferError(
            ErrorCode.E301_CHANNEL_NOT_OPEN, "Channel closed during file transfer"
        )
    try:
        channel.send(encode_frame(frame))
    except Exception as e:
        raise FileTransferError(
            ErrorCode.E302_CHANNEL_CLOSED, f"File transfer interrupted: {e}"
        ) from e


async def send_file(
    channel: Optional[DataChannel],
    source: FileSource,
    name: Optional[str] = None,
    mime: Optional[str] = None,
    chunk_size: int = FILE_CHUNK_SIZE,
    on_started: Optional[Callable[[OutboundFileResult], None]] = None,
) -> Optional[OutboundFileResult]:
    """Send a file as meta, chunks with throttled progress, then end.

    Args:
        channel: Open data channel
        source: File contents or a path to read with aiofiles
        name: Announced name (defaults to the path's name)
        mime: Announced MIME type (guessed from the name when omitted)
        chunk_size: Bytes per binary message
        on_started: Called once file-meta is sent, before any chunk

    Returns:
        Transfer summary, or None if the channel is not open

    Raises:
        FileTransferError: If the source file cannot be read, or the
            channel closes before the transfer completes
    """
    if channel is None or not channel.is_open:
        logger.warning("File transfer skipped: channel is not open")
        return None

    if isinstance(source, str):
        source = Path(source)
    if name is None:
        name = source.name if isinstance(source, Path) else "file"
    mime = mime or guess_mime(name)

    size = _source_size(source)
    total_chunks = total_chunks_for(size, chunk_size)
    result = OutboundFileResult(name=name, mime=mime, size=size, total_chunks=total_chunks)

    logger.info(f"Starting file transfer: {name}, size={size}, chunks={total_chunks}")

    _send_frame(channel, FileMetaFrame(name=name, mime=mime, size=size))
    if on_started is not None:
        on_started(result)

    sent = 0
    async for chunk in _iter_source(source, chunk_size):
        _send_frame(channel, BinaryChunk(chunk))
        sent += 1

        percent = progress_percent(sent, total_chunks)
        if should_emit_progress(percent):
            _send_frame(channel, FileProgressFrame(percent=percent))
            result.progress_frames.append(percent)

        logger.debug(f"Sent chunk {sent}/{total_chunks}")
        # Let channel events run between chunks of a large file
        await asyncio.sleep(0)

    _send_frame(channel, FileEndFrame())
    logger.info(f"File transfer completed: {name}")
    return result


class IncomingFileAssembly:
    """
    Buffers one inbound transfer between file-meta and file-end.

    Only one assembly is in flight at a time: a new file-meta discards any
    incomplete previous one. Chunks arriving with no open assembly are
    dropped.
    """

    def __init__(self):
        self.meta: Optional[FileMetaFrame] = None
        self.chunks: List[bytes] = []

    @property
    def is_open(self) -> bool:
        return self.meta is not None

    @property
    def received_bytes(self) -> int:
        return sum(len(chunk) for chunk in self.chunks)

    def begin(self, meta: FileMetaFrame) -> None:
        if self.meta is not None:
            logger.warning(
                f"Discarding incomplete transfer of {self.meta.name} "
                f"({self.received_bytes}/{self.meta.size} bytes)"
            )
        self.meta = meta
        self.chunks = []
        logger.info(f"Receiving file: {meta.name} ({meta.size} bytes, {meta.mime})")

    def add_chunk(self, data: bytes) -> bool:
        """Append a chunk; returns False when no assembly is open."""
        if self.meta is None:
            logger.debug(f"Dropping {len(data)} byte chunk with no transfer in progress")
            return False
        self.chunks.append(data)
        return True

    def finish(self) -> Optional[ReceivedFile]:
        """Concatenate the buffered chunks and clear the assembly."""
        if self.meta is None:
            logger.debug("file-end received with no transfer in progress")
            return None

        data = b"".join(self.chunks)
        if len(data) != self.meta.size:
            logger.warning(
                f"Received {len(data)} bytes for {self.meta.name}, expected {self.meta.size}"
            )

        received = ReceivedFile(name=self.meta.name, mime=self.meta.mime, data=data)
        self.reset()
        return received

    def reset(self) -> None:
        self.meta = None
        self.chunks = []


class FileSink:
    """
    Stores received files and hands back a locator for them.

    With a downloads directory, files are written there with aiofiles and
    the locator is the file path. Without one, blobs are kept in memory
    under a memory:// locator for the lifetime of the process.
    """

    MEMORY_SCHEME = "memory://"

    def __init__(self, downloads_dir: Optional[Path] = None):
        self.downloads_dir = Path(downloads_dir).expanduser() if downloads_dir else None
        self._memory: Dict[str, bytes] = {}

    def _unique_path(self, name: str) -> Path:
        candidate = self.downloads_dir / name
        stem, suffix = candidate.stem, candidate.suffix
        counter = 1
        while candidate.exists():
            candidate = self.downloads_dir / f"{stem} ({counter}){suffix}"
            counter += 1
        return candidate

    async def store(self, name: str, data: bytes) -> str:
        """
        Persist a received blob.

        Raises:
            FileTransferError: If writing to the downloads directory fails
        """
        safe_name = sanitize_filename(name)

        if self.downloads_dir is None:
            locator = f"{self.MEMORY_SCHEME}{generate_random_id()}/{safe_name}"
            self._memory[locator] = data
            return locator

        try:
            self.downloads_dir.mkdir(parents=True, exist_ok=True)
            path = self._unique_path(safe_name)
            async with aiofiles.open(path, "wb") as f:
                await f.write(data)
        except OSError as e:
            raise FileTransferError(
                ErrorCode.E602_FILE_STORE_FAILED,
                f"Failed to store received file: {e}",
                {"name": safe_name, "error": str(e)},
            )

        logger.info(f"Stored received file: {path} ({len(data)} bytes)")
        return str(path)

    def load(self, locator: str) -> bytes:
        """Read back a stored blob by locator."""
        if locator.startswith(self.MEMORY_SCHEME):
            return self._memory[locator]
        return Path(locator).read_bytes()

    def clear(self) -> None:
        """Forget in-memory blobs (files on disk are left alone)."""
        self._memory.clear()
