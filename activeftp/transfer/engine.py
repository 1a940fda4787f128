"""
Transfer Engine

Design Decision: End-of-Transfer Detection
==========================================

Options Considered:
1. Read until EOF on the data connection
   - Simple, standard FTP stream mode
   - A truncated transfer looks exactly like a complete one

2. Announce the byte count, read exactly that many bytes
   - Receiver knows when it is done without waiting for close
   - Truncation is detectable

Decision: Length-driven loops
- Downloads: the size travels in the 299 reply text
- Uploads: the size travels inside the STOR parameter ("name//size")
- Both loops move fixed-size blocks; the last block carries the
  remainder and the loop stops there

An I/O error mid-loop is a warning, not a session failure: the loop
stops, the data channel is closed, and the control channel still gets
its terminal reply.
"""

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import aiofiles

from ..protocol.errors import ProtocolViolation
from .dataport import DataChannel

logger = logging.getLogger(__name__)

# Block size: the source protocol's 512-byte buffer
BLOCK_SIZE = 512

# Separator between name and size in the STOR parameter
STOR_DELIMITER = '//'

_SIZE_RE = re.compile(r'size (\d+) bytes')


@dataclass(frozen=True)
class TransferDescriptor:
    """A file name and its authoritative byte count."""
    path: str
    size: int

    def to_stor_argument(self) -> str:
        """Encode as the STOR parameter: "path//size"."""
        return f"{self.path}{STOR_DELIMITER}{self.size}"

    @classmethod
    def from_stor_argument(cls, argument: Optional[str]) -> 'TransferDescriptor':
        """
        Decode a STOR parameter.

        Raises:
            ProtocolViolation: missing delimiter, empty name, or bad size
        """
        path, sep, size = (argument or '').rpartition(STOR_DELIMITER)
        if not sep or not path or not size.isdigit():
            raise ProtocolViolation(f"malformed STOR argument: {argument!r}")
        return cls(path=path, size=int(size))


def parse_size_announcement(text: str) -> int:
    """
    Extract the byte count from a 299 reply text.

    "File report.txt size 1024 bytes" -> 1024
    """
    match = _SIZE_RE.search(text)
    if not match:
        raise ProtocolViolation(f"no file size in announcement: {text!r}")
    return int(match.group(1))


@dataclass
class TransferResult:
    """Outcome of one block loop."""
    path: Path
    expected_bytes: int
    transferred_bytes: int = 0
    start_time: float = field(default_factory=time.monotonic)
    end_time: Optional[float] = None

    @property
    def complete(self) -> bool:
        return self.transferred_bytes == self.expected_bytes

    @property
    def duration_seconds(self) -> float:
        if self.end_time is None:
            return 0.0
        return max(0.0, self.end_time - self.start_time)

    @property
    def speed_bytes_per_sec(self) -> float:
        duration = self.duration_seconds
        if duration == 0:
            return 0
        return self.transferred_bytes / duration

    def to_dict(self) -> dict:
        """Convert to dictionary for display."""
        return {
            'path': str(self.path),
            'expected_bytes': self.expected_bytes,
            'transferred_bytes': self.transferred_bytes,
            'complete': self.complete,
            'duration_seconds': self.duration_seconds,
            'speed_bytes_per_sec': self.speed_bytes_per_sec,
        }


async def send_file(channel: DataChannel, path: Path, size: int,
                    block_size: int = BLOCK_SIZE) -> TransferResult:
    """
    Stream exactly `size` bytes of `path` into the data channel.

    Returns:
        TransferResult; incomplete if the file shrank or the peer went away
    """
    result = TransferResult(path=Path(path), expected_bytes=size)
    remaining = size

    async with aiofiles.open(path, 'rb') as f:
        while remaining > 0:
            block = await f.read(min(block_size, remaining))
            if not block:
                logger.warning(f"Error reading {path}: file ended "
                               f"{remaining} bytes early")
                break

            try:
                channel.writer.write(block)
                await channel.writer.drain()
            except (ConnectionError, OSError) as e:
                logger.warning(f"Error sending file {path}: {e}")
                break

            result.transferred_bytes += len(block)
            remaining -= len(block)

    result.end_time = time.monotonic()
    logger.debug(f"Sent {result.transferred_bytes}/{size} bytes of {path}")
    return result


async def receive_file(channel: DataChannel, path: Path, size: int,
                       block_size: int = BLOCK_SIZE) -> TransferResult:
    """
    Read exactly `size` bytes from the data channel into `path`.

    The loop never reads past the declared length and never waits for
    end-of-stream.

    Returns:
        TransferResult; incomplete if the peer closed early
    """
    result = TransferResult(path=Path(path), expected_bytes=size)
    remaining = size

    async with aiofiles.open(path, 'wb') as f:
        while remaining > 0:
            wanted = min(block_size, remaining)
            try:
                block = await channel.reader.readexactly(wanted)
            except asyncio.IncompleteReadError as e:
                block = e.partial
                logger.warning(f"Receive error for {path}: peer closed after "
                               f"{result.transferred_bytes + len(block)}/{size} bytes")
                remaining = 0
            except (ConnectionError, OSError) as e:
                logger.warning(f"Receive error for {path}: {e}")
                break
            else:
                remaining -= wanted

            await f.write(block)
            result.transferred_bytes += len(block)

    result.end_time = time.monotonic()
    logger.debug(f"Received {result.transferred_bytes}/{size} bytes into {path}")
    return result
