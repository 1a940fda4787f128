"""
Control Channel

Design Decision: Framing
========================

Options Considered:
1. One socket read = one message
   - What the protocol assumes for well-behaved peers
   - Breaks as soon as TCP splits or merges lines

2. Delimiter-framed reads (read until LF, bounded)
   - Same wire format
   - Robust against segmentation
   - Bounded by MAX_MESSAGE_SIZE so a peer cannot grow our buffer

Decision: Delimiter framing via StreamReader.readuntil()
- One call to receive_line() yields exactly one logical message
- Strict request/response alternation, no pipelining
"""

import asyncio
import logging
from typing import Callable, Optional, Tuple

from .errors import ConnectionClosed, ProtocolViolation, TransportError, UnexpectedReply
from .messages import (
    MAX_MESSAGE_SIZE, Command, ControlMessage, ReplyCode,
    decode_command, decode_reply, encode_command, format_reply,
)

logger = logging.getLogger(__name__)

# Called with every reply the client receives
ReplyObserver = Callable[[ControlMessage], None]


class ControlChannel:
    """
    One side of a control connection.

    Wraps an asyncio stream pair and speaks whole lines. Used by the
    server session (commands in, replies out) and by the client
    (commands out, replies in).
    """

    def __init__(self, reader: asyncio.StreamReader,
                 writer: asyncio.StreamWriter,
                 max_message_size: int = MAX_MESSAGE_SIZE,
                 on_reply: Optional[ReplyObserver] = None):
        self.reader = reader
        self.writer = writer
        self.max_message_size = max_message_size
        self.on_reply = on_reply
        self._closed = False

    @classmethod
    async def connect(cls, host: str, port: int,
                      max_message_size: int = MAX_MESSAGE_SIZE,
                      on_reply: Optional[ReplyObserver] = None) -> 'ControlChannel':
        """Open a control connection to a server."""
        try:
            reader, writer = await asyncio.open_connection(host, port)
        except OSError as e:
            raise TransportError(f"cannot connect to {host}:{port}: {e}") from e
        return cls(reader, writer, max_message_size, on_reply)

    @property
    def local_address(self) -> Tuple[str, int]:
        """Our end of the control connection."""
        return self.writer.get_extra_info('sockname')[:2]

    @property
    def remote_address(self) -> Tuple[str, int]:
        """The peer's end of the control connection."""
        return self.writer.get_extra_info('peername')[:2]

    @property
    def is_closed(self) -> bool:
        return self._closed or self.writer.is_closing()

    # === Raw lines ===

    async def send_line(self, data: bytes):
        """Write one encoded line."""
        if self.is_closed:
            raise ConnectionClosed("control connection closed")
        try:
            self.writer.write(data)
            await self.writer.drain()
        except (ConnectionError, OSError) as e:
            raise TransportError(f"error sending message: {e}") from e

    async def receive_line(self) -> bytes:
        """
        Read one line including its terminator.

        Returns b'' when the peer has closed the connection.
        """
        if self._closed:
            return b''
        try:
            line = await self.reader.readuntil(b'\n')
        except asyncio.IncompleteReadError as e:
            # A partial line at EOF is still a closed peer
            return b'' if not e.partial.strip() else e.partial
        except asyncio.LimitOverrunError:
            raise ProtocolViolation("control line exceeds buffer limit") from None
        except (ConnectionError, OSError) as e:
            raise TransportError(f"error reading message: {e}") from e
        if len(line) > self.max_message_size:
            raise ProtocolViolation(
                f"control line of {len(line)} bytes exceeds {self.max_message_size}"
            )
        return line

    # === Client side ===

    async def send_command(self, verb: str, parameter: Optional[str] = None):
        """Send a command (client side)."""
        command = Command(verb, parameter)
        logger.debug(f"--> {command}")
        await self.send_line(encode_command(verb, parameter))

    async def read_reply(self) -> ControlMessage:
        """Read one reply (client side)."""
        reply = decode_reply(await self.receive_line())
        logger.debug(f"<-- {reply}")
        if self.on_reply:
            self.on_reply(reply)
        return reply

    async def expect_reply(self, code: int) -> ControlMessage:
        """
        Read one reply and require its code.

        Raises:
            UnexpectedReply: the reply carries a different code
        """
        reply = await self.read_reply()
        if reply.code != code:
            raise UnexpectedReply(code, reply)
        return reply

    # === Server side ===

    async def read_command(self, expected_verb: Optional[str] = None) -> Command:
        """
        Read one command (server side).

        Args:
            expected_verb: when given, any other verb is a protocol violation

        Raises:
            ConnectionClosed: peer closed the connection
            ProtocolViolation: malformed line or unexpected verb
        """
        command = decode_command(await self.receive_line())
        logger.debug(f"<-- {command}")
        if expected_verb is not None and command.verb != expected_verb:
            raise ProtocolViolation(
                f"abnormal client flow: did not send {expected_verb} command "
                f"(got {command.verb})"
            )
        return command

    async def reply(self, code: ReplyCode, **fields):
        """Send one of the fixed replies (server side)."""
        data = format_reply(code, **fields)
        logger.debug(f"--> {data.decode().rstrip()}")
        await self.send_line(data)

    async def close(self):
        """Close the connection."""
        if not self._closed:
            self._closed = True
            self.writer.close()
            try:
                await self.writer.wait_closed()
            except (ConnectionError, OSError) as e:
                logger.debug(f"Error closing control connection: {e}")
