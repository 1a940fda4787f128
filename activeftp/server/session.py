"""
Server Session

Design Decision: Session Lifecycle
==================================

States:
```
GREETING -> AUTHENTICATING -> READY -> CLOSED
                  |                      ^
                  +---- any deviation ---+
```

- GREETING: 220 is sent right after accept, before anything is read
- AUTHENTICATING: exactly USER then PASS. A wrong verb or bad
  credentials ends the session with 530
- READY: read a command, dispatch by verb, repeat. Unknown verbs get
  500 and the loop continues
- CLOSED: QUIT (221), peer disconnect, or protocol violation

Each transfer consumes the endpoint recorded by the preceding PORT, so
one PORT serves exactly one data channel, and the 226 (or error) reply
is sent only after that channel is closed.
"""

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

from .. import __version__
from ..auth.credentials import CredentialStore
from ..config import Config
from ..protocol.channel import ControlChannel
from ..protocol.errors import ConnectionClosed, ProtocolViolation, TransportError
from ..protocol.messages import Command, ReplyCode
from ..transfer.dataport import DataEndpoint, connect_data_channel
from ..transfer.engine import TransferDescriptor, receive_file, send_file
from ..utils import resolve_path
from .dispatcher import CommandDispatcher

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Lifecycle of one control connection."""
    GREETING = 'greeting'
    AUTHENTICATING = 'authenticating'
    READY = 'ready'
    CLOSED = 'closed'


class FtpSession:
    """
    Server side of one control connection.

    Owned by exactly one worker task; shares nothing with other
    sessions except the read-only credential store.
    """

    def __init__(self, channel: ControlChannel, credentials: CredentialStore,
                 config: Optional[Config] = None,
                 dispatcher: Optional[CommandDispatcher] = None):
        self.channel = channel
        self.credentials = credentials
        self.config = config or Config()
        self.dispatcher = dispatcher or default_dispatcher
        self.root_dir = Path(self.config.root_dir)

        self.state = SessionState.GREETING
        self.authenticated_user: Optional[str] = None
        self.data_endpoint: Optional[DataEndpoint] = None

        # Statistics
        self.transfers = 0
        self.bytes_sent = 0
        self.bytes_received = 0

    @property
    def peer(self) -> Tuple[str, int]:
        return self.channel.remote_address

    async def run(self):
        """Drive the session from greeting to close."""
        try:
            await self._greet()
            if await self._authenticate():
                await self._command_loop()
        except TransportError as e:
            logger.info(f"Connection to {self.peer} lost: {e}")
        finally:
            self.state = SessionState.CLOSED
            await self.channel.close()

    async def _greet(self):
        await self.channel.reply(ReplyCode.GREETING, version=__version__)
        self.state = SessionState.AUTHENTICATING

    async def _authenticate(self) -> bool:
        """USER then PASS, in that order. Returns True on success."""
        try:
            user = (await self.channel.read_command('USER')).parameter or ''
            await self.channel.reply(ReplyCode.NEED_PASSWORD, user=user)
            password = (await self.channel.read_command('PASS')).parameter or ''
        except ProtocolViolation as e:
            logger.warning(f"Login aborted for {self.peer}: {e}")
            await self.channel.reply(ReplyCode.LOGIN_INCORRECT)
            return False

        if not await self.credentials.check(user, password):
            logger.warning(f"Login incorrect for {user!r} from {self.peer}")
            await self.channel.reply(ReplyCode.LOGIN_INCORRECT)
            return False

        self.authenticated_user = user
        self.state = SessionState.READY
        logger.info(f"User {user} logged in from {self.peer}")
        await self.channel.reply(ReplyCode.LOGGED_IN, user=user)
        return True

    async def _command_loop(self):
        while self.state is SessionState.READY:
            try:
                command = await self.channel.read_command()
                await self.dispatcher.dispatch(self, command)
            except ConnectionClosed:
                logger.info(f"Client {self.peer} closed the connection")
                await self._goodbye()
            except ProtocolViolation as e:
                logger.warning(f"Protocol violation from {self.peer}: {e}")
                await self._goodbye()

    async def _goodbye(self):
        """Send 221 if the channel is still writable, then close."""
        self.state = SessionState.CLOSED
        if self.channel.is_closed:
            return
        try:
            await self.channel.reply(ReplyCode.GOODBYE)
        except TransportError as e:
            logger.debug(f"Goodbye not delivered to {self.peer}: {e}")

    def take_data_endpoint(self) -> Optional[DataEndpoint]:
        """Consume the endpoint of the last PORT (one per transfer)."""
        endpoint, self.data_endpoint = self.data_endpoint, None
        return endpoint

    def get_stats(self) -> dict:
        """Get session statistics."""
        return {
            'user': self.authenticated_user,
            'state': self.state.value,
            'transfers': self.transfers,
            'bytes_sent': self.bytes_sent,
            'bytes_received': self.bytes_received,
        }


# === Command handlers (READY state) ===

default_dispatcher = CommandDispatcher()


@default_dispatcher.on_command('PORT')
async def handle_port(session: FtpSession, command: Command):
    """Record the client's data endpoint for the next transfer."""
    session.data_endpoint = DataEndpoint.from_port_argument(command.parameter)
    logger.debug(f"Data endpoint for {session.peer}: {session.data_endpoint}")
    await session.channel.reply(ReplyCode.PORT_OK)


@default_dispatcher.on_command('RETR')
async def handle_retr(session: FtpSession, command: Command):
    """
    Download: announce the size (299), connect out, stream, close, 226.

    A missing or unreadable file gets 550 with no data-channel activity.
    """
    name = command.parameter or ''
    path = resolve_path(session.root_dir, name)
    endpoint = session.take_data_endpoint()

    if path is None or not path.is_file() or not os.access(path, os.R_OK):
        logger.warning(f"Error opening file {name!r} for {session.peer}")
        await session.channel.reply(ReplyCode.NOT_FOUND, path=name)
        return

    if endpoint is None:
        await session.channel.reply(ReplyCode.CANT_OPEN_DATA)
        return

    size = path.stat().st_size
    await session.channel.reply(ReplyCode.FILE_SIZE, path=name, size=size)

    try:
        data_channel = await connect_data_channel(
            endpoint, timeout=session.config.data_connect_timeout
        )
    except TransportError as e:
        logger.warning(str(e))
        await session.channel.reply(ReplyCode.CANT_OPEN_DATA)
        return

    try:
        result = await send_file(data_channel, path, size, session.config.block_size)
    except OSError as e:
        logger.warning(f"Error sending file {name!r}: {e}")
    else:
        session.bytes_sent += result.transferred_bytes
        if not result.complete:
            logger.warning(f"RETR {name} sent {result.transferred_bytes}/{size} bytes")
    finally:
        await data_channel.close()

    session.transfers += 1
    logger.info(f"RETR {name} ({size} bytes) to {session.peer}")
    await session.channel.reply(ReplyCode.TRANSFER_COMPLETE)


@default_dispatcher.on_command('STOR')
async def handle_stor(session: FtpSession, command: Command):
    """
    Upload: parse "name//size", 150, connect out, read exactly size
    bytes, close, 226.
    """
    descriptor = TransferDescriptor.from_stor_argument(command.parameter)
    path = resolve_path(session.root_dir, descriptor.path)
    endpoint = session.take_data_endpoint()

    if (path is None or path.is_dir() or not path.parent.is_dir()
            or not os.access(path.parent, os.W_OK)):
        logger.warning(f"Cannot store {descriptor.path!r} for {session.peer}")
        await session.channel.reply(ReplyCode.NOT_FOUND, path=descriptor.path)
        return

    if endpoint is None:
        await session.channel.reply(ReplyCode.CANT_OPEN_DATA)
        return

    await session.channel.reply(
        ReplyCode.OPENING_DATA, path=descriptor.path, size=descriptor.size
    )

    try:
        data_channel = await connect_data_channel(
            endpoint, timeout=session.config.data_connect_timeout
        )
    except TransportError as e:
        logger.warning(str(e))
        await session.channel.reply(ReplyCode.CANT_OPEN_DATA)
        return

    try:
        result = await receive_file(
            data_channel, path, descriptor.size, session.config.block_size
        )
    except OSError as e:
        logger.warning(f"Error writing file {descriptor.path!r}: {e}")
    else:
        session.bytes_received += result.transferred_bytes
        if not result.complete:
            logger.warning(f"STOR {descriptor.path} received "
                           f"{result.transferred_bytes}/{descriptor.size} bytes")
    finally:
        await data_channel.close()

    session.transfers += 1
    logger.info(f"STOR {descriptor.path} ({descriptor.size} bytes) from {session.peer}")
    await session.channel.reply(ReplyCode.TRANSFER_COMPLETE)


@default_dispatcher.on_command('QUIT')
async def handle_quit(session: FtpSession, command: Command):
    """Say goodbye; the session closes the control socket."""
    logger.info(f"User {session.authenticated_user} quit from {session.peer}")
    await session.channel.reply(ReplyCode.GOODBYE)
    session.state = SessionState.CLOSED
