"""
Control Connection Listener

Design Decision: Concurrency Model
==================================

Options Considered:
1. Process per connection (fork + SIGCHLD reaping)
   - Strong isolation
   - Heavy, and zombie handling is easy to get wrong

2. Thread per connection
   - Blocking sockets, simple handlers
   - Shared interpreter state, harder shutdown

3. One asyncio task per connection
   - Lightweight, single event loop
   - Sessions own their sockets; nothing mutable is shared

Decision: asyncio task per session
- Each accepted control connection runs one FtpSession in its own task
- Finished tasks are reaped from a done-callback; the accept loop never
  waits on a session
- Within a session everything is sequential: control read -> data
  channel setup -> transfer loop -> control read
"""

import asyncio
import logging
from typing import Optional, Set

from ..auth.credentials import CredentialStore
from ..config import Config
from ..protocol.channel import ControlChannel
from .session import FtpSession

logger = logging.getLogger(__name__)


class FtpServer:
    """
    TCP server for control connections.

    Accepts connections and runs one FtpSession per connection.
    """

    def __init__(self, config: Optional[Config] = None, port: int = 21,
                 credentials: Optional[CredentialStore] = None):
        self.config = config or Config()
        self.host = self.config.host
        self.port = port
        self.credentials = credentials or CredentialStore(self.config.credentials_file)
        self.server: Optional[asyncio.AbstractServer] = None
        self._sessions: Set[asyncio.Task] = set()
        self._running = False

        # Statistics
        self.sessions_served = 0
        self.transfers = 0
        self.bytes_sent = 0
        self.bytes_received = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def active_sessions(self) -> int:
        return len(self._sessions)

    async def start(self):
        """Start listening for control connections."""
        self.server = await asyncio.start_server(
            self._handle_connection,
            self.host,
            self.port,
            reuse_address=True,
        )
        self._running = True

        # Pick up the real port when bound to port 0
        addr = self.server.sockets[0].getsockname()
        self.port = addr[1]
        logger.info(f"FTP server listening on {addr[0]}:{addr[1]}")

    async def serve_forever(self):
        """Start (if needed) and serve until cancelled."""
        if self.server is None:
            await self.start()
        async with self.server:
            await self.server.serve_forever()

    async def stop(self):
        """Stop accepting and cancel running sessions."""
        self._running = False
        if self.server:
            self.server.close()

        for task in list(self._sessions):
            task.cancel()
        if self._sessions:
            await asyncio.gather(*self._sessions, return_exceptions=True)

        if self.server:
            await self.server.wait_closed()
            self.server = None
        logger.info(f"FTP server stopped. Served {self.sessions_served} sessions, "
                    f"{self.transfers} transfers")

    async def _handle_connection(self, reader: asyncio.StreamReader,
                                 writer: asyncio.StreamWriter):
        """Run one session in the task asyncio created for this connection."""
        task = asyncio.current_task()
        self._sessions.add(task)
        task.add_done_callback(self._reap)

        channel = ControlChannel(reader, writer, self.config.max_message_size)
        session = FtpSession(channel, self.credentials, self.config)
        peer = channel.remote_address
        logger.info(f"New control connection from {peer}")

        try:
            await session.run()
        except Exception as e:
            logger.error(f"Error handling session from {peer}: {e}")
        finally:
            self.sessions_served += 1
            self.transfers += session.transfers
            self.bytes_sent += session.bytes_sent
            self.bytes_received += session.bytes_received
            logger.info(f"Connection closed: {peer}")

    def _reap(self, task: asyncio.Task):
        """Drop a finished session task."""
        self._sessions.discard(task)

    def get_stats(self) -> dict:
        """Get server statistics."""
        return {
            'port': self.port,
            'active_sessions': self.active_sessions,
            'sessions_served': self.sessions_served,
            'transfers': self.transfers,
            'bytes_sent': self.bytes_sent,
            'bytes_received': self.bytes_received,
        }
