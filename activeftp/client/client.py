"""
FTP Client

Client side of every exchange. One command at a time; each transfer
runs to completion (data channel closed, 226 read) before the next
command is sent.

Download Flow:
1. Listen on a fresh data port (our control-channel address)
2. PORT h1,h2,h3,h4,p1,p2    -> 200
3. RETR name                 -> 299 "File name size N bytes" (or 550)
4. Accept the server's data connection, read exactly N bytes
5. Close the data channel    -> 226

Upload Flow:
1-2. as above
3. STOR name//N              -> 150 (or 550)
4. Accept, write exactly N bytes
5. Close the data channel    -> 226
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from ..config import Config
from ..protocol.channel import ControlChannel, ReplyObserver
from ..protocol.errors import LoginFailed, TransportError, UnexpectedReply
from ..protocol.messages import ControlMessage, ReplyCode, validate_parameter
from ..transfer.dataport import DataChannel, DataListener
from ..transfer.engine import (
    TransferDescriptor, TransferResult, parse_size_announcement,
    receive_file, send_file,
)

logger = logging.getLogger(__name__)


class FtpClient:
    """
    An active-mode client bound to one control connection.

    Usage:
        client = await FtpClient.connect('127.0.0.1', 2121)
        await client.login('alice', 'secret')
        await client.get('report.txt')
        await client.quit()
    """

    def __init__(self, channel: ControlChannel, config: Optional[Config] = None):
        self.channel = channel
        self.config = config or Config()
        self.download_dir = Path(self.config.download_dir)
        self.user: Optional[str] = None

        # Port of the previous data channel; the next one must differ
        self.last_data_port: Optional[int] = None

        # Statistics
        self.files_downloaded = 0
        self.files_uploaded = 0
        self.total_bytes = 0

    @classmethod
    async def connect(cls, host: str, port: int, config: Optional[Config] = None,
                      on_reply: Optional[ReplyObserver] = None) -> 'FtpClient':
        """
        Open the control connection and read the greeting.

        Raises:
            TransportError: cannot connect
            UnexpectedReply: the server did not greet with 220
        """
        config = config or Config()
        channel = await ControlChannel.connect(
            host, port, config.max_message_size, on_reply
        )
        client = cls(channel, config)
        try:
            await channel.expect_reply(ReplyCode.GREETING)
        except BaseException:
            await channel.close()
            raise
        logger.debug(f"Connected to {host}:{port}")
        return client

    async def login(self, user: str, password: str):
        """
        USER then PASS.

        Raises:
            LoginFailed: the server answered 530
            UnexpectedReply: any other unexpected reply
        """
        await self.channel.send_command('USER', user)
        await self._expect_login_step(ReplyCode.NEED_PASSWORD, user)

        await self.channel.send_command('PASS', password)
        await self._expect_login_step(ReplyCode.LOGGED_IN, user)

        self.user = user

    async def _expect_login_step(self, code: ReplyCode, user: str):
        reply = await self.channel.read_reply()
        if reply.code == ReplyCode.LOGIN_INCORRECT:
            raise LoginFailed(user)
        if reply.code != code:
            raise UnexpectedReply(code, reply)

    async def _open_data_port(self) -> DataListener:
        """
        Listen on a fresh port and announce it with PORT.

        Raises:
            UnexpectedReply: the server did not answer 200; the listener
                is closed and no accept is attempted
        """
        host = self.channel.local_address[0]
        exclude = {self.last_data_port} if self.last_data_port is not None else set()
        listener = DataListener(host, self.config.data_port_range, exclude)
        endpoint = await listener.open()
        self.last_data_port = endpoint.port
        try:
            await self.channel.send_command('PORT', endpoint.to_port_argument())
            await self.channel.expect_reply(ReplyCode.PORT_OK)
        except BaseException:
            await listener.close()
            raise
        return listener

    async def _await_data_channel(self, listener: DataListener,
                                  reply_task: asyncio.Task) -> Optional[DataChannel]:
        """
        Wait for the server's data connection.

        The server may instead answer on the control channel (425) when it
        cannot connect; that reply wins and None is returned. A 226 can
        also overtake our accept when the whole file fit in the socket
        buffers; the connection is then already queued and is accepted.
        """
        done, _ = await asyncio.wait(
            {listener.accepted, reply_task},
            timeout=self.config.data_accept_timeout,
            return_when=asyncio.FIRST_COMPLETED,
        )
        if listener.accepted in done:
            return listener.accepted.result()
        if reply_task in done:
            if reply_task.result().code != ReplyCode.TRANSFER_COMPLETE:
                return None
            return await listener.accept(self.config.data_accept_timeout)
        reply_task.cancel()
        raise TransportError(f"accept data channel timed out on {listener.endpoint}")

    async def _transfer(self, verb: str, listener: DataListener,
                        descriptor: TransferDescriptor,
                        block_loop) -> Optional[TransferResult]:
        """
        Run one data transfer after the server accepted RETR/STOR.

        The terminal reply is always read, even when the local side of
        the block loop fails.
        """
        reply_task = asyncio.ensure_future(self.channel.read_reply())
        try:
            data_channel = await self._await_data_channel(listener, reply_task)
            if data_channel is None:
                logger.warning(f"{verb} {descriptor.path}: {reply_task.result()}")
                return None

            try:
                result = await block_loop(data_channel)
            except OSError as e:
                logger.warning(f"{verb} {descriptor.path}: local I/O error: {e}")
                result = TransferResult(path=Path(descriptor.path),
                                        expected_bytes=descriptor.size)
            finally:
                await data_channel.close()

            reply: ControlMessage = await reply_task
        finally:
            if not reply_task.done():
                reply_task.cancel()

        if reply.code != ReplyCode.TRANSFER_COMPLETE:
            logger.warning(f"Abnormally {verb} terminated: {reply}")
        return result

    async def get(self, remote_name: str,
                  local_path: Optional[Path] = None) -> Optional[TransferResult]:
        """
        Download a file.

        Returns:
            TransferResult, or None if the server refused (e.g. 550)

        Raises:
            ValueError: remote_name cannot be sent (nothing is sent)
        """
        validate_parameter(remote_name)
        if local_path is None:
            local_path = self.download_dir / Path(remote_name).name
        local_path = Path(local_path)

        listener = await self._open_data_port()
        try:
            await self.channel.send_command('RETR', remote_name)
            reply = await self.channel.read_reply()
            if reply.code != ReplyCode.FILE_SIZE:
                logger.info(f"RETR {remote_name} refused: {reply}")
                return None

            descriptor = TransferDescriptor(remote_name, parse_size_announcement(reply.text))
            result = await self._transfer(
                'RETR', listener, descriptor,
                lambda channel: receive_file(
                    channel, local_path, descriptor.size, self.config.block_size
                ),
            )
        finally:
            await listener.close()

        if result and result.complete:
            self.files_downloaded += 1
            self.total_bytes += result.transferred_bytes
        return result

    async def put(self, local_path: Path,
                  remote_name: Optional[str] = None) -> Optional[TransferResult]:
        """
        Upload a file.

        Returns:
            TransferResult, or None if the server refused

        Raises:
            FileNotFoundError: local_path does not exist (nothing is sent)
            ValueError: the remote name cannot be sent (nothing is sent)
        """
        local_path = Path(local_path)
        if not local_path.is_file():
            raise FileNotFoundError(f"{local_path}: no such file")

        descriptor = TransferDescriptor(remote_name or local_path.name,
                                        local_path.stat().st_size)
        validate_parameter(descriptor.to_stor_argument())

        listener = await self._open_data_port()
        try:
            await self.channel.send_command('STOR', descriptor.to_stor_argument())
            reply = await self.channel.read_reply()
            if reply.code != ReplyCode.OPENING_DATA:
                logger.info(f"STOR {descriptor.path} refused: {reply}")
                return None

            result = await self._transfer(
                'STOR', listener, descriptor,
                lambda channel: send_file(
                    channel, local_path, descriptor.size, self.config.block_size
                ),
            )
        finally:
            await listener.close()

        if result and result.complete:
            self.files_uploaded += 1
            self.total_bytes += result.transferred_bytes
        return result

    async def quit(self):
        """
        QUIT and close the control connection.

        Raises:
            UnexpectedReply: the server did not answer 221
        """
        try:
            await self.channel.send_command('QUIT')
            await self.channel.expect_reply(ReplyCode.GOODBYE)
        finally:
            await self.channel.close()

    async def close(self):
        await self.channel.close()

    def get_stats(self) -> dict:
        """Get client statistics."""
        return {
            'files_downloaded': self.files_downloaded,
            'files_uploaded': self.files_uploaded,
            'total_bytes': self.total_bytes,
        }
