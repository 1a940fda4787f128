"""
Data Channel Negotiation

Design Decision: Who Listens
============================

Active mode only. The side that issues PORT (always the client) listens;
the other side (always the server) connects out, for downloads and
uploads alike. Roles never swap.

PORT Encoding:
```
PORT h1,h2,h3,h4,p1,p2

h1..h4  IPv4 octets, in order
p1      port // 256
p2      port % 256
```

Lifetime:
    negotiate -> connect/accept -> transfer -> close

One data channel per transfer, no pooling, no reuse. The listener is
bound before PORT is sent, so the server's connect can never race
ahead of it.
"""

import asyncio
import ipaddress
import logging
import random
from dataclasses import dataclass
from typing import Iterable, Optional, Set, Tuple

from ..protocol.errors import ProtocolViolation, TransportError

logger = logging.getLogger(__name__)

# IANA dynamic/private port range
DYNAMIC_PORT_RANGE = (49152, 65535)

# Candidate ports tried before giving up on binding
MAX_BIND_ATTEMPTS = 32


def split_port(port: int) -> Tuple[int, int]:
    """Split a 16-bit port into its (high, low) PORT fields."""
    if not 0 <= port <= 65535:
        raise ValueError(f"port out of range: {port}")
    return port // 256, port % 256


def join_port(high: int, low: int) -> int:
    """Inverse of split_port()."""
    if not (0 <= high <= 255 and 0 <= low <= 255):
        raise ValueError(f"port fields out of range: {high},{low}")
    return 256 * high + low


@dataclass(frozen=True)
class DataEndpoint:
    """An IPv4 address and port advertised for one data channel."""
    host: str
    port: int

    def __post_init__(self):
        ipaddress.IPv4Address(self.host)
        if not 0 <= self.port <= 65535:
            raise ValueError(f"port out of range: {self.port}")

    def to_port_argument(self) -> str:
        """Encode as the PORT parameter: "h1,h2,h3,h4,p1,p2"."""
        high, low = split_port(self.port)
        octets = self.host.split('.')
        return ','.join([*octets, str(high), str(low)])

    @classmethod
    def from_port_argument(cls, argument: str) -> 'DataEndpoint':
        """
        Decode a PORT parameter.

        Raises:
            ProtocolViolation: not six comma-separated decimal fields in 0..255
        """
        fields = (argument or '').strip().split(',')
        if len(fields) != 6:
            raise ProtocolViolation(f"malformed PORT argument: {argument!r}")

        values = []
        for field in fields:
            field = field.strip()
            if not field.isdigit() or int(field) > 255:
                raise ProtocolViolation(f"malformed PORT argument: {argument!r}")
            values.append(int(field))

        host = '.'.join(str(v) for v in values[:4])
        return cls(host=host, port=join_port(values[4], values[5]))

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


class DataChannel:
    """
    An established data connection.

    Owned by exactly one transfer and closed right after it.
    """

    def __init__(self, reader: asyncio.StreamReader,
                 writer: asyncio.StreamWriter):
        self.reader = reader
        self.writer = writer
        self._closed = False

    @property
    def peer(self) -> Tuple[str, int]:
        return self.writer.get_extra_info('peername')[:2]

    async def close(self):
        """Flush and close the connection."""
        if self._closed:
            return
        self._closed = True
        try:
            if self.writer.can_write_eof():
                self.writer.write_eof()
        except (ConnectionError, OSError) as e:
            logger.debug(f"Error shutting down data channel: {e}")
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except (ConnectionError, OSError) as e:
            logger.debug(f"Error closing data channel: {e}")


def choose_port(port_range: Tuple[int, int] = DYNAMIC_PORT_RANGE,
                exclude: Iterable[int] = ()) -> int:
    """Pick a random candidate port in port_range that is not in exclude."""
    low, high = port_range
    excluded = set(exclude)
    if high - low + 1 <= len(excluded & set(range(low, high + 1))):
        raise TransportError(f"no unused ports left in {low}-{high}")
    while True:
        port = random.randint(low, high)
        if port not in excluded:
            return port


class DataListener:
    """
    Requester side of a data channel: a one-shot listening socket.

    Usage:
        listener = DataListener(host)
        endpoint = await listener.open()
        ... send PORT endpoint, send RETR/STOR, read 299/150 ...
        channel = await listener.accept()
        ...
        await listener.close()
    """

    def __init__(self, host: str,
                 port_range: Tuple[int, int] = DYNAMIC_PORT_RANGE,
                 used_ports: Optional[Set[int]] = None):
        """
        Args:
            host: our control-channel-visible address
            port_range: range candidate ports are drawn from
            used_ports: ports that must not be chosen (e.g. the previous
                data port); the chosen port is added to it
        """
        self.host = host
        self.port_range = port_range
        self.used_ports = used_ports if used_ports is not None else set()
        self.server: Optional[asyncio.AbstractServer] = None
        self.endpoint: Optional[DataEndpoint] = None
        self._accepted: Optional[asyncio.Future] = None

    async def open(self) -> DataEndpoint:
        """Bind and listen on a fresh candidate port."""
        self._accepted = asyncio.get_running_loop().create_future()
        tried: Set[int] = set()

        for _ in range(MAX_BIND_ATTEMPTS):
            port = choose_port(self.port_range, self.used_ports | tried)
            tried.add(port)
            try:
                self.server = await asyncio.start_server(
                    self._on_connect, self.host, port, backlog=1
                )
            except OSError as e:
                logger.debug(f"Cannot bind data port {port}: {e}")
                continue

            self.used_ports.add(port)
            self.endpoint = DataEndpoint(self.host, port)
            logger.debug(f"Listening for data channel on {self.endpoint}")
            return self.endpoint

        raise TransportError(
            f"cannot bind a data port on {self.host} after {MAX_BIND_ATTEMPTS} attempts"
        )

    async def _on_connect(self, reader: asyncio.StreamReader,
                          writer: asyncio.StreamWriter):
        """Hand the first inbound connection to accept(); refuse the rest."""
        channel = DataChannel(reader, writer)
        if self._accepted is None or self._accepted.done():
            logger.warning(f"Refusing extra data connection from {channel.peer}")
            await channel.close()
            return
        self._accepted.set_result(channel)

    async def accept(self, timeout: Optional[float] = None) -> DataChannel:
        """
        Wait for the peer to connect.

        Raises:
            TransportError: no connection within timeout
        """
        if self._accepted is None:
            raise RuntimeError("listener not open")
        try:
            channel = await asyncio.wait_for(asyncio.shield(self._accepted), timeout)
        except asyncio.TimeoutError:
            raise TransportError(f"accept data channel timed out on {self.endpoint}") from None
        logger.debug(f"Data channel accepted from {channel.peer}")
        return channel

    @property
    def accepted(self) -> asyncio.Future:
        """Future resolved with the DataChannel once the peer connects."""
        if self._accepted is None:
            raise RuntimeError("listener not open")
        return self._accepted

    async def close(self):
        """Stop listening and close the accepted channel, if any."""
        if self._accepted:
            if not self._accepted.done():
                self._accepted.cancel()
            elif not self._accepted.cancelled():
                await self._accepted.result().close()
        if self.server:
            # Server.wait_closed() also waits for accepted connections
            self.server.close()
            await self.server.wait_closed()
            self.server = None


async def connect_data_channel(endpoint: DataEndpoint,
                               timeout: float = 10.0) -> DataChannel:
    """
    Responder side: connect out to an advertised endpoint.

    Raises:
        TransportError: the connection could not be established
    """
    try:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(endpoint.host, endpoint.port),
            timeout=timeout
        )
    except (OSError, asyncio.TimeoutError) as e:
        raise TransportError(f"error on connect to data channel {endpoint}: {e}") from e
    logger.debug(f"Data channel connected to {endpoint}")
    return DataChannel(reader, writer)
