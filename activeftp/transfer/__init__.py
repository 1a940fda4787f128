"""
Transfer Module - Data Channels and File Transfer

Handles PORT negotiation and the length-driven block loops that move
file bytes over a data channel.
"""

from .dataport import (
    DataEndpoint, DataChannel, DataListener, connect_data_channel,
    split_port, join_port, choose_port, DYNAMIC_PORT_RANGE,
)
from .engine import (
    TransferDescriptor, TransferResult, send_file, receive_file,
    parse_size_announcement, BLOCK_SIZE, STOR_DELIMITER,
)

__all__ = [
    'DataEndpoint',
    'DataChannel',
    'DataListener',
    'connect_data_channel',
    'split_port',
    'join_port',
    'choose_port',
    'DYNAMIC_PORT_RANGE',
    'TransferDescriptor',
    'TransferResult',
    'send_file',
    'receive_file',
    'parse_size_announcement',
    'BLOCK_SIZE',
    'STOR_DELIMITER',
]
