"""
Protocol Module - Control Channel Messages

Command/response framing shared by client and server.
"""

from .errors import (
    FtpError, TransportError, ConnectionClosed, ProtocolViolation,
    UnexpectedReply, LoginFailed,
)
from .messages import (
    Command, ControlMessage, ReplyCode, MAX_MESSAGE_SIZE,
    encode_command, encode_reply, decode_command, decode_reply, format_reply,
    validate_parameter,
)
from .channel import ControlChannel

__all__ = [
    'FtpError',
    'TransportError',
    'ConnectionClosed',
    'ProtocolViolation',
    'UnexpectedReply',
    'LoginFailed',
    'Command',
    'ControlMessage',
    'ReplyCode',
    'MAX_MESSAGE_SIZE',
    'encode_command',
    'encode_reply',
    'decode_command',
    'decode_reply',
    'format_reply',
    'validate_parameter',
    'ControlChannel',
]
