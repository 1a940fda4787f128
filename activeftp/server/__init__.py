"""
Server Module - Control Connections and Sessions

Accepts control connections and runs one session state machine per
connection.
"""

from .dispatcher import CommandDispatcher, READY_VERBS
from .session import FtpSession, SessionState, default_dispatcher
from .listener import FtpServer

__all__ = [
    'CommandDispatcher',
    'READY_VERBS',
    'FtpSession',
    'SessionState',
    'default_dispatcher',
    'FtpServer',
]
