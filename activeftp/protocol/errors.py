"""
Protocol Errors

Error classes shared by both ends of a session:

- TransportError: the socket failed or the peer went away
- ProtocolViolation: the peer said something it should not have
- LoginFailed: the server rejected the credentials
"""

from typing import Optional


class FtpError(Exception):
    """Base class for all activeftp errors."""


class TransportError(FtpError):
    """A control or data socket failed."""


class ConnectionClosed(TransportError):
    """The peer closed the connection (zero-byte read)."""


class ProtocolViolation(FtpError):
    """The peer broke the command/response contract."""


class UnexpectedReply(ProtocolViolation):
    """A reply arrived with a code other than the one expected."""

    def __init__(self, expected: int, reply):
        self.expected = expected
        self.reply = reply
        super().__init__(f"expected {expected}, got {reply.code} {reply.text}")


class LoginFailed(FtpError):
    """The server answered 530 to our credentials."""

    def __init__(self, user: Optional[str] = None):
        self.user = user
        super().__init__(f"login incorrect for {user}" if user else "login incorrect")
