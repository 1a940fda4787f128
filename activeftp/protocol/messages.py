"""
Control Message Codec

Wire format (ASCII, one message per line):
```
request:   VERB[ PARAM]\r\n
response:  CODE TEXT\r\n
```

Commands and replies are symmetric on both ends: the client encodes
commands and decodes replies, the server does the opposite. Codes are
compared against an expected value by callers, never interpreted
generically.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from .errors import ConnectionClosed, ProtocolViolation

# Line terminator
CRLF = b'\r\n'

# Minimum verb length accepted from the wire
VERB_LENGTH = 4

# Upper bound of one control line
MAX_MESSAGE_SIZE = 512

ENCODING = 'ascii'


class ReplyCode(IntEnum):
    """Reply codes used by the server."""
    OPENING_DATA = 150
    PORT_OK = 200
    GREETING = 220
    GOODBYE = 221
    TRANSFER_COMPLETE = 226
    LOGGED_IN = 230
    FILE_SIZE = 299  # non-standard: announces the RETR byte count
    NEED_PASSWORD = 331
    CANT_OPEN_DATA = 425
    UNRECOGNIZED = 500
    LOGIN_INCORRECT = 530
    NOT_FOUND = 550


# Reply texts, formatted with str.format
REPLY_TEXT = {
    ReplyCode.OPENING_DATA: 'Opening BINARY mode data connection for {path} ({size} bytes)',
    ReplyCode.PORT_OK: 'PORT command successful',
    ReplyCode.GREETING: 'activeftp version {version}',
    ReplyCode.GOODBYE: 'Goodbye',
    ReplyCode.TRANSFER_COMPLETE: 'Transfer complete',
    ReplyCode.LOGGED_IN: 'User {user} logged in',
    ReplyCode.FILE_SIZE: 'File {path} size {size} bytes',
    ReplyCode.NEED_PASSWORD: 'Password required for {user}',
    ReplyCode.CANT_OPEN_DATA: "Can't open data connection",
    ReplyCode.UNRECOGNIZED: '{verb}: command not understood',
    ReplyCode.LOGIN_INCORRECT: 'Login incorrect',
    ReplyCode.NOT_FOUND: '{path}: no such file or directory',
}


@dataclass(frozen=True)
class Command:
    """A client command: fixed-length verb plus optional parameter."""
    verb: str
    parameter: Optional[str] = None

    def __str__(self) -> str:
        if self.verb == 'PASS' and self.parameter is not None:
            return 'PASS ****'
        if self.parameter is None:
            return self.verb
        return f"{self.verb} {self.parameter}"


@dataclass(frozen=True)
class ControlMessage:
    """A server reply: numeric status code plus free text."""
    code: int
    text: str = ''

    def __str__(self) -> str:
        return f"{self.code} {self.text}"


def _check_line_safe(value: str, what: str):
    if '\r' in value or '\n' in value:
        raise ValueError(f"{what} must not contain CR or LF: {value!r}")
    if not value.isascii():
        raise ValueError(f"{what} must be ASCII: {value!r}")


def validate_parameter(parameter: str):
    """Raise ValueError if parameter cannot travel on a command line."""
    _check_line_safe(parameter, 'parameter')


def encode_command(verb: str, parameter: Optional[str] = None) -> bytes:
    """
    Encode a command line.

    Returns:
        b"VERB PARAM\\r\\n", or b"VERB\\r\\n" when there is no parameter
    """
    _check_line_safe(verb, 'verb')
    if parameter is None:
        line = verb
    else:
        _check_line_safe(parameter, 'parameter')
        line = f"{verb} {parameter}"
    return line.encode(ENCODING) + CRLF


def encode_reply(code: int, text: str = '') -> bytes:
    """Encode a reply line: b"CODE TEXT\\r\\n"."""
    if not 100 <= code <= 599:
        raise ValueError(f"reply code out of range: {code}")
    _check_line_safe(text, 'text')
    return f"{code} {text}".encode(ENCODING) + CRLF


def format_reply(code: ReplyCode, **fields) -> bytes:
    """Encode one of the fixed replies, filling its text template."""
    return encode_reply(int(code), REPLY_TEXT[code].format(**fields))


def _strip_line(raw: bytes) -> str:
    if not raw:
        raise ConnectionClosed("peer closed the control connection")
    try:
        line = raw.decode(ENCODING)
    except UnicodeDecodeError as e:
        raise ProtocolViolation(f"non-ASCII control line: {raw!r}") from e
    # Everything after the first terminator is ignored
    for terminator in ('\r\n', '\n', '\r'):
        index = line.find(terminator)
        if index != -1:
            line = line[:index]
            break
    return line


def decode_reply(raw: bytes) -> ControlMessage:
    """
    Decode a reply line.

    The leading token must be an integer code; the remainder up to the
    terminator is returned verbatim as text.

    Raises:
        ConnectionClosed: raw is empty (peer closed)
        ProtocolViolation: the code is missing or not an integer
    """
    line = _strip_line(raw)
    code_token, _, text = line.partition(' ')
    try:
        code = int(code_token)
    except ValueError:
        raise ProtocolViolation(f"malformed reply: {line!r}") from None
    if not 100 <= code <= 599:
        raise ProtocolViolation(f"reply code out of range: {line!r}")
    return ControlMessage(code=code, text=text)


def decode_command(raw: bytes) -> Command:
    """
    Decode a command line, splitting on the first space.

    Raises:
        ConnectionClosed: raw is empty (peer closed)
        ProtocolViolation: the verb is empty or shorter than VERB_LENGTH
    """
    line = _strip_line(raw)
    verb, sep, parameter = line.partition(' ')
    if len(verb) < VERB_LENGTH:
        raise ProtocolViolation(f"not a valid ftp command: {line!r}")
    return Command(verb=verb.upper(), parameter=parameter if sep else None)
