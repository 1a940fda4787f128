import pytest

from activeftp.protocol.errors import ConnectionClosed, ProtocolViolation
from activeftp.protocol.messages import (
    Command, ControlMessage, ReplyCode,
    decode_command, decode_reply, encode_command, encode_reply, format_reply,
    validate_parameter,
)


def test_encode_command_with_parameter():
    assert encode_command('USER', 'alice') == b'USER alice\r\n'


def test_encode_command_without_parameter():
    assert encode_command('QUIT') == b'QUIT\r\n'


@pytest.mark.parametrize('verb,parameter', [
    ('USER\r\n', 'alice'),
    ('RETR', 'a\nb'),
    ('STOR', 'x\ry//3'),
])
def test_encode_command_rejects_line_breaks(verb, parameter):
    with pytest.raises(ValueError):
        encode_command(verb, parameter)


@pytest.mark.parametrize('parameter', ['café.txt', '日本.bin'])
def test_non_ascii_parameter_is_a_value_error(parameter):
    with pytest.raises(ValueError):
        encode_command('RETR', parameter)
    with pytest.raises(ValueError):
        validate_parameter(parameter)


def test_decode_reply_keeps_text_verbatim():
    reply = decode_reply(b'299 File notes.txt size 1024 bytes\r\n')
    assert reply == ControlMessage(299, 'File notes.txt size 1024 bytes')


def test_decode_reply_ignores_bytes_after_terminator():
    reply = decode_reply(b'226 Transfer complete\r\ngarbage')
    assert reply.code == 226
    assert reply.text == 'Transfer complete'


def test_decode_reply_non_integer_code():
    with pytest.raises(ProtocolViolation):
        decode_reply(b'OK all good\r\n')


def test_decode_reply_zero_bytes_means_peer_closed():
    with pytest.raises(ConnectionClosed):
        decode_reply(b'')


def test_decode_command_splits_on_first_space():
    command = decode_command(b'RETR my file.txt\r\n')
    assert command == Command('RETR', 'my file.txt')


def test_decode_command_without_parameter():
    assert decode_command(b'QUIT\r\n') == Command('QUIT', None)


@pytest.mark.parametrize('raw', [b'\r\n', b'AB\r\n', b'XYZ param\r\n'])
def test_decode_command_rejects_short_verbs(raw):
    with pytest.raises(ProtocolViolation):
        decode_command(raw)


def test_format_reply_fills_template():
    data = format_reply(ReplyCode.FILE_SIZE, path='a.bin', size=42)
    assert data == b'299 File a.bin size 42 bytes\r\n'
    assert format_reply(ReplyCode.GOODBYE) == b'221 Goodbye\r\n'


def test_encode_reply_rejects_out_of_range_code():
    with pytest.raises(ValueError):
        encode_reply(42, 'nope')


def test_password_is_masked_in_str():
    assert str(Command('PASS', 'secret')) == 'PASS ****'
    assert str(Command('USER', 'alice')) == 'USER alice'
