import pytest
from click.testing import CliRunner

from activeftp.cli import cli


@pytest.mark.parametrize('ip', ['256.0.0.1', '10.0.0', '10.0.0.1.5', 'localhost', '1.2.3.x'])
def test_connect_rejects_bad_ip(ip):
    result = CliRunner().invoke(cli, ['connect', ip, '2121'])
    assert result.exit_code != 0
    assert 'Invalid IP' in result.output


@pytest.mark.parametrize('port', ['65536', '-1', 'ftp'])
def test_connect_rejects_bad_port(port):
    result = CliRunner().invoke(cli, ['connect', '127.0.0.1', '--', port])
    assert result.exit_code != 0
    assert 'Invalid port' in result.output


def test_serve_rejects_bad_port():
    result = CliRunner().invoke(cli, ['serve', '99999'])
    assert result.exit_code != 0
    assert 'Invalid port' in result.output


def test_connect_refused_exits_nonzero():
    # Port 1 on loopback has no listener in the test environment
    result = CliRunner().invoke(cli, ['connect', '127.0.0.1', '1'])
    assert result.exit_code == 1
    assert 'connect failed' in result.output
