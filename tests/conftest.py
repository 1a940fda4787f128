import asyncio

import pytest

from activeftp.config import Config
from activeftp.server import FtpServer


@pytest.fixture
def server_root(tmp_path):
    root = tmp_path / 'srv'
    root.mkdir()
    return root


@pytest.fixture
def download_dir(tmp_path):
    downloads = tmp_path / 'downloads'
    downloads.mkdir()
    return downloads


@pytest.fixture
def credentials_file(tmp_path):
    path = tmp_path / 'ftpusers'
    path.write_text('alice:correctpass\nbob:hunter2\n')
    return path


@pytest.fixture
def config(server_root, download_dir, credentials_file):
    return Config(
        host='127.0.0.1',
        root_dir=server_root,
        download_dir=download_dir,
        credentials_file=credentials_file,
        data_connect_timeout=5.0,
        data_accept_timeout=5.0,
    )


@pytest.fixture
def with_server(config):
    """
    Run `scenario(server)` against a live server on an ephemeral port.

    Returns whatever the scenario returns.
    """
    def run(scenario, timeout=15.0):
        async def main():
            server = FtpServer(config, port=0)
            await server.start()
            try:
                return await asyncio.wait_for(scenario(server), timeout)
            finally:
                await server.stop()
        return asyncio.run(main())
    return run
