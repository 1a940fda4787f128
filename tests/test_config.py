from pathlib import Path

import pytest

from activeftp.config import Config, load_config


def test_defaults():
    config = Config()
    assert config.block_size == 512
    assert config.max_message_size == 512
    assert config.data_port_range == (49152, 65535)
    assert config.credentials_file == Path('./ftpusers')


def test_file_round_trip(tmp_path):
    path = tmp_path / 'config.json'
    config = Config(root_dir=tmp_path / 'srv', block_size=4096,
                    data_port_range=(50000, 50100), log_level='DEBUG')
    config.save(path)

    loaded = Config.from_file(path)
    assert loaded.root_dir == tmp_path / 'srv'
    assert loaded.block_size == 4096
    assert loaded.data_port_range == (50000, 50100)
    assert loaded.log_level == 'DEBUG'


def test_missing_file_gives_defaults(tmp_path):
    assert Config.from_file(tmp_path / 'absent.json') == Config()


def test_env_overrides_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    path = tmp_path / 'config.json'
    Config(block_size=1024, log_level='WARNING').save(path)

    monkeypatch.setenv('ACTIVEFTP_BLOCK_SIZE', '2048')
    monkeypatch.setenv('ACTIVEFTP_DATA_PORT_RANGE', '51000-51999')

    config = load_config(path)
    assert config.block_size == 2048
    assert config.data_port_range == (51000, 51999)
    assert config.log_level == 'WARNING'


def test_unknown_keys_are_ignored(tmp_path):
    path = tmp_path / 'config.json'
    path.write_text('{"block_size": 256, "colour": "blue"}')
    assert Config.from_file(path).block_size == 256


def test_bad_port_range_rejected(monkeypatch):
    monkeypatch.setenv('ACTIVEFTP_DATA_PORT_RANGE', '60000-50000')
    with pytest.raises(ValueError):
        load_config()


def test_from_env_reads_prefixed_variables(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv('ACTIVEFTP_ROOT_DIR', str(tmp_path / 'srv'))
    monkeypatch.setenv('ACTIVEFTP_LOG_LEVEL', 'debug')
    monkeypatch.setenv('ACTIVEFTP_HOST', '')

    config = Config.from_env()
    assert config.root_dir == tmp_path / 'srv'
    assert config.log_level == 'DEBUG'
    assert config.host == '0.0.0.0'
