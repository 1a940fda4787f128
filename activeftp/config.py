"""
Settings shared by the client and the server.

Values are layered: dataclass defaults, then an optional JSON file, then
ACTIVEFTP_* environment variables (a .env file in the working directory
is read first). Every setting goes through one converter, so the JSON
file and the environment accept the same spellings.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Tuple

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

ENV_PREFIX = 'ACTIVEFTP_'


def _port_range(value) -> Tuple[int, int]:
    # "low-high" from the environment, [low, high] from JSON
    if isinstance(value, str):
        value = value.split('-')
    low, high = (int(v) for v in value)
    if not 0 < low <= high <= 65535:
        raise ValueError(f"bad port range {low}-{high}")
    return low, high


def _positive_int(value) -> int:
    number = int(value)
    if number <= 0:
        raise ValueError(f"expected a positive integer, got {value!r}")
    return number


_CONVERTERS = {
    'host': str,
    'root_dir': Path,
    'download_dir': Path,
    'credentials_file': Path,
    'block_size': _positive_int,
    'max_message_size': _positive_int,
    'data_port_range': _port_range,
    'data_connect_timeout': float,
    'data_accept_timeout': float,
    'log_level': lambda value: str(value).upper(),
}


@dataclass
class Config:
    """Runtime settings; see the module docstring for precedence."""
    host: str = '0.0.0.0'

    root_dir: Path = field(default_factory=lambda: Path('.'))
    download_dir: Path = field(default_factory=lambda: Path('.'))
    credentials_file: Path = field(default_factory=lambda: Path('./ftpusers'))

    block_size: int = 512
    max_message_size: int = 512
    data_port_range: Tuple[int, int] = (49152, 65535)

    # Seconds; only the data channel is ever timed out
    data_connect_timeout: float = 10.0
    data_accept_timeout: float = 30.0

    log_level: str = 'INFO'

    def update(self, values: Mapping[str, Any]) -> 'Config':
        """Apply raw values by setting name. Unknown names are skipped."""
        for name, raw in values.items():
            convert = _CONVERTERS.get(name)
            if convert is None:
                logger.warning(f"Ignoring unknown setting {name!r}")
                continue
            try:
                setattr(self, name, convert(raw))
            except (TypeError, ValueError) as e:
                raise ValueError(f"invalid value for {name}: {e}") from e
        return self

    @classmethod
    def from_env(cls) -> 'Config':
        """Defaults overlaid with ACTIVEFTP_* variables."""
        load_dotenv()
        return cls().update(env_settings())

    @classmethod
    def from_file(cls, path: Path) -> 'Config':
        """Defaults overlaid with a JSON file; a missing file gives defaults."""
        path = Path(path)
        if not path.is_file():
            return cls()
        return cls().update(json.loads(path.read_text()))

    def to_dict(self) -> dict:
        data = asdict(self)
        for name, value in data.items():
            if isinstance(value, Path):
                data[name] = str(value)
        data['data_port_range'] = list(self.data_port_range)
        return data

    def save(self, path: Path):
        Path(path).write_text(json.dumps(self.to_dict(), indent=2) + '\n')


def env_settings() -> dict:
    """Raw ACTIVEFTP_* values that are set and non-empty."""
    found = {}
    for name in _CONVERTERS:
        value = os.environ.get(ENV_PREFIX + name.upper())
        if value:
            found[name] = value
    return found


def load_config(config_path: Optional[Path] = None) -> Config:
    """Defaults, then the JSON file (if any), then the environment."""
    config = Config.from_file(config_path) if config_path else Config()
    load_dotenv()
    return config.update(env_settings())
