import os
import re
import sys
from dataclasses import dataclass
from typing import Optional, Tuple

import yaml

DEFAULT_CONFIG = {
    "address": None,          # "[host]:port"
    "output": None,           # шаблон за име на файл; None -> stdout
    "gzip": False,
    "append": False,
    "mutex": False,
    "chunk": False,
    "udp": False,
    "udp_bufsize": "64KB",
    "verbose": False,
    "max_line_length": sys.maxsize // 2,
}

CONFIG_PATHS = ("/etc/netsink/config.yaml", "config.yaml")

_SIZE_RE = re.compile(r'^\s*(\d+)\s*([KMGT]?)(I?B)?\s*$', re.I)
_UNITS = {"": 1, "K": 1 << 10, "M": 1 << 20, "G": 1 << 30, "T": 1 << 40}


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class SinkConfig:
    host: str
    port: int
    output: Optional[str] = None
    gzip: bool = False
    append: bool = False
    mutex: bool = False
    chunk: bool = False
    udp: bool = False
    udp_bufsize: int = 64 * 1024
    verbose: bool = False
    max_line_length: int = sys.maxsize // 2

    @property
    def address(self) -> str:
        return f"[{self.host}]:{self.port}" if ':' in self.host else f"{self.host}:{self.port}"


def parse_size(value) -> int:
    """ "64KB" -> 65536; plain ints pass through. Units are 1024-based. """
    if isinstance(value, bool):
        raise ConfigError(f"invalid size: {value!r}")
    if isinstance(value, int):
        n = value
    else:
        m = _SIZE_RE.match(str(value))
        if not m:
            raise ConfigError(f"invalid size: {value!r}")
        n = int(m.group(1)) * _UNITS[m.group(2).upper()]
    if n <= 0:
        raise ConfigError(f"size must be positive: {value!r}")
    return n


def parse_address(addr: Optional[str]) -> Tuple[str, int]:
    """ "[::1]:9000" -> ("::1", 9000); ":9000" -> ("", 9000) """
    if addr is None or ':' not in str(addr):
        raise ConfigError(f"invalid listening address: {addr!r}")
    host, _, port = str(addr).rpartition(':')
    if host.startswith('[') and host.endswith(']'):
        host = host[1:-1]
    try:
        port_num = int(port)
    except ValueError:
        raise ConfigError(f"invalid port in address: {addr!r}") from None
    if not 0 <= port_num <= 65535:
        raise ConfigError(f"port out of range in address: {addr!r}")
    return host, port_num


def load_config(path: Optional[str] = None) -> dict:
    """
    DEFAULT_CONFIG updated with the first YAML file found.
    An explicit path must exist; the default locations are optional.
    """
    config = dict(DEFAULT_CONFIG)
    if path:
        candidates = [path]
        if not os.path.exists(path):
            raise ConfigError(f"config file not found: {path}")
    else:
        candidates = [p for p in CONFIG_PATHS if os.path.exists(p)]
    for p in candidates:
        with open(p, 'r') as f:
            user_config = yaml.safe_load(f)
        if user_config:
            if not isinstance(user_config, dict):
                raise ConfigError(f"{p}: expected a mapping")
            unknown = set(user_config) - set(DEFAULT_CONFIG)
            if unknown:
                raise ConfigError(f"{p}: unknown keys: {', '.join(sorted(unknown))}")
            config.update(user_config)
        break
    return config


def build_config(raw: dict) -> SinkConfig:
    host, port = parse_address(raw.get("address"))
    output = raw.get("output") or None
    max_line = raw.get("max_line_length", DEFAULT_CONFIG["max_line_length"])
    if not isinstance(max_line, int) or isinstance(max_line, bool) or max_line <= 0:
        raise ConfigError(f"invalid max_line_length: {max_line!r}")
    return SinkConfig(
        host=host,
        port=port,
        output=output,
        gzip=bool(raw.get("gzip")),
        append=bool(raw.get("append")),
        mutex=bool(raw.get("mutex")),
        chunk=bool(raw.get("chunk")),
        udp=bool(raw.get("udp")),
        udp_bufsize=parse_size(raw.get("udp_bufsize", DEFAULT_CONFIG["udp_bufsize"])),
        verbose=bool(raw.get("verbose")),
        max_line_length=max_line,
    )
