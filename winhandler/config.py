"""
Settings file handling and the single-instance lock.

Settings live in an INI file; a missing file is created with defaults.
Bad values are logged and replaced by their defaults.

Author: WinHandler Project
License: MIT
"""

from __future__ import annotations

import os
import sys
import tempfile
import configparser
from dataclasses import dataclass
from typing import Optional

from filelock import FileLock, Timeout

from .codec import MapperType
from .log import get_logger

# ══════════════════════════════════════════════════════════════════════════════
# DEFAULTS
# ══════════════════════════════════════════════════════════════════════════════

DEFAULT_HOST           = "localhost"
DEFAULT_SERVER_PORT    = 7947
DEFAULT_CLIENT_PORT    = 7946
DEFAULT_MAPPER_TYPE    = MapperType.XINPUT
DEFAULT_LOG_PATH       = "winhandler.log"
SETTINGS_FILENAME      = "settings.ini"


@dataclass
class Settings:
    host: str = DEFAULT_HOST
    server_port: int = DEFAULT_SERVER_PORT
    client_port: int = DEFAULT_CLIENT_PORT
    mapper_type: MapperType = DEFAULT_MAPPER_TYPE
    log_enabled: bool = False
    log_path: str = DEFAULT_LOG_PATH
    log_stdout: bool = False


def write_default_settings(path: str) -> None:
    config = configparser.ConfigParser()
    config['NETWORK'] = {
        'HOST': DEFAULT_HOST,
        'SERVER_PORT': str(DEFAULT_SERVER_PORT),
        'CLIENT_PORT': str(DEFAULT_CLIENT_PORT),
    }
    config['GAMEPAD'] = {'DINPUT_MAPPER_TYPE': DEFAULT_MAPPER_TYPE.name.lower()}
    config['LOG'] = {'ENABLED': '0', 'PATH': DEFAULT_LOG_PATH, 'STDOUT': '0'}
    with open(path, 'w') as f:
        config.write(f)


def _read_port(config: configparser.ConfigParser, key: str, default: int) -> int:
    raw = config.get('NETWORK', key, fallback=str(default))
    try:
        port = int(raw, 0)
    except ValueError:
        port = -1
    if not 0 <= port <= 0xFFFF:
        get_logger().warning("Invalid %s in settings: %s (using %d)", key, raw, default)
        return default
    return port


def _read_flag(config: configparser.ConfigParser, key: str) -> bool:
    try:
        return config.getboolean('LOG', key, fallback=False)
    except ValueError:
        get_logger().warning("Invalid LOG %s in settings (using 0)", key)
        return False


def read_settings(path: Optional[str] = None, create: bool = True) -> Settings:
    """
    Read settings from an INI file.

    Args:
        path: Settings file; defaults to settings.ini in the working directory
        create: Write a default file when ``path`` does not exist
    """
    path = path or os.path.join(os.getcwd(), SETTINGS_FILENAME)
    config = configparser.ConfigParser()

    if not os.path.isfile(path) and create:
        write_default_settings(path)

    config.read(path)

    host = config.get('NETWORK', 'HOST', fallback=DEFAULT_HOST).strip() or DEFAULT_HOST

    raw_mapper = config.get('GAMEPAD', 'DINPUT_MAPPER_TYPE', fallback=DEFAULT_MAPPER_TYPE.name)
    try:
        mapper_type = MapperType.parse(raw_mapper)
    except ValueError:
        get_logger().warning("Invalid DINPUT_MAPPER_TYPE in settings: %s", raw_mapper)
        mapper_type = DEFAULT_MAPPER_TYPE

    return Settings(
        host=host,
        server_port=_read_port(config, 'SERVER_PORT', DEFAULT_SERVER_PORT),
        client_port=_read_port(config, 'CLIENT_PORT', DEFAULT_CLIENT_PORT),
        mapper_type=mapper_type,
        log_enabled=_read_flag(config, 'ENABLED'),
        log_path=config.get('LOG', 'PATH', fallback=DEFAULT_LOG_PATH),
        log_stdout=_read_flag(config, 'STDOUT'),
    )

# ══════════════════════════════════════════════════════════════════════════════
# SINGLE INSTANCE LOCK
# ══════════════════════════════════════════════════════════════════════════════


def instance_lock_path(server_port: int) -> str:
    return os.path.join(tempfile.gettempdir(), f"winhandler-{server_port}.lock")


def acquire_instance_lock(server_port: int) -> FileLock:
    """
    Acquire the per-port single-instance lock.
    Raises SystemExit if another handler already owns the port.
    """
    lock = FileLock(instance_lock_path(server_port))
    try:
        lock.acquire(timeout=0.1)
    except Timeout:
        print(f"ERROR: Another WinHandler is already running on port {server_port}.")
        sys.exit(1)
    return lock


def release_instance_lock(lock: Optional[FileLock]) -> None:
    if lock is None:
        return
    try:
        lock.release()
    except OSError:
        pass
