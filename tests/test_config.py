import configparser
import os

from winhandler.codec import MapperType
from winhandler.config import (
    DEFAULT_CLIENT_PORT, DEFAULT_SERVER_PORT, Settings,
    instance_lock_path, read_settings,
)


def write_ini(path, text: str) -> str:
    path.write_text(text)
    return str(path)


def test_missing_file_is_created_with_defaults(tmp_path):
    path = tmp_path / "settings.ini"
    settings = read_settings(str(path))

    assert settings == Settings()
    assert path.exists()
    config = configparser.ConfigParser()
    config.read(str(path))
    assert config.get('NETWORK', 'SERVER_PORT') == str(DEFAULT_SERVER_PORT)


def test_missing_file_without_create(tmp_path):
    path = tmp_path / "settings.ini"
    assert read_settings(str(path), create=False) == Settings()
    assert not path.exists()


def test_values_are_read(tmp_path):
    path = write_ini(tmp_path / "settings.ini", (
        "[NETWORK]\nHOST = 10.0.0.2\nSERVER_PORT = 9000\nCLIENT_PORT = 9001\n"
        "[GAMEPAD]\nDINPUT_MAPPER_TYPE = standard\n"
        "[LOG]\nENABLED = 1\nPATH = out.log\nSTDOUT = yes\n"
    ))
    settings = read_settings(path)

    assert settings.host == "10.0.0.2"
    assert settings.server_port == 9000
    assert settings.client_port == 9001
    assert settings.mapper_type == MapperType.STANDARD
    assert settings.log_enabled
    assert settings.log_path == "out.log"
    assert settings.log_stdout


def test_invalid_values_fall_back(tmp_path):
    path = write_ini(tmp_path / "settings.ini", (
        "[NETWORK]\nSERVER_PORT = 70000\nCLIENT_PORT = abc\n"
        "[GAMEPAD]\nDINPUT_MAPPER_TYPE = 9\n"
        "[LOG]\nENABLED = maybe\n"
    ))
    settings = read_settings(path)

    assert settings.server_port == DEFAULT_SERVER_PORT
    assert settings.client_port == DEFAULT_CLIENT_PORT
    assert settings.mapper_type == MapperType.XINPUT
    assert not settings.log_enabled


def test_mapper_type_parse():
    assert MapperType.parse("xinput") == MapperType.XINPUT
    assert MapperType.parse(" 0 ") == MapperType.STANDARD
    assert MapperType.parse(1) == MapperType.XINPUT


def test_instance_lock_path_is_per_port():
    assert instance_lock_path(7947) != instance_lock_path(7948)
    assert os.path.basename(instance_lock_path(7947)) == "winhandler-7947.lock"
