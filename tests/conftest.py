"""
Pytest fixtures for the WinHandler tests.

Network tests use real loopback sockets on ephemeral ports; HID discovery
is replaced by a mutable in-memory device list.
"""
import threading
from typing import List, Optional, Tuple

import pytest

from winhandler import controllers
from winhandler.config import Settings
from winhandler.controllers import ControllerRegistry
from winhandler.peer import CompanionPeer
from winhandler.session import WinHandler


def hid_gamepad(path: bytes = b"/dev/hidraw0", product: str = "Pad", usage: int = 0x05,
                usage_page: int = 0x01) -> dict:
    return {
        'path': path,
        'vendor_id': 0x045E,
        'product_id': 0x028E,
        'serial_number': '',
        'product_string': product,
        'usage_page': usage_page,
        'usage': usage,
    }


class FakeTransport:
    """Records sends instead of touching a socket."""

    def __init__(self, succeed: bool = True):
        self.succeed = succeed
        self.sent: List[Tuple[bytes, Optional[int]]] = []
        self.is_open = False
        self.server_port = 0
        self._lock = threading.Lock()

    def open(self) -> bool:
        return False

    def close(self) -> None:
        pass

    def send_to(self, data: bytes, port: Optional[int] = None) -> bool:
        with self._lock:
            self.sent.append((data, port))
        return self.succeed

    def get_stats(self) -> dict:
        return {'rx': 0, 'tx': len(self.sent), 'rx_errors': 0, 'tx_errors': 0, 'kbps': '0.0'}


@pytest.fixture
def hid_devices(monkeypatch) -> List[dict]:
    devices: List[dict] = []
    monkeypatch.setattr(controllers.hid, "enumerate", lambda *args: list(devices))
    return devices


@pytest.fixture
def registry(hid_devices) -> ControllerRegistry:
    return ControllerRegistry()


@pytest.fixture
def fake_transport():
    return FakeTransport


@pytest.fixture
def peer():
    with CompanionPeer(server_port=0) as p:
        yield p


@pytest.fixture
def profile_box():
    """Mutable holder for the active controls profile."""
    return {'profile': None}


@pytest.fixture
def handler(peer, registry, profile_box):
    settings = Settings(host="127.0.0.1", server_port=0, client_port=peer.port)
    h = WinHandler(settings, registry=registry, profile_provider=lambda: profile_box['profile'])
    h.start()
    peer.server_port = h.server_port
    yield h
    h.stop()


@pytest.fixture
def ready_handler(handler, peer):
    """A handler that has completed the INIT handshake."""
    peer.send_init()
    assert handler.wait_initialized(2.0)
    return handler


@pytest.fixture
def make_gamepad():
    return hid_gamepad
