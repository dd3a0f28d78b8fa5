"""
UDP transport.

One socket, bound to the server port, carries both directions. The
receive side blocks in select() on the socket plus a loopback wake
socket, so close() from any thread unblocks the listener at once.

Author: WinHandler Project
License: MIT
"""

from __future__ import annotations

import time
import queue
import select
import socket
import threading
from typing import Optional, Tuple, Dict, Any

from .codec import MAX_DATAGRAM_SIZE
from .errors import WinHandlerError
from .log import log_event

RECEIVE_BUFFER_SIZE = MAX_DATAGRAM_SIZE
SELECT_TIMEOUT_S    = 1.0


class TransportClosed(WinHandlerError):
    """The transport was closed while receiving."""


def resolve_host(host: str) -> Optional[str]:
    """Resolve ``host`` to an IPv4 address, or None."""
    try:
        return socket.gethostbyname(host)
    except (socket.gaierror, UnicodeError, OSError):
        return None


class UdpTransport:
    """
    Socket owner for one session.

    Errors never escape send_to(); they are logged, counted and reported
    as a False return. receive() returns None on timeout or on a failed
    read and raises TransportClosed once close() has been called.
    """

    def __init__(self, host: str, server_port: int, client_port: int,
                 ui_queue: Optional[queue.Queue] = None, bind_host: str = ''):
        self.host = host
        self.bind_host = bind_host
        self.requested_port = server_port
        self.client_port = client_port
        self.uiq = ui_queue

        self.peer_ip: Optional[str] = None
        self.sock: Optional[socket.socket] = None

        self._closing = threading.Event()
        self._shutdown_sock: Optional[socket.socket] = None
        self._shutdown_addr = ('127.0.0.1', 0)

        # Stats
        self._stats_lock = threading.Lock()
        self._rx_frames = 0
        self._tx_frames = 0
        self._tx_errors = 0
        self._rx_errors = 0
        self._bytes_window = 0
        self._window_start = time.monotonic()

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    def open(self) -> bool:
        """Resolve the peer and bind. Returns False if the socket could not be bound."""
        self._closing.clear()

        self.peer_ip = resolve_host(self.host)
        if self.peer_ip is None:
            log_event(self.uiq, 'UDP', f"Cannot resolve host {self.host!r}; sends will fail", "warning")

        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            sock.bind((self.bind_host, self.requested_port))
        except OSError as e:
            log_event(self.uiq, 'UDP', f"Bind to port {self.requested_port} failed: {e}", "error")
            return False
        self.sock = sock

        self._shutdown_sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self._shutdown_sock.bind(('127.0.0.1', 0))
        self._shutdown_addr = self._shutdown_sock.getsockname()

        log_event(self.uiq, 'UDP', f"Listening on port {self.server_port}, peer {self.peer_ip}:{self.client_port}")
        return True

    def close(self) -> None:
        self._closing.set()

        if self._shutdown_sock:
            try:
                self._shutdown_sock.sendto(b'X', self._shutdown_addr)
            except OSError:
                pass

        for sock in (self.sock, self._shutdown_sock):
            if sock:
                try:
                    sock.close()
                except OSError:
                    pass

        self.sock = None
        self._shutdown_sock = None

    @property
    def server_port(self) -> int:
        """Actual bound port (differs from the requested one when that was 0)."""
        if self.sock is None:
            return self.requested_port
        return self.sock.getsockname()[1]

    @property
    def is_open(self) -> bool:
        return self.sock is not None

    # ─────────────────────────────────────────────────────────────────────────
    # I/O
    # ─────────────────────────────────────────────────────────────────────────

    def send_to(self, data: bytes, port: Optional[int] = None) -> bool:
        """Send one datagram to the peer; ``port`` defaults to the client port."""
        target_port = self.client_port if port is None else port
        sock = self.sock
        if sock is None or self.peer_ip is None or not data:
            self._count_tx_error()
            return False
        try:
            sock.sendto(data, (self.peer_ip, target_port))
        except OSError as e:
            self._count_tx_error()
            log_event(self.uiq, 'UDP', f"TX error: {e}", "debug")
            return False

        with self._stats_lock:
            self._tx_frames += 1
            self._bytes_window += len(data)
        return True

    def receive(self) -> Optional[Tuple[bytes, int]]:
        """Wait for one datagram; returns (data, source_port) or None."""
        sock = self.sock
        if sock is None or self._closing.is_set():
            raise TransportClosed("transport closed")

        watch = [sock]
        if self._shutdown_sock:
            watch.append(self._shutdown_sock)

        try:
            readable, _, _ = select.select(watch, [], [], SELECT_TIMEOUT_S)
        except (ValueError, OSError):
            raise TransportClosed("transport closed") from None

        if self._closing.is_set() or self._shutdown_sock in readable:
            raise TransportClosed("transport closed")
        if sock not in readable:
            return None

        try:
            data, addr = sock.recvfrom(RECEIVE_BUFFER_SIZE)
        except OSError as e:
            if self._closing.is_set():
                raise TransportClosed("transport closed") from None
            with self._stats_lock:
                self._rx_errors += 1
            log_event(self.uiq, 'UDP', f"RX error: {e}", "debug")
            return None

        with self._stats_lock:
            self._rx_frames += 1
            self._bytes_window += len(data)
        return data, addr[1]

    def _count_tx_error(self) -> None:
        with self._stats_lock:
            self._tx_errors += 1

    def get_stats(self) -> Dict[str, Any]:
        """Get current stats and reset window counters."""
        with self._stats_lock:
            now = time.monotonic()
            duration = max(now - self._window_start, 0.001)
            stats = {
                'rx': self._rx_frames,
                'tx': self._tx_frames,
                'rx_errors': self._rx_errors,
                'tx_errors': self._tx_errors,
                'kbps': f"{(self._bytes_window / 1024.0) / duration:.1f}",
            }
            self._bytes_window = 0
            self._window_start = now
            return stats
