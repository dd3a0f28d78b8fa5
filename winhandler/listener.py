"""
Inbound listener.

Reads one datagram at a time, decodes it and hands the message to the
handler registered for its type. A bad datagram or a failing handler
costs only that datagram; the loop keeps going until the transport is
closed.

Author: WinHandler Project
License: MIT
"""

from __future__ import annotations

import queue
import threading
from typing import Optional, Callable, Dict

from .codec import decode_request
from .errors import ProtocolError
from .log import log_event
from .state import SessionState
from .transport import UdpTransport, TransportClosed

THREAD_JOIN_TIMEOUT = 2.0

Handler = Callable[[object, int], None]


class InboundListener:

    def __init__(self, transport: UdpTransport, session: SessionState,
                 handlers: Dict[type, Handler], ui_queue: Optional[queue.Queue] = None):
        self.transport = transport
        self.session = session
        self.handlers = handlers
        self.uiq = ui_queue
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._thread = threading.Thread(target=self._rx_loop, daemon=True)
        self._thread.name = "UdpRx"
        self._thread.start()

    def stop(self) -> None:
        if self._thread:
            self._thread.join(timeout=THREAD_JOIN_TIMEOUT)
            if self._thread.is_alive():
                log_event(self.uiq, 'Listener', "Thread did not stop in time", "warning")
            self._thread = None

    def _rx_loop(self) -> None:
        while self.session.running:
            try:
                received = self.transport.receive()
            except TransportClosed:
                break

            if received is None:
                continue

            data, port = received
            self.handle_datagram(data, port)

    def handle_datagram(self, data: bytes, port: int) -> None:
        """Decode and dispatch one datagram received from ``port``."""
        try:
            message = decode_request(data)
        except ProtocolError as e:
            log_event(self.uiq, 'Listener', f"Dropped datagram from port {port}: {e}", "debug")
            return

        handler = self.handlers.get(type(message))
        if handler is None:
            log_event(self.uiq, 'Listener', f"Ignoring {type(message).__name__} from port {port}", "debug")
            return

        try:
            handler(message, port)
        except Exception as e:
            log_event(self.uiq, 'Listener', f"{type(message).__name__} handler failed: {e}", "error")
