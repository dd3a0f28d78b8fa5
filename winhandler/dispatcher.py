"""
Outbound dispatcher.

A single thread drains the ActionQueue and turns each Action into one
datagram. Being the only sender, it never interleaves two messages.

Author: WinHandler Project
License: MIT
"""

from __future__ import annotations

import queue
import threading
from typing import Optional, Callable

from .actions import Action, ActionQueue
from .codec import encode_message, RequestCode
from .errors import MessageTooLarge
from .log import log_event
from .state import SessionState
from .transport import UdpTransport

# How long one wait on the queue may last before re-checking the running flag
DISPATCH_WAIT_S     = 0.2
THREAD_JOIN_TIMEOUT = 2.0


class OutboundDispatcher:
    """
    Drains the action queue while the session runs.

    A send that fails is logged and dropped; ``on_send_failed`` (if set)
    is told about it so the session can synthesize empty results.
    """

    def __init__(self, actions: ActionQueue, session: SessionState, transport: UdpTransport,
                 ui_queue: Optional[queue.Queue] = None,
                 on_send_failed: Optional[Callable[[Action], None]] = None):
        self.actions = actions
        self.session = session
        self.transport = transport
        self.uiq = ui_queue
        self.on_send_failed = on_send_failed
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._thread = threading.Thread(target=self._dispatch_loop, daemon=True)
        self._thread.name = "Dispatcher"
        self._thread.start()

    def stop(self) -> None:
        """Wait for the loop to notice the session stopped."""
        self.actions.wake()
        if self._thread:
            self._thread.join(timeout=THREAD_JOIN_TIMEOUT)
            if self._thread.is_alive():
                log_event(self.uiq, 'Dispatcher', "Thread did not stop in time", "warning")
            self._thread = None

    def _dispatch_loop(self) -> None:
        while self.session.running:
            action = self.actions.pop_ready(self.session, DISPATCH_WAIT_S)
            if action is None:
                continue
            self.run_action(action)

    def run_action(self, action: Action) -> bool:
        """Encode and send one action. Returns True if the datagram went out."""
        code = RequestCode(action.message.code)
        try:
            data = encode_message(action.message)
        except (MessageTooLarge, TypeError, ValueError) as e:
            log_event(self.uiq, 'Dispatcher', f"Cannot encode {code.name}: {e}", "error")
            sent = False
        else:
            sent = self.transport.send_to(data, action.port)

        if not sent:
            log_event(self.uiq, 'Dispatcher', f"{code.name} not sent", "debug")
            if self.on_send_failed is not None:
                try:
                    self.on_send_failed(action)
                except Exception as e:
                    log_event(self.uiq, 'Dispatcher', f"Send-failure callback error: {e}", "error")
        return sent
