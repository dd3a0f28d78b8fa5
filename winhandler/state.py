"""Per-session handshake state."""

from __future__ import annotations

import threading
from typing import Optional


class SessionState:
    """
    Handshake gate and running flag for one start()/stop() cycle.

    UNINITIALIZED -> INITIALIZED on the first INIT datagram. The only way
    back is reset(), which the session calls on stop.
    """

    UNINITIALIZED = 0
    INITIALIZED   = 1

    STATE_TEXT = {
        UNINITIALIZED: "WAIT INIT",
        INITIALIZED:   "READY",
    }

    def __init__(self):
        self._initialized = threading.Event()
        self._running = threading.Event()

    @property
    def initialized(self) -> bool:
        return self._initialized.is_set()

    @property
    def running(self) -> bool:
        return self._running.is_set()

    @property
    def state(self) -> int:
        return self.INITIALIZED if self.initialized else self.UNINITIALIZED

    @property
    def status_text(self) -> str:
        return self.STATE_TEXT[self.state]

    def mark_initialized(self) -> bool:
        """Flip the gate. Returns True if this call did the transition."""
        if self._initialized.is_set():
            return False
        self._initialized.set()
        return True

    def wait_initialized(self, timeout: Optional[float] = None) -> bool:
        return self._initialized.wait(timeout)

    def set_running(self) -> None:
        self._running.set()

    def clear_running(self) -> None:
        self._running.clear()

    def reset(self) -> None:
        self._running.clear()
        self._initialized.clear()
