"""
Deferred outbound messages.

An Action is one fully built protocol message plus where to send it.
Producers on any thread enqueue Actions; only the outbound dispatcher
pops them, one at a time, in FIFO order.

Author: WinHandler Project
License: MIT
"""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from typing import Optional, Callable, List, Deque, Any

from .codec import ListProcesses
from .state import SessionState


@dataclass(frozen=True)
class Action:
    """``port`` is None for requests to the peer's well-known client port."""
    message: Any
    port: Optional[int] = None


def passes_gate(action: Action, session: SessionState) -> bool:
    """Only a LIST_PROCESSES request may go out before the handshake."""
    return session.initialized or isinstance(action.message, ListProcesses)


class ActionQueue:
    """
    Unbounded FIFO guarded by a Condition.

    The dispatcher blocks in pop_ready() until the head action may be
    sent (handshake done, or the head is exempt from the gate), the
    timeout passes, or wake() is called.
    """

    def __init__(self):
        self._actions: Deque[Action] = deque()
        self.cv = threading.Condition()

    def enqueue(self, action: Action) -> None:
        with self.cv:
            self._actions.append(action)
            self.cv.notify()

    def enqueue_when(self, condition: Callable[[], bool], action: Action) -> bool:
        """Enqueue only if ``condition()`` holds, checked under the queue lock."""
        with self.cv:
            if not condition():
                return False
            self._actions.append(action)
            self.cv.notify()
            return True

    def pop_ready(self, session: SessionState, timeout: float) -> Optional[Action]:
        with self.cv:
            ready = self.cv.wait_for(
                lambda: not session.running or (self._actions and passes_gate(self._actions[0], session)),
                timeout=timeout,
            )
            if not ready or not session.running:
                return None
            return self._actions.popleft()

    def wake(self) -> None:
        with self.cv:
            self.cv.notify_all()

    def clear(self) -> None:
        with self.cv:
            self._actions.clear()

    def pending(self) -> List[Action]:
        with self.cv:
            return list(self._actions)

    def __len__(self) -> int:
        with self.cv:
            return len(self._actions)
