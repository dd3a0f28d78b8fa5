"""
WinHandler session.

Ties the pieces together for one host <-> companion link:

    callers ──> ActionQueue ──> OutboundDispatcher ──> UdpTransport ──> peer
    peer ──> UdpTransport ──> InboundListener ──> request handlers
                                                   └──> ActionQueue (replies)

Nothing is sent until the peer's INIT arrives, except LIST_PROCESSES.
Mouse events raised before INIT are dropped, not queued.

Author: WinHandler Project
License: MIT
"""

from __future__ import annotations

import queue
import threading
from typing import Optional, Callable, Dict, Union

from .actions import Action, ActionQueue
from .codec import (
    Exec, KillProcess, ListProcesses, SetProcessAffinity, MouseEvent,
    GamepadInfo, GamepadStateReply, ProcessInfo, MapperType,
    Init, ProcessReport, GamepadQuery, GamepadStateQuery, ReleaseGamepad,
    encode_message,
)
from .config import Settings
from .controllers import ControllerRegistry, MotionEvent, KeyEvent
from .dispatcher import OutboundDispatcher
from .gamepad import GamepadState, GamepadStateBuffer
from .listener import InboundListener
from .log import log_event
from .selector import ControllerSelector, ProfileProvider
from .state import SessionState
from .transport import UdpTransport

ProcessInfoListener = Callable[[int, int, Optional[ProcessInfo]], None]


class WinHandler:
    """
    Host side of the WinHandler protocol.

    All public request methods are safe to call from any thread; they only
    enqueue. start()/stop() may be cycled; each start() begins a fresh,
    uninitialized session.
    """

    def __init__(self, settings: Optional[Settings] = None,
                 registry: Optional[ControllerRegistry] = None,
                 profile_provider: Optional[ProfileProvider] = None,
                 ui_queue: Optional[queue.Queue] = None,
                 transport: Optional[UdpTransport] = None):
        self.settings = settings or Settings()
        self.uiq = ui_queue

        self.session = SessionState()
        self.actions = ActionQueue()
        self.registry = registry if registry is not None else ControllerRegistry(ui_queue)
        self.selector = ControllerSelector(self.registry, profile_provider, ui_queue, GamepadStateBuffer())
        self.transport = transport or UdpTransport(
            self.settings.host,
            self.settings.server_port,
            self.settings.client_port,
            ui_queue,
        )

        self._mapper_type = MapperType.parse(self.settings.mapper_type)
        self._on_get_process_info: Optional[ProcessInfoListener] = None
        self._lifecycle_lock = threading.Lock()

        self.dispatcher: Optional[OutboundDispatcher] = None
        self.listener: Optional[InboundListener] = None

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    def start(self) -> None:
        with self._lifecycle_lock:
            if self.session.running:
                return

            self.session.reset()
            opened = self.transport.open()
            self.session.set_running()

            self.dispatcher = OutboundDispatcher(
                self.actions, self.session, self.transport, self.uiq,
                on_send_failed=self._on_send_failed,
            )
            self.dispatcher.start()

            if opened:
                self.listener = InboundListener(self.transport, self.session, self._handlers(), self.uiq)
                self.listener.start()

            log_event(self.uiq, 'System', "WinHandler started, waiting for INIT")

    def stop(self) -> None:
        with self._lifecycle_lock:
            if not self.session.running:
                return

            self.session.clear_running()
            self.actions.wake()
            self.transport.close()

            if self.dispatcher:
                self.dispatcher.stop()
            if self.listener:
                self.listener.stop()
            self.dispatcher = None
            self.listener = None

            self.session.reset()
            self.actions.clear()
            self.selector.release()
            log_event(self.uiq, 'System', "WinHandler stopped")

    def __enter__(self) -> "WinHandler":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    @property
    def running(self) -> bool:
        return self.session.running

    @property
    def initialized(self) -> bool:
        return self.session.initialized

    @property
    def server_port(self) -> int:
        return self.transport.server_port

    def wait_initialized(self, timeout: Optional[float] = None) -> bool:
        return self.session.wait_initialized(timeout)

    # ─────────────────────────────────────────────────────────────────────────
    # Requests to the peer
    # ─────────────────────────────────────────────────────────────────────────

    def _enqueue(self, message) -> None:
        # Encoding up front rejects oversize requests in the caller's thread
        encode_message(message)
        self.actions.enqueue(Action(message))

    def exec(self, command: str) -> None:
        """Run ``command`` in the sandbox; the first space splits program from arguments."""
        command = command.strip()
        if not command:
            return
        filename, _, parameters = command.partition(" ")
        self._enqueue(Exec(filename, parameters))

    def kill_process(self, name: str) -> None:
        self._enqueue(KillProcess(name))

    def list_processes(self) -> None:
        """Request a process listing; entries arrive through on_get_process_info."""
        self._enqueue(ListProcesses())

    def set_process_affinity(self, pid: int, affinity_mask: int) -> None:
        self._enqueue(SetProcessAffinity(pid, affinity_mask))

    def mouse_event(self, flags: int, dx: int, dy: int, wheel_delta: int = 0) -> bool:
        """Inject pointer input. Returns False (and drops it) before the handshake."""
        action = Action(MouseEvent(flags, dx, dy, wheel_delta))
        queued = self.actions.enqueue_when(lambda: self.session.initialized, action)
        if not queued:
            log_event(self.uiq, 'Mouse', "Dropped mouse event before INIT", "debug")
        return queued

    # ─────────────────────────────────────────────────────────────────────────
    # Host-side settings and callbacks
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def dinput_mapper_type(self) -> MapperType:
        return self._mapper_type

    def set_dinput_mapper_type(self, mapper_type: Union[MapperType, int, str]) -> None:
        self._mapper_type = MapperType.parse(mapper_type)

    @property
    def on_get_process_info(self) -> Optional[ProcessInfoListener]:
        return self._on_get_process_info

    @on_get_process_info.setter
    def on_get_process_info(self, listener: Optional[ProcessInfoListener]) -> None:
        with self.actions.cv:
            self._on_get_process_info = listener

    def _on_send_failed(self, action: Action) -> None:
        if not isinstance(action.message, ListProcesses):
            return
        listener = self._on_get_process_info
        if listener is not None:
            listener(0, 0, None)

    # ─────────────────────────────────────────────────────────────────────────
    # Gamepad input from the host's input layer
    # ─────────────────────────────────────────────────────────────────────────

    def on_motion_event(self, event: MotionEvent) -> bool:
        return self.selector.on_motion_event(event)

    def on_key_event(self, event: KeyEvent) -> bool:
        return self.selector.on_key_event(event)

    def save_gamepad_state(self, state: Union[GamepadState, bytes]) -> None:
        snapshot = state.to_bytes() if isinstance(state, GamepadState) else bytes(state)
        self.selector.save_snapshot(snapshot)

    def release_current_controller(self) -> None:
        self.selector.release()

    # ─────────────────────────────────────────────────────────────────────────
    # Inbound request handlers (listener thread)
    # ─────────────────────────────────────────────────────────────────────────

    def _handlers(self) -> Dict[type, Callable[[object, int], None]]:
        return {
            Init: self._handle_init,
            ProcessReport: self._handle_process_report,
            GamepadQuery: self._handle_gamepad_query,
            GamepadStateQuery: self._handle_gamepad_state_query,
            ReleaseGamepad: self._handle_release_gamepad,
        }

    def _handle_init(self, message: Init, port: int) -> None:
        with self.actions.cv:
            first = self.session.mark_initialized()
            self.actions.cv.notify_all()
        if first:
            log_event(self.uiq, 'System', f"INIT received from port {port}")

    def _handle_process_report(self, message: ProcessReport, port: int) -> None:
        listener = self._on_get_process_info
        if listener is None:
            return
        listener(message.index, message.count, message.info)

    def _handle_gamepad_query(self, message: GamepadQuery, port: int) -> None:
        source = self.selector.select_for_query()
        if source is None:
            reply = GamepadInfo(None)
        else:
            reply = GamepadInfo(source.identifier(), self._mapper_type, source.display_name())
        self.actions.enqueue(Action(reply, port))

    def _handle_gamepad_state_query(self, message: GamepadStateQuery, port: int) -> None:
        snapshot = self.selector.snapshot_for(message.gamepad_id)
        if snapshot is None:
            reply = GamepadStateReply(None)
        else:
            reply = GamepadStateReply(message.gamepad_id, snapshot)
        self.actions.enqueue(Action(reply, port))

    def _handle_release_gamepad(self, message: ReleaseGamepad, port: int) -> None:
        self.selector.release()
        log_event(self.uiq, 'Gamepad', "Released by peer")
