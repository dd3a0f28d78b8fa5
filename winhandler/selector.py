"""
Controller selection.

Decides which source answers GET_GAMEPAD / GET_GAMEPAD_STATE: the
virtual on-screen gamepad when the active controls profile declares
itself virtual, otherwise the remembered physical controller.

Author: WinHandler Project
License: MIT
"""

from __future__ import annotations

import queue
from typing import Optional, Callable

from .controllers import ControllerRegistry, ExternalController, MotionEvent, KeyEvent
from .gamepad import GamepadSource, GamepadStateBuffer, ControlsProfile, VirtualGamepad
from .log import log_event

ProfileProvider = Callable[[], Optional[ControlsProfile]]


class ControllerSelector:
    """
    Tracks the current physical controller and its pending snapshots.

    At most one controller is current. The current reference and the
    snapshot buffer are always changed together under the buffer's lock,
    so a release can never leave snapshots of a released controller
    behind.
    """

    def __init__(self, registry: ControllerRegistry,
                 profile_provider: Optional[ProfileProvider] = None,
                 ui_queue: Optional[queue.Queue] = None,
                 buffer: Optional[GamepadStateBuffer] = None):
        self.registry = registry
        self.profile_provider = profile_provider
        self.uiq = ui_queue
        self.buffer = buffer if buffer is not None else GamepadStateBuffer()
        self.current: Optional[ExternalController] = None

    def virtual_source(self) -> Optional[VirtualGamepad]:
        """The virtual gamepad, if the active profile is one."""
        if self.profile_provider is None:
            return None
        profile = self.profile_provider()
        if profile is None or not profile.virtual_gamepad:
            return None
        return VirtualGamepad(profile)

    def select_for_query(self) -> Optional[GamepadSource]:
        """Resolve the source for a GET_GAMEPAD query, reselecting if needed."""
        virtual = self.virtual_source()
        if virtual is not None:
            return virtual

        current = self.current
        if current is None or not self.registry.is_connected(current):
            controller = self.registry.get_controller(0)
            with self.buffer.lock:
                self._release_locked()
                self.current = controller
            if controller is not None:
                log_event(self.uiq, 'Gamepad', f"Selected {controller.name} (device {controller.device_id})")
            else:
                log_event(self.uiq, 'Gamepad', "No controller available", "debug")
            return controller

        return current

    def snapshot_for(self, gamepad_id: int) -> Optional[bytes]:
        """
        Resolve the snapshot for a GET_GAMEPAD_STATE query.

        A query for a device other than the current one forgets the
        current controller; the next GET_GAMEPAD reselects. Pending
        snapshots are replayed oldest first before live state is read.
        Returns None when there is no source to report.
        """
        virtual = self.virtual_source()
        with self.buffer.lock:
            current = self.current
            if current is not None and current.device_id != gamepad_id:
                log_event(self.uiq, 'Gamepad',
                          f"State query for device {gamepad_id}, forgetting device {current.device_id}")
                self.current = current = None

            source = virtual if virtual is not None else current
            if source is None:
                return None

            snapshot = self.buffer.poll()
            if snapshot is None:
                snapshot = source.current_snapshot()
            return snapshot

    def release(self) -> None:
        with self.buffer.lock:
            self._release_locked()

    def _release_locked(self) -> None:
        self.current = None
        self.buffer.clear()

    def save_snapshot(self, snapshot: bytes) -> None:
        self.buffer.save(snapshot)

    def on_motion_event(self, event: MotionEvent) -> bool:
        with self.buffer.lock:
            current = self.current
            if current is None or current.device_id != event.device_id:
                return False
            handled = current.update_state_from_motion_event(event)
            if handled:
                self.buffer.save(current.current_snapshot())
            return handled

    def on_key_event(self, event: KeyEvent) -> bool:
        if event.repeat_count != 0:
            return False
        with self.buffer.lock:
            current = self.current
            if current is None or current.device_id != event.device_id:
                return False
            handled = current.update_state_from_key_event(event)
            if handled:
                self.buffer.save(current.current_snapshot())
            return handled
