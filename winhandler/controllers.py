"""
Physical game controllers.

Controllers are discovered with hidapi (Generic Desktop joysticks and
gamepads). Their live state is driven by input events handed over from
the host's input layer, using Linux evdev button and axis codes.

Author: WinHandler Project
License: MIT
"""

from __future__ import annotations

import queue
import threading
from enum import IntEnum
from dataclasses import dataclass, field
from typing import Optional, List, Dict

import hid

from .gamepad import GamepadSource, GamepadState, Button, Dpad
from .log import log_event

# ══════════════════════════════════════════════════════════════════════════════
# HID DISCOVERY CONSTANTS
# ══════════════════════════════════════════════════════════════════════════════

USAGE_PAGE_GENERIC_DESKTOP = 0x01
USAGE_JOYSTICK             = 0x04
USAGE_GAMEPAD              = 0x05
GAMEPAD_USAGES             = (USAGE_JOYSTICK, USAGE_GAMEPAD)

# Stick values this close to center read as centered
AXIS_DEADZONE              = 0.05

# ══════════════════════════════════════════════════════════════════════════════
# INPUT EVENTS (evdev codes)
# ══════════════════════════════════════════════════════════════════════════════

ABS_X      = 0x00
ABS_Y      = 0x01
ABS_Z      = 0x02
ABS_RX     = 0x03
ABS_RY     = 0x04
ABS_RZ     = 0x05
ABS_HAT0X  = 0x10
ABS_HAT0Y  = 0x11

BTN_SOUTH      = 0x130
BTN_EAST       = 0x131
BTN_NORTH      = 0x133
BTN_WEST       = 0x134
BTN_TL         = 0x136
BTN_TR         = 0x137
BTN_TL2        = 0x138
BTN_TR2        = 0x139
BTN_SELECT     = 0x13a
BTN_START      = 0x13b
BTN_THUMBL     = 0x13d
BTN_THUMBR     = 0x13e
BTN_DPAD_UP    = 0x220
BTN_DPAD_DOWN  = 0x221
BTN_DPAD_LEFT  = 0x222
BTN_DPAD_RIGHT = 0x223

KEY_TO_BUTTON: Dict[int, Button] = {
    BTN_SOUTH:  Button.A,
    BTN_EAST:   Button.B,
    BTN_NORTH:  Button.X,
    BTN_WEST:   Button.Y,
    BTN_TL:     Button.L1,
    BTN_TR:     Button.R1,
    BTN_SELECT: Button.SELECT,
    BTN_START:  Button.START,
    BTN_THUMBL: Button.L3,
    BTN_THUMBR: Button.R3,
    BTN_TL2:    Button.L2,
    BTN_TR2:    Button.R2,
}

KEY_TO_DPAD: Dict[int, Dpad] = {
    BTN_DPAD_UP:    Dpad.UP,
    BTN_DPAD_RIGHT: Dpad.RIGHT,
    BTN_DPAD_DOWN:  Dpad.DOWN,
    BTN_DPAD_LEFT:  Dpad.LEFT,
}


class KeyAction(IntEnum):
    DOWN = 0
    UP   = 1


@dataclass(frozen=True)
class MotionEvent:
    """Axis values normalized to -1.0..1.0 (sticks, hat) or 0.0..1.0 (triggers)."""
    device_id: int
    axes: Dict[int, float] = field(default_factory=dict)


@dataclass(frozen=True)
class KeyEvent:
    device_id: int
    code: int
    action: KeyAction = KeyAction.DOWN
    repeat_count: int = 0


def _centered(value: float) -> float:
    return value if abs(value) > AXIS_DEADZONE else 0.0

# ══════════════════════════════════════════════════════════════════════════════
# EXTERNAL CONTROLLER
# ══════════════════════════════════════════════════════════════════════════════


class ExternalController(GamepadSource):
    """One physical controller and its live state."""

    __slots__ = ('device_id', 'name', 'path', 'info', 'state', 'connected')

    def __init__(self, device_id: int, dev_info: dict):
        self.device_id = device_id
        self.info = dev_info
        self.path = dev_info.get('path', b'')
        product = dev_info.get('product_string', '') or ''
        self.name = product or f"Controller-{dev_info.get('product_id', 0) & 0xFFFF:04X}"
        self.state = GamepadState()
        self.connected = True

    def __repr__(self) -> str:
        return f"ExternalController(id={self.device_id}, name={self.name!r})"

    def is_active(self) -> bool:
        return self.connected

    def identifier(self) -> int:
        return self.device_id

    def display_name(self) -> str:
        return self.name

    def current_snapshot(self) -> bytes:
        return self.state.to_bytes()

    def update_state_from_motion_event(self, event: MotionEvent) -> bool:
        state = self.state
        handled = False
        for axis, value in event.axes.items():
            if axis == ABS_X:
                state.thumb_lx = _centered(value)
            elif axis == ABS_Y:
                state.thumb_ly = _centered(value)
            elif axis == ABS_RX:
                state.thumb_rx = _centered(value)
            elif axis == ABS_RY:
                state.thumb_ry = _centered(value)
            elif axis == ABS_Z:
                state.trigger_l = max(0.0, value)
                state.set_pressed(Button.L2, value > 0.5)
            elif axis == ABS_RZ:
                state.trigger_r = max(0.0, value)
                state.set_pressed(Button.R2, value > 0.5)
            elif axis == ABS_HAT0X:
                state.dpad[Dpad.LEFT] = value < -0.5
                state.dpad[Dpad.RIGHT] = value > 0.5
            elif axis == ABS_HAT0Y:
                state.dpad[Dpad.UP] = value < -0.5
                state.dpad[Dpad.DOWN] = value > 0.5
            else:
                continue
            handled = True
        return handled

    def update_state_from_key_event(self, event: KeyEvent) -> bool:
        pressed = event.action == KeyAction.DOWN
        button = KEY_TO_BUTTON.get(event.code)
        if button is not None:
            self.state.set_pressed(button, pressed)
            if button == Button.L2:
                self.state.trigger_l = 1.0 if pressed else 0.0
            elif button == Button.R2:
                self.state.trigger_r = 1.0 if pressed else 0.0
            return True

        direction = KEY_TO_DPAD.get(event.code)
        if direction is not None:
            self.state.dpad[direction] = pressed
            return True

        return False

# ══════════════════════════════════════════════════════════════════════════════
# CONTROLLER REGISTRY
# ══════════════════════════════════════════════════════════════════════════════


class ControllerRegistry:
    """
    Thread-safe registry of physical controllers.

    Device IDs are handed out in discovery order and stay attached to a
    HID path for the lifetime of the registry, so a controller that is
    unplugged and replugged keeps its ID.
    """

    def __init__(self, ui_queue: Optional[queue.Queue] = None):
        self.uiq = ui_queue
        self._controllers: Dict[bytes, ExternalController] = {}
        self._lock = threading.RLock()
        self._next_id = 1
        self._snapshot: List[ExternalController] = []

    def scan(self) -> List[ExternalController]:
        """Re-enumerate HID devices and return the connected controllers."""
        try:
            devices = hid.enumerate()
        except Exception as e:
            log_event(self.uiq, 'Controllers', f"Scan error: {e}", "error")
            return self.get_all()

        found: Dict[bytes, dict] = {}
        for d in devices:
            if d.get('usage_page') != USAGE_PAGE_GENERIC_DESKTOP:
                continue
            if d.get('usage') not in GAMEPAD_USAGES:
                continue
            path = d.get('path', b'')
            if path:
                found[path] = d

        with self._lock:
            for path, controller in self._controllers.items():
                present = path in found
                if controller.connected and not present:
                    log_event(self.uiq, controller.name, "Disconnected")
                elif present and not controller.connected:
                    log_event(self.uiq, controller.name, "Reconnected")
                controller.connected = present

            for path, info in found.items():
                if path in self._controllers:
                    continue
                controller = ExternalController(self._next_id, info)
                self._next_id += 1
                self._controllers[path] = controller
                log_event(self.uiq, controller.name, f"Connected (device {controller.device_id})")

            self._rebuild_snapshot()
            return list(self._snapshot)

    def get_controller(self, index: int) -> Optional[ExternalController]:
        controllers = self.scan()
        if 0 <= index < len(controllers):
            return controllers[index]
        return None

    def is_connected(self, controller: ExternalController) -> bool:
        self.scan()
        return controller.connected

    def get_all(self) -> List[ExternalController]:
        """Returns snapshot - safe to iterate without lock."""
        return list(self._snapshot)

    def _rebuild_snapshot(self) -> None:
        self._snapshot = sorted(
            (c for c in self._controllers.values() if c.connected),
            key=lambda c: c.device_id,
        )
