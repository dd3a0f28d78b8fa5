"""
Gamepad state, snapshots and the snapshot buffer.

A snapshot is the 13-byte wire image of one GamepadState:

    uint16 buttons | int8 pov | int16 lx, ly, rx, ry | uint8 lt, rt

Physical controllers and the on-screen virtual gamepad both answer
queries through the GamepadSource interface, so the protocol handlers
never branch on which kind of source they are talking to.

Author: WinHandler Project
License: MIT
"""

from __future__ import annotations

import struct
import threading
from collections import deque
from enum import IntEnum
from typing import Optional, List, Deque

# ══════════════════════════════════════════════════════════════════════════════
# CONSTANTS
# ══════════════════════════════════════════════════════════════════════════════

GAMEPAD_BUFFER_CAPACITY = 20

SNAPSHOT_LAYOUT = struct.Struct("<HbhhhhBB")
SNAPSHOT_SIZE   = SNAPSHOT_LAYOUT.size

THUMB_SCALE     = 32767
TRIGGER_SCALE   = 255

POV_CENTERED    = -1


class Button(IntEnum):
    A      = 0
    B      = 1
    X      = 2
    Y      = 3
    L1     = 4
    R1     = 5
    SELECT = 6
    START  = 7
    L3     = 8
    R3     = 9
    L2     = 10
    R2     = 11


class Dpad(IntEnum):
    UP    = 0
    RIGHT = 1
    DOWN  = 2
    LEFT  = 3


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))

# ══════════════════════════════════════════════════════════════════════════════
# GAMEPAD STATE
# ══════════════════════════════════════════════════════════════════════════════


class GamepadState:
    """Live button/axis state of one controller."""

    __slots__ = (
        'buttons', 'dpad',
        'thumb_lx', 'thumb_ly', 'thumb_rx', 'thumb_ry',
        'trigger_l', 'trigger_r',
    )

    def __init__(self):
        self.buttons = 0
        self.dpad = [False, False, False, False]
        self.thumb_lx = 0.0
        self.thumb_ly = 0.0
        self.thumb_rx = 0.0
        self.thumb_ry = 0.0
        self.trigger_l = 0.0
        self.trigger_r = 0.0

    def set_pressed(self, button: Button, pressed: bool) -> None:
        if pressed:
            self.buttons |= 1 << button
        else:
            self.buttons &= ~(1 << button)

    def is_pressed(self, button: Button) -> bool:
        return bool(self.buttons & (1 << button))

    def pov_hat(self) -> int:
        """Eight-way POV direction, clockwise from up, or POV_CENTERED."""
        up, right, down, left = self.dpad
        if up and right:
            return 1
        if right and down:
            return 3
        if down and left:
            return 5
        if left and up:
            return 7
        if up:
            return 0
        if right:
            return 2
        if down:
            return 4
        if left:
            return 6
        return POV_CENTERED

    def set_pov_hat(self, pov: int) -> None:
        if pov == POV_CENTERED:
            self.dpad = [False, False, False, False]
            return
        self.dpad = [
            pov in (7, 0, 1),
            pov in (1, 2, 3),
            pov in (3, 4, 5),
            pov in (5, 6, 7),
        ]

    def to_bytes(self) -> bytes:
        return SNAPSHOT_LAYOUT.pack(
            self.buttons & 0xFFFF,
            self.pov_hat(),
            int(_clamp(self.thumb_lx, -1.0, 1.0) * THUMB_SCALE),
            int(_clamp(self.thumb_ly, -1.0, 1.0) * THUMB_SCALE),
            int(_clamp(self.thumb_rx, -1.0, 1.0) * THUMB_SCALE),
            int(_clamp(self.thumb_ry, -1.0, 1.0) * THUMB_SCALE),
            int(_clamp(self.trigger_l, 0.0, 1.0) * TRIGGER_SCALE),
            int(_clamp(self.trigger_r, 0.0, 1.0) * TRIGGER_SCALE),
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "GamepadState":
        buttons, pov, lx, ly, rx, ry, lt, rt = SNAPSHOT_LAYOUT.unpack_from(data)
        state = cls()
        state.buttons = buttons
        state.set_pov_hat(pov)
        state.thumb_lx = lx / THUMB_SCALE
        state.thumb_ly = ly / THUMB_SCALE
        state.thumb_rx = rx / THUMB_SCALE
        state.thumb_ry = ry / THUMB_SCALE
        state.trigger_l = lt / TRIGGER_SCALE
        state.trigger_r = rt / TRIGGER_SCALE
        return state

# ══════════════════════════════════════════════════════════════════════════════
# SNAPSHOT BUFFER
# ══════════════════════════════════════════════════════════════════════════════


class GamepadStateBuffer:
    """
    Bounded FIFO of snapshots taken between two state polls.

    When full, appending evicts the OLDEST snapshot. ``lock`` is exposed
    (re-entrant) so the controller selector can swap the active controller
    and clear the buffer as one step.
    """

    def __init__(self, capacity: int = GAMEPAD_BUFFER_CAPACITY):
        self.capacity = capacity
        self.lock = threading.RLock()
        self._snapshots: Deque[bytes] = deque(maxlen=capacity)

    def save(self, snapshot: bytes) -> None:
        with self.lock:
            self._snapshots.append(bytes(snapshot))

    def poll(self) -> Optional[bytes]:
        """Pop the oldest snapshot, or None if empty."""
        with self.lock:
            if not self._snapshots:
                return None
            return self._snapshots.popleft()

    def clear(self) -> None:
        with self.lock:
            self._snapshots.clear()

    def pending(self) -> List[bytes]:
        with self.lock:
            return list(self._snapshots)

    def __len__(self) -> int:
        with self.lock:
            return len(self._snapshots)

# ══════════════════════════════════════════════════════════════════════════════
# GAMEPAD SOURCES
# ══════════════════════════════════════════════════════════════════════════════


class GamepadSource:
    """What the protocol needs from anything that can answer gamepad queries."""

    __slots__ = ()

    def is_active(self) -> bool:
        raise NotImplementedError

    def identifier(self) -> int:
        raise NotImplementedError

    def display_name(self) -> str:
        raise NotImplementedError

    def current_snapshot(self) -> bytes:
        raise NotImplementedError


class ControlsProfile:
    """On-screen controls profile, as supplied by the input-controls editor."""

    def __init__(self, profile_id: int, name: str, virtual_gamepad: bool = False):
        self.id = profile_id
        self.name = name
        self.virtual_gamepad = virtual_gamepad
        self.gamepad_state = GamepadState()

    def __repr__(self) -> str:
        return f"ControlsProfile(id={self.id}, name={self.name!r}, virtual={self.virtual_gamepad})"


class VirtualGamepad(GamepadSource):
    """A controls profile standing in for a physical controller."""

    def __init__(self, profile: ControlsProfile):
        self.profile = profile

    def is_active(self) -> bool:
        return self.profile.virtual_gamepad

    def identifier(self) -> int:
        return self.profile.id

    def display_name(self) -> str:
        return self.profile.name

    def current_snapshot(self) -> bytes:
        return self.profile.gamepad_state.to_bytes()
