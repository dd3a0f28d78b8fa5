"""
WinHandler host bridge.

UDP control link between a host process and its companion inside a
sandboxed Windows environment: process management requests, mouse
injection, gamepad discovery and state polling, all gated behind the
companion's INIT handshake.
"""

from .actions import Action, ActionQueue
from .codec import (
    RequestCode, MapperType, ProcessInfo,
    Exec, KillProcess, ListProcesses, SetProcessAffinity, MouseEvent,
    GamepadInfo, GamepadStateReply,
    Init, Exit, ProcessReport, GamepadQuery, GamepadStateQuery, ReleaseGamepad,
    encode_message, decode_message, decode_request,
)
from .config import Settings, read_settings
from .controllers import ControllerRegistry, ExternalController, MotionEvent, KeyEvent, KeyAction
from .errors import WinHandlerError, ProtocolError, MessageTooLarge
from .gamepad import GamepadState, GamepadStateBuffer, ControlsProfile, VirtualGamepad, Button
from .session import WinHandler
from .state import SessionState

__version__ = "1.0.0"

__all__ = [
    "Action", "ActionQueue",
    "RequestCode", "MapperType", "ProcessInfo",
    "Exec", "KillProcess", "ListProcesses", "SetProcessAffinity", "MouseEvent",
    "GamepadInfo", "GamepadStateReply",
    "Init", "Exit", "ProcessReport", "GamepadQuery", "GamepadStateQuery", "ReleaseGamepad",
    "encode_message", "decode_message", "decode_request",
    "Settings", "read_settings",
    "ControllerRegistry", "ExternalController", "MotionEvent", "KeyEvent", "KeyAction",
    "WinHandlerError", "ProtocolError", "MessageTooLarge",
    "GamepadState", "GamepadStateBuffer", "ControlsProfile", "VirtualGamepad", "Button",
    "WinHandler", "SessionState",
]
