"""
WinHandler wire codec.

Every datagram starts with a one-byte request code followed by a fixed
little-endian layout. Host -> peer messages (EXEC, KILL_PROCESS, ...) and
peer -> host messages (INIT, GET_PROCESS, ...) are plain frozen
dataclasses; ``encode_message()`` and ``decode_message()`` convert them
to and from bytes. Both directions are implemented so the companion side
can be stood up in tests and in the ``winhandler-peer`` debug tool.

No datagram may exceed MAX_DATAGRAM_SIZE bytes. Encoders check this
before returning instead of letting the socket truncate.

Author: WinHandler Project
License: MIT
"""

from __future__ import annotations

import struct
from enum import IntEnum
from dataclasses import dataclass
from typing import Optional, Dict, Callable, Tuple, ClassVar

from .errors import ProtocolError, MessageTooLarge

# ══════════════════════════════════════════════════════════════════════════════
# PROTOCOL CONSTANTS
# ══════════════════════════════════════════════════════════════════════════════

MAX_DATAGRAM_SIZE      = 64
PROCESS_NAME_SIZE      = 32
ANSI_ENCODING          = "cp1252"
TEXT_ENCODING          = "utf-8"


class RequestCode(IntEnum):
    EXIT                 = 0
    INIT                 = 1
    EXEC                 = 2
    KILL_PROCESS         = 3
    LIST_PROCESSES       = 4
    GET_PROCESS          = 5
    SET_PROCESS_AFFINITY = 6
    MOUSE_EVENT          = 7
    GET_GAMEPAD          = 8
    GET_GAMEPAD_STATE    = 9
    RELEASE_GAMEPAD      = 10


class MapperType(IntEnum):
    """DirectInput mapping convention reported with each gamepad."""
    STANDARD = 0
    XINPUT   = 1

    @classmethod
    def parse(cls, value) -> "MapperType":
        """Accept a MapperType, its integer value, or its name (any case)."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            text = value.strip()
            if text.isdigit():
                return cls(int(text))
            try:
                return cls[text.upper()]
            except KeyError:
                raise ValueError(f"unknown mapper type: {value!r}") from None
        return cls(value)


# Wire layouts
_CODE            = struct.Struct("<B")
_EXEC_HEADER     = struct.Struct("<Biii")
_LENGTH_HEADER   = struct.Struct("<Bi")
_AFFINITY        = struct.Struct("<BiiI")
_MOUSE           = struct.Struct("<BiIhhh")
_PROCESS         = struct.Struct("<BihhiqI32s")
_GAMEPAD_QUERY   = struct.Struct("<BB")
_GAMEPAD_HEADER  = struct.Struct("<BiBi")
_STATE_QUERY     = struct.Struct("<Bi")
_STATE_HEADER    = struct.Struct("<BB")
_STATE_ID        = struct.Struct("<i")

AFFINITY_PAYLOAD_SIZE = 8
MOUSE_PAYLOAD_SIZE    = 10
EXEC_LENGTHS_SIZE     = 8

INT16_MIN, INT16_MAX = -0x8000, 0x7FFF

# ══════════════════════════════════════════════════════════════════════════════
# MESSAGES: HOST -> PEER
# ══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Exec:
    code: ClassVar[RequestCode] = RequestCode.EXEC
    filename: str
    parameters: str = ""


@dataclass(frozen=True)
class KillProcess:
    code: ClassVar[RequestCode] = RequestCode.KILL_PROCESS
    name: str


@dataclass(frozen=True)
class ListProcesses:
    code: ClassVar[RequestCode] = RequestCode.LIST_PROCESSES


@dataclass(frozen=True)
class SetProcessAffinity:
    code: ClassVar[RequestCode] = RequestCode.SET_PROCESS_AFFINITY
    pid: int
    affinity_mask: int


@dataclass(frozen=True)
class MouseEvent:
    code: ClassVar[RequestCode] = RequestCode.MOUSE_EVENT
    flags: int
    dx: int
    dy: int
    wheel_delta: int = 0


@dataclass(frozen=True)
class GamepadInfo:
    """GET_GAMEPAD reply. ``gamepad_id`` is None when no gamepad is available."""
    code: ClassVar[RequestCode] = RequestCode.GET_GAMEPAD
    gamepad_id: Optional[int]
    mapper_type: MapperType = MapperType.XINPUT
    name: str = ""


@dataclass(frozen=True)
class GamepadStateReply:
    """GET_GAMEPAD_STATE reply. ``gamepad_id`` is None when there is no state."""
    code: ClassVar[RequestCode] = RequestCode.GET_GAMEPAD_STATE
    gamepad_id: Optional[int]
    snapshot: bytes = b""

    @property
    def has_state(self) -> bool:
        return self.gamepad_id is not None

# ══════════════════════════════════════════════════════════════════════════════
# MESSAGES: PEER -> HOST
# ══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ProcessInfo:
    pid: int
    name: str
    memory_usage: int
    affinity_mask: int


@dataclass(frozen=True)
class Init:
    code: ClassVar[RequestCode] = RequestCode.INIT


@dataclass(frozen=True)
class Exit:
    code: ClassVar[RequestCode] = RequestCode.EXIT


@dataclass(frozen=True)
class ProcessReport:
    """GET_PROCESS: one entry of a process listing."""
    code: ClassVar[RequestCode] = RequestCode.GET_PROCESS
    index: int
    count: int
    info: ProcessInfo


@dataclass(frozen=True)
class GamepadQuery:
    code: ClassVar[RequestCode] = RequestCode.GET_GAMEPAD
    is_xinput: bool = False


@dataclass(frozen=True)
class GamepadStateQuery:
    code: ClassVar[RequestCode] = RequestCode.GET_GAMEPAD_STATE
    gamepad_id: int


@dataclass(frozen=True)
class ReleaseGamepad:
    code: ClassVar[RequestCode] = RequestCode.RELEASE_GAMEPAD

# ══════════════════════════════════════════════════════════════════════════════
# HELPERS
# ══════════════════════════════════════════════════════════════════════════════


def _checked(kind: str, data: bytes) -> bytes:
    if len(data) > MAX_DATAGRAM_SIZE:
        raise MessageTooLarge(kind, len(data), MAX_DATAGRAM_SIZE)
    return data


def _clamp16(value: int) -> int:
    return max(INT16_MIN, min(INT16_MAX, int(value)))


def fit_utf8(text: str, limit: int) -> bytes:
    """Encode ``text`` as UTF-8, cut to at most ``limit`` bytes on a character boundary."""
    raw = text.encode(TEXT_ENCODING)
    if len(raw) <= limit:
        return raw
    return raw[:limit].decode(TEXT_ENCODING, errors="ignore").encode(TEXT_ENCODING)


def from_ansi(raw: bytes) -> str:
    """Decode a fixed-width, NUL/space padded ANSI string."""
    return raw.split(b"\x00", 1)[0].decode(ANSI_ENCODING, errors="replace").strip()


def to_ansi(text: str, width: int = PROCESS_NAME_SIZE) -> bytes:
    return text.encode(ANSI_ENCODING, errors="replace")[:width].ljust(width, b"\x00")


def _unpack(layout: struct.Struct, data: bytes, kind: str) -> tuple:
    try:
        return layout.unpack_from(data)
    except struct.error as e:
        raise ProtocolError(f"truncated {kind} datagram ({len(data)} bytes): {e}") from None


def _text(raw: bytes, kind: str) -> str:
    try:
        return raw.decode(TEXT_ENCODING)
    except UnicodeDecodeError as e:
        raise ProtocolError(f"bad text in {kind} datagram: {e}") from None

# ══════════════════════════════════════════════════════════════════════════════
# ENCODERS
# ══════════════════════════════════════════════════════════════════════════════


def encode_exec(msg: Exec) -> bytes:
    filename = msg.filename.encode(TEXT_ENCODING)
    params = msg.parameters.encode(TEXT_ENCODING)
    header = _EXEC_HEADER.pack(RequestCode.EXEC,
                               len(filename) + len(params) + EXEC_LENGTHS_SIZE,
                               len(filename), len(params))
    return _checked("EXEC", header + filename + params)


def encode_kill_process(msg: KillProcess) -> bytes:
    name = msg.name.encode(TEXT_ENCODING)
    return _checked("KILL_PROCESS", _LENGTH_HEADER.pack(RequestCode.KILL_PROCESS, len(name)) + name)


def encode_list_processes(msg: ListProcesses) -> bytes:
    return _LENGTH_HEADER.pack(RequestCode.LIST_PROCESSES, 0)


def encode_set_process_affinity(msg: SetProcessAffinity) -> bytes:
    return _AFFINITY.pack(RequestCode.SET_PROCESS_AFFINITY, AFFINITY_PAYLOAD_SIZE,
                          msg.pid, msg.affinity_mask & 0xFFFFFFFF)


def encode_mouse_event(msg: MouseEvent) -> bytes:
    return _MOUSE.pack(RequestCode.MOUSE_EVENT, MOUSE_PAYLOAD_SIZE, msg.flags & 0xFFFFFFFF,
                       _clamp16(msg.dx), _clamp16(msg.dy), _clamp16(msg.wheel_delta))


def encode_gamepad_info(msg: GamepadInfo) -> bytes:
    if msg.gamepad_id is None:
        return _LENGTH_HEADER.pack(RequestCode.GET_GAMEPAD, 0)
    name = fit_utf8(msg.name, MAX_DATAGRAM_SIZE - _GAMEPAD_HEADER.size)
    header = _GAMEPAD_HEADER.pack(RequestCode.GET_GAMEPAD, msg.gamepad_id,
                                  MapperType.parse(msg.mapper_type), len(name))
    return _checked("GET_GAMEPAD", header + name)


def encode_gamepad_state_reply(msg: GamepadStateReply) -> bytes:
    if msg.gamepad_id is None:
        return _STATE_HEADER.pack(RequestCode.GET_GAMEPAD_STATE, 0)
    data = (_STATE_HEADER.pack(RequestCode.GET_GAMEPAD_STATE, 1)
            + _STATE_ID.pack(msg.gamepad_id) + bytes(msg.snapshot))
    return _checked("GET_GAMEPAD_STATE", data)


def encode_process_report(msg: ProcessReport) -> bytes:
    info = msg.info
    payload_len = _PROCESS.size - _LENGTH_HEADER.size
    return _PROCESS.pack(RequestCode.GET_PROCESS, payload_len, msg.count, msg.index,
                         info.pid, info.memory_usage, info.affinity_mask & 0xFFFFFFFF,
                         to_ansi(info.name))


def encode_gamepad_query(msg: GamepadQuery) -> bytes:
    return _GAMEPAD_QUERY.pack(RequestCode.GET_GAMEPAD, 1 if msg.is_xinput else 0)


def encode_gamepad_state_query(msg: GamepadStateQuery) -> bytes:
    return _STATE_QUERY.pack(RequestCode.GET_GAMEPAD_STATE, msg.gamepad_id)


def _encode_code_only(msg) -> bytes:
    return _CODE.pack(msg.code)


_ENCODERS: Dict[type, Callable[..., bytes]] = {
    Exec: encode_exec,
    KillProcess: encode_kill_process,
    ListProcesses: encode_list_processes,
    SetProcessAffinity: encode_set_process_affinity,
    MouseEvent: encode_mouse_event,
    GamepadInfo: encode_gamepad_info,
    GamepadStateReply: encode_gamepad_state_reply,
    ProcessReport: encode_process_report,
    GamepadQuery: encode_gamepad_query,
    GamepadStateQuery: encode_gamepad_state_query,
    Init: _encode_code_only,
    Exit: _encode_code_only,
    ReleaseGamepad: _encode_code_only,
}


def encode_message(msg) -> bytes:
    """Serialize any protocol message to one datagram."""
    try:
        encoder = _ENCODERS[type(msg)]
    except KeyError:
        raise TypeError(f"not a protocol message: {msg!r}") from None
    return encoder(msg)

# ══════════════════════════════════════════════════════════════════════════════
# DECODERS
# ══════════════════════════════════════════════════════════════════════════════


def read_exec_lengths(data: bytes) -> Tuple[int, int, int]:
    """Return (payload_len, filename_len, params_len) declared by an EXEC datagram."""
    _, payload_len, filename_len, params_len = _unpack(_EXEC_HEADER, data, "EXEC")
    return payload_len, filename_len, params_len


def decode_exec(data: bytes) -> Exec:
    _, filename_len, params_len = read_exec_lengths(data)
    start = _EXEC_HEADER.size
    if filename_len < 0 or params_len < 0 or start + filename_len + params_len > len(data):
        raise ProtocolError("EXEC lengths exceed datagram")
    filename = data[start:start + filename_len]
    params = data[start + filename_len:start + filename_len + params_len]
    return Exec(_text(filename, "EXEC"), _text(params, "EXEC"))


def decode_kill_process(data: bytes) -> KillProcess:
    _, name_len = _unpack(_LENGTH_HEADER, data, "KILL_PROCESS")
    start = _LENGTH_HEADER.size
    if name_len < 0 or start + name_len > len(data):
        raise ProtocolError("KILL_PROCESS name length exceeds datagram")
    return KillProcess(_text(data[start:start + name_len], "KILL_PROCESS"))


def decode_list_processes(data: bytes) -> ListProcesses:
    _unpack(_LENGTH_HEADER, data, "LIST_PROCESSES")
    return ListProcesses()


def decode_set_process_affinity(data: bytes) -> SetProcessAffinity:
    _, _, pid, mask = _unpack(_AFFINITY, data, "SET_PROCESS_AFFINITY")
    return SetProcessAffinity(pid, mask)


def decode_mouse_event(data: bytes) -> MouseEvent:
    _, _, flags, dx, dy, wheel = _unpack(_MOUSE, data, "MOUSE_EVENT")
    return MouseEvent(flags, dx, dy, wheel)


def decode_process_report(data: bytes) -> ProcessReport:
    _, _, count, index, pid, memory, mask, name = _unpack(_PROCESS, data, "GET_PROCESS")
    return ProcessReport(index, count, ProcessInfo(pid, from_ansi(name), memory, mask))


def decode_gamepad_query(data: bytes) -> GamepadQuery:
    """GET_GAMEPAD from the peer; a missing hint byte reads as not-XInput."""
    return GamepadQuery(len(data) >= _GAMEPAD_QUERY.size and data[1] == 1)


def decode_gamepad_info(data: bytes) -> GamepadInfo:
    """GET_GAMEPAD reply from the host (id 0 with no header means "no gamepad")."""
    _, gamepad_id = _unpack(_LENGTH_HEADER, data, "GET_GAMEPAD")
    if gamepad_id == 0 and len(data) < _GAMEPAD_HEADER.size:
        return GamepadInfo(None)
    _, gamepad_id, mapper, name_len = _unpack(_GAMEPAD_HEADER, data, "GET_GAMEPAD")
    start = _GAMEPAD_HEADER.size
    if name_len < 0 or start + name_len > len(data):
        raise ProtocolError("GET_GAMEPAD name length exceeds datagram")
    try:
        mapper_type = MapperType(mapper)
    except ValueError:
        raise ProtocolError(f"unknown mapper type {mapper}") from None
    return GamepadInfo(gamepad_id, mapper_type, _text(data[start:start + name_len], "GET_GAMEPAD"))


def decode_gamepad_state_query(data: bytes) -> GamepadStateQuery:
    _, gamepad_id = _unpack(_STATE_QUERY, data, "GET_GAMEPAD_STATE")
    return GamepadStateQuery(gamepad_id)


def decode_gamepad_state_reply(data: bytes) -> GamepadStateReply:
    _, has_state = _unpack(_STATE_HEADER, data, "GET_GAMEPAD_STATE")
    if not has_state:
        return GamepadStateReply(None)
    (gamepad_id,) = _unpack(_STATE_ID, data[_STATE_HEADER.size:], "GET_GAMEPAD_STATE")
    return GamepadStateReply(gamepad_id, bytes(data[_STATE_HEADER.size + _STATE_ID.size:]))


# What the host accepts. Fields are read at fixed offsets; trailing bytes
# are ignored, so a padded query is still a query.
_REQUEST_DECODERS: Dict[int, Callable[[bytes], object]] = {
    RequestCode.EXIT: lambda data: Exit(),
    RequestCode.INIT: lambda data: Init(),
    RequestCode.GET_PROCESS: decode_process_report,
    RequestCode.GET_GAMEPAD: decode_gamepad_query,
    RequestCode.GET_GAMEPAD_STATE: decode_gamepad_state_query,
    RequestCode.RELEASE_GAMEPAD: lambda data: ReleaseGamepad(),
}

# What the peer receives from the host
_DECODERS: Dict[int, Callable[[bytes], object]] = {
    RequestCode.EXIT: lambda data: Exit(),
    RequestCode.INIT: lambda data: Init(),
    RequestCode.EXEC: decode_exec,
    RequestCode.KILL_PROCESS: decode_kill_process,
    RequestCode.LIST_PROCESSES: decode_list_processes,
    RequestCode.GET_PROCESS: decode_process_report,
    RequestCode.SET_PROCESS_AFFINITY: decode_set_process_affinity,
    RequestCode.MOUSE_EVENT: decode_mouse_event,
    RequestCode.GET_GAMEPAD: decode_gamepad_info,
    RequestCode.GET_GAMEPAD_STATE: decode_gamepad_state_reply,
    RequestCode.RELEASE_GAMEPAD: lambda data: ReleaseGamepad(),
}


def peek_code(data: bytes) -> RequestCode:
    if not data:
        raise ProtocolError("empty datagram")
    try:
        return RequestCode(data[0])
    except ValueError:
        raise ProtocolError(f"unknown request code {data[0]}") from None


def decode_request(data: bytes):
    """Decode one datagram received by the host."""
    code = peek_code(data)
    decoder = _REQUEST_DECODERS.get(code)
    if decoder is None:
        raise ProtocolError(f"{code.name} is not a request to the host")
    return decoder(bytes(data))


def decode_message(data: bytes):
    """Decode one datagram as the peer sees it (host requests and replies)."""
    return _DECODERS[peek_code(data)](bytes(data))
