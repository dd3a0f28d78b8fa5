import struct

import pytest

from winhandler.codec import (
    MAX_DATAGRAM_SIZE, RequestCode, MapperType, ProcessInfo,
    Exec, KillProcess, ListProcesses, SetProcessAffinity, MouseEvent,
    GamepadInfo, GamepadStateReply, Init, ProcessReport, GamepadQuery,
    GamepadStateQuery, ReleaseGamepad,
    encode_message, decode_message, decode_request, read_exec_lengths, fit_utf8, from_ansi,
)
from winhandler.errors import ProtocolError, MessageTooLarge


def test_exec_declares_lengths():
    data = encode_message(Exec("notepad.exe", ""))
    assert read_exec_lengths(data) == (19, 11, 0)
    assert data[0] == RequestCode.EXEC
    assert data[13:] == b"notepad.exe"


def test_exec_layout_with_parameters():
    data = encode_message(Exec("game.exe", "-fullscreen"))
    assert data == struct.pack("<Biii", 2, 27, 8, 11) + b"game.exe-fullscreen"
    assert decode_message(data) == Exec("game.exe", "-fullscreen")


def test_exec_too_large_is_rejected():
    with pytest.raises(MessageTooLarge) as excinfo:
        encode_message(Exec("a" * 40, "b" * 20))
    assert excinfo.value.size == 73
    assert isinstance(excinfo.value, ValueError)


def test_exec_at_limit_fits():
    data = encode_message(Exec("a" * (MAX_DATAGRAM_SIZE - 13)))
    assert len(data) == MAX_DATAGRAM_SIZE


def test_kill_process_layout():
    data = encode_message(KillProcess("game.exe"))
    assert data == b"\x03" + struct.pack("<i", 8) + b"game.exe"
    assert decode_message(data) == KillProcess("game.exe")


def test_list_processes_is_code_and_zero():
    assert encode_message(ListProcesses()) == b"\x04\x00\x00\x00\x00"


def test_set_process_affinity_layout():
    data = encode_message(SetProcessAffinity(1234, 0xFFFFFFFF))
    assert data == struct.pack("<BiiI", 6, 8, 1234, 0xFFFFFFFF)
    assert decode_message(data) == SetProcessAffinity(1234, 0xFFFFFFFF)


def test_mouse_event_layout_and_clamping():
    data = encode_message(MouseEvent(0x0001, 5, -7, 120))
    assert data == struct.pack("<BiIhhh", 7, 10, 1, 5, -7, 120)
    assert len(data) == 15

    clamped = decode_message(encode_message(MouseEvent(1, 100000, -100000, 0)))
    assert (clamped.dx, clamped.dy) == (32767, -32768)


def test_process_report_decodes_padded_ansi_name():
    name = b"caf\xe9.exe".ljust(30, b" ") + b"\x00\x00"
    data = struct.pack("<BihhiqI", 5, 52, 3, 1, 4242, 1 << 33, 0x0F) + name
    report = decode_message(data)
    assert report == ProcessReport(1, 3, ProcessInfo(4242, "café.exe", 1 << 33, 0x0F))


def test_process_report_round_trip_through_encoder():
    report = ProcessReport(0, 2, ProcessInfo(7, "explorer.exe", 1024, 3))
    data = encode_message(report)
    assert len(data) == 57
    assert decode_message(data) == report


def test_truncated_process_report_is_protocol_error():
    with pytest.raises(ProtocolError):
        decode_message(b"\x05\x00\x00")


def test_unknown_and_empty_datagrams_are_protocol_errors():
    with pytest.raises(ProtocolError):
        decode_message(b"\xfe")
    with pytest.raises(ProtocolError):
        decode_message(b"")


def test_gamepad_info_without_gamepad_is_code_and_zero():
    data = encode_message(GamepadInfo(None))
    assert data == b"\x08\x00\x00\x00\x00"
    assert decode_message(data) == GamepadInfo(None)


def test_gamepad_info_layout():
    data = encode_message(GamepadInfo(3, MapperType.STANDARD, "Pad"))
    assert data == struct.pack("<BiBi", 8, 3, 0, 3) + b"Pad"
    assert decode_message(data) == GamepadInfo(3, MapperType.STANDARD, "Pad")


def test_gamepad_info_truncates_long_names_on_character_boundary():
    data = encode_message(GamepadInfo(1, MapperType.XINPUT, "é" * 40))
    assert len(data) <= MAX_DATAGRAM_SIZE
    decoded = decode_message(data)
    assert decoded.name == "é" * 27


def test_gamepad_query_carries_xinput_hint():
    assert decode_request(b"\x08\x01") == GamepadQuery(True)
    assert decode_request(b"\x08\x00") == GamepadQuery(False)
    assert decode_request(b"\x08") == GamepadQuery(False)
    assert encode_message(GamepadQuery(True)) == b"\x08\x01"


def test_gamepad_state_query_and_replies():
    assert decode_request(struct.pack("<Bi", 9, 5)) == GamepadStateQuery(5)

    assert encode_message(GamepadStateReply(None)) == b"\x09\x00"
    assert decode_message(b"\x09\x00") == GamepadStateReply(None)

    snapshot = bytes(range(13))
    data = encode_message(GamepadStateReply(5, snapshot))
    assert data == b"\x09\x01" + struct.pack("<i", 5) + snapshot
    reply = decode_message(data)
    assert reply.has_state
    assert reply.snapshot == snapshot


def test_code_only_messages():
    assert encode_message(Init()) == b"\x01"
    assert decode_message(b"\x01") == Init()
    assert decode_message(b"\x0a") == ReleaseGamepad()


def test_encode_rejects_non_messages():
    with pytest.raises(TypeError):
        encode_message("EXEC")


def test_mapper_type_parse():
    assert MapperType.parse("xinput") is MapperType.XINPUT
    assert MapperType.parse("Standard") is MapperType.STANDARD
    assert MapperType.parse("0") is MapperType.STANDARD
    assert MapperType.parse(1) is MapperType.XINPUT
    with pytest.raises(ValueError):
        MapperType.parse("dinput")


def test_text_helpers():
    assert fit_utf8("abc", 2) == b"ab"
    assert fit_utf8("éé", 3) == "é".encode("utf-8")
    assert from_ansi(b"name\x00garbage") == "name"


def test_host_reads_padded_requests_as_requests():
    assert decode_request(b"\x08\x00\x00\x00\x00") == GamepadQuery(False)
    assert decode_request(b"\x08\x01" + bytes(62)) == GamepadQuery(True)
    assert decode_request(struct.pack("<Bi", 9, 5) + bytes(3)) == GamepadStateQuery(5)
    assert decode_request(b"\x01\x00\x00\x00\x00") == Init()

    report = ProcessReport(0, 1, ProcessInfo(7, "explorer.exe", 1024, 3))
    assert decode_request(encode_message(report) + bytes(7)) == report


def test_host_rejects_its_own_outbound_kinds():
    for message in (Exec("a.exe"), ListProcesses(), MouseEvent(1, 2, 3)):
        with pytest.raises(ProtocolError):
            decode_request(encode_message(message))
    with pytest.raises(ProtocolError):
        decode_request(b"\x09\x00")
