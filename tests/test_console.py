import queue

from winhandler.codec import ProcessInfo
from winhandler.config import Settings
from winhandler.console import ConsoleUI
from winhandler.log import log_event
from winhandler.session import WinHandler


def make_console(registry, fake_transport):
    uiq = queue.Queue()
    handler = WinHandler(Settings(), registry=registry, ui_queue=uiq, transport=fake_transport())
    return ConsoleUI(handler, uiq), handler, uiq


def test_console_registers_process_callback(registry, fake_transport):
    console, handler, _ = make_console(registry, fake_transport)
    assert handler.on_get_process_info == console.post_process_info


def test_events_reach_console_log(registry, fake_transport):
    console, handler, uiq = make_console(registry, fake_transport)

    log_event(uiq, 'System', "hello")
    handler.on_get_process_info(0, 1, ProcessInfo(42, "game.exe", 2048, 0x3))
    handler.on_get_process_info(0, 0, None)
    console._consume_events()

    lines = list(console._log)
    assert lines[0].endswith("[System] hello")
    assert lines[1].endswith("[Processes] 1/1 pid=42 game.exe mem=2K mask=0x3")
    assert lines[2].endswith("[Processes] Listing failed")
    assert uiq.empty()


def test_gamepad_text_without_controller(registry, fake_transport):
    console, _, _ = make_console(registry, fake_transport)
    assert console._gamepad_text() == "(none)"
