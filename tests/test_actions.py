import threading

from winhandler.actions import Action, ActionQueue, passes_gate
from winhandler.codec import Exec, ListProcesses, MouseEvent, GamepadInfo
from winhandler.state import SessionState


def running_session(initialized: bool = False) -> SessionState:
    session = SessionState()
    session.set_running()
    if initialized:
        session.mark_initialized()
    return session


def test_actions_compare_by_value():
    assert Action(Exec("a.exe", "-x")) == Action(Exec("a.exe", "-x"))
    assert Action(GamepadInfo(None), 5000) != Action(GamepadInfo(None), 5001)


def test_gate_blocks_everything_but_list_processes():
    session = running_session()
    assert not passes_gate(Action(Exec("a.exe")), session)
    assert passes_gate(Action(ListProcesses()), session)
    session.mark_initialized()
    assert passes_gate(Action(Exec("a.exe")), session)


def test_pop_ready_waits_for_handshake():
    queue = ActionQueue()
    session = running_session()
    queue.enqueue(Action(Exec("a.exe")))

    assert queue.pop_ready(session, timeout=0.05) is None
    assert len(queue) == 1

    session.mark_initialized()
    assert queue.pop_ready(session, timeout=0.05) == Action(Exec("a.exe"))


def test_list_processes_passes_only_at_head():
    queue = ActionQueue()
    session = running_session()
    queue.enqueue(Action(ListProcesses()))
    queue.enqueue(Action(Exec("a.exe")))
    queue.enqueue(Action(ListProcesses()))

    assert queue.pop_ready(session, timeout=0.05) == Action(ListProcesses())
    assert queue.pop_ready(session, timeout=0.05) is None
    assert queue.pending() == [Action(Exec("a.exe")), Action(ListProcesses())]


def test_pop_ready_returns_none_once_stopped():
    queue = ActionQueue()
    session = running_session(initialized=True)
    queue.enqueue(Action(Exec("a.exe")))
    session.clear_running()
    assert queue.pop_ready(session, timeout=0.05) is None


def test_enqueue_when_checks_condition():
    queue = ActionQueue()
    assert not queue.enqueue_when(lambda: False, Action(MouseEvent(1, 1, 1)))
    assert len(queue) == 0
    assert queue.enqueue_when(lambda: True, Action(MouseEvent(1, 1, 1)))
    assert len(queue) == 1


def test_waiting_consumer_wakes_on_enqueue():
    queue = ActionQueue()
    session = running_session(initialized=True)
    result = []

    consumer = threading.Thread(target=lambda: result.append(queue.pop_ready(session, timeout=2.0)))
    consumer.start()
    queue.enqueue(Action(Exec("late.exe")))
    consumer.join(timeout=3.0)

    assert result == [Action(Exec("late.exe"))]


def test_session_state_transitions():
    session = SessionState()
    assert session.state == SessionState.UNINITIALIZED
    assert session.mark_initialized()
    assert not session.mark_initialized()
    assert session.status_text == "READY"
    session.reset()
    assert not session.initialized
