import threading

import pytest

from winhandler.gamepad import (
    GAMEPAD_BUFFER_CAPACITY, SNAPSHOT_SIZE, POV_CENTERED,
    Button, Dpad, GamepadState, GamepadStateBuffer, ControlsProfile, VirtualGamepad,
)


def test_snapshot_is_fixed_size():
    assert SNAPSHOT_SIZE == 13
    assert len(GamepadState().to_bytes()) == SNAPSHOT_SIZE


def test_buttons_and_axes_survive_snapshot():
    state = GamepadState()
    state.set_pressed(Button.A, True)
    state.set_pressed(Button.START, True)
    state.thumb_lx = 1.0
    state.thumb_ry = -0.5
    state.trigger_r = 1.0
    state.dpad[Dpad.UP] = True
    state.dpad[Dpad.RIGHT] = True

    restored = GamepadState.from_bytes(state.to_bytes())
    assert restored.is_pressed(Button.A)
    assert restored.is_pressed(Button.START)
    assert not restored.is_pressed(Button.B)
    assert restored.thumb_lx == 1.0
    assert restored.thumb_ry == pytest.approx(-0.5, abs=1e-4)
    assert restored.trigger_r == 1.0
    assert restored.pov_hat() == 1


def test_out_of_range_axes_are_clamped():
    state = GamepadState()
    state.thumb_lx = 3.0
    state.trigger_l = -1.0
    restored = GamepadState.from_bytes(state.to_bytes())
    assert restored.thumb_lx == 1.0
    assert restored.trigger_l == 0.0


@pytest.mark.parametrize("dpad,pov", [
    ((False, False, False, False), POV_CENTERED),
    ((True, False, False, False), 0),
    ((False, True, True, False), 3),
    ((False, False, False, True), 6),
    ((True, False, False, True), 7),
])
def test_pov_hat(dpad, pov):
    state = GamepadState()
    state.dpad = list(dpad)
    assert state.pov_hat() == pov
    other = GamepadState()
    other.set_pov_hat(pov)
    assert other.dpad == list(dpad)


def test_release_clears_button():
    state = GamepadState()
    state.set_pressed(Button.R2, True)
    state.set_pressed(Button.R2, False)
    assert state.buttons == 0


def test_buffer_evicts_oldest_beyond_capacity():
    buffer = GamepadStateBuffer()
    snapshots = [bytes([i]) * SNAPSHOT_SIZE for i in range(21)]
    for snapshot in snapshots:
        buffer.save(snapshot)

    assert len(buffer) == GAMEPAD_BUFFER_CAPACITY
    assert buffer.pending() == snapshots[1:]
    assert buffer.poll() == snapshots[1]


def test_buffer_poll_empty_and_clear():
    buffer = GamepadStateBuffer(capacity=3)
    assert buffer.poll() is None
    buffer.save(b"a")
    buffer.save(b"b")
    buffer.clear()
    assert len(buffer) == 0
    assert buffer.poll() is None


def test_buffer_never_exceeds_capacity_under_concurrent_saves():
    buffer = GamepadStateBuffer()

    def producer(tag: int) -> None:
        for i in range(200):
            buffer.save(bytes([tag, i % 256]))

    threads = [threading.Thread(target=producer, args=(t,)) for t in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(buffer) == GAMEPAD_BUFFER_CAPACITY


def test_virtual_gamepad_reports_profile():
    profile = ControlsProfile(7, "Touch Pad", virtual_gamepad=True)
    profile.gamepad_state.set_pressed(Button.X, True)
    source = VirtualGamepad(profile)

    assert source.is_active()
    assert source.identifier() == 7
    assert source.display_name() == "Touch Pad"
    assert GamepadState.from_bytes(source.current_snapshot()).is_pressed(Button.X)

    profile.virtual_gamepad = False
    assert not source.is_active()
