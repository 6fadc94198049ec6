from __future__ import annotations

from typing import List, Tuple

import pytest

from gbpilot.control.executor import ActionExecutor, ButtonState
from gbpilot.core.types import ActionStep, Button, ParsedAction, StepPhase
from gbpilot.middleware.device import GameDevice


class _RecordingDevice(GameDevice):
    def __init__(self, clock: List[float]) -> None:
        self.calls: List[Tuple[str, Button, float]] = []
        self._clock = clock

    @property
    def title(self) -> str:
        return "TEST"

    def is_running(self) -> bool:
        return True

    def capture_frame(self):
        return None

    def press_button(self, button: Button) -> None:
        self.calls.append(("press", button, self._clock[0]))

    def release_button(self, button: Button) -> None:
        self.calls.append(("release", button, self._clock[0]))

    def read_u8(self, address: int) -> int:
        return 0


def _executor(**kwargs) -> Tuple[ActionExecutor, _RecordingDevice, List[float]]:
    clock = [0.0]

    def _sleep(seconds: float) -> None:
        clock[0] += seconds * 1000.0

    executor = ActionExecutor(sleep=_sleep, **kwargs)
    return executor, _RecordingDevice(clock), clock


def test_single_button_press_uses_default_duration() -> None:
    executor, device, _ = _executor()

    executor.execute(ParsedAction(button=Button.A, rationale="confirm"), device)

    assert device.calls == [("press", Button.A, 0.0), ("release", Button.A, 100.0)]
    assert executor.state(Button.A) is ButtonState.RELEASED


def test_default_duration_is_configurable() -> None:
    executor, device, _ = _executor(default_duration_ms=250)

    executor.execute(ParsedAction(button=Button.LEFT), device)

    assert device.calls[-1] == ("release", Button.LEFT, 250.0)


@pytest.mark.parametrize(
    "action",
    [
        ParsedAction(button=Button.NONE, rationale="wait"),
        ParsedAction.error_sentinel("unparseable"),
    ],
)
def test_none_and_error_sentinel_make_no_device_calls(action: ParsedAction) -> None:
    executor, device, _ = _executor()

    assert executor.execute(action, device) == 0
    assert device.calls == []


def test_sequence_press_hold_release() -> None:
    executor, device, _ = _executor()
    action = ParsedAction(
        button=Button.RIGHT,
        sequence=(
            ActionStep(Button.RIGHT, StepPhase.HOLD, 500),
            ActionStep(Button.A, StepPhase.PRESS, 200),
            ActionStep(Button.RIGHT, StepPhase.RELEASE),
        ),
    )

    assert executor.execute(action, device) == 3

    assert device.calls == [
        ("press", Button.RIGHT, 0.0),
        ("press", Button.A, 500.0),
        ("release", Button.A, 700.0),
        ("release", Button.RIGHT, 700.0),
    ]
    assert executor.state(Button.RIGHT) is ButtonState.RELEASED


def test_hold_leaves_button_held_until_released() -> None:
    executor, device, _ = _executor()

    executor.execute(ParsedAction(button=Button.B, sequence=(ActionStep(Button.B, StepPhase.HOLD, 50),)), device)

    assert executor.state(Button.B) is ButtonState.HELD
    executor.release_all(device)
    assert executor.state(Button.B) is ButtonState.RELEASED
    assert device.calls[-1][:2] == ("release", Button.B)


def test_release_is_scheduled_while_waiting() -> None:
    states = []
    executor = ActionExecutor(sleep=lambda seconds: states.append(executor.state(Button.UP)))

    class _Device(_RecordingDevice):
        def press_button(self, button: Button) -> None:
            states.append(executor.state(button))

    executor.execute(ParsedAction(button=Button.UP), _Device([0.0]))

    assert states == [ButtonState.PRESSED, ButtonState.RELEASE_SCHEDULED]
    assert executor.state(Button.UP) is ButtonState.RELEASED
