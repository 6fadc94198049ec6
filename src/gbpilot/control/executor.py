"""
Executes parsed actions as device button edges.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Callable, Dict, List, Optional

from gbpilot.core.types import ActionStep, Button, ParsedAction, StepPhase
from gbpilot.middleware.device import GameDevice

logger = logging.getLogger(__name__)

DEFAULT_PRESS_DURATION_MS = 100


class ButtonState(str, Enum):
    RELEASED = "released"
    PRESSED = "pressed"
    RELEASE_SCHEDULED = "release_scheduled"
    HELD = "held"


class ActionExecutor:
    """
    Turns a ``ParsedAction`` into press/release calls.

    ``press`` steps press, wait and release; ``hold`` steps press and wait
    without releasing; ``release`` steps only release. ``sleep`` receives
    seconds and defaults to ``time.sleep``.
    """

    def __init__(
        self,
        *,
        default_duration_ms: int = DEFAULT_PRESS_DURATION_MS,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        self.default_duration_ms = int(default_duration_ms)
        self._sleep = sleep or time.sleep
        self._states: Dict[Button, ButtonState] = {}

    def state(self, button: Button) -> ButtonState:
        return self._states.get(button, ButtonState.RELEASED)

    def steps_for(self, action: ParsedAction) -> List[ActionStep]:
        if action.is_error:
            return []
        if action.sequence:
            return [step for step in action.sequence if step.button is not Button.NONE]
        if action.button is Button.NONE:
            return []
        return [ActionStep(button=action.button, phase=StepPhase.PRESS, duration_ms=self.default_duration_ms)]

    def execute(self, action: ParsedAction, device: GameDevice) -> int:
        """Run ``action`` on ``device``; returns the number of steps performed."""

        steps = self.steps_for(action)
        for step in steps:
            self._run_step(step, device)
        if steps:
            logger.debug("Executed %d step(s) for %s", len(steps), action.button.value)
        return len(steps)

    def release_all(self, device: GameDevice) -> None:
        for button, state in list(self._states.items()):
            if state is not ButtonState.RELEASED:
                device.release_button(button)
                self._states[button] = ButtonState.RELEASED

    def _run_step(self, step: ActionStep, device: GameDevice) -> None:
        duration_ms = self.default_duration_ms if step.duration_ms is None else max(0, int(step.duration_ms))
        button = step.button
        if step.phase is StepPhase.RELEASE:
            device.release_button(button)
            self._states[button] = ButtonState.RELEASED
            return

        self._states[button] = ButtonState.PRESSED
        device.press_button(button)
        if step.phase is StepPhase.HOLD:
            self._states[button] = ButtonState.HELD
            self._wait(duration_ms)
            return

        self._states[button] = ButtonState.RELEASE_SCHEDULED
        try:
            self._wait(duration_ms)
        finally:
            device.release_button(button)
            self._states[button] = ButtonState.RELEASED

    def _wait(self, duration_ms: int) -> None:
        if duration_ms > 0:
            self._sleep(duration_ms / 1000.0)


__all__ = ["ActionExecutor", "ButtonState", "DEFAULT_PRESS_DURATION_MS"]
