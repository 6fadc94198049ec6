"""
Lightweight dataclasses shared by the prompting, execution and control layers.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple


class Button(str, Enum):
    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"
    A = "a"
    B = "b"
    START = "start"
    SELECT = "select"
    NONE = "none"

    @classmethod
    def parse(cls, value: object) -> Optional["Button"]:
        """Return the button named by ``value`` (case-insensitive) or ``None``."""
        if isinstance(value, Button):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


# Physical buttons, i.e. everything the device can actually press.
PHYSICAL_BUTTONS: Tuple[Button, ...] = tuple(button for button in Button if button is not Button.NONE)


class StepPhase(str, Enum):
    PRESS = "press"
    HOLD = "hold"
    RELEASE = "release"


@dataclass(frozen=True)
class ActionStep:
    """One entry of a timed button sequence."""

    button: Button
    phase: StepPhase = StepPhase.PRESS
    duration_ms: Optional[int] = None


@dataclass(frozen=True)
class ParsedAction:
    """
    Action decoded from a model reply.

    Attributes
    ----------
    button:
        Single button to press when no ``sequence`` is given.
    rationale:
        Natural-language reasoning extracted from the reply.
    sequence:
        Optional ordered press/hold/release steps; takes precedence over ``button``.
    goal_progress_note:
        Optional comment on progress toward the active goal.
    error:
        Set only on the error sentinel, describing why no action could be determined.
    """

    button: Button
    rationale: str = ""
    sequence: Tuple[ActionStep, ...] = ()
    goal_progress_note: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @classmethod
    def error_sentinel(cls, reason: str, rationale: str = "") -> "ParsedAction":
        return cls(button=Button.NONE, rationale=rationale, error=reason)


@dataclass(frozen=True)
class ActionRecord:
    """Entry of the controller's recent-action history."""

    button: Button
    rationale: str


@dataclass
class ActionHistory:
    """Bounded most-recent-last list of executed actions."""

    capacity: int = 10
    entries: List[ActionRecord] = field(default_factory=list)

    def append(self, record: ActionRecord) -> None:
        self.entries.append(record)
        overflow = len(self.entries) - max(1, self.capacity)
        if overflow > 0:
            del self.entries[:overflow]

    def recent(self, limit: int) -> List[ActionRecord]:
        if limit <= 0:
            return []
        return list(self.entries[-limit:])

    def clear(self) -> None:
        self.entries.clear()

    def __len__(self) -> int:
        return len(self.entries)


__all__ = [
    "ActionHistory",
    "ActionRecord",
    "ActionStep",
    "Button",
    "PHYSICAL_BUTTONS",
    "ParsedAction",
    "StepPhase",
]
