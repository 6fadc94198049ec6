"""
Core value types shared by every controller layer.
"""

from .types import (
    PHYSICAL_BUTTONS,
    ActionHistory,
    ActionRecord,
    ActionStep,
    Button,
    ParsedAction,
    StepPhase,
)

__all__ = [
    "ActionHistory",
    "ActionRecord",
    "ActionStep",
    "Button",
    "PHYSICAL_BUTTONS",
    "ParsedAction",
    "StepPhase",
]
