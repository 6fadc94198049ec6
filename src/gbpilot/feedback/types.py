"""
Event and result records produced by the feedback engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Mapping, Optional

import numpy as np
from numpy.typing import NDArray

from gbpilot.core.types import Button


class EventSource(str, Enum):
    MEMORY = "memory"
    TEXT = "text"
    IMAGE = "image"
    MANUAL = "manual"
    SYSTEM = "system"


@dataclass(frozen=True)
class Region:
    """Pixel rectangle inside a frame; ``crop`` clips to the frame bounds."""

    x: int
    y: int
    width: int
    height: int

    def crop(self, frame: NDArray) -> NDArray:
        height, width = frame.shape[:2]
        x0 = min(max(0, int(self.x)), width)
        y0 = min(max(0, int(self.y)), height)
        x1 = min(width, x0 + max(0, int(self.width)))
        y1 = min(height, y0 + max(0, int(self.height)))
        return frame[y0:y1, x0:x1]

    @classmethod
    def from_mapping(cls, payload: Optional[Mapping[str, Any]]) -> Optional["Region"]:
        if not payload:
            return None
        return cls(
            x=int(payload.get("x", 0)),
            y=int(payload.get("y", 0)),
            width=int(payload["width"]),
            height=int(payload["height"]),
        )


@dataclass(frozen=True)
class GameEvent:
    """
    Event emitted by a detector (or injected manually) during a poll.

    Attributes
    ----------
    type:
        Id of the detector that fired; reward rules match on it.
    timestamp:
        Poll time in milliseconds.
    source:
        Origin of the event.
    data:
        Optional free-form payload, e.g. ``{"value": 12, "previous": 10, "change": 2}``.
    """

    type: str
    timestamp: float
    source: EventSource
    data: Optional[Mapping[str, Any]] = None


@dataclass(frozen=True)
class PollContext:
    """Per-poll inputs that are not part of the frame."""

    title: str
    timestamp_ms: Optional[float] = None
    last_action: Optional[Button] = None


@dataclass
class FeedbackResult:
    """Everything a single poll produced."""

    text_lines: List[str] = field(default_factory=list)
    reward: float = 0.0
    events: List[GameEvent] = field(default_factory=list)
    episode_total: float = 0.0


def blank_frame(height: int = 144, width: int = 160) -> NDArray:
    """Return an all-black RGB frame at the Game Boy resolution."""
    return np.zeros((height, width, 3), dtype=np.uint8)


__all__ = [
    "EventSource",
    "FeedbackResult",
    "GameEvent",
    "PollContext",
    "Region",
    "blank_frame",
]
