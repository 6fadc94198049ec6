"""
Event detectors evaluated by the feedback engine on every poll.

Three detector kinds are supported:

* ``memory``: reads a (possibly multi-byte) value from emulator RAM and
  compares it with a fixed value or with its own history;
* ``text``: runs an injected text recogniser over the frame and searches the
  result for a literal or regex pattern;
* ``image``: asks an injected image matcher for a similarity score against a
  reference pattern.

The recogniser and matcher are interfaces only. A detector whose capability is
missing, or whose capability raises, fails closed: it is logged and never
fires, and the remaining detectors of the poll are still evaluated.

Memory events from ``increased``/``decreased`` carry ``anchor`` as well as
``previous``: their ``change`` is ``value - anchor``, which differs from
``value - previous`` when the value crept up over several polls.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, Iterable, List, Optional, Protocol, Set, Tuple, Union

from numpy.typing import NDArray

from .types import EventSource, GameEvent, Region

logger = logging.getLogger(__name__)

MemoryReader = Callable[[int], int]


class DetectorKind(str, Enum):
    MEMORY = "memory"
    TEXT = "text"
    IMAGE = "image"


class MemoryWidth(str, Enum):
    U8 = "u8"
    U16 = "u16"
    I8 = "i8"
    I16 = "i16"

    @property
    def size(self) -> int:
        return 2 if self in (MemoryWidth.U16, MemoryWidth.I16) else 1

    @property
    def signed(self) -> bool:
        return self in (MemoryWidth.I8, MemoryWidth.I16)

    def read(self, read_u8: MemoryReader, address: int) -> int:
        """Decode the value stored at ``address``; 16-bit values are little-endian."""
        value = 0
        for offset in range(self.size):
            value |= (int(read_u8(address + offset)) & 0xFF) << (8 * offset)
        if self.signed:
            bits = 8 * self.size
            if value >= 1 << (bits - 1):
                value -= 1 << bits
        return value


class Comparator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    CHANGED = "changed"
    INCREASED = "increased"
    DECREASED = "decreased"

    @property
    def tracks_history(self) -> bool:
        return self in (Comparator.CHANGED, Comparator.INCREASED, Comparator.DECREASED)


# --------------------------------------------------------------------------- #
# Detector configuration (tagged variants)
# --------------------------------------------------------------------------- #


@dataclass(frozen=True, kw_only=True)
class DetectorConfig:
    """Fields shared by all detector kinds."""

    kind: ClassVar[DetectorKind]

    id: str
    cooldown_ms: float = 0.0
    enabled: bool = True
    description: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class MemoryDetectorConfig(DetectorConfig):
    kind: ClassVar[DetectorKind] = DetectorKind.MEMORY

    address: int
    width: MemoryWidth = MemoryWidth.U8
    comparator: Comparator = Comparator.CHANGED
    compare_value: Optional[int] = None
    change_threshold: Optional[int] = None


@dataclass(frozen=True, kw_only=True)
class TextDetectorConfig(DetectorConfig):
    kind: ClassVar[DetectorKind] = DetectorKind.TEXT

    pattern: str
    is_regex: bool = False
    case_sensitive: bool = False
    region: Optional[Region] = None


@dataclass(frozen=True, kw_only=True)
class ImageDetectorConfig(DetectorConfig):
    kind: ClassVar[DetectorKind] = DetectorKind.IMAGE

    pattern_ref: Any
    similarity_threshold: float = 0.8
    region: Optional[Region] = None


AnyDetectorConfig = Union[MemoryDetectorConfig, TextDetectorConfig, ImageDetectorConfig]


# --------------------------------------------------------------------------- #
# Capability interfaces
# --------------------------------------------------------------------------- #


class TextRecognizer(Protocol):
    def recognize(self, frame: NDArray, region: Optional[Region]) -> str:
        """Return the text visible in ``region`` (or the whole frame)."""


class ImageMatcher(Protocol):
    def similarity(self, frame: NDArray, pattern_ref: Any, region: Optional[Region]) -> float:
        """Return a similarity score in [0, 1] between ``region`` and the pattern."""


@dataclass
class DetectorCapabilities:
    """Optional collaborators the detectors rely on."""

    read_u8: Optional[MemoryReader] = None
    text_recognizer: Optional[TextRecognizer] = None
    image_matcher: Optional[ImageMatcher] = None


class CapabilityUnavailable(RuntimeError):
    """Internal signal that a detector cannot be evaluated this poll."""


@dataclass
class MemoryTracker:
    """
    History carried between polls for one memory detector.

    ``previous`` is the value seen on the last evaluation. ``anchor`` is the
    reference used by ``increased``/``decreased``: the value at the last firing,
    pulled along whenever the value moves the opposite way. ``source`` records
    the address, width and comparator the history was read with.
    """

    previous: Optional[int] = None
    anchor: Optional[int] = None
    source: Optional[Tuple[int, MemoryWidth, Comparator]] = None


# --------------------------------------------------------------------------- #
# Detector set
# --------------------------------------------------------------------------- #


@dataclass
class DetectorSet:
    """Evaluates detectors in configuration order, honouring per-id cooldowns."""

    capabilities: DetectorCapabilities = field(default_factory=DetectorCapabilities)
    last_fired: Dict[str, float] = field(default_factory=dict)
    trackers: Dict[str, MemoryTracker] = field(default_factory=dict)
    _warned: Set[Tuple[str, str]] = field(default_factory=set, init=False, repr=False)

    def run(
        self,
        detectors: Iterable[DetectorConfig],
        frame: Optional[NDArray],
        now_ms: float,
    ) -> List[GameEvent]:
        events: List[GameEvent] = []
        for detector in detectors:
            if not detector.enabled:
                continue
            if self.cooling_down(detector, now_ms):
                logger.debug("Detector %s skipped (cooldown)", detector.id)
                continue
            event = self.evaluate(detector, frame, now_ms)
            if event is None:
                continue
            self.last_fired[detector.id] = now_ms
            events.append(event)
        return events

    def cooling_down(self, detector: DetectorConfig, now_ms: float) -> bool:
        last = self.last_fired.get(detector.id)
        if last is None or detector.cooldown_ms <= 0:
            return False
        return now_ms - last < detector.cooldown_ms

    def reset_cooldowns(self) -> None:
        self.last_fired.clear()

    def evaluate(
        self,
        detector: DetectorConfig,
        frame: Optional[NDArray],
        now_ms: float,
    ) -> Optional[GameEvent]:
        """Evaluate a single detector; never raises."""

        try:
            if isinstance(detector, MemoryDetectorConfig):
                return self._evaluate_memory(detector, now_ms)
            if isinstance(detector, TextDetectorConfig):
                return self._evaluate_text(detector, frame, now_ms)
            if isinstance(detector, ImageDetectorConfig):
                return self._evaluate_image(detector, frame, now_ms)
            raise CapabilityUnavailable(f"unsupported detector type {type(detector).__name__}")
        except CapabilityUnavailable as exc:
            self._warn_once(detector.id, str(exc))
        except Exception as exc:
            self._warn_once(detector.id, f"{type(exc).__name__}: {exc}")
        return None

    # ------------------------------------------------------------------ #
    # Kinds
    # ------------------------------------------------------------------ #

    def _evaluate_memory(self, detector: MemoryDetectorConfig, now_ms: float) -> Optional[GameEvent]:
        read_u8 = self.capabilities.read_u8
        if read_u8 is None:
            raise CapabilityUnavailable("memory access unavailable")

        current = detector.width.read(read_u8, detector.address)
        comparator = detector.comparator

        if not comparator.tracks_history:
            if detector.compare_value is None:
                raise ValueError(f"comparator '{comparator.value}' requires compare_value")
            target = int(detector.compare_value)
            fired = {
                Comparator.EQUALS: current == target,
                Comparator.NOT_EQUALS: current != target,
                Comparator.GREATER_THAN: current > target,
                Comparator.LESS_THAN: current < target,
            }[comparator]
            if not fired:
                return None
            return GameEvent(detector.id, now_ms, EventSource.MEMORY, {"value": current})

        source = (detector.address, detector.width, comparator)
        tracker = self.trackers.get(detector.id)
        if tracker is None or tracker.source != source:
            # Same id, different memory: start a fresh history.
            tracker = self.trackers[detector.id] = MemoryTracker(source=source)
        previous = tracker.previous
        tracker.previous = current
        if previous is None:
            tracker.anchor = current
            return None

        if comparator is Comparator.CHANGED:
            tracker.anchor = current
            if current == previous:
                return None
            return GameEvent(
                detector.id,
                now_ms,
                EventSource.MEMORY,
                {"value": current, "previous": previous, "change": current - previous},
            )

        threshold = max(1, int(detector.change_threshold if detector.change_threshold is not None else 1))
        anchor = tracker.anchor if tracker.anchor is not None else previous
        if comparator is Comparator.INCREASED:
            if current < anchor:
                tracker.anchor = current
                return None
            change = current - anchor
        else:
            if current > anchor:
                tracker.anchor = current
                return None
            change = current - anchor
        if abs(change) < threshold:
            return None
        tracker.anchor = current
        return GameEvent(
            detector.id,
            now_ms,
            EventSource.MEMORY,
            {"value": current, "previous": previous, "anchor": anchor, "change": change},
        )

    def _evaluate_text(
        self,
        detector: TextDetectorConfig,
        frame: Optional[NDArray],
        now_ms: float,
    ) -> Optional[GameEvent]:
        recognizer = self.capabilities.text_recognizer
        if recognizer is None:
            raise CapabilityUnavailable("text recognition unavailable")
        if frame is None:
            raise CapabilityUnavailable("no frame supplied")

        text = recognizer.recognize(frame, detector.region) or ""
        if detector.is_regex:
            flags = 0 if detector.case_sensitive else re.IGNORECASE
            matched = re.search(detector.pattern, text, flags) is not None
        elif detector.case_sensitive:
            matched = detector.pattern in text
        else:
            matched = detector.pattern.casefold() in text.casefold()
        if not matched:
            return None
        return GameEvent(detector.id, now_ms, EventSource.TEXT)

    def _evaluate_image(
        self,
        detector: ImageDetectorConfig,
        frame: Optional[NDArray],
        now_ms: float,
    ) -> Optional[GameEvent]:
        matcher = self.capabilities.image_matcher
        if matcher is None:
            raise CapabilityUnavailable("image matching unavailable")
        if frame is None:
            raise CapabilityUnavailable("no frame supplied")

        score = float(matcher.similarity(frame, detector.pattern_ref, detector.region))
        if score < float(detector.similarity_threshold):
            return None
        return GameEvent(detector.id, now_ms, EventSource.IMAGE)

    def _warn_once(self, detector_id: str, reason: str) -> None:
        key = (detector_id, reason)
        if key in self._warned:
            logger.debug("Detector %s failed closed: %s", detector_id, reason)
            return
        self._warned.add(key)
        logger.warning("Detector %s failed closed: %s", detector_id, reason)


__all__ = [
    "AnyDetectorConfig",
    "Comparator",
    "DetectorCapabilities",
    "DetectorConfig",
    "DetectorKind",
    "DetectorSet",
    "ImageDetectorConfig",
    "ImageMatcher",
    "MemoryDetectorConfig",
    "MemoryReader",
    "MemoryTracker",
    "MemoryWidth",
    "TextDetectorConfig",
    "TextRecognizer",
]
