"""
Event detection and reward accumulation.
"""

from .detectors import (
    Comparator,
    DetectorCapabilities,
    DetectorKind,
    DetectorSet,
    ImageDetectorConfig,
    ImageMatcher,
    MemoryDetectorConfig,
    MemoryWidth,
    TextDetectorConfig,
    TextRecognizer,
)
from .engine import NO_PROFILE_LINE, FeedbackEngine
from .profile import (
    GameFeedbackProfile,
    format_validation_errors,
    load_profile_dir,
    load_profile_file,
    profile_from_dict,
)
from .rules import DELTA_SCORE_DIV_100, RewardRule
from .types import EventSource, FeedbackResult, GameEvent, PollContext, Region

__all__ = [
    "Comparator",
    "DELTA_SCORE_DIV_100",
    "DetectorCapabilities",
    "DetectorKind",
    "DetectorSet",
    "EventSource",
    "FeedbackEngine",
    "FeedbackResult",
    "GameEvent",
    "GameFeedbackProfile",
    "ImageDetectorConfig",
    "ImageMatcher",
    "MemoryDetectorConfig",
    "MemoryWidth",
    "NO_PROFILE_LINE",
    "PollContext",
    "Region",
    "RewardRule",
    "TextDetectorConfig",
    "TextRecognizer",
    "format_validation_errors",
    "load_profile_dir",
    "load_profile_file",
    "profile_from_dict",
]
