"""
Per-title feedback profiles and their JSON representation.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from jsonschema import Draft7Validator

from gbpilot.errors import ProfileValidationError

from .detectors import (
    AnyDetectorConfig,
    Comparator,
    ImageDetectorConfig,
    MemoryDetectorConfig,
    MemoryWidth,
    TextDetectorConfig,
)
from .rules import RewardRule
from .types import Region

SCHEMA_PATH = Path(__file__).resolve().parent / "schemas" / "feedback_profile.json"


def _load_schema() -> Draft7Validator:
    with SCHEMA_PATH.open("r", encoding="utf-8") as handle:
        schema = json.load(handle)
    return Draft7Validator(schema)


_PROFILE_VALIDATOR = _load_schema()


@dataclass(frozen=True)
class GameFeedbackProfile:
    """Detectors and reward rules for every title matching ``title_pattern``."""

    title_pattern: str
    detectors: Tuple[AnyDetectorConfig, ...] = field(default_factory=tuple)
    reward_rules: Tuple[RewardRule, ...] = field(default_factory=tuple)
    default_reward_for_silence: Optional[float] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "detectors", tuple(self.detectors))
        object.__setattr__(self, "reward_rules", tuple(self.reward_rules))
        seen: set[str] = set()
        duplicates: List[str] = []
        for detector in self.detectors:
            if detector.id in seen:
                duplicates.append(f"Duplicate detector id '{detector.id}'.")
            seen.add(detector.id)
        if duplicates:
            raise ProfileValidationError(
                f"Profile '{self.title_pattern}' has duplicate detector ids.", errors=duplicates
            )

    def matches(self, title: str) -> bool:
        """Case-insensitive regex search; invalid regexes fall back to a substring test."""
        try:
            return re.search(self.title_pattern, title, re.IGNORECASE) is not None
        except re.error:
            return self.title_pattern.casefold() in title.casefold()

    def rules_for(self, event_type: str) -> List[RewardRule]:
        return [rule for rule in self.reward_rules if rule.enabled and rule.event_type == event_type]


# --------------------------------------------------------------------------- #
# JSON loading
# --------------------------------------------------------------------------- #


def _parse_address(value: Union[int, str]) -> int:
    if isinstance(value, int):
        return value
    return int(value, 0)


def _detector_from_dict(payload: Mapping[str, Any]) -> AnyDetectorConfig:
    common: Dict[str, Any] = {
        "id": str(payload["id"]),
        "cooldown_ms": float(payload.get("cooldownMs", 0)),
        "enabled": bool(payload.get("enabled", True)),
        "description": payload.get("description"),
    }
    kind = payload["type"]
    if kind == "memory":
        return MemoryDetectorConfig(
            address=_parse_address(payload["address"]),
            width=MemoryWidth(payload.get("width", "u8")),
            comparator=Comparator(payload["comparator"]),
            compare_value=payload.get("compareValue"),
            change_threshold=payload.get("changeThreshold"),
            **common,
        )
    if kind == "text":
        return TextDetectorConfig(
            pattern=str(payload["pattern"]),
            is_regex=bool(payload.get("isRegex", False)),
            case_sensitive=bool(payload.get("caseSensitive", False)),
            region=Region.from_mapping(payload.get("region")),
            **common,
        )
    return ImageDetectorConfig(
        pattern_ref=payload["patternRef"],
        similarity_threshold=float(payload["similarityThreshold"]),
        region=Region.from_mapping(payload.get("region")),
        **common,
    )


def _rule_from_dict(payload: Mapping[str, Any]) -> RewardRule:
    return RewardRule(
        id=str(payload["id"]),
        event_type=str(payload["eventType"]),
        reward=payload["reward"],
        condition=payload.get("condition"),
        enabled=bool(payload.get("enabled", True)),
        description=payload.get("description"),
    )


def profile_from_dict(data: Mapping[str, Any]) -> GameFeedbackProfile:
    """
    Validate a JSON-shaped mapping and build a typed profile.

    Raises:
        ProfileValidationError: When the payload violates the profile schema or
            repeats a detector id.
    """

    if not isinstance(data, Mapping):
        raise ProfileValidationError("Feedback profile must be a mapping.")

    validation_errors: List[str] = []
    for error in sorted(_PROFILE_VALIDATOR.iter_errors(data), key=lambda err: [str(part) for part in err.absolute_path]):
        path = ".".join(str(part) for part in error.absolute_path)
        validation_errors.append(f"{path or '<root>'}: {error.message}")
    if validation_errors:
        raise ProfileValidationError("Feedback profile failed validation.", errors=validation_errors)

    default_reward = data.get("defaultRewardForSilence")
    return GameFeedbackProfile(
        title_pattern=str(data["titlePattern"]),
        detectors=tuple(_detector_from_dict(item) for item in data.get("detectors", [])),
        reward_rules=tuple(_rule_from_dict(item) for item in data.get("rewardRules", [])),
        default_reward_for_silence=float(default_reward) if default_reward is not None else None,
    )


def load_profile_file(path: Union[str, Path]) -> GameFeedbackProfile:
    file_path = Path(path)
    with file_path.open("r", encoding="utf-8") as handle:
        try:
            payload = json.load(handle)
        except json.JSONDecodeError as exc:
            raise ProfileValidationError(f"{file_path}: invalid JSON: {exc}") from exc
    return profile_from_dict(payload)


def load_profile_dir(path: Union[str, Path]) -> List[GameFeedbackProfile]:
    """Load every ``*.json`` profile in ``path`` in file-name order."""
    return [load_profile_file(item) for item in sorted(Path(path).glob("*.json"))]


def format_validation_errors(errors: Iterable[str]) -> str:
    return "\n".join(f"- {error}" for error in errors)


__all__ = [
    "GameFeedbackProfile",
    "SCHEMA_PATH",
    "format_validation_errors",
    "load_profile_dir",
    "load_profile_file",
    "profile_from_dict",
]
