from __future__ import annotations

import json
from pathlib import Path

import pytest

from gbpilot.errors import ProfileValidationError
from gbpilot.feedback.detectors import (
    Comparator,
    DetectorKind,
    MemoryDetectorConfig,
    MemoryWidth,
    TextDetectorConfig,
)
from gbpilot.feedback.profile import GameFeedbackProfile, load_profile_dir, load_profile_file, profile_from_dict


def _payload() -> dict:
    return {
        "titlePattern": "SUPER MARIOLAND",
        "defaultRewardForSilence": -0.5,
        "detectors": [
            {"id": "dies", "type": "text", "pattern": "GAME OVER", "cooldownMs": 5000},
            {
                "id": "score_increase",
                "type": "memory",
                "address": "0xC0A0",
                "width": "u16",
                "comparator": "increased",
                "changeThreshold": 10,
            },
        ],
        "rewardRules": [
            {"id": "death", "eventType": "dies", "reward": -100},
            {"id": "score", "eventType": "score_increase", "reward": "DELTA_SCORE_DIV_100"},
        ],
    }


def test_profile_from_dict_builds_typed_detectors() -> None:
    profile = profile_from_dict(_payload())

    assert profile.title_pattern == "SUPER MARIOLAND"
    assert profile.default_reward_for_silence == -0.5
    text, memory = profile.detectors
    assert isinstance(text, TextDetectorConfig)
    assert text.kind is DetectorKind.TEXT
    assert text.cooldown_ms == 5000
    assert isinstance(memory, MemoryDetectorConfig)
    assert memory.address == 0xC0A0
    assert memory.width is MemoryWidth.U16
    assert memory.comparator is Comparator.INCREASED
    assert memory.change_threshold == 10
    assert [rule.id for rule in profile.rules_for("dies")] == ["death"]


def test_schema_violations_are_collected() -> None:
    payload = _payload()
    payload["detectors"][1]["comparator"] = "bigger"
    del payload["detectors"][0]["pattern"]

    with pytest.raises(ProfileValidationError) as excinfo:
        profile_from_dict(payload)

    assert len(excinfo.value.errors) >= 2
    assert any("bigger" in error for error in excinfo.value.errors)


def test_duplicate_detector_ids_are_rejected() -> None:
    payload = _payload()
    payload["detectors"][1]["id"] = "dies"

    with pytest.raises(ProfileValidationError) as excinfo:
        profile_from_dict(payload)

    assert excinfo.value.errors == ["Duplicate detector id 'dies'."]


def test_title_matching_is_case_insensitive_with_literal_fallback() -> None:
    regex_profile = GameFeedbackProfile(title_pattern="super ?mario ?land")
    broken_regex_profile = GameFeedbackProfile(title_pattern="MARIO (")

    assert regex_profile.matches("SUPER MARIOLAND")
    assert not regex_profile.matches("TETRIS")
    assert broken_regex_profile.matches("super mario (dx)")
    assert not broken_regex_profile.matches("SUPER MARIOLAND")


def test_load_profile_file_reports_invalid_json(tmp_path: Path) -> None:
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(ProfileValidationError):
        load_profile_file(path)


def test_load_profile_dir_reads_every_json_file(tmp_path: Path) -> None:
    second = _payload()
    second["titlePattern"] = "TETRIS"
    (tmp_path / "a_mario.json").write_text(json.dumps(_payload()), encoding="utf-8")
    (tmp_path / "b_tetris.json").write_text(json.dumps(second), encoding="utf-8")

    profiles = load_profile_dir(tmp_path)

    assert [profile.title_pattern for profile in profiles] == ["SUPER MARIOLAND", "TETRIS"]


def test_bundled_profiles_are_valid(profiles_dir: Path) -> None:
    profiles = load_profile_dir(profiles_dir)
    assert len(profiles) >= 2
    assert any(profile.matches("SUPER MARIOLAND") for profile in profiles)
