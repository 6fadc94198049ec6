from __future__ import annotations

import logging
from typing import Dict

import pytest

from gbpilot.feedback.detectors import (
    Comparator,
    DetectorCapabilities,
    MemoryDetectorConfig,
    MemoryWidth,
    TextDetectorConfig,
)
from gbpilot.feedback.engine import NO_PROFILE_LINE, FeedbackEngine
from gbpilot.feedback.profile import GameFeedbackProfile
from gbpilot.feedback.rules import DELTA_SCORE_DIV_100, RewardRule
from gbpilot.feedback.types import EventSource, PollContext, blank_frame

TITLE = "SUPER MARIOLAND"
SCORE_ADDR = 0xC0A0


class _Screen:
    def __init__(self, text: str = "") -> None:
        self.text = text

    def recognize(self, frame, region):
        return self.text


class _Memory:
    def __init__(self) -> None:
        self.values: Dict[int, int] = {}

    def read_u8(self, address: int) -> int:
        return self.values.get(address, 0)

    def set_u16(self, address: int, value: int) -> None:
        self.values[address] = value & 0xFF
        self.values[address + 1] = (value >> 8) & 0xFF


def _mario_profile(**overrides) -> GameFeedbackProfile:
    fields = dict(
        title_pattern="SUPER MARIO ?LAND",
        detectors=(
            TextDetectorConfig(id="dies", pattern="GAME OVER", cooldown_ms=5000),
            MemoryDetectorConfig(
                id="score_increase",
                address=SCORE_ADDR,
                width=MemoryWidth.U16,
                comparator=Comparator.INCREASED,
            ),
        ),
        reward_rules=(
            RewardRule(id="death", event_type="dies", reward=-100),
            RewardRule(id="score", event_type="score_increase", reward=DELTA_SCORE_DIV_100),
        ),
    )
    fields.update(overrides)
    return GameFeedbackProfile(**fields)


def _engine(screen: _Screen, memory: _Memory, *profiles: GameFeedbackProfile) -> FeedbackEngine:
    capabilities = DetectorCapabilities(read_u8=memory.read_u8, text_recognizer=screen)
    return FeedbackEngine(profiles or (_mario_profile(),), capabilities=capabilities)


def _poll(engine: FeedbackEngine, at_ms: float, title: str = TITLE):
    return engine.poll(PollContext(title=title, timestamp_ms=at_ms), blank_frame())


def test_game_over_scenario_yields_single_penalty_line() -> None:
    screen, memory = _Screen("GAME OVER"), _Memory()
    engine = _engine(screen, memory)

    result = _poll(engine, 0)

    assert result.reward == -100
    assert len(result.events) == 1
    assert result.events[0].source is EventSource.TEXT
    assert result.text_lines == ["dies, Reward: -100.00"]
    assert result.episode_total == -100


def test_memory_event_line_includes_sorted_data_and_signed_reward() -> None:
    screen, memory = _Screen(), _Memory()
    engine = _engine(screen, memory)
    memory.set_u16(SCORE_ADDR, 1000)
    _poll(engine, 0)
    memory.set_u16(SCORE_ADDR, 1250)

    result = _poll(engine, 100)

    assert result.reward == pytest.approx(2.5)
    assert result.text_lines == [
        'score_increase ({"anchor": 1000, "change": 250, "previous": 1000, "value": 1250}), Reward: +2.50'
    ]


def test_zero_reward_events_omit_reward_suffix() -> None:
    profile = _mario_profile(
        detectors=(MemoryDetectorConfig(id="map", address=0xD35E, comparator=Comparator.CHANGED),),
        reward_rules=(),
    )
    memory = _Memory()
    engine = _engine(_Screen(), memory, profile)
    _poll(engine, 0)
    memory.values[0xD35E] = 3

    result = _poll(engine, 10)

    assert result.text_lines == ['map ({"change": 3, "previous": 0, "value": 3})']
    assert result.reward == 0


def test_rewards_sum_over_matching_rules_and_conditions() -> None:
    profile = _mario_profile(
        reward_rules=(
            RewardRule(id="base", event_type="score_increase", reward=1),
            RewardRule(id="big", event_type="score_increase", reward=10, condition="change >= 500"),
            RewardRule(id="off", event_type="score_increase", reward=1000, enabled=False),
        )
    )
    memory = _Memory()
    engine = _engine(_Screen(), memory, profile)
    _poll(engine, 0)
    memory.set_u16(SCORE_ADDR, 100)
    small = _poll(engine, 10)
    memory.set_u16(SCORE_ADDR, 700)
    large = _poll(engine, 20)

    assert small.reward == 1
    assert large.reward == 11
    assert large.episode_total == 12


def test_default_reward_applies_only_when_silent() -> None:
    engine = _engine(_Screen(), _Memory(), _mario_profile(default_reward_for_silence=-0.25))

    silent = _poll(engine, 0)

    assert silent.text_lines == ["Default reward applied: -0.25"]
    assert silent.reward == -0.25

    engine.record_manual_event("checkpoint")
    noisy = _poll(engine, 10)
    assert noisy.text_lines == ["checkpoint"]
    assert noisy.reward == 0


def test_no_matching_profile_reports_single_line() -> None:
    engine = _engine(_Screen("GAME OVER"), _Memory())

    result = _poll(engine, 0, title="TETRIS")

    assert result.text_lines == [NO_PROFILE_LINE]
    assert result.reward == 0
    assert result.events == []
    assert engine.active_profile is None


def test_reset_episode_zeroes_total_and_cooldowns() -> None:
    screen = _Screen("GAME OVER")
    engine = _engine(screen, _Memory())
    assert _poll(engine, 0).episode_total == -100
    assert _poll(engine, 1000).events == []

    engine.reset_episode(TITLE)
    screen.text = ""
    after_reset = _poll(engine, 1500)

    assert after_reset.episode_total == 0
    screen.text = "GAME OVER"
    assert _poll(engine, 2000).reward == -100


def test_poll_reselects_profile_when_title_changes() -> None:
    tetris = GameFeedbackProfile(
        title_pattern="TETRIS",
        detectors=(TextDetectorConfig(id="line_clear", pattern="LINES"),),
        reward_rules=(RewardRule(id="line", event_type="line_clear", reward=5),),
    )
    screen = _Screen("GAME OVER LINES")
    engine = _engine(screen, _Memory(), _mario_profile(), tetris)

    assert _poll(engine, 0).reward == -100
    assert engine.active_profile.title_pattern == "SUPER MARIO ?LAND"
    assert _poll(engine, 10, title="TETRIS").reward == 5
    assert engine.active_profile is tetris


def test_switching_profiles_does_not_reuse_memory_history() -> None:
    alpha = GameFeedbackProfile(
        title_pattern="ALPHA",
        detectors=(MemoryDetectorConfig(id="score", address=0x10, comparator=Comparator.INCREASED),),
        reward_rules=(RewardRule(id="score", event_type="score", reward=DELTA_SCORE_DIV_100),),
    )
    beta = GameFeedbackProfile(
        title_pattern="BETA",
        detectors=(MemoryDetectorConfig(id="score", address=0x20, comparator=Comparator.INCREASED),),
        reward_rules=(RewardRule(id="score", event_type="score", reward=DELTA_SCORE_DIV_100),),
    )
    memory = _Memory()
    memory.values.update({0x10: 5, 0x20: 100})
    engine = _engine(_Screen(), memory, alpha, beta)
    _poll(engine, 0, title="ALPHA")

    engine.reset_episode("BETA")
    first = _poll(engine, 10, title="BETA")
    memory.values[0x20] = 150
    second = _poll(engine, 20, title="BETA")

    assert first.events == []
    assert first.reward == 0
    assert [event.data["change"] for event in second.events] == [50]
    assert second.reward == pytest.approx(0.5)


def test_load_profile_upserts_and_refreshes_active() -> None:
    engine = _engine(_Screen("GAME OVER"), _Memory())
    _poll(engine, 0)

    harsher = _mario_profile(reward_rules=(RewardRule(id="death", event_type="dies", reward=-500),))
    engine.load_profile(harsher)
    engine.reset_episode()

    assert len(engine.profiles) == 1
    assert engine.active_profile is harsher
    assert _poll(engine, 10).reward == -500


def test_overlapping_profiles_first_wins_with_warning(caplog) -> None:
    generic = GameFeedbackProfile(title_pattern="MARIO")
    engine = FeedbackEngine([generic, _mario_profile()])

    with caplog.at_level(logging.WARNING):
        resolved = engine.resolve_profile(TITLE)

    assert resolved is generic
    assert "matches 2 feedback profiles" in caplog.text


def test_manual_events_are_scored() -> None:
    profile = _mario_profile(reward_rules=(RewardRule(id="flag", event_type="flagpole", reward=50),))
    engine = _engine(_Screen(), _Memory(), profile)

    engine.record_manual_event("flagpole", {"height": 3})
    result = _poll(engine, 0)

    assert result.events[0].source is EventSource.MANUAL
    assert result.text_lines == ['flagpole ({"height": 3}), Reward: +50.00']
    assert _poll(engine, 10).events == []
