from __future__ import annotations

import logging

import pytest

from gbpilot.feedback.rules import DELTA_SCORE_DIV_100, ConditionError, RewardRule, evaluate_condition
from gbpilot.feedback.types import EventSource, GameEvent


def _event(event_type: str = "score", **data) -> GameEvent:
    return GameEvent(event_type, 0.0, EventSource.MEMORY, data or None)


def test_fixed_reward_applies_to_matching_type_only() -> None:
    rule = RewardRule(id="r", event_type="score", reward=5)

    assert rule.applies_to(_event("score", value=1))
    assert not rule.applies_to(_event("dies"))
    assert rule.amount(_event("score")) == 5.0


def test_delta_score_formula_divides_change_by_100() -> None:
    rule = RewardRule(id="r", event_type="score", reward=DELTA_SCORE_DIV_100)

    assert rule.amount(_event(value=1250, previous=1000, change=250)) == pytest.approx(2.5)
    assert rule.amount(_event()) == 0.0


def test_disabled_rule_never_applies() -> None:
    rule = RewardRule(id="r", event_type="score", reward=5, enabled=False)
    assert not rule.applies_to(_event())


@pytest.mark.parametrize(
    "expression, expected",
    [
        ("change > 10", True),
        ("change > 10 and value < 200", True),
        ("change > 10 and value < 100", False),
        ("not (value == 150)", False),
        ("value - previous == change", True),
        ("value in [150, 300]", True),
        ("10 < change <= 50", True),
    ],
)
def test_condition_expressions(expression: str, expected: bool) -> None:
    assert evaluate_condition(expression, {"value": 150, "previous": 130, "change": 20}) is expected


def test_condition_rejects_calls_and_attributes() -> None:
    with pytest.raises(ConditionError):
        evaluate_condition("__import__('os').getcwd()", {})
    with pytest.raises(ConditionError):
        evaluate_condition("value.real", {"value": 1})


def test_callable_condition() -> None:
    rule = RewardRule(id="r", event_type="score", reward=1, condition=lambda data: data["change"] >= 100)

    assert rule.applies_to(_event(change=150))
    assert not rule.applies_to(_event(change=50))


def test_failing_condition_is_false_and_logged(caplog) -> None:
    rule = RewardRule(id="needs-missing", event_type="score", reward=1, condition="missing > 3")

    with caplog.at_level(logging.WARNING):
        assert rule.applies_to(_event(change=5)) is False

    assert "needs-missing" in caplog.text
