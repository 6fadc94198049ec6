from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from gbpilot.prompting.builtin_prompts import DEFAULT_PROMPT_ID
from gbpilot.prompting.registry import GoalKind, GoalRegistry, GoalStatus, SystemPromptRegistry


def _fixed_clock() -> datetime:
    return datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def test_goal_lifecycle() -> None:
    goals = GoalRegistry(clock=_fixed_clock)
    goal = goals.add("Beat the first boss", extra_context="Boss is at the end of 1-3")

    assert goal.kind is GoalKind.USER_DEFINED
    assert goal.status is GoalStatus.ACTIVE
    assert goals.active is None
    assert goals.set_active(goal.id)
    assert goals.active == goal

    completed = goals.update_status(goal.id, GoalStatus.COMPLETED)
    assert completed is not None
    assert completed.completed_at == _fixed_clock().isoformat()
    assert goals.get(goal.id).status is GoalStatus.COMPLETED


def test_deleting_active_goal_clears_it() -> None:
    goals = GoalRegistry()
    goal = goals.add("Collect 100 coins", activate=True)

    assert goals.delete(goal.id)
    assert goals.active is None
    assert not goals.delete(goal.id)
    assert goals.update_status(goal.id, GoalStatus.FAILED) is None


def test_set_active_rejects_unknown_goal_and_accepts_none() -> None:
    goals = GoalRegistry()
    goal = goals.add("Find the key", activate=True)

    assert not goals.set_active("missing")
    assert goals.active == goal
    assert goals.set_active(None)
    assert goals.active is None


def test_builtin_prompts_are_immutable() -> None:
    prompts = SystemPromptRegistry()

    assert [prompt.id for prompt in prompts.list()] == ["default-general", "json-structured", "exploration"]
    assert prompts.active.id == DEFAULT_PROMPT_ID
    assert prompts.update("json-structured", body="changed") is None
    assert not prompts.delete("exploration")
    assert prompts.get("json-structured").body != "changed"


def test_user_prompt_update_and_delete_falls_back_to_first_builtin() -> None:
    prompts = SystemPromptRegistry()
    custom = prompts.add("Speedrun", "Go fast.", activate=True)

    updated = prompts.update(custom.id, body="Go faster.")
    assert updated is not None and updated.body == "Go faster."
    assert prompts.active.body == "Go faster."

    assert prompts.delete(custom.id)
    assert prompts.active.id == DEFAULT_PROMPT_ID
    assert not prompts.set_active(custom.id)


def test_registries_persist_to_json(tmp_path: Path) -> None:
    goals = GoalRegistry(path=tmp_path / "goals.json")
    goal = goals.add("Rescue the princess", activate=True)
    prompts = SystemPromptRegistry(path=tmp_path / "prompts.json")
    custom = prompts.add("Careful", "Avoid enemies.", activate=True)

    reloaded_goals = GoalRegistry(path=tmp_path / "goals.json")
    reloaded_prompts = SystemPromptRegistry(path=tmp_path / "prompts.json")

    assert reloaded_goals.active == goal
    assert reloaded_prompts.active == custom
    assert len(reloaded_prompts.list()) == 4
