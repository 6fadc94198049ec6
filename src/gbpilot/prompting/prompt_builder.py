"""
Assembles the instruction block sent to the model each cycle.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from gbpilot.core.types import ActionRecord

from .builtin_prompts import CUSTOM_PROMPT_SYSTEM_MESSAGE
from .registry import Goal

MAX_PROMPT_ACTIONS = 5


def build_prompt(
    system_prompt_body: str,
    feedback_lines: Sequence[str] = (),
    active_goal: Optional[Goal] = None,
    game_context: Optional[str] = None,
    notes_summary: Optional[str] = None,
    recent_actions: Sequence[ActionRecord] = (),
) -> str:
    """
    Build the full prompt text.

    Sections are separated by a blank line and skipped when empty. Feedback
    lines always come first.
    """

    sections: List[str] = []

    lines = [line for line in feedback_lines if line]
    if lines:
        sections.append("RECENT FEEDBACK:\n" + "\n".join(f"- {line}" for line in lines))

    if system_prompt_body and system_prompt_body.strip():
        sections.append(system_prompt_body.strip())

    if active_goal is not None:
        goal_text = f"Current Goal: {active_goal.description}"
        if active_goal.extra_context:
            goal_text += f"\nGoal Context: {active_goal.extra_context}"
        sections.append(goal_text)

    if game_context and game_context.strip():
        sections.append(f"Game Context:\n{game_context.strip()}")

    if notes_summary and notes_summary.strip():
        sections.append(f"Relevant Knowledge:\n{notes_summary.strip()}")

    actions = list(recent_actions)[-MAX_PROMPT_ACTIONS:]
    if actions:
        history = ["Previous Actions:"]
        for index, record in enumerate(actions, start=1):
            history.append(f"{index}. Action: {record.button.value}, Reasoning: {record.rationale}")
        sections.append("\n".join(history))

    return "\n\n".join(sections)


def build_custom_system_message(game_context: Optional[str], feedback_lines: Sequence[str] = ()) -> str:
    message = CUSTOM_PROMPT_SYSTEM_MESSAGE.format(game=(game_context or "").strip() or "Unknown Game")
    lines = [line for line in feedback_lines if line]
    if lines:
        message += "\n\nConsider the recent feedback as well:\n" + "\n".join(lines)
    return message


__all__ = ["MAX_PROMPT_ACTIONS", "build_custom_system_message", "build_prompt"]
