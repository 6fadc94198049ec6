"""
Turn a model reply into a ``ParsedAction``.

Two reply shapes are accepted. A reply wrapped in braces is first decoded as a
JSON action object (validated against ``schemas/action_response.json``); if it
does not decode, or any other reply is given, the free-text convention applies:
reasoning lines followed by a final line naming one button.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, List, Mapping, Tuple

from jsonschema import Draft7Validator

from gbpilot.core.types import ActionStep, Button, ParsedAction, StepPhase

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).resolve().parent / "schemas" / "action_response.json"

# Scan order for free-text replies; the first keyword found wins.
KEYWORD_PRIORITY: Tuple[Button, ...] = (
    Button.UP,
    Button.DOWN,
    Button.LEFT,
    Button.RIGHT,
    Button.A,
    Button.B,
    Button.START,
    Button.SELECT,
    Button.NONE,
)

_KEYWORD_PATTERNS = [(button, re.compile(rf"\b{button.value.upper()}\b")) for button in KEYWORD_PRIORITY]


def _load_schema() -> Draft7Validator:
    with SCHEMA_PATH.open("r", encoding="utf-8") as handle:
        schema = json.load(handle)
    return Draft7Validator(schema)


_ACTION_VALIDATOR = _load_schema()


def parse_response(raw: str) -> ParsedAction:
    """Parse a model reply; never raises, returning the error sentinel instead."""

    text = (raw or "").strip()
    if not text:
        return ParsedAction.error_sentinel("Model reply was empty.")

    if text.startswith("{") and text.endswith("}"):
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            logger.debug("Reply looked like JSON but did not decode; using free-text parsing")
        else:
            return parse_action_object(payload)

    return parse_free_text(text)


def parse_action_object(payload: Any) -> ParsedAction:
    if not isinstance(payload, Mapping):
        return ParsedAction.error_sentinel("JSON reply is not an object.")

    rationale = str(payload.get("reasoning") or "").strip()
    errors = [error.message for error in _ACTION_VALIDATOR.iter_errors(payload)]
    if errors:
        return ParsedAction.error_sentinel("Invalid JSON action: " + "; ".join(errors), rationale)

    button = Button.parse(payload["action"])
    if button is None:
        return ParsedAction.error_sentinel(f"Unknown action '{payload['action']}'.", rationale)

    steps: List[ActionStep] = []
    for index, item in enumerate(payload.get("sequence") or []):
        step_button = Button.parse(item["button"])
        if step_button is None or step_button is Button.NONE:
            return ParsedAction.error_sentinel(
                f"Unknown button '{item['button']}' in sequence step {index}.", rationale
            )
        phase = item.get("action") or item.get("phase") or StepPhase.PRESS.value
        steps.append(
            ActionStep(
                button=step_button,
                phase=StepPhase(str(phase).lower()),
                duration_ms=item.get("duration"),
            )
        )

    progress = payload.get("goalProgress")
    return ParsedAction(
        button=button,
        rationale=rationale,
        sequence=tuple(steps),
        goal_progress_note=str(progress) if progress else None,
    )


def parse_free_text(text: str) -> ParsedAction:
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if not lines:
        return ParsedAction.error_sentinel("Model reply was empty.")

    if len(lines) > 1:
        rationale = " ".join(lines[:-1])
        scanned = lines[-1]
    else:
        rationale = ""
        scanned = lines[0]

    button = find_button_keyword(scanned)
    if button is None:
        return ParsedAction.error_sentinel(f"No button found in reply: {scanned!r}", rationale)
    return ParsedAction(button=button, rationale=rationale)


def find_button_keyword(text: str) -> Button | None:
    upper = text.upper()
    for button, pattern in _KEYWORD_PATTERNS:
        if pattern.search(upper):
            return button
    return None


__all__ = [
    "KEYWORD_PRIORITY",
    "find_button_keyword",
    "parse_action_object",
    "parse_free_text",
    "parse_response",
]
