"""
Prompt construction, reply parsing and the goal/system-prompt registries.
"""

from .builtin_prompts import BUILTIN_PROMPTS, DEFAULT_PROMPT_ID
from .prompt_builder import build_custom_system_message, build_prompt
from .registry import Goal, GoalKind, GoalRegistry, GoalStatus, SystemPrompt, SystemPromptRegistry
from .response_parser import KEYWORD_PRIORITY, find_button_keyword, parse_response

__all__ = [
    "BUILTIN_PROMPTS",
    "DEFAULT_PROMPT_ID",
    "Goal",
    "GoalKind",
    "GoalRegistry",
    "GoalStatus",
    "KEYWORD_PRIORITY",
    "SystemPrompt",
    "SystemPromptRegistry",
    "build_custom_system_message",
    "build_prompt",
    "find_button_keyword",
    "parse_response",
]
