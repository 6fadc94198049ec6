"""
Goal and system-prompt registries.

Both registries are plain keyed stores with at most one active entry. They
optionally persist to a JSON file that is rewritten after every mutation.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from .builtin_prompts import BUILTIN_PROMPTS

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class GoalKind(str, Enum):
    SYSTEM_DEFINED = "system_defined"
    USER_DEFINED = "user_defined"


class GoalStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class Goal:
    id: str
    kind: GoalKind
    description: str
    status: GoalStatus = GoalStatus.ACTIVE
    created_at: str = ""
    completed_at: Optional[str] = None
    extra_context: Optional[str] = None

    def to_row(self) -> Dict[str, Any]:
        row = asdict(self)
        row["kind"] = self.kind.value
        row["status"] = self.status.value
        return row

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Goal":
        return cls(
            id=str(row["id"]),
            kind=GoalKind(row.get("kind", GoalKind.USER_DEFINED.value)),
            description=str(row.get("description", "")),
            status=GoalStatus(row.get("status", GoalStatus.ACTIVE.value)),
            created_at=str(row.get("created_at", "")),
            completed_at=row.get("completed_at"),
            extra_context=row.get("extra_context"),
        )


@dataclass(frozen=True)
class SystemPrompt:
    id: str
    name: str
    description: str
    body: str
    is_builtin: bool = False
    created_at: str = ""

    def to_row(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "SystemPrompt":
        return cls(
            id=str(row["id"]),
            name=str(row.get("name", "")),
            description=str(row.get("description", "")),
            body=str(row.get("body", "")),
            is_builtin=False,
            created_at=str(row.get("created_at", "")),
        )


class _JsonPersistence:
    """Read/write a registry snapshot; a missing path disables persistence."""

    def __init__(self, path: Optional[Union[str, Path]]) -> None:
        self.path = Path(path) if path is not None else None

    def load(self) -> Optional[Dict[str, Any]]:
        if self.path is None or not self.path.exists():
            return None
        with self.path.open("r", encoding="utf-8") as handle:
            return json.load(handle)

    def save(self, payload: Mapping[str, Any]) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2)
        tmp_path.replace(self.path)


# --------------------------------------------------------------------------- #
# Goals
# --------------------------------------------------------------------------- #


class GoalRegistry:
    def __init__(self, *, path: Optional[Union[str, Path]] = None, clock: Optional[Clock] = None) -> None:
        self._goals: Dict[str, Goal] = {}
        self._active_id: Optional[str] = None
        self._clock = clock or _utcnow
        self._store = _JsonPersistence(path)
        self._lock = threading.RLock()
        snapshot = self._store.load()
        if snapshot:
            for row in snapshot.get("goals", []):
                goal = Goal.from_row(row)
                self._goals[goal.id] = goal
            active_id = snapshot.get("active_id")
            self._active_id = active_id if active_id in self._goals else None

    def add(
        self,
        description: str,
        *,
        kind: GoalKind = GoalKind.USER_DEFINED,
        extra_context: Optional[str] = None,
        activate: bool = False,
    ) -> Goal:
        goal = Goal(
            id=_new_id("goal"),
            kind=kind,
            description=description,
            created_at=self._clock().isoformat(),
            extra_context=extra_context,
        )
        with self._lock:
            self._goals[goal.id] = goal
            if activate:
                self._active_id = goal.id
            self._persist()
        return goal

    def get(self, goal_id: str) -> Optional[Goal]:
        return self._goals.get(goal_id)

    def list(self) -> List[Goal]:
        return list(self._goals.values())

    def update_status(self, goal_id: str, status: GoalStatus) -> Optional[Goal]:
        with self._lock:
            goal = self._goals.get(goal_id)
            if goal is None:
                return None
            completed_at = self._clock().isoformat() if status is GoalStatus.COMPLETED else goal.completed_at
            goal = replace(goal, status=status, completed_at=completed_at)
            self._goals[goal_id] = goal
            self._persist()
        logger.info("Goal %s marked %s", goal_id, status.value)
        return goal

    def delete(self, goal_id: str) -> bool:
        with self._lock:
            if self._goals.pop(goal_id, None) is None:
                return False
            if self._active_id == goal_id:
                self._active_id = None
            self._persist()
        return True

    def set_active(self, goal_id: Optional[str]) -> bool:
        with self._lock:
            if goal_id is not None and goal_id not in self._goals:
                return False
            self._active_id = goal_id
            self._persist()
        return True

    @property
    def active(self) -> Optional[Goal]:
        if self._active_id is None:
            return None
        return self._goals.get(self._active_id)

    def _persist(self) -> None:
        self._store.save(
            {
                "goals": [goal.to_row() for goal in self._goals.values()],
                "active_id": self._active_id,
            }
        )


# --------------------------------------------------------------------------- #
# System prompts
# --------------------------------------------------------------------------- #


class SystemPromptRegistry:
    """Builtin prompts plus user prompts; builtins can be neither edited nor deleted."""

    def __init__(self, *, path: Optional[Union[str, Path]] = None, clock: Optional[Clock] = None) -> None:
        self._clock = clock or _utcnow
        created_at = self._clock().isoformat()
        self._builtins: List[SystemPrompt] = [
            SystemPrompt(id=prompt_id, name=name, description=description, body=body, is_builtin=True, created_at=created_at)
            for prompt_id, name, description, body in BUILTIN_PROMPTS
        ]
        self._prompts: Dict[str, SystemPrompt] = {prompt.id: prompt for prompt in self._builtins}
        self._active_id = self._builtins[0].id
        self._store = _JsonPersistence(path)
        self._lock = threading.RLock()
        snapshot = self._store.load()
        if snapshot:
            for row in snapshot.get("prompts", []):
                prompt = SystemPrompt.from_row(row)
                if prompt.id in self._prompts and self._prompts[prompt.id].is_builtin:
                    continue
                self._prompts[prompt.id] = prompt
            self._active_id = snapshot.get("active_id") or self._active_id

    def add(self, name: str, body: str, *, description: str = "", activate: bool = False) -> SystemPrompt:
        prompt = SystemPrompt(
            id=_new_id("prompt"),
            name=name,
            description=description,
            body=body,
            created_at=self._clock().isoformat(),
        )
        with self._lock:
            self._prompts[prompt.id] = prompt
            if activate:
                self._active_id = prompt.id
            self._persist()
        return prompt

    def get(self, prompt_id: str) -> Optional[SystemPrompt]:
        return self._prompts.get(prompt_id)

    def list(self) -> List[SystemPrompt]:
        return list(self._prompts.values())

    def update(
        self,
        prompt_id: str,
        *,
        name: Optional[str] = None,
        body: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Optional[SystemPrompt]:
        with self._lock:
            prompt = self._prompts.get(prompt_id)
            if prompt is None or prompt.is_builtin:
                return None
            prompt = replace(
                prompt,
                name=prompt.name if name is None else name,
                body=prompt.body if body is None else body,
                description=prompt.description if description is None else description,
            )
            self._prompts[prompt_id] = prompt
            self._persist()
        return prompt

    def delete(self, prompt_id: str) -> bool:
        with self._lock:
            prompt = self._prompts.get(prompt_id)
            if prompt is None or prompt.is_builtin:
                return False
            del self._prompts[prompt_id]
            if self._active_id == prompt_id:
                self._active_id = self._builtins[0].id
            self._persist()
        return True

    def set_active(self, prompt_id: str) -> bool:
        with self._lock:
            if prompt_id not in self._prompts:
                return False
            self._active_id = prompt_id
            self._persist()
        return True

    @property
    def active(self) -> SystemPrompt:
        return self._prompts.get(self._active_id) or self._builtins[0]

    def _persist(self) -> None:
        self._store.save(
            {
                "prompts": [prompt.to_row() for prompt in self._prompts.values() if not prompt.is_builtin],
                "active_id": self._active_id,
            }
        )


__all__ = [
    "Goal",
    "GoalKind",
    "GoalRegistry",
    "GoalStatus",
    "SystemPrompt",
    "SystemPromptRegistry",
]
