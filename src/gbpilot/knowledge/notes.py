"""
Persistent per-game notes fed back into the prompt as "Relevant Knowledge".
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple, runtime_checkable

from gbpilot.core.types import Button

logger = logging.getLogger(__name__)


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class NoteType(str, Enum):
    OBJECTIVE = "objective"
    RULE = "rule"
    TIP = "tip"
    ENEMY_INFO = "enemy_info"
    ITEM_INFO = "item_info"
    LOCATION_FACT = "location_fact"
    STRATEGY = "strategy"
    CONTROL_INFO = "control_info"
    GENERAL_NOTE = "general_note"


class Importance(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


_IMPORTANCE_RANK = {Importance.HIGH: 0, Importance.MEDIUM: 1, Importance.LOW: 2}

# First matching row wins.
_TYPE_KEYWORDS: Tuple[Tuple[NoteType, Tuple[str, ...]], ...] = (
    (NoteType.OBJECTIVE, ("objective", "goal")),
    (NoteType.RULE, ("rule", "must", "should not")),
    (NoteType.TIP, ("tip", "try to", "good idea")),
    (NoteType.ENEMY_INFO, ("enemy", "monster", "danger")),
    (NoteType.ITEM_INFO, ("item", "pickup", "power-up")),
    (NoteType.LOCATION_FACT, ("location", "area", "place")),
    (NoteType.STRATEGY, ("strategy", "plan", "approach")),
    (NoteType.CONTROL_INFO, ("control", "button", "how to")),
)


def classify_note(text: str) -> NoteType:
    lowered = text.lower()
    for note_type, keywords in _TYPE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return note_type
    return NoteType.GENERAL_NOTE


@dataclass(frozen=True)
class NoteEntry:
    """
    A single stored note.

    Attributes
    ----------
    game_title:
        Title the note belongs to; matched case-insensitively.
    type:
        Coarse classification used for filtering.
    description:
        Free text shown to the model.
    keywords:
        Extra search terms, e.g. ``action:up`` for recorded observations.
    """

    id: str
    game_title: str
    type: NoteType
    description: str
    keywords: Tuple[str, ...] = ()
    importance: Importance = Importance.MEDIUM
    created_at: str = field(default_factory=_iso_now)

    def to_row(self) -> Dict[str, Any]:
        row = asdict(self)
        row["type"] = self.type.value
        row["importance"] = self.importance.value
        row["keywords"] = list(self.keywords)
        return row

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "NoteEntry":
        return cls(
            id=str(row["id"]),
            game_title=str(row.get("game_title", "")),
            type=NoteType(row.get("type", NoteType.GENERAL_NOTE.value)),
            description=str(row.get("description", "")),
            keywords=tuple(row.get("keywords") or ()),
            importance=Importance(row.get("importance", Importance.MEDIUM.value)),
            created_at=str(row.get("created_at", "")),
        )


@runtime_checkable
class NotesStore(Protocol):
    def summarize(self, title: str, query: Optional[str] = None) -> str:
        """Return a short text block of notes relevant to ``title``."""


class JsonlNotesStore:
    """Notes kept in memory and appended to ``<root>/notes.jsonl``."""

    def __init__(self, root: Path | str, *, summary_limit: int = 5) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.jsonl_path = self.root / "notes.jsonl"
        self.summary_limit = max(1, int(summary_limit))
        self._lock = threading.Lock()
        self._entries: List[NoteEntry] = self._load()

    def _load(self) -> List[NoteEntry]:
        if not self.jsonl_path.exists():
            return []
        entries: List[NoteEntry] = []
        with self.jsonl_path.open("r", encoding="utf-8") as handle:
            for line_no, line in enumerate(handle, start=1):
                if not line.strip():
                    continue
                try:
                    entries.append(NoteEntry.from_row(json.loads(line)))
                except (ValueError, KeyError) as exc:
                    logger.warning("Skipping malformed note at %s:%d (%s)", self.jsonl_path, line_no, exc)
        return entries

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def add_note(
        self,
        title: str,
        description: str,
        *,
        note_type: Optional[NoteType] = None,
        keywords: Sequence[str] = (),
        importance: Importance = Importance.MEDIUM,
    ) -> NoteEntry:
        entry = NoteEntry(
            id=f"note-{uuid.uuid4().hex[:12]}",
            game_title=title,
            type=note_type or classify_note(description),
            description=description.strip(),
            keywords=tuple(keywords),
            importance=importance,
        )
        with self._lock:
            self._entries.append(entry)
            with self.jsonl_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(entry.to_row(), ensure_ascii=False) + "\n")
        return entry

    def record_observation(self, thought: str, title: str, action: Optional[Button] = None) -> Optional[NoteEntry]:
        """Store a model rationale, classified by keyword."""

        if not thought or not thought.strip():
            return None
        keywords: List[str] = []
        if action is not None and action is not Button.NONE:
            keywords.append(f"action:{action.value}")
        return self.add_note(title, thought, keywords=keywords)

    def search(
        self,
        query: str = "",
        title: Optional[str] = None,
        types: Optional[Iterable[NoteType]] = None,
    ) -> List[NoteEntry]:
        lowered = query.lower()
        wanted = set(types) if types else None
        with self._lock:
            entries = list(self._entries)
        results = []
        for entry in entries:
            if lowered and lowered not in entry.description.lower() and not any(
                lowered in keyword.lower() for keyword in entry.keywords
            ):
                continue
            if title is not None and entry.game_title.lower() != title.lower():
                continue
            if wanted is not None and entry.type not in wanted:
                continue
            results.append(entry)
        return results

    def summarize(self, title: str, query: Optional[str] = None) -> str:
        entries = self.search(query or "", title=title)
        # Most important first, newest first within the same importance.
        ordered = sorted(
            enumerate(entries),
            key=lambda pair: (_IMPORTANCE_RANK[pair[1].importance], -pair[0]),
        )
        lines: List[str] = []
        seen: set[str] = set()
        for _, entry in ordered:
            key = entry.description.lower()
            if key in seen:
                continue
            seen.add(key)
            lines.append(f"- [{entry.type.value}] {entry.description}")
            if len(lines) >= self.summary_limit:
                break
        return "\n".join(lines)

    def __len__(self) -> int:
        return len(self._entries)


__all__ = [
    "Importance",
    "JsonlNotesStore",
    "NoteEntry",
    "NoteType",
    "NotesStore",
    "classify_note",
]
