from __future__ import annotations

import json
from pathlib import Path

from gbpilot.core.types import Button
from gbpilot.knowledge.notes import Importance, JsonlNotesStore, NotesStore, NoteType, classify_note


def test_classify_note_by_keyword() -> None:
    assert classify_note("Our goal is to reach the castle") is NoteType.OBJECTIVE
    assert classify_note("Try to jump early") is NoteType.TIP
    assert classify_note("That enemy throws hammers") is NoteType.ENEMY_INFO
    assert classify_note("Nothing special here") is NoteType.GENERAL_NOTE


def test_record_observation_tags_action(tmp_path: Path) -> None:
    store = JsonlNotesStore(tmp_path)

    entry = store.record_observation("Try to jump over the pipe", "MARIO", Button.UP)

    assert entry is not None
    assert entry.type is NoteType.TIP
    assert entry.keywords == ("action:up",)
    assert store.record_observation("   ", "MARIO", Button.A) is None
    assert len(store) == 1
    assert isinstance(store, NotesStore)


def test_search_filters_by_title_query_and_type(tmp_path: Path) -> None:
    store = JsonlNotesStore(tmp_path)
    store.add_note("MARIO", "Coins give extra lives", note_type=NoteType.ITEM_INFO)
    store.add_note("MARIO", "Goombas walk slowly", note_type=NoteType.ENEMY_INFO)
    store.add_note("TETRIS", "Coins do not exist here")

    assert [note.description for note in store.search("coins", title="mario")] == ["Coins give extra lives"]
    assert len(store.search(title="MARIO", types=[NoteType.ENEMY_INFO])) == 1
    assert len(store.search("coins")) == 2


def test_summary_orders_by_importance_then_recency_and_dedupes(tmp_path: Path) -> None:
    store = JsonlNotesStore(tmp_path, summary_limit=3)
    store.add_note("MARIO", "Old tip", note_type=NoteType.TIP, importance=Importance.LOW)
    store.add_note("MARIO", "Stomp enemies", note_type=NoteType.STRATEGY)
    store.add_note("MARIO", "Reach the flag", note_type=NoteType.OBJECTIVE, importance=Importance.HIGH)
    store.add_note("MARIO", "stomp enemies", note_type=NoteType.STRATEGY)
    store.add_note("MARIO", "Newer tip", note_type=NoteType.TIP, importance=Importance.LOW)

    assert store.summarize("MARIO").splitlines() == [
        "- [objective] Reach the flag",
        "- [strategy] stomp enemies",
        "- [tip] Newer tip",
    ]


def test_notes_survive_reload_and_skip_bad_lines(tmp_path: Path) -> None:
    store = JsonlNotesStore(tmp_path)
    store.add_note("MARIO", "Pipes hide secrets", keywords=["pipe"])
    with (tmp_path / "notes.jsonl").open("a", encoding="utf-8") as handle:
        handle.write("not json\n")
        handle.write(json.dumps({"description": "missing id"}) + "\n")

    reloaded = JsonlNotesStore(tmp_path)

    assert len(reloaded) == 1
    assert reloaded.search("pipe")[0].description == "Pipes hide secrets"
