"""Per-game notes store."""

from .notes import Importance, JsonlNotesStore, NoteEntry, NotesStore, NoteType, classify_note

__all__ = ["Importance", "JsonlNotesStore", "NoteEntry", "NoteType", "NotesStore", "classify_note"]
