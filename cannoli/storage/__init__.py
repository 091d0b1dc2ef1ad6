"""Note storage used by reference and file-writing work items."""

from cannoli.storage.notes import FileNoteStore, NoteStore

__all__ = ["FileNoteStore", "NoteStore"]
