"""Tests for the file-backed note store and the run's note operations."""

import pytest

from cannoli.config import RunConfig
from cannoli.errors import CannoliError
from cannoli.runtime.run import Run
from cannoli.schemas.usage import DEFAULT_MODEL_INFO
from cannoli.storage.notes import FileNoteStore, NoteStore


def make_run(store=None, is_mock=False) -> Run:
    config = RunConfig(
        model="gpt-3.5-turbo",
        llm_limit=10,
        is_mock=is_mock,
        model_info=dict(DEFAULT_MODEL_INFO),
    )
    return Run({}, store=store, config=config)


class TestFileNoteStore:
    def test_satisfies_protocol(self, tmp_path):
        assert isinstance(FileNoteStore(tmp_path), NoteStore)

    def test_create_and_read(self, tmp_path):
        store = FileNoteStore(tmp_path)
        store.create("a/b/Note.md", "body")

        assert (tmp_path / "a" / "b" / "Note.md").read_text() == "body"
        assert store.read("a/b/Note.md") == "body"
        assert store.exists("a/b/Note.md")

    def test_create_refuses_existing(self, tmp_path):
        store = FileNoteStore(tmp_path)
        store.create("Note.md")
        with pytest.raises(FileExistsError):
            store.create("Note.md", "again")

    def test_find_note_by_name(self, tmp_path):
        store = FileNoteStore(tmp_path)
        store.create("z/Ideas.md")
        store.create("a/Ideas.md")
        store.create("a/Other.md")

        assert store.find_note("Ideas") == "a/Ideas.md"
        assert store.find_note("Missing") is None
        assert store.notes() == ["a/Ideas.md", "a/Other.md", "z/Ideas.md"]

    def test_write_replaces_without_leftovers(self, tmp_path):
        store = FileNoteStore(tmp_path)
        store.create("Note.md", "old")
        store.write("Note.md", "new")

        assert store.read("Note.md") == "new"
        assert [p.name for p in tmp_path.iterdir()] == ["Note.md"]

    def test_rename_creates_target_folder(self, tmp_path):
        store = FileNoteStore(tmp_path)
        store.create("Note.md", "x")
        store.rename("Note.md", "archive/Note.md")

        assert not store.exists("Note.md")
        assert store.read("archive/Note.md") == "x"

    @pytest.mark.parametrize("bad_path", ["../outside.md", "a/../../outside.md", "", "bad\x00.md"])
    def test_rejects_paths_outside_root(self, tmp_path, bad_path):
        store = FileNoteStore(tmp_path / "vault")
        with pytest.raises(ValueError):
            store.read(bad_path)


class TestRunNoteOperations:
    @pytest.mark.asyncio
    async def test_get_note_prepends_title(self, tmp_path):
        store = FileNoteStore(tmp_path)
        store.create("Daily.md", "Walk the dog")
        run = make_run(store)

        assert await run.get_note("Daily") == "# Daily\nWalk the dog"
        assert await run.get_note("Nope") is None

    @pytest.mark.asyncio
    async def test_edit_note_strips_matching_title(self, tmp_path):
        store = FileNoteStore(tmp_path)
        store.create("Daily.md", "old")
        run = make_run(store)

        assert await run.edit_note("Daily", "# Daily\n\nnew body\n") is True
        assert store.read("Daily.md") == "new body"

        assert await run.edit_note("Daily", "# Other\nkept") is True
        assert store.read("Daily.md") == "# Other\nkept"

    @pytest.mark.asyncio
    async def test_edit_missing_note_returns_none(self, tmp_path):
        run = make_run(FileNoteStore(tmp_path))
        assert await run.edit_note("Nope", "text") is None

    @pytest.mark.asyncio
    async def test_edit_note_is_a_no_op_in_mock_mode(self, tmp_path):
        store = FileNoteStore(tmp_path)
        store.create("Daily.md", "old")
        run = make_run(store, is_mock=True)

        assert await run.edit_note("Daily", "new") is True
        assert store.read("Daily.md") == "old"

    @pytest.mark.asyncio
    async def test_create_note_at_existing_path(self, tmp_path):
        store = FileNoteStore(tmp_path)
        run = make_run(store)

        assert await run.create_note_at_existing_path("Plan", "work", "steps") is True
        assert await run.create_note_at_existing_path("Plan", "work", "again") is False
        assert store.read("work/Plan.md") == "steps"

    @pytest.mark.asyncio
    async def test_create_note_at_new_path(self, tmp_path):
        store = FileNoteStore(tmp_path)
        run = make_run(store)

        assert await run.create_note_at_new_path("Plan", "deep/new/folder", "x", verbose=True)
        assert store.read("deep/new/folder/Plan.md") == "x"

    @pytest.mark.asyncio
    async def test_create_folder(self, tmp_path):
        run = make_run(FileNoteStore(tmp_path))

        assert await run.create_folder("projects") is True
        assert await run.create_folder("projects") is False
        assert (tmp_path / "projects").is_dir()

    @pytest.mark.asyncio
    async def test_move_note(self, tmp_path):
        store = FileNoteStore(tmp_path)
        store.create("inbox/Task.md", "do it")
        run = make_run(store)

        assert await run.move_note("Task", "inbox", "done") is True
        assert store.read("done/Task.md") == "do it"
        assert await run.move_note("Task", "inbox", "done") is False

    @pytest.mark.asyncio
    async def test_operations_need_a_store(self):
        run = make_run()
        with pytest.raises(CannoliError, match="no note store"):
            await run.get_note("Daily")
