"""
Note storage - markdown notes addressed by name or by vault-relative path.

Lookups that find nothing return None/False. Genuine I/O faults raise.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

NOTE_SUFFIX = ".md"


@runtime_checkable
class NoteStore(Protocol):
    """What the run needs from a note vault. Paths are vault-relative with '/'."""

    def find_note(self, name: str) -> str | None: ...

    def read(self, path: str) -> str: ...

    def write(self, path: str, content: str) -> None: ...

    def create(self, path: str, content: str = "") -> None: ...

    def exists(self, path: str) -> bool: ...

    def rename(self, old_path: str, new_path: str) -> None: ...

    def create_folder(self, path: str) -> None: ...


def atomic_write(path: Path, content: str) -> None:
    """Write through a temp file in the same directory, then replace."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class FileNoteStore:
    """
    Notes as ``*.md`` files under a root directory.

    Example:
        store = FileNoteStore("~/vault")
        path = store.find_note("Ideas")      # "projects/Ideas.md"
        text = store.read(path)
    """

    def __init__(self, root: str | Path):
        self.root = Path(root).expanduser().resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        """Map a vault-relative path to disk, refusing anything outside the root."""
        if not path or path.strip() == "":
            raise ValueError("Path cannot be empty")
        if "\x00" in path:
            raise ValueError("Invalid path: null bytes not allowed")
        resolved = (self.root / path.lstrip("/")).resolve()
        if resolved != self.root and self.root not in resolved.parents:
            raise ValueError(f"Invalid path: '{path}' escapes the vault root")
        return resolved

    def _relative(self, full: Path) -> str:
        return full.relative_to(self.root).as_posix()

    def notes(self) -> list[str]:
        """Every note path in the vault, sorted."""
        return sorted(self._relative(p) for p in self.root.rglob(f"*{NOTE_SUFFIX}") if p.is_file())

    def find_note(self, name: str) -> str | None:
        """First note (in path order) whose file name without suffix is ``name``."""
        for path in self.notes():
            if Path(path).stem == name:
                return path
        return None

    def read(self, path: str) -> str:
        return self._resolve(path).read_text(encoding="utf-8")

    def write(self, path: str, content: str) -> None:
        atomic_write(self._resolve(path), content)

    def create(self, path: str, content: str = "") -> None:
        target = self._resolve(path)
        if target.exists():
            raise FileExistsError(f"Note already exists: {path}")
        atomic_write(target, content)
        logger.debug(f"Created note {path}")

    def exists(self, path: str) -> bool:
        return self._resolve(path).exists()

    def rename(self, old_path: str, new_path: str) -> None:
        target = self._resolve(new_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        self._resolve(old_path).rename(target)

    def create_folder(self, path: str) -> None:
        self._resolve(path).mkdir(parents=True, exist_ok=False)
