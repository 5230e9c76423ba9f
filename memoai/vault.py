"""
Filesystem note vault.

Notes are addressed by their path relative to the vault root, which is the
note_path stored on every chunk.
"""

from __future__ import annotations

from pathlib import Path

from memoai.errors import NotFoundError


class NoteVault:
    """Read-only view of a directory of notes."""

    def __init__(self, root: Path | str = "."):
        self.root = Path(root).expanduser()

    def resolve(self, note_path: str) -> Path:
        return self.root / note_path

    def exists(self, note_path: str) -> bool:
        return self.resolve(note_path).is_file()

    def title(self, note_path: str) -> str:
        """Note title is the file name without extension."""
        return Path(note_path).stem

    def read(self, note_path: str) -> str:
        path = self.resolve(note_path)
        if not path.is_file():
            raise NotFoundError(f"Note not found: {note_path}")
        return path.read_text(encoding="utf-8")

    def list_notes(self, pattern: str = "**/*.md") -> list[str]:
        return sorted(p.relative_to(self.root).as_posix() for p in self.root.glob(pattern) if p.is_file())
