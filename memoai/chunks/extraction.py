"""
Note extraction workflow.

Turns a note into chunks. A note without chunks gets a full extraction;
a note that already has chunks gets an incremental extraction whose
decisions are merged by the MergeApplier.
"""

from __future__ import annotations

from datetime import datetime

from loguru import logger

from memoai.errors import NotFoundError
from memoai.services import ExistingChunkView, KnowledgeExtractionService
from memoai.vault import NoteVault

from .merge import MergeApplier, MergeStats
from .store import ChunkStore


class NoteExtractor:
    """Runs the extraction service against a note and stores the outcome."""

    def __init__(
        self,
        store: ChunkStore,
        extraction: KnowledgeExtractionService,
        vault: NoteVault,
        merger: MergeApplier | None = None,
    ):
        self.store = store
        self.extraction = extraction
        self.vault = vault
        self.merger = merger or MergeApplier(store)

    def extract_note(
        self,
        note_path: str,
        incremental: bool = True,
        now: datetime | None = None,
    ) -> MergeStats:
        """
        Extract chunks for one note.

        The extraction service is called before anything is mutated; if it
        fails the store is left exactly as it was.

        Args:
            note_path: Note to extract, relative to the vault
            incremental: Revise existing chunks instead of only adding new ones
            now: Reference time (store clock if None)

        Returns:
            MergeStats with created / updated / deleted counts

        Raises:
            NotFoundError: If the note does not exist
            ConfigurationError / ExternalServiceError: From the service
        """
        if not self.vault.exists(note_path):
            raise NotFoundError(f"Note not found: {note_path}")

        title = self.vault.title(note_path)
        content = self.vault.read(note_path)
        existing = self.store.list_by_note_path(note_path) if incremental else []

        if not existing:
            contents = self.extraction.extract(title, content)
            stats = MergeStats()
            for text in contents:
                if not text or not text.strip():
                    continue
                self.store.add(self.store.build(text, note_path, now), persist=False)
                stats.created += 1
            self.store.save()
            logger.info(f"Extracted {stats.created} chunks from {note_path}")
            return stats

        views = [
            ExistingChunkView(
                id=chunk.id,
                content=chunk.content,
                importance_level=chunk.importance_level.value,
                needs_review=chunk.needs_review,
            )
            for chunk in existing
        ]
        result = self.extraction.extract_incremental(title, content, views)
        return self.merger.apply(note_path, result, now)
