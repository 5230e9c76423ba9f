"""
In-memory Chunk Store.

Owns every Chunk record and is the single choke point for chunk mutation:
- Creation with SM-2 defaults and an initial score
- Explicit partial updates with centralised score invalidation
- Graded reviews written through the SM-2 scheduler
- Deletion cascading to pushes, orphan cleanup for deleted notes

The store persists its full snapshot after every successful mutation
through an optional ChunkPersistence collaborator.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Iterable

from loguru import logger

from memoai.clock import Clock, utc_now
from memoai.errors import ValidationError
from memoai.scheduling.scoring import compute_chunk_score
from memoai.scheduling.sm2 import (
    ImportanceLevel,
    SM2Params,
    SM2Scheduler,
    calculate_familiar_score,
)
from memoai.services import ChunkPersistence, NoteExistence

from .models import Chunk, ChunkUpdate

# Fields whose change invalidates the cached chunk score
SCORE_INPUTS = ("importance_level", "familiar_score", "due_at")


class ChunkStore:
    """
    Keyed collection of chunks.

    Unknown ids never raise: reads return None or an empty list and
    mutations return False.
    """

    def __init__(
        self,
        persistence: ChunkPersistence | None = None,
        sm2: SM2Scheduler | None = None,
        clock: Clock | None = None,
    ):
        """
        Initialize the store.

        Args:
            persistence: Where snapshots are saved (in-memory only if None)
            sm2: SM2Scheduler (creates default if None)
            clock: Time source (UTC now if None)
        """
        self.persistence = persistence
        self.sm2 = sm2 or SM2Scheduler()
        self.clock = clock or utc_now
        self._chunks: dict[str, Chunk] = {}
        self._on_delete: list[Callable[[str], object]] = []

    # =========================================================================
    # Wiring
    # =========================================================================

    def on_chunk_deleted(self, hook: Callable[[str], object]) -> None:
        """Register a hook called with the chunk id before a chunk is removed."""
        self._on_delete.append(hook)

    def load(self) -> int:
        """Replace in-memory contents with the persisted snapshot."""
        if self.persistence is None:
            return 0
        self._chunks = {chunk.id: chunk for chunk in self.persistence.load_chunks()}
        logger.info(f"Loaded {len(self._chunks)} chunks")
        return len(self._chunks)

    def save(self) -> None:
        if self.persistence is not None:
            self.persistence.save_chunks(self._chunks.values())

    def _now(self, now: datetime | None) -> datetime:
        return now if now is not None else self.clock()

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, chunk_id: str) -> Chunk | None:
        return self._chunks.get(chunk_id)

    def __contains__(self, chunk_id: object) -> bool:
        return chunk_id in self._chunks

    def __len__(self) -> int:
        return len(self._chunks)

    def list_all(self) -> list[Chunk]:
        return list(self._chunks.values())

    def list_by_note_path(self, note_path: str) -> list[Chunk]:
        return [c for c in self._chunks.values() if c.note_path == note_path]

    def list_due(self, now: datetime | None = None) -> list[Chunk]:
        """Chunks whose due time has passed and which still need review."""
        now = self._now(now)
        return [c for c in self._chunks.values() if c.is_due(now)]

    # =========================================================================
    # Mutations
    # =========================================================================

    def create(self, content: str, note_path: str, now: datetime | None = None) -> Chunk:
        """
        Create a chunk with fresh learning state.

        Args:
            content: Knowledge text (stripped; must not be empty)
            note_path: Owning note
            now: Creation time (clock if None)

        Returns:
            The stored chunk

        Raises:
            ValidationError: If content is empty after stripping
        """
        chunk = self.build(content, note_path, now)
        self._chunks[chunk.id] = chunk
        self.save()
        logger.debug(f"Created chunk {chunk.id} for {note_path}")
        return chunk

    def build(self, content: str, note_path: str, now: datetime | None = None) -> Chunk:
        """Build a new chunk without storing it."""
        if not content or not content.strip():
            raise ValidationError("Chunk content cannot be empty")
        now = self._now(now)
        importance = ImportanceLevel.MEDIUM
        interval = self.sm2.initial_interval(importance)

        chunk = Chunk(
            note_path=note_path,
            content=content.strip(),
            importance_level=importance,
            ef=self.sm2.config.initial_easiness,
            repetitions=0,
            interval_days=interval,
            familiar_score=0.0,
            due_at=now + timedelta(days=interval),
            created_at=now,
        )
        chunk.chunk_score = compute_chunk_score(chunk, now)
        return chunk

    def add(self, chunk: Chunk, persist: bool = True) -> Chunk:
        """Insert an already-built chunk (replacing any chunk with its id)."""
        self._chunks[chunk.id] = chunk
        if persist:
            self.save()
        return chunk

    def update(
        self,
        chunk_id: str,
        changes: ChunkUpdate,
        now: datetime | None = None,
    ) -> bool:
        """
        Apply only the provided fields of an update.

        The chunk score is recomputed when importance, familiarity or due
        date actually changed value, unless the update sets chunk_score
        itself.

        Returns:
            False if the chunk does not exist (nothing happens)
        """
        chunk = self._chunks.get(chunk_id)
        if chunk is None:
            logger.debug(f"update: chunk {chunk_id} not found")
            return False

        provided = changes.provided()
        affects_score = any(
            name in provided and provided[name] != getattr(chunk, name)
            for name in SCORE_INPUTS
        )

        for name, value in provided.items():
            setattr(chunk, name, value)

        if affects_score and "chunk_score" not in provided:
            chunk.chunk_score = compute_chunk_score(chunk, self._now(now))

        self.save()
        return True

    def rescore(self, chunk: Chunk, now: datetime | None = None) -> float:
        chunk.chunk_score = compute_chunk_score(chunk, self._now(now))
        return chunk.chunk_score

    def refresh_scores(self, now: datetime | None = None) -> None:
        """Recompute every cached score against the given time."""
        now = self._now(now)
        for chunk in self._chunks.values():
            chunk.chunk_score = compute_chunk_score(chunk, now)

    def apply_review(
        self,
        chunk_id: str,
        grade: int,
        now: datetime | None = None,
    ) -> Chunk | None:
        """
        Record a graded review through SM-2.

        Updates ease factor, repetitions, interval, familiarity, due date,
        last review time and score.

        Returns:
            The updated chunk, or None if it does not exist
        """
        chunk = self._chunks.get(chunk_id)
        if chunk is None:
            return None
        now = self._now(now)

        result = self.sm2.update(
            grade,
            SM2Params(
                ef=chunk.ef,
                repetitions=chunk.repetitions,
                interval_days=chunk.interval_days,
                importance_level=chunk.importance_level,
            ),
        )

        chunk.ef = result.new_ef
        chunk.repetitions = result.new_repetitions
        chunk.interval_days = result.new_interval_days
        chunk.familiar_score = calculate_familiar_score(chunk.familiar_score, grade)
        chunk.last_reviewed_at = now
        chunk.due_at = now + timedelta(days=result.new_interval_days)
        chunk.chunk_score = compute_chunk_score(chunk, now)

        self.save()

        logger.debug(
            f"Recorded review for {chunk.id}: grade={grade}, "
            f"interval={chunk.interval_days}d, ef={chunk.ef:.2f}"
        )
        return chunk

    def delete(self, chunk_id: str) -> bool:
        """Delete a chunk after cascading to its pushes."""
        if chunk_id not in self._chunks:
            return False
        self._remove(chunk_id)
        self.save()
        return True

    def delete_many(self, chunk_ids: Iterable[str], persist: bool = True) -> int:
        removed = 0
        for chunk_id in list(chunk_ids):
            if chunk_id in self._chunks:
                self._remove(chunk_id)
                removed += 1
        if removed and persist:
            self.save()
        return removed

    def _remove(self, chunk_id: str) -> None:
        for hook in self._on_delete:
            hook(chunk_id)
        del self._chunks[chunk_id]
        logger.debug(f"Deleted chunk {chunk_id}")

    def cleanup_orphans(self, exists: NoteExistence) -> list[str]:
        """
        Remove chunks whose note no longer exists.

        Args:
            exists: Predicate answering whether a note path still exists

        Returns:
            Ids of the removed chunks
        """
        orphans = [
            chunk.id
            for chunk in self._chunks.values()
            if chunk.note_path and not exists(chunk.note_path)
        ]
        if not orphans:
            return []

        self.delete_many(orphans)
        logger.info(f"Removed {len(orphans)} chunks belonging to deleted notes")
        return orphans
