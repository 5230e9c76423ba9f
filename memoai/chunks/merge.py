"""
Merge of incremental extraction decisions into existing chunks.

When a note is re-extracted, the extraction service returns one decision
per existing chunk (keep / modify / delete) plus wholly new chunk
contents. A modification means the learner has to partially re-learn the
chunk, so learning state decays according to how large the edit was:

| update level | familiarity kept | ease factor         | repetitions    |
|--------------|------------------|---------------------|----------------|
| minor        | 90%              | ef - 0.1            | unchanged      |
| moderate     | 70%              | ef - 0.3            | minus one      |
| major        | 40%              | ef * 0.7            | reset to zero  |

The ease factor never drops below 1.3. When repetitions end at zero the
interval restarts at the importance-scaled first interval, otherwise it is
halved. The due date moves to now + interval. last_reviewed_at is left
alone, because an edit is not a review.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Mapping

from loguru import logger

from memoai.errors import ValidationError
from memoai.scheduling.sm2 import round_half_up

from .models import Chunk
from .store import ChunkStore


class DecisionAction(str, Enum):
    KEEP = "keep"
    MODIFY = "modify"
    DELETE = "delete"


class UpdateLevel(str, Enum):
    MINOR = "minor"
    MODERATE = "moderate"
    MAJOR = "major"


FAMILIARITY_RETENTION: dict[UpdateLevel, float] = {
    UpdateLevel.MINOR: 0.9,
    UpdateLevel.MODERATE: 0.7,
    UpdateLevel.MAJOR: 0.4,
}

MIN_EF = 1.3


@dataclass
class ChunkDecision:
    """Verdict for one existing chunk."""

    id: str
    action: DecisionAction
    modified_content: str | None = None
    update_level: UpdateLevel | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ChunkDecision:
        """
        Parse a raw decision from the extraction service.

        Raises:
            ValidationError: On a missing id or an unknown action / level
        """
        chunk_id = data.get("id")
        if chunk_id is None or str(chunk_id).strip() == "":
            raise ValidationError("Decision is missing a chunk id")
        try:
            action = DecisionAction(str(data.get("action", "")).strip().lower())
        except ValueError as e:
            raise ValidationError(f"Unknown decision action: {data.get('action')!r}") from e

        level_raw = data.get("update_level")
        level = None
        if level_raw:
            try:
                level = UpdateLevel(str(level_raw).strip().lower())
            except ValueError as e:
                raise ValidationError(f"Unknown update level: {level_raw!r}") from e

        modified = data.get("modified_content")
        return cls(
            id=str(chunk_id),
            action=action,
            modified_content=str(modified) if modified is not None else None,
            update_level=level,
        )


@dataclass
class IncrementalResult:
    """Decisions for existing chunks plus contents of new chunks."""

    existing_decisions: list[ChunkDecision] = field(default_factory=list)
    new_chunks: list[str] = field(default_factory=list)
    # Raw decisions that failed to parse; reported, never applied
    rejected: list[str] = field(default_factory=list)


@dataclass
class MergeStats:
    """Outcome counts of one merge or extraction."""

    created: int = 0
    updated: int = 0
    deleted: int = 0
    kept: int = 0
    skipped: int = 0

    def summary(self) -> str:
        return f"{self.created} new, {self.updated} updated, {self.deleted} deleted"


class MergeApplier:
    """Applies an IncrementalResult to the chunks of one note."""

    def __init__(self, store: ChunkStore):
        self.store = store

    def apply(
        self,
        note_path: str,
        result: IncrementalResult,
        now: datetime | None = None,
    ) -> MergeStats:
        """
        Apply decisions and create new chunks.

        Invalid decisions are skipped without aborting the batch. Existing
        chunks that received no decision are left untouched.

        Args:
            note_path: Note whose chunks the decisions refer to
            result: Output of the extraction service
            now: Reference time (store clock if None)

        Returns:
            MergeStats with per-outcome counts
        """
        now = now if now is not None else self.store.clock()
        stats = MergeStats(skipped=len(result.rejected))
        existing = {chunk.id: chunk for chunk in self.store.list_by_note_path(note_path)}
        to_delete: list[str] = []

        for decision in result.existing_decisions:
            chunk = existing.get(decision.id)
            if chunk is None:
                logger.warning(f"Skipping decision for unknown chunk {decision.id}")
                stats.skipped += 1
                continue

            if decision.action == DecisionAction.DELETE:
                to_delete.append(chunk.id)
            elif decision.action == DecisionAction.MODIFY:
                try:
                    self.apply_modification(chunk, decision, now)
                except ValidationError as e:
                    logger.warning(f"Skipping modification of {chunk.id}: {e}")
                    stats.skipped += 1
                    continue
                stats.updated += 1
            else:
                stats.kept += 1

        stats.deleted = self.store.delete_many(to_delete, persist=False)

        for content in result.new_chunks:
            if not content or not content.strip():
                continue
            self.store.add(self.store.build(content, note_path, now), persist=False)
            stats.created += 1

        self.store.save()
        logger.info(f"Merged chunks for {note_path}: {stats.summary()}")
        return stats

    def apply_modification(
        self,
        chunk: Chunk,
        decision: ChunkDecision,
        now: datetime,
    ) -> Chunk:
        """
        Replace a chunk's content and decay its learning state.

        All new values are computed before any field is assigned, so a
        rejected decision leaves the chunk unchanged.

        Raises:
            ValidationError: If the modified content is missing or blank
        """
        content = (decision.modified_content or "").strip()
        if not content:
            raise ValidationError("modify decision has no modified_content")

        level = decision.update_level or UpdateLevel.MODERATE
        familiar = max(0.0, chunk.familiar_score * FAMILIARITY_RETENTION[level])

        if level == UpdateLevel.MINOR:
            ef = max(MIN_EF, chunk.ef - 0.1)
            repetitions = chunk.repetitions
        elif level == UpdateLevel.MODERATE:
            ef = max(MIN_EF, chunk.ef - 0.3)
            repetitions = max(0, chunk.repetitions - 1)
        else:
            ef = max(MIN_EF, chunk.ef * 0.7)
            repetitions = 0

        if repetitions == 0:
            interval = self.store.sm2.initial_interval(chunk.importance_level)
        else:
            interval = max(1, round_half_up(chunk.interval_days * 0.5))

        chunk.content = content
        chunk.familiar_score = familiar
        chunk.ef = ef
        chunk.repetitions = repetitions
        chunk.interval_days = interval
        chunk.due_at = now + timedelta(days=interval)
        self.store.rescore(chunk, now)

        logger.debug(
            f"Modified chunk {chunk.id} ({level.value}): ef={ef:.2f}, "
            f"repetitions={repetitions}, interval={interval}d"
        )
        return chunk
