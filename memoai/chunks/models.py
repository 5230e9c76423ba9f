"""
Chunk data model.

A chunk is an atomic unit of knowledge extracted from one source note,
carrying its own SM-2 scheduling state and a cached push-priority score.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any, Mapping
from uuid import uuid4

from memoai.clock import from_iso, to_iso, utc_now
from memoai.errors import ValidationError
from memoai.scheduling.sm2 import ImportanceLevel


class ChunkType(str, Enum):
    """Kind of chunk. Only knowledge chunks exist today."""

    KNOWLEDGE = "knowledge"


def new_chunk_id() -> str:
    return uuid4().hex


def parse_importance(value: Any) -> ImportanceLevel:
    try:
        return ImportanceLevel(value)
    except ValueError as e:
        raise ValidationError(f"Invalid importance level: {value!r}") from e


TRUE_WORDS = {"true", "yes", "on", "1"}
FALSE_WORDS = {"false", "no", "off", "0"}


def parse_bool(value: Any, name: str) -> bool:
    """Accept a bool or a true/false style word."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        word = value.strip().lower()
        if word in TRUE_WORDS:
            return True
        if word in FALSE_WORDS:
            return False
    raise ValidationError(f"{name} must be true or false, got {value!r}")


def parse_number(value: Any, name: str) -> float:
    """Accept an int, float or numeric string; reject bools and NaN."""
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{name} must be a number, got {value!r}") from e
    if math.isnan(number):
        raise ValidationError(f"{name} must be a number, got {value!r}")
    return number


@dataclass
class Chunk:
    """A unit of knowledge tied to a note, with its review state."""

    note_path: str
    content: str
    id: str = field(default_factory=new_chunk_id)
    chunk_type: ChunkType = ChunkType.KNOWLEDGE
    importance_level: ImportanceLevel = ImportanceLevel.MEDIUM
    needs_review: bool = True
    ef: float = 2.5
    repetitions: int = 0
    interval_days: int = 1
    familiar_score: float = 0.0
    due_at: datetime | None = None
    created_at: datetime = field(default_factory=utc_now)
    last_reviewed_at: datetime | None = None
    chunk_score: float | None = None

    def is_due(self, now: datetime) -> bool:
        """Due chunks are past their review time and still flagged for review."""
        return self.needs_review and self.due_at is not None and self.due_at <= now

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dict."""
        return {
            "id": self.id,
            "note_path": self.note_path,
            "content": self.content,
            "chunk_type": self.chunk_type.value,
            "importance_level": self.importance_level.value,
            "needs_review": self.needs_review,
            "ef": self.ef,
            "repetitions": self.repetitions,
            "interval_days": self.interval_days,
            "familiar_score": self.familiar_score,
            "due_at": to_iso(self.due_at),
            "created_at": to_iso(self.created_at),
            "last_reviewed_at": to_iso(self.last_reviewed_at),
            "chunk_score": self.chunk_score,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Chunk:
        """
        Rebuild a chunk from a stored record.

        Older records may lack needs_review (defaults to True) or created_at
        (falls back to last review, then due date, then now), and any stored
        chunk_type is coerced to knowledge.
        """
        due_at = from_iso(data.get("due_at"))
        last_reviewed_at = from_iso(data.get("last_reviewed_at"))
        created_at = from_iso(data.get("created_at")) or last_reviewed_at or due_at or utc_now()
        needs_review = data.get("needs_review")
        score = data.get("chunk_score")

        return cls(
            id=str(data["id"]),
            note_path=str(data.get("note_path", "")),
            content=str(data.get("content", "")),
            chunk_type=ChunkType.KNOWLEDGE,
            importance_level=parse_importance(data.get("importance_level", "medium")),
            needs_review=True if needs_review is None else bool(needs_review),
            ef=float(data.get("ef", 2.5)),
            repetitions=int(data.get("repetitions", 0)),
            interval_days=int(data.get("interval_days", 1)),
            familiar_score=float(data.get("familiar_score", 0.0)),
            due_at=due_at,
            created_at=created_at,
            last_reviewed_at=last_reviewed_at,
            chunk_score=float(score) if score is not None else None,
        )


@dataclass
class ChunkUpdate:
    """
    Partial update of a chunk's user-editable fields.

    Only fields that are not None are applied. Anything outside this set
    (ids, SM-2 state, timestamps) changes only through store operations.
    """

    importance_level: ImportanceLevel | None = None
    needs_review: bool | None = None
    familiar_score: float | None = None
    due_at: datetime | None = None
    chunk_score: float | None = None
    content: str | None = None

    def __post_init__(self) -> None:
        if self.importance_level is not None:
            self.importance_level = parse_importance(self.importance_level)
        if self.needs_review is not None:
            self.needs_review = parse_bool(self.needs_review, "needs_review")
        if self.familiar_score is not None:
            self.familiar_score = parse_number(self.familiar_score, "familiar_score")
            if not 0.0 <= self.familiar_score <= 1.0:
                raise ValidationError(
                    f"familiar_score must be within [0, 1], got {self.familiar_score}"
                )
        if self.chunk_score is not None:
            self.chunk_score = parse_number(self.chunk_score, "chunk_score")
        if self.due_at is not None and not isinstance(self.due_at, datetime):
            raise ValidationError(f"due_at must be a datetime, got {self.due_at!r}")
        if self.content is not None:
            if not isinstance(self.content, str):
                raise ValidationError(f"content must be text, got {self.content!r}")
            if not self.content.strip():
                raise ValidationError("Chunk content cannot be empty")
            self.content = self.content.strip()

    @classmethod
    def field_names(cls) -> set[str]:
        return {f.name for f in fields(cls)}

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ChunkUpdate:
        """Build an update from loose input, ignoring unrecognised keys."""
        known = {k: v for k, v in data.items() if k in cls.field_names()}
        if "due_at" in known:
            try:
                known["due_at"] = from_iso(known["due_at"])
            except (TypeError, ValueError) as e:
                raise ValidationError(f"Invalid due_at: {known['due_at']!r}") from e
        return cls(**known)

    def provided(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}
