"""
Collaborator interfaces consumed by the engine.

The engine never talks to an LLM, a database or the filesystem directly.
It calls these protocols, which are blocking: a call either returns a
result or raises (ConfigurationError / ExternalServiceError). Concrete
implementations live in memoai.llm, memoai.persistence and memoai.vault.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterable, Literal, Protocol

if TYPE_CHECKING:
    from memoai.chunks.merge import IncrementalResult
    from memoai.chunks.models import Chunk
    from memoai.push.models import Push, PushMessage

Language = Literal["en", "zh"]


# =============================================================================
# Payloads
# =============================================================================


@dataclass(frozen=True)
class ExistingChunkView:
    """What the extraction service is told about a chunk it may revise."""

    id: str
    content: str
    importance_level: str
    needs_review: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "importance_level": self.importance_level,
            "needs_review": self.needs_review,
        }


@dataclass(frozen=True)
class HistoryEntry:
    """One line of tutoring conversation history."""

    sender: Literal["system", "user"]
    content: str


@dataclass(frozen=True)
class TutorEvaluation:
    """Grade and advice returned when the tutor closes a session."""

    grade: int
    recommendation: str = ""
    confidence: float | None = None


@dataclass(frozen=True)
class TutorTurn:
    """The tutor's reply to a learner message."""

    response: str
    should_end: bool = False
    evaluation: TutorEvaluation | None = None


@dataclass(frozen=True)
class TurnRequest:
    """Everything the tutor needs to produce the next turn."""

    chunk_content: str
    familiar_score: float
    language: Language = "en"
    history: list[HistoryEntry] = field(default_factory=list)
    force_evaluate: bool = False


# =============================================================================
# Protocols
# =============================================================================


class KnowledgeExtractionService(Protocol):
    """Decides what content chunks of a note should contain."""

    def extract(self, note_title: str, note_content: str) -> list[str]:
        """Return chunk contents for a note that has no chunks yet."""
        ...

    def extract_incremental(
        self,
        note_title: str,
        note_content: str,
        existing: list[ExistingChunkView],
    ) -> IncrementalResult:
        """Return keep/modify/delete decisions plus new chunk contents."""
        ...


class TutoringService(Protocol):
    """Produces questions and evaluations for a review conversation."""

    def ask_opening_question(
        self, chunk_content: str, familiar_score: float, language: Language = "en"
    ) -> str:
        ...

    def respond_to_turn(self, request: TurnRequest) -> TutorTurn:
        ...


class ChunkPersistence(Protocol):
    def load_chunks(self) -> list[Chunk]:
        ...

    def save_chunks(self, chunks: Iterable[Chunk]) -> None:
        ...


class PushPersistence(Protocol):
    def load_pushes(self) -> tuple[list[Push], list[PushMessage]]:
        ...

    def save_pushes(self, pushes: Iterable[Push], messages: Iterable[PushMessage]) -> None:
        ...


class NoteExistence(Protocol):
    def __call__(self, note_path: str) -> bool:
        ...
