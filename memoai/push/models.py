"""
Push data model.

A push is a review session bound to one chunk:

    pending --start--> active --end of conversation--> completed
       |                  |
       +------------------+--(expires_at passed)--> expired

Completed and expired pushes are deleted on the next refresh.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping
from uuid import uuid4

from memoai.clock import from_iso, to_iso, utc_now


class PushState(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    EXPIRED = "expired"


OPEN_STATES = frozenset({PushState.PENDING, PushState.ACTIVE})


class MessageSender(str, Enum):
    SYSTEM = "system"
    USER = "user"


class EvaluationMethod(str, Enum):
    AI = "ai"
    MANUAL = "manual"


def new_id() -> str:
    return uuid4().hex


@dataclass
class PushConfig:
    """Refresh limits for pushes."""

    max_active: int = 5
    due_window_hours: float = 24
    score_threshold: float = 2.0


@dataclass
class PushEvaluation:
    """Result recorded when a push completes."""

    grade: int
    recommendation: str = ""
    confidence: float | None = None
    method: EvaluationMethod = EvaluationMethod.AI

    def to_dict(self) -> dict[str, Any]:
        return {
            "grade": self.grade,
            "recommendation": self.recommendation,
            "confidence": self.confidence,
            "method": self.method.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PushEvaluation:
        confidence = data.get("confidence")
        return cls(
            grade=int(data["grade"]),
            recommendation=str(data.get("recommendation") or ""),
            confidence=float(confidence) if confidence is not None else None,
            method=EvaluationMethod(data.get("method", "ai")),
        )


@dataclass
class Push:
    """A scheduled or in-progress review session for one chunk."""

    chunk_id: str
    expires_at: datetime
    id: str = field(default_factory=new_id)
    state: PushState = PushState.PENDING
    created_at: datetime = field(default_factory=utc_now)
    completed_at: datetime | None = None
    evaluation: PushEvaluation | None = None

    @property
    def is_open(self) -> bool:
        return self.state in OPEN_STATES

    def is_expired(self, now: datetime) -> bool:
        """Open pushes expire once their window has passed."""
        return self.state == PushState.EXPIRED or (self.is_open and self.expires_at <= now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "chunk_id": self.chunk_id,
            "state": self.state.value,
            "created_at": to_iso(self.created_at),
            "expires_at": to_iso(self.expires_at),
            "completed_at": to_iso(self.completed_at),
            "evaluation": self.evaluation.to_dict() if self.evaluation else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Push:
        evaluation = data.get("evaluation")
        return cls(
            id=str(data["id"]),
            chunk_id=str(data["chunk_id"]),
            state=PushState(data.get("state", "pending")),
            created_at=from_iso(data.get("created_at")) or utc_now(),
            expires_at=from_iso(data["expires_at"]),
            completed_at=from_iso(data.get("completed_at")),
            evaluation=PushEvaluation.from_dict(evaluation) if evaluation else None,
        )


@dataclass
class PushMessage:
    """One message of a push conversation."""

    push_id: str
    sender: MessageSender
    content: str
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "push_id": self.push_id,
            "sender": self.sender.value,
            "content": self.content,
            "created_at": to_iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PushMessage:
        return cls(
            id=str(data["id"]),
            push_id=str(data["push_id"]),
            sender=MessageSender(data["sender"]),
            content=str(data.get("content", "")),
            created_at=from_iso(data.get("created_at")) or utc_now(),
        )


@dataclass
class RefreshStats:
    """Counts returned by a push refresh."""

    deleted: int = 0
    created: int = 0
    kept: int = 0
