"""
Chunk push-priority scoring.

score = importance weight + (1 - familiarity) + due boost

Due boost is a logistic curve over (now - due_at) in days:

| now - due_at | boost |
|--------------|-------|
| -infinity    | 0     |
| -1 day       | ~1.08 |
| 0 days       | 2     |
| +1 day       | ~2.92 |
| +infinity    | 4     |
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from .sm2 import ImportanceLevel

if TYPE_CHECKING:
    from memoai.chunks.models import Chunk

IMPORTANCE_WEIGHTS: dict[ImportanceLevel, float] = {
    ImportanceLevel.HIGH: 2.0,
    ImportanceLevel.MEDIUM: 1.0,
    ImportanceLevel.LOW: 0.0,
}

DUE_BOOST_MAX = 4.0
DUE_BOOST_SCALE = timedelta(days=1)

# exp() overflows a float past ~709
_MAX_EXPONENT = 700.0


def importance_weight(level: ImportanceLevel | str) -> float:
    return IMPORTANCE_WEIGHTS.get(ImportanceLevel(level), 0.0)


def due_boost(due_at: datetime | None, now: datetime) -> float:
    """Logistic bonus rewarding overdue chunks; 0 when there is no due date."""
    if due_at is None:
        return 0.0
    overdue = (now - due_at) / DUE_BOOST_SCALE
    exponent = max(-_MAX_EXPONENT, min(_MAX_EXPONENT, -overdue))
    return DUE_BOOST_MAX / (1.0 + math.exp(exponent))


def compute_chunk_score(chunk: Chunk, now: datetime) -> float:
    """
    Compute a chunk's push-priority score.

    Args:
        chunk: Chunk to score (importance, familiarity and due date are read)
        now: Reference time

    Returns:
        Score in [0, 7)
    """
    familiarity = chunk.familiar_score if chunk.familiar_score is not None else 0.0
    return (
        importance_weight(chunk.importance_level)
        + (1.0 - familiarity)
        + due_boost(chunk.due_at, now)
    )
