"""
SM-2 Spaced Repetition Algorithm with importance scaling.

Implements:
- SM-2 ease factor / repetition / interval recurrence
- Importance multiplier that stretches or compresses intervals
- Familiarity score blending after a graded review

SM-2 Grade Scale:
0 - Complete blackout, wrong response
1 - Incorrect, but upon seeing answer remembered
2 - Incorrect, but answer seemed easy to recall
3 - Correct, but with significant difficulty
4 - Correct, with some hesitation
5 - Correct, with perfect recall

Everything in this module is pure: no clock, no I/O, no shared state.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum

from memoai.errors import ValidationError


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (2.5 -> 3, not 2)."""
    return int(math.floor(value + 0.5))


# =============================================================================
# Importance
# =============================================================================


class ImportanceLevel(str, Enum):
    """How important a chunk is to the learner."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


IMPORTANCE_MULTIPLIERS: dict[ImportanceLevel, float] = {
    ImportanceLevel.LOW: 0.8,
    ImportanceLevel.MEDIUM: 1.0,
    ImportanceLevel.HIGH: 1.2,
}


def importance_multiplier(level: ImportanceLevel | str) -> float:
    """Interval scaling factor for an importance level (high > medium > low)."""
    try:
        return IMPORTANCE_MULTIPLIERS[ImportanceLevel(level)]
    except ValueError as e:
        raise ValidationError(f"Unknown importance level: {level!r}") from e


# =============================================================================
# SM-2 Algorithm
# =============================================================================


@dataclass
class SM2Config:
    """Configuration for SM-2 algorithm."""

    initial_easiness: float = 2.5
    minimum_easiness: float = 1.3
    first_interval: int = 1  # Days for first review
    second_interval: int = 6  # Days for second review


@dataclass(frozen=True)
class SM2Params:
    """Prior scheduling state fed into an update."""

    ef: float
    repetitions: int
    interval_days: int
    importance_level: ImportanceLevel = ImportanceLevel.MEDIUM


@dataclass(frozen=True)
class SM2Result:
    """Scheduling state produced by an update."""

    new_ef: float
    new_repetitions: int
    new_interval_days: int


def validate_grade(grade: int) -> int:
    """Return grade unchanged, or raise ValidationError if it is not 0..5."""
    if isinstance(grade, bool) or not isinstance(grade, int):
        raise ValidationError(f"Grade must be an integer 0-5, got {grade!r}")
    if not 0 <= grade <= 5:
        raise ValidationError(f"Grade must be between 0 and 5, got {grade}")
    return grade


class SM2Scheduler:
    """
    Implements the SM-2 spaced repetition algorithm.

    The SuperMemo 2 algorithm calculates optimal review intervals
    based on performance history. Each chunk has:
    - Easiness Factor (EF): How easy the item is (2.5 default, min 1.3)
    - Interval: Days until next review
    - Repetitions: Consecutive correct recalls

    Intervals are additionally scaled by the chunk's importance
    multiplier. For reviews past the second, the order is
    interval x EF, then x multiplier, then round.
    """

    def __init__(self, config: SM2Config | None = None):
        """
        Initialize SM-2 scheduler.

        Args:
            config: Custom configuration (uses defaults if None)
        """
        self.config = config or SM2Config()

    def scaled_interval(self, days: float, level: ImportanceLevel | str) -> int:
        """Scale a base interval by importance, rounded and floored at one day."""
        return max(1, round_half_up(days * importance_multiplier(level)))

    def initial_interval(self, level: ImportanceLevel | str) -> int:
        """Interval for a fresh or reset chunk."""
        return self.scaled_interval(self.config.first_interval, level)

    def update(self, grade: int, params: SM2Params) -> SM2Result:
        """
        Calculate the next scheduling state from a grade.

        Args:
            grade: Review grade (0-5)
            params: Current SM-2 state of the chunk

        Returns:
            SM2Result with new ease factor, repetitions and interval

        Raises:
            ValidationError: If grade is outside 0..5
        """
        validate_grade(grade)
        level = params.importance_level

        # EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))
        ef_delta = 0.1 - (5 - grade) * (0.08 + (5 - grade) * 0.02)
        new_ef = max(self.config.minimum_easiness, params.ef + ef_delta)

        if grade < 3:
            # Failed - reset to beginning, EF may only move toward the floor
            new_ef = min(new_ef, max(self.config.minimum_easiness, params.ef))
            return SM2Result(
                new_ef=new_ef,
                new_repetitions=0,
                new_interval_days=self.initial_interval(level),
            )

        new_repetitions = max(0, params.repetitions) + 1

        if new_repetitions == 1:
            new_interval = self.scaled_interval(self.config.first_interval, level)
        elif new_repetitions == 2:
            new_interval = self.scaled_interval(self.config.second_interval, level)
        else:
            previous = max(1, params.interval_days)
            new_interval = self.scaled_interval(previous * new_ef, level)

        return SM2Result(
            new_ef=new_ef,
            new_repetitions=new_repetitions,
            new_interval_days=new_interval,
        )


# =============================================================================
# Familiarity
# =============================================================================

FAMILIARITY_HISTORY_WEIGHT = 0.6
FAMILIARITY_GRADE_WEIGHT = 0.4


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def calculate_familiar_score(previous: float, grade: float) -> float:
    """
    Blend the previous familiarity with the signal from a new grade.

    Both inputs are clamped to their ranges first, so the result always
    lies in [0, 1].
    """
    signal = _clamp(grade / 5.0)
    blended = (
        FAMILIARITY_HISTORY_WEIGHT * _clamp(previous)
        + FAMILIARITY_GRADE_WEIGHT * signal
    )
    return _clamp(blended)
