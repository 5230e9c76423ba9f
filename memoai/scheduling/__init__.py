"""
Scheduling primitives: SM-2 recurrence and chunk priority scoring.
"""

from .scoring import compute_chunk_score, due_boost, importance_weight
from .sm2 import (
    ImportanceLevel,
    SM2Config,
    SM2Params,
    SM2Result,
    SM2Scheduler,
    calculate_familiar_score,
    importance_multiplier,
    round_half_up,
    validate_grade,
)

__all__ = [
    "ImportanceLevel",
    "SM2Config",
    "SM2Params",
    "SM2Result",
    "SM2Scheduler",
    "calculate_familiar_score",
    "compute_chunk_score",
    "due_boost",
    "importance_multiplier",
    "importance_weight",
    "round_half_up",
    "validate_grade",
]
