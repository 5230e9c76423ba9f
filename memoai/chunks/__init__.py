"""
Chunks: the knowledge units a learner reviews.

Components:
- Chunk / ChunkUpdate: data model and explicit partial update command
- ChunkStore: owned in-memory collection, single mutation choke point
- MergeApplier: applies incremental extraction decisions
- NoteExtractor: full or incremental extraction of a note
"""

from .models import Chunk, ChunkType, ChunkUpdate
from .store import ChunkStore
from .merge import (
    ChunkDecision,
    DecisionAction,
    IncrementalResult,
    MergeApplier,
    MergeStats,
    UpdateLevel,
)
from .extraction import NoteExtractor

__all__ = [
    # Model
    "Chunk",
    "ChunkType",
    "ChunkUpdate",
    # Store
    "ChunkStore",
    # Merge
    "ChunkDecision",
    "DecisionAction",
    "IncrementalResult",
    "MergeApplier",
    "MergeStats",
    "UpdateLevel",
    # Extraction
    "NoteExtractor",
]
