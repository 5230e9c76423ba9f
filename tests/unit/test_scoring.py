"""
Unit tests for chunk priority scoring.
"""

import math
from datetime import datetime, timedelta, timezone

import pytest

from memoai.chunks.models import Chunk
from memoai.scheduling.scoring import compute_chunk_score, due_boost, importance_weight
from memoai.scheduling.sm2 import ImportanceLevel

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class TestDueBoost:
    """Tests for the logistic due boost."""

    def test_no_due_date(self):
        assert due_boost(None, T0) == 0.0

    def test_exactly_due_is_half(self):
        assert due_boost(T0, T0) == pytest.approx(2.0)

    def test_one_day_overdue(self):
        expected = 4 / (1 + math.exp(-1))
        assert due_boost(T0 - timedelta(days=1), T0) == pytest.approx(expected)

    def test_one_day_ahead(self):
        expected = 4 / (1 + math.exp(1))
        assert due_boost(T0 + timedelta(days=1), T0) == pytest.approx(expected)

    def test_extremes_do_not_overflow(self):
        """Centuries away in either direction saturate instead of raising."""
        assert due_boost(T0 - timedelta(days=100000), T0) == pytest.approx(4.0)
        assert due_boost(T0 + timedelta(days=100000), T0) == pytest.approx(0.0)

    def test_monotonic_in_overdue_time(self):
        boosts = [due_boost(T0 - timedelta(hours=h), T0) for h in range(-72, 73, 12)]
        assert boosts == sorted(boosts)


class TestChunkScore:
    """Tests for compute_chunk_score."""

    @pytest.mark.parametrize("level,weight", [
        (ImportanceLevel.HIGH, 2.0),
        (ImportanceLevel.MEDIUM, 1.0),
        (ImportanceLevel.LOW, 0.0),
    ])
    def test_importance_weights(self, level, weight):
        assert importance_weight(level) == weight

    def test_components_add_up(self):
        chunk = Chunk(
            note_path="a.md",
            content="x",
            importance_level=ImportanceLevel.HIGH,
            familiar_score=0.0,
            due_at=T0,
        )
        assert compute_chunk_score(chunk, T0) == pytest.approx(5.0)

    def test_minimum_score(self):
        chunk = Chunk(
            note_path="a.md",
            content="x",
            importance_level=ImportanceLevel.LOW,
            familiar_score=1.0,
            due_at=None,
        )
        assert compute_chunk_score(chunk, T0) == 0.0

    def test_familiarity_lowers_score(self):
        kwargs = dict(note_path="a.md", content="x", due_at=T0)
        unfamiliar = Chunk(familiar_score=0.1, **kwargs)
        familiar = Chunk(familiar_score=0.9, **kwargs)
        assert compute_chunk_score(unfamiliar, T0) > compute_chunk_score(familiar, T0)
