"""
Unit tests for merging incremental extraction decisions.

Tests the decay table for modifications, deletion, new chunk creation
and the skipping of unusable decisions.
"""

from datetime import timedelta

import pytest

from memoai.chunks.merge import (
    ChunkDecision,
    DecisionAction,
    IncrementalResult,
    MergeApplier,
    UpdateLevel,
)
from memoai.errors import ValidationError
from memoai.scheduling.sm2 import ImportanceLevel


@pytest.fixture
def merger(store):
    return MergeApplier(store)


@pytest.fixture
def learned(make_chunk, clock):
    """A chunk with some review history."""
    return make_chunk(
        ef=2.5,
        repetitions=3,
        interval_days=10,
        familiar_score=0.8,
        last_reviewed_at=clock.now - timedelta(days=10),
    )


def modify(chunk_id, level=None, content="Rewritten chunk content"):
    return ChunkDecision(
        id=chunk_id,
        action=DecisionAction.MODIFY,
        modified_content=content,
        update_level=level,
    )


def apply(merger, clock, *decisions, new_chunks=(), note_path="bio.md"):
    result = IncrementalResult(existing_decisions=list(decisions), new_chunks=list(new_chunks))
    return merger.apply(note_path, result, clock.now)


class TestModificationDecay:
    """Tests for the learning-state decay table."""

    @pytest.mark.parametrize("level,familiar,ef,repetitions,interval", [
        (UpdateLevel.MINOR, 0.72, 2.4, 3, 5),
        (UpdateLevel.MODERATE, 0.56, 2.2, 2, 5),
        (UpdateLevel.MAJOR, 0.32, 1.75, 0, 1),
    ])
    def test_decay_by_level(self, merger, learned, clock, level, familiar, ef, repetitions, interval):
        stats = apply(merger, clock, modify(learned.id, level))

        assert stats.updated == 1
        assert learned.content == "Rewritten chunk content"
        assert learned.familiar_score == pytest.approx(familiar)
        assert learned.ef == pytest.approx(ef)
        assert learned.repetitions == repetitions
        assert learned.interval_days == interval
        assert learned.due_at == clock.now + timedelta(days=interval)

    @pytest.mark.parametrize("level", [UpdateLevel.MINOR, UpdateLevel.MODERATE])
    def test_odd_interval_halving_rounds_up(self, merger, make_chunk, clock, level):
        """Halving a 5-day interval gives 3 days."""
        chunk = make_chunk(repetitions=3, interval_days=5)
        apply(merger, clock, modify(chunk.id, level))
        assert chunk.interval_days == 3
        assert chunk.due_at == clock.now + timedelta(days=3)

    def test_missing_level_is_moderate(self, merger, learned, clock):
        apply(merger, clock, modify(learned.id, None))
        assert learned.ef == pytest.approx(2.2)
        assert learned.repetitions == 2

    def test_ef_floor(self, merger, make_chunk, clock):
        chunk = make_chunk(ef=1.35, repetitions=2, interval_days=6)
        apply(merger, clock, modify(chunk.id, UpdateLevel.MODERATE))
        assert chunk.ef == pytest.approx(1.3)

    def test_reset_uses_importance_scaled_interval(self, merger, make_chunk, clock):
        chunk = make_chunk(importance_level=ImportanceLevel.HIGH, repetitions=1, interval_days=7)
        apply(merger, clock, modify(chunk.id, UpdateLevel.MODERATE))
        assert chunk.repetitions == 0
        assert chunk.interval_days == 1

    def test_last_review_untouched(self, merger, learned, clock):
        reviewed = learned.last_reviewed_at
        apply(merger, clock, modify(learned.id, UpdateLevel.MAJOR))
        assert learned.last_reviewed_at == reviewed

    def test_score_recomputed(self, merger, learned, clock):
        before = learned.chunk_score
        apply(merger, clock, modify(learned.id, UpdateLevel.MAJOR))
        assert learned.chunk_score != before

    def test_blank_content_skipped(self, merger, learned, clock):
        snapshot = learned.to_dict()
        stats = apply(merger, clock, modify(learned.id, UpdateLevel.MINOR, content="  "))

        assert stats.updated == 0
        assert stats.skipped == 1
        assert learned.to_dict() == snapshot


class TestDecisions:
    """Tests for keep / delete / unknown decisions and new chunks."""

    def test_keep(self, merger, learned, clock):
        snapshot = learned.to_dict()
        stats = apply(merger, clock, ChunkDecision(id=learned.id, action=DecisionAction.KEEP))
        assert stats.kept == 1
        assert learned.to_dict() == snapshot

    def test_delete_cascades_to_pushes(self, merger, learned, store, clock):
        deleted = []
        store.on_chunk_deleted(deleted.append)

        stats = apply(merger, clock, ChunkDecision(id=learned.id, action=DecisionAction.DELETE))

        assert stats.deleted == 1
        assert learned.id not in store
        assert deleted == [learned.id]

    def test_unknown_id_skipped(self, merger, learned, clock):
        stats = apply(merger, clock, modify("no-such-chunk", UpdateLevel.MINOR))
        assert stats.skipped == 1
        assert stats.updated == 0

    def test_chunk_of_other_note_skipped(self, merger, make_chunk, clock):
        other = make_chunk(note_path="other.md")
        stats = apply(merger, clock, ChunkDecision(id=other.id, action=DecisionAction.DELETE))
        assert stats.skipped == 1
        assert stats.deleted == 0

    def test_omitted_chunk_untouched(self, merger, learned, make_chunk, clock):
        untouched = make_chunk(content="Another topic")
        snapshot = untouched.to_dict()
        apply(merger, clock, modify(learned.id, UpdateLevel.MINOR))
        assert untouched.to_dict() == snapshot

    def test_new_chunks(self, merger, store, clock):
        stats = apply(merger, clock, new_chunks=["Fresh topic", "", "   ", "Second topic"])

        assert stats.created == 2
        contents = sorted(c.content for c in store.list_by_note_path("bio.md"))
        assert contents == ["Fresh topic", "Second topic"]
        for chunk in store.list_all():
            assert chunk.repetitions == 0
            assert chunk.due_at == clock.now + timedelta(days=1)

    def test_rejected_decisions_counted(self, merger, clock):
        result = IncrementalResult(rejected=["{'id': 'x', 'action': 'merge'}"])
        assert merger.apply("bio.md", result, clock.now).skipped == 1

    def test_saves_once(self, merger, learned, persistence, clock):
        saves = persistence.chunk_saves
        apply(merger, clock, modify(learned.id, UpdateLevel.MINOR), new_chunks=["a", "b"])
        assert persistence.chunk_saves == saves + 1


class TestChunkDecisionParsing:
    """Tests for ChunkDecision.from_dict."""

    def test_parses_and_normalises(self):
        decision = ChunkDecision.from_dict({
            "id": "c1",
            "action": "Modify",
            "modified_content": "text",
            "update_level": "MAJOR",
        })
        assert decision.action == DecisionAction.MODIFY
        assert decision.update_level == UpdateLevel.MAJOR

    def test_empty_level_is_none(self):
        decision = ChunkDecision.from_dict({"id": "c1", "action": "keep", "update_level": ""})
        assert decision.update_level is None

    @pytest.mark.parametrize("raw", [
        {"action": "keep"},
        {"id": "", "action": "keep"},
        {"id": "c1", "action": "merge"},
        {"id": "c1", "action": "modify", "update_level": "huge"},
    ])
    def test_invalid(self, raw):
        with pytest.raises(ValidationError):
            ChunkDecision.from_dict(raw)
