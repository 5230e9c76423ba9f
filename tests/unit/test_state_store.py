"""
Unit tests for the SQLite state store.
"""

from datetime import datetime, timedelta, timezone

import pytest

from memoai.chunks.models import Chunk
from memoai.persistence.state_store import StateStore
from memoai.push.models import (
    EvaluationMethod,
    MessageSender,
    Push,
    PushEvaluation,
    PushMessage,
    PushState,
)
from memoai.scheduling.sm2 import ImportanceLevel

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "nested" / "state.db"


@pytest.fixture
def chunk():
    return Chunk(
        note_path="notes/bio.md",
        content="Cells divide by mitosis.",
        id="chunk-1",
        importance_level=ImportanceLevel.HIGH,
        needs_review=False,
        ef=2.36,
        repetitions=2,
        interval_days=6,
        familiar_score=0.52,
        due_at=T0 + timedelta(days=6),
        created_at=T0 - timedelta(days=7),
        last_reviewed_at=T0,
        chunk_score=3.1,
    )


class TestChunks:
    """Tests for chunk snapshots."""

    def test_round_trip(self, db_path, chunk):
        store = StateStore(db_path)
        store.save_chunks([chunk])
        store.close()

        assert StateStore(db_path).load_chunks() == [chunk]

    def test_snapshot_replaces(self, db_path, chunk):
        store = StateStore(db_path)
        store.save_chunks([chunk, Chunk(note_path="a.md", content="other", id="chunk-2")])
        store.save_chunks([chunk])

        assert [c.id for c in store.load_chunks()] == ["chunk-1"]

    def test_creates_parent_directory(self, db_path):
        StateStore(db_path)
        assert db_path.exists()

    def test_in_memory(self, chunk):
        store = StateStore(":memory:")
        store.save_chunks([chunk])
        assert store.db_path is None
        assert store.load_chunks() == [chunk]


class TestPushes:
    """Tests for push snapshots."""

    def test_round_trip(self, db_path):
        push = Push(
            chunk_id="chunk-1",
            id="push-1",
            state=PushState.COMPLETED,
            created_at=T0,
            expires_at=T0 + timedelta(hours=24),
            completed_at=T0 + timedelta(hours=1),
            evaluation=PushEvaluation(
                grade=4,
                recommendation="Review anaphase",
                confidence=0.9,
                method=EvaluationMethod.AI,
            ),
        )
        messages = [
            PushMessage(push_id="push-1", sender=MessageSender.SYSTEM, content="Q?", id="m1", created_at=T0),
            PushMessage(
                push_id="push-1",
                sender=MessageSender.USER,
                content="A.",
                id="m2",
                created_at=T0 + timedelta(minutes=1),
            ),
        ]

        store = StateStore(db_path)
        store.save_pushes([push], messages)
        store.close()

        loaded_pushes, loaded_messages = StateStore(db_path).load_pushes()
        assert loaded_pushes == [push]
        assert loaded_messages == messages

    def test_pending_without_evaluation(self):
        store = StateStore(":memory:")
        push = Push(chunk_id="c", id="p", created_at=T0, expires_at=T0 + timedelta(hours=1))
        store.save_pushes([push], [])

        pushes, messages = store.load_pushes()
        assert pushes[0].evaluation is None
        assert messages == []


class TestStats:
    """Tests for aggregate statistics."""

    def test_empty(self):
        stats = StateStore(":memory:").get_stats()
        assert stats["total_chunks"] == 0
        assert stats["avg_familiar_score"] == 0
        assert stats["pushes_by_state"] == {}

    def test_counts(self, chunk):
        store = StateStore(":memory:")
        store.save_chunks([chunk, Chunk(note_path="a.md", content="new", id="c2", familiar_score=0.0)])
        store.save_pushes(
            [Push(chunk_id="c2", id="p", created_at=T0, expires_at=T0 + timedelta(hours=1))],
            [],
        )

        stats = store.get_stats()
        assert stats["total_chunks"] == 2
        assert stats["reviewed_chunks"] == 1
        assert stats["avg_familiar_score"] == pytest.approx(0.26)
        assert stats["pushes_by_state"] == {"pending": 1}
