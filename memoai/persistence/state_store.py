"""
SQLite State Store for MemoAI.

Provides portable persistence for:
- Chunks with their SM-2 state and cached score
- Pushes and their evaluations
- Push conversation messages

Database location: ~/.memoai/state.db

Saves are full snapshots written inside one transaction, so the database
always holds a state the engine actually had.
"""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Iterable

from loguru import logger

from memoai.chunks.models import Chunk
from memoai.clock import to_iso
from memoai.push.models import Push, PushMessage


class StateStore:
    """
    SQLite-backed snapshot persistence.

    Implements both ChunkPersistence and PushPersistence.
    """

    DEFAULT_DB_PATH = Path.home() / ".memoai" / "state.db"

    def __init__(self, db_path: Path | str | None = None):
        """
        Initialize the state store.

        Args:
            db_path: Custom database path (defaults to ~/.memoai/state.db);
                ":memory:" keeps everything in memory
        """
        if db_path == ":memory:":
            self.db_path: Path | None = None
        else:
            self.db_path = Path(db_path) if db_path else self.DEFAULT_DB_PATH
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn: sqlite3.Connection | None = None
        self._init_schema()

        logger.info(f"StateStore initialized at {self.db_path or ':memory:'}")

    @property
    def conn(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            target = str(self.db_path) if self.db_path else ":memory:"
            self._conn = sqlite3.connect(target)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def _init_schema(self) -> None:
        """Initialize database schema."""
        cursor = self.conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS chunks (
                id TEXT PRIMARY KEY,
                note_path TEXT NOT NULL,
                content TEXT NOT NULL,
                chunk_type TEXT DEFAULT 'knowledge',
                importance_level TEXT DEFAULT 'medium',
                needs_review INTEGER DEFAULT 1,
                ef REAL DEFAULT 2.5,
                repetitions INTEGER DEFAULT 0,
                interval_days INTEGER DEFAULT 1,
                familiar_score REAL DEFAULT 0.0,
                due_at TEXT,
                created_at TEXT,
                last_reviewed_at TEXT,
                chunk_score REAL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS pushes (
                id TEXT PRIMARY KEY,
                chunk_id TEXT NOT NULL,
                state TEXT NOT NULL,
                created_at TEXT NOT NULL,
                expires_at TEXT NOT NULL,
                completed_at TEXT,
                evaluation_json TEXT
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS push_messages (
                id TEXT PRIMARY KEY,
                push_id TEXT NOT NULL,
                sender TEXT NOT NULL,
                content TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_chunks_note_path
            ON chunks(note_path)
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_push_messages_push
            ON push_messages(push_id)
        """)

        self.conn.commit()

    # =========================================================================
    # Chunks
    # =========================================================================

    def load_chunks(self) -> list[Chunk]:
        cursor = self.conn.cursor()
        cursor.execute("SELECT * FROM chunks ORDER BY created_at ASC")
        return [Chunk.from_dict(dict(row)) for row in cursor.fetchall()]

    def save_chunks(self, chunks: Iterable[Chunk]) -> None:
        """Replace every stored chunk with the given snapshot."""
        rows = [
            (
                c.id,
                c.note_path,
                c.content,
                c.chunk_type.value,
                c.importance_level.value,
                int(c.needs_review),
                c.ef,
                c.repetitions,
                c.interval_days,
                c.familiar_score,
                to_iso(c.due_at),
                to_iso(c.created_at),
                to_iso(c.last_reviewed_at),
                c.chunk_score,
            )
            for c in chunks
        ]
        with self.conn:
            self.conn.execute("DELETE FROM chunks")
            self.conn.executemany(
                """
                INSERT INTO chunks (
                    id, note_path, content, chunk_type, importance_level,
                    needs_review, ef, repetitions, interval_days,
                    familiar_score, due_at, created_at, last_reviewed_at,
                    chunk_score
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                rows,
            )

    # =========================================================================
    # Pushes
    # =========================================================================

    def load_pushes(self) -> tuple[list[Push], list[PushMessage]]:
        cursor = self.conn.cursor()

        cursor.execute("SELECT * FROM pushes ORDER BY created_at ASC")
        pushes = []
        for row in cursor.fetchall():
            record = dict(row)
            evaluation = record.pop("evaluation_json", None)
            record["evaluation"] = json.loads(evaluation) if evaluation else None
            pushes.append(Push.from_dict(record))

        cursor.execute("SELECT * FROM push_messages ORDER BY created_at ASC")
        messages = [PushMessage.from_dict(dict(row)) for row in cursor.fetchall()]

        return pushes, messages

    def save_pushes(self, pushes: Iterable[Push], messages: Iterable[PushMessage]) -> None:
        """Replace every stored push and message with the given snapshot."""
        push_rows = [
            (
                p.id,
                p.chunk_id,
                p.state.value,
                to_iso(p.created_at),
                to_iso(p.expires_at),
                to_iso(p.completed_at),
                json.dumps(p.evaluation.to_dict()) if p.evaluation else None,
            )
            for p in pushes
        ]
        message_rows = [
            (m.id, m.push_id, m.sender.value, m.content, to_iso(m.created_at))
            for m in messages
        ]
        with self.conn:
            self.conn.execute("DELETE FROM push_messages")
            self.conn.execute("DELETE FROM pushes")
            self.conn.executemany(
                """
                INSERT INTO pushes (
                    id, chunk_id, state, created_at, expires_at,
                    completed_at, evaluation_json
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
                push_rows,
            )
            self.conn.executemany(
                """
                INSERT INTO push_messages (id, push_id, sender, content, created_at)
                VALUES (?, ?, ?, ?, ?)
            """,
                message_rows,
            )

    # =========================================================================
    # Stats
    # =========================================================================

    def get_stats(self) -> dict:
        """
        Get overall learning statistics.

        Returns:
            Dictionary with aggregate stats
        """
        cursor = self.conn.cursor()

        cursor.execute("SELECT COUNT(*) AS cnt FROM chunks")
        total_chunks = cursor.fetchone()["cnt"]

        cursor.execute("SELECT COUNT(*) AS cnt FROM chunks WHERE last_reviewed_at IS NOT NULL")
        reviewed = cursor.fetchone()["cnt"]

        cursor.execute("SELECT AVG(familiar_score) AS avg_familiar FROM chunks")
        avg_familiar = cursor.fetchone()["avg_familiar"] or 0

        cursor.execute("SELECT state, COUNT(*) AS cnt FROM pushes GROUP BY state")
        by_state = {row["state"]: row["cnt"] for row in cursor.fetchall()}

        return {
            "total_chunks": total_chunks,
            "reviewed_chunks": reviewed,
            "avg_familiar_score": round(avg_familiar, 2),
            "pushes_by_state": by_state,
        }

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
