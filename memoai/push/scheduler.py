"""
Push Scheduler: bounded review sessions over scored chunks.

Implements:
- Refresh: clean up finished pushes, select due high-score chunks,
  create pending pushes up to the active limit
- Conversation flow with the tutoring service (pending -> active -> completed)
- Manual grading that bypasses the tutor
- Grade write-back into the ChunkStore through SM-2

Tutor calls happen before any state is touched. If the tutor raises,
the push, its messages and the chunk are exactly as they were.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable

from loguru import logger

from memoai.chunks.models import Chunk
from memoai.chunks.store import ChunkStore
from memoai.clock import Clock, utc_now
from memoai.errors import ExternalServiceError, InvalidStateError, NotFoundError, ValidationError
from memoai.scheduling.sm2 import validate_grade
from memoai.services import (
    HistoryEntry,
    Language,
    PushPersistence,
    TurnRequest,
    TutorEvaluation,
    TutoringService,
)

from .events import PushEvents
from .models import (
    OPEN_STATES,
    EvaluationMethod,
    MessageSender,
    Push,
    PushConfig,
    PushEvaluation,
    PushMessage,
    PushState,
    RefreshStats,
)


class PushScheduler:
    """
    Owns every Push and PushMessage.

    Key rules:
    1. At most one open (pending or active) push per chunk
    2. Open pushes never exceed config.max_active after a refresh
    3. Deleting a chunk deletes its pushes and their messages
    4. Every mutation persists, then notifies listeners
    """

    def __init__(
        self,
        store: ChunkStore,
        tutor: TutoringService | None = None,
        persistence: PushPersistence | None = None,
        config: PushConfig | None = None,
        language: Language = "en",
        clock: Clock | None = None,
    ):
        """
        Initialize the scheduler.

        Args:
            store: ChunkStore holding the chunks pushes refer to
            tutor: Tutoring service for AI conversations (manual grading
                works without one)
            persistence: Where pushes and messages are saved
            config: Refresh limits
            language: Conversation language passed to the tutor
            clock: Time source (UTC now if None)
        """
        self.store = store
        self.tutor = tutor
        self.persistence = persistence
        self.config = config or PushConfig()
        self.language = language
        self.clock = clock or utc_now
        self.events = PushEvents()

        self._pushes: dict[str, Push] = {}
        self._messages: dict[str, list[PushMessage]] = {}

        store.on_chunk_deleted(self.delete_pushes_for_chunk)

    # =========================================================================
    # Persistence
    # =========================================================================

    def load(self) -> int:
        """Load pushes, dropping any whose chunk no longer exists."""
        if self.persistence is None:
            return 0
        pushes, messages = self.persistence.load_pushes()

        self._pushes = {p.id: p for p in pushes if p.chunk_id in self.store}
        self._messages = {}
        for message in sorted(messages, key=lambda m: m.created_at):
            if message.push_id in self._pushes:
                self._messages.setdefault(message.push_id, []).append(message)

        dropped = len(pushes) - len(self._pushes)
        if dropped:
            logger.info(f"Dropped {dropped} pushes referencing deleted chunks")
            self.save()
        logger.info(f"Loaded {len(self._pushes)} pushes")
        return len(self._pushes)

    def save(self) -> None:
        if self.persistence is not None:
            self.persistence.save_pushes(
                self._pushes.values(),
                [m for msgs in self._messages.values() for m in msgs],
            )

    def _changed(self) -> None:
        self.save()
        self.events.emit()

    # =========================================================================
    # Queries
    # =========================================================================

    def get_push(self, push_id: str) -> Push | None:
        return self._pushes.get(push_id)

    def get_messages(self, push_id: str) -> list[PushMessage]:
        return list(self._messages.get(push_id, []))

    def list_pushes(self, state: str = "all") -> list[Push]:
        """
        List pushes ordered by creation time.

        Args:
            state: "all", "open", or a PushState value
        """
        pushes = sorted(self._pushes.values(), key=lambda p: (p.created_at, p.id))
        if state == "all":
            return pushes
        if state == "open":
            return [p for p in pushes if p.is_open]
        try:
            wanted = PushState(state)
        except ValueError as e:
            raise ValidationError(f"Unknown push state filter: {state!r}") from e
        return [p for p in pushes if p.state == wanted]

    def open_count(self) -> int:
        return sum(1 for p in self._pushes.values() if p.state in OPEN_STATES)

    def open_push_for_chunk(self, chunk_id: str) -> Push | None:
        for push in self._pushes.values():
            if push.chunk_id == chunk_id and push.is_open:
                return push
        return None

    # =========================================================================
    # Refresh
    # =========================================================================

    def refresh(
        self,
        now: datetime | None = None,
        config: PushConfig | None = None,
    ) -> RefreshStats:
        """
        Rebuild the set of open pushes.

        1. Delete completed and expired pushes (with their messages)
        2. Rank due chunks at or above the score threshold, skipping chunks
           that already have an open push
        3. Create pending pushes until the open count reaches max_active

        Args:
            now: Reference time (clock if None)
            config: Overrides the scheduler's PushConfig for this call

        Returns:
            RefreshStats with deleted / created / kept counts
        """
        now = now if now is not None else self.clock()
        config = config or self.config
        stats = RefreshStats()

        finished = [
            p.id
            for p in self._pushes.values()
            if p.state == PushState.COMPLETED or p.is_expired(now)
        ]
        for push_id in finished:
            self._remove(push_id)
        stats.deleted = len(finished)
        stats.kept = len(self._pushes)

        # Scores depend on the current time; never rank on stale values.
        # This also replaces any chunk_score set explicitly through update().
        self.store.refresh_scores(now)
        self.store.save()

        for chunk in self._select_candidates(now, config):
            if self.open_count() >= config.max_active:
                break
            push = Push(
                chunk_id=chunk.id,
                created_at=now,
                expires_at=now + timedelta(hours=config.due_window_hours),
            )
            self._pushes[push.id] = push
            stats.created += 1

        self._changed()
        logger.info(
            f"Pushes refreshed: {stats.deleted} deleted, "
            f"{stats.created} created, {stats.kept} kept"
        )
        return stats

    def _select_candidates(self, now: datetime, config: PushConfig) -> list[Chunk]:
        busy = {p.chunk_id for p in self._pushes.values() if p.is_open}
        candidates = [
            chunk
            for chunk in self.store.list_due(now)
            if chunk.id not in busy
            and chunk.chunk_score is not None
            and chunk.chunk_score >= config.score_threshold
        ]
        # Highest score first; older due date, then id, break ties
        candidates.sort(key=lambda c: (-c.chunk_score, c.due_at, c.id))
        return candidates

    # =========================================================================
    # Conversation
    # =========================================================================

    def start_conversation(self, push_id: str) -> PushMessage:
        """
        Activate a pending push and ask the opening question.

        Returns:
            The tutor's opening message

        Raises:
            NotFoundError: Unknown push or missing chunk
            InvalidStateError: Push is not pending or has expired
            ConfigurationError / ExternalServiceError: From the tutor
        """
        push = self._require(push_id, PushState.PENDING)
        chunk = self._chunk_for(push)
        tutor = self._require_tutor()

        question = tutor.ask_opening_question(
            chunk.content, chunk.familiar_score, self.language
        )

        push.state = PushState.ACTIVE
        message = self._append(push, MessageSender.SYSTEM, question)
        self._changed()
        return message

    def send_user_message(self, push_id: str, text: str) -> PushMessage:
        """
        Add a learner message and the tutor's reply.

        If the tutor ends the session with an evaluation, the push is
        completed and the grade is applied to the chunk.

        Returns:
            The tutor's reply message
        """
        if not text or not text.strip():
            raise ValidationError("Message cannot be empty")
        text = text.strip()

        push = self._require(push_id, PushState.ACTIVE)
        chunk = self._chunk_for(push)
        tutor = self._require_tutor()

        history = self._history(push.id) + [HistoryEntry(sender="user", content=text)]
        turn = tutor.respond_to_turn(
            TurnRequest(
                chunk_content=chunk.content,
                familiar_score=chunk.familiar_score,
                language=self.language,
                history=history,
                force_evaluate=False,
            )
        )

        if turn.should_end and turn.evaluation is not None:
            self._check_evaluation(turn.evaluation)

        now = self.clock()
        self._append(push, MessageSender.USER, text, now)
        reply = self._append(push, MessageSender.SYSTEM, turn.response, now)

        if turn.should_end:
            if turn.evaluation is None:
                logger.warning(f"Tutor ended push {push.id} without an evaluation; keeping it active")
            else:
                self._complete(push, turn.evaluation, EvaluationMethod.AI, now)

        self._changed()
        return reply

    def force_auto_evaluate(self, push_id: str) -> PushEvaluation:
        """
        Ask the tutor to close an active session immediately.

        Raises:
            ExternalServiceError: If the tutor returns no evaluation
        """
        push = self._require(push_id, PushState.ACTIVE)
        chunk = self._chunk_for(push)
        tutor = self._require_tutor()

        turn = tutor.respond_to_turn(
            TurnRequest(
                chunk_content=chunk.content,
                familiar_score=chunk.familiar_score,
                language=self.language,
                history=self._history(push.id),
                force_evaluate=True,
            )
        )
        if turn.evaluation is None:
            raise ExternalServiceError("Tutor did not return an evaluation")
        self._check_evaluation(turn.evaluation)

        now = self.clock()
        if turn.response:
            self._append(push, MessageSender.SYSTEM, turn.response, now)
        evaluation = self._complete(push, turn.evaluation, EvaluationMethod.AI, now)
        self._changed()
        return evaluation

    def manual_evaluate(
        self,
        push_id: str,
        grade: int,
        recommendation: str = "",
    ) -> PushEvaluation:
        """Grade a pending or active push directly, without the tutor."""
        validate_grade(grade)
        push = self._require(push_id, PushState.PENDING, PushState.ACTIVE)
        self._chunk_for(push)

        evaluation = self._complete(
            push,
            TutorEvaluation(grade=grade, recommendation=recommendation),
            EvaluationMethod.MANUAL,
            self.clock(),
        )
        self._changed()
        return evaluation

    # =========================================================================
    # Deletion
    # =========================================================================

    def delete_push(self, push_id: str) -> bool:
        if push_id not in self._pushes:
            return False
        self._remove(push_id)
        self._changed()
        return True

    def delete_pushes_for_chunk(self, chunk_id: str) -> int:
        doomed = [p.id for p in self._pushes.values() if p.chunk_id == chunk_id]
        for push_id in doomed:
            self._remove(push_id)
        if doomed:
            self._changed()
        return len(doomed)

    def delete_pushes(self, push_ids: Iterable[str]) -> int:
        removed = 0
        for push_id in list(push_ids):
            if push_id in self._pushes:
                self._remove(push_id)
                removed += 1
        if removed:
            self._changed()
        return removed

    # =========================================================================
    # Helpers
    # =========================================================================

    def _remove(self, push_id: str) -> None:
        self._pushes.pop(push_id, None)
        self._messages.pop(push_id, None)

    def _require(self, push_id: str, *states: PushState) -> Push:
        push = self._pushes.get(push_id)
        if push is None:
            raise NotFoundError(f"Push not found: {push_id}")
        if push.state not in states:
            allowed = " or ".join(s.value for s in states)
            raise InvalidStateError(
                f"Push {push_id} is {push.state.value}; expected {allowed}"
            )
        if push.is_expired(self.clock()):
            raise InvalidStateError(f"Push {push_id} has expired")
        return push

    def _require_tutor(self) -> TutoringService:
        if self.tutor is None:
            raise InvalidStateError("No tutoring service configured")
        return self.tutor

    def _chunk_for(self, push: Push) -> Chunk:
        chunk = self.store.get(push.chunk_id)
        if chunk is None:
            raise NotFoundError(f"Chunk {push.chunk_id} for push {push.id} not found")
        return chunk

    def _history(self, push_id: str) -> list[HistoryEntry]:
        return [
            HistoryEntry(sender=m.sender.value, content=m.content)
            for m in self._messages.get(push_id, [])
        ]

    def _append(
        self,
        push: Push,
        sender: MessageSender,
        content: str,
        now: datetime | None = None,
    ) -> PushMessage:
        message = PushMessage(
            push_id=push.id,
            sender=sender,
            content=content,
            created_at=now if now is not None else self.clock(),
        )
        self._messages.setdefault(push.id, []).append(message)
        return message

    @staticmethod
    def _check_evaluation(evaluation: TutorEvaluation) -> None:
        try:
            validate_grade(evaluation.grade)
        except ValidationError as e:
            raise ExternalServiceError(f"Tutor returned an invalid grade: {e}") from e

    def _complete(
        self,
        push: Push,
        evaluation: TutorEvaluation,
        method: EvaluationMethod,
        now: datetime,
    ) -> PushEvaluation:
        grade = validate_grade(evaluation.grade)
        self.store.apply_review(push.chunk_id, grade, now)

        push.state = PushState.COMPLETED
        push.completed_at = now
        push.evaluation = PushEvaluation(
            grade=grade,
            recommendation=evaluation.recommendation,
            confidence=evaluation.confidence,
            method=method,
        )
        logger.info(f"Push {push.id} completed with grade {grade} ({method.value})")
        return push.evaluation
