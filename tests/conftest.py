"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import pytest
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from memoai.chunks.store import ChunkStore  # noqa: E402
from memoai.push.scheduler import PushScheduler  # noqa: E402
from memoai.services import TurnRequest, TutorEvaluation, TutorTurn  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


# =============================================================================
# Time
# =============================================================================

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock; call it to read the current time."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


# =============================================================================
# Collaborators
# =============================================================================


class InMemoryPersistence:
    """Chunk + push persistence that records what was saved."""

    def __init__(self):
        self.chunks = []
        self.pushes = []
        self.messages = []
        self.chunk_saves = 0
        self.push_saves = 0

    def load_chunks(self):
        return list(self.chunks)

    def save_chunks(self, chunks):
        self.chunks = list(chunks)
        self.chunk_saves += 1

    def load_pushes(self):
        return list(self.pushes), list(self.messages)

    def save_pushes(self, pushes, messages):
        self.pushes = list(pushes)
        self.messages = list(messages)
        self.push_saves += 1


class FakeTutor:
    """Scripted tutoring service."""

    def __init__(self):
        self.question = "What does this chunk say?"
        self.turns: list[TutorTurn] = []
        self.requests: list[TurnRequest] = []
        self.opening_calls = []
        self.error: Exception | None = None

    def ask_opening_question(self, chunk_content, familiar_score, language="en"):
        if self.error:
            raise self.error
        self.opening_calls.append((chunk_content, familiar_score, language))
        return self.question

    def respond_to_turn(self, request):
        if self.error:
            raise self.error
        self.requests.append(request)
        if self.turns:
            return self.turns.pop(0)
        return TutorTurn(response="Tell me more.")

    def ends_with(self, grade, recommendation="Keep going"):
        self.turns.append(
            TutorTurn(
                response="Good work.",
                should_end=True,
                evaluation=TutorEvaluation(grade=grade, recommendation=recommendation),
            )
        )


@pytest.fixture
def persistence():
    return InMemoryPersistence()


@pytest.fixture
def tutor():
    return FakeTutor()


@pytest.fixture
def store(clock, persistence):
    return ChunkStore(persistence=persistence, clock=clock)


@pytest.fixture
def scheduler(store, tutor, persistence, clock):
    return PushScheduler(store, tutor=tutor, persistence=persistence, clock=clock)


@pytest.fixture
def make_chunk(store, clock):
    """Create a stored chunk and optionally overwrite its learning state."""

    def _make(content="Photosynthesis turns light into chemical energy.", note_path="bio.md", **state):
        chunk = store.create(content, note_path, clock())
        for name, value in state.items():
            setattr(chunk, name, value)
        if state:
            store.rescore(chunk, clock())
        return chunk

    return _make


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT
