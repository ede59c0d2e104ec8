from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from flashdeck.fsrs.database import SqlFlashcardRepository, init_db
from flashdeck.repository import FlashcardDraft
from flashdeck.session_service import SessionService

T0 = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def engine():
    """In-memory SQLite shared by every session of one test."""
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def repository(engine):
    return SqlFlashcardRepository(engine)


@pytest.fixture
def clock():
    return FixedClock(T0)


@pytest.fixture
def service(repository, clock):
    return SessionService(repository, clock=clock)


@pytest.fixture
def make_card(repository):
    """Factory storing a New flashcard for a user."""
    def _make(user_id="user-1", front="What is FSRS?", back="A spaced repetition scheduler", now=T0):
        return repository.create_flashcard(user_id, FlashcardDraft(front=front, back=back), now)
    return _make
