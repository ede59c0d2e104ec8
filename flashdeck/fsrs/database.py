"""
Database - Flashcard Database I/O Operations

Handles all database operations for flashcards and review logs.
Uses SQLAlchemy ORM (Postgres in production, SQLite in tests).

This module handles ONLY database I/O.
Algorithm logic is handled by the scheduler module.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import TYPE_CHECKING, Iterator, Optional

from sqlalchemy import create_engine, inspect, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from flashdeck.errors import ConcurrentUpdateError, InvalidState, PersistenceError
from flashdeck.fsrs.constants import Rating, State
from flashdeck.fsrs.memory_state import CardState, ensure_utc
from flashdeck.fsrs.models import Base, Flashcard as FlashcardModel, ReviewLog as ReviewLogModel
from flashdeck.repository import (
    Flashcard,
    FlashcardDraft,
    FlashcardRepository,
    ReviewLogEntry,
    Source,
)

if TYPE_CHECKING:
    from flashdeck.config import Settings

logger = logging.getLogger(__name__)


# ---- Engine / schema ----

def get_engine(settings: Optional[Settings] = None) -> Engine:
    """
    Create a SQLAlchemy engine for the configured database.

    Uses connection pooling and applies the configured timeout to both the
    pool checkout and, on Postgres, each statement.

    Returns:
        SQLAlchemy Engine instance
    """
    from flashdeck.config import load_settings

    settings = settings or load_settings()
    db_url = settings.require_database_url()
    timeout = settings.database_timeout_seconds

    if db_url.startswith("sqlite"):
        return create_engine(db_url, connect_args={"timeout": timeout}, echo=False)

    connect_args = {}
    if db_url.startswith("postgresql"):
        connect_args["options"] = f"-c statement_timeout={int(timeout * 1000)}"

    return create_engine(
        db_url,
        connect_args=connect_args,
        pool_size=5,           # Keep 5 connections open
        max_overflow=10,       # Allow up to 10 extra connections
        pool_timeout=timeout,
        pool_pre_ping=True,    # Verify connections before use
        echo=False
    )


def init_db(engine: Engine) -> None:
    """
    Initialize database schema if tables don't exist.

    Safe to call multiple times - only creates missing tables.

    Raises:
        RuntimeError: if an existing flashcards table lacks the version column
    """
    inspector = inspect(engine)
    existing_tables = inspector.get_table_names()

    if 'flashcards' not in existing_tables or 'review_logs' not in existing_tables:
        Base.metadata.create_all(engine)
        return

    card_columns = {col["name"] for col in inspector.get_columns("flashcards")}
    if "version" not in card_columns:
        raise RuntimeError(
            "flashcards table missing version column. "
            "Please migrate the database before rating cards concurrently."
        )


def reset_db(engine: Engine) -> None:
    """
    DANGEROUS: Delete all data and recreate tables.

    Only use this for testing or when you want to start fresh.
    All flashcards and review history will be lost!
    """
    Base.metadata.drop_all(engine)
    logger.warning("All flashcard tables dropped")
    init_db(engine)


# ---- Row mapping ----

def _to_card_state(row: FlashcardModel) -> CardState:
    return CardState(
        due=ensure_utc(row.due),
        stability=row.stability,
        difficulty=row.difficulty,
        elapsed_days=row.elapsed_days,
        scheduled_days=row.scheduled_days,
        reps=row.reps,
        lapses=row.lapses,
        state=State.from_name(row.state),
        last_review=ensure_utc(row.last_review) if row.last_review else None,
    )


def _to_flashcard(row: FlashcardModel) -> Flashcard:
    """Map a row to a Flashcard; unreadable rows raise InvalidState."""
    try:
        return Flashcard(
            id=row.id,
            user_id=row.user_id,
            front=row.front,
            back=row.back,
            source=Source(row.source),
            generation_id=row.generation_id,
            created_at=ensure_utc(row.created_at),
            updated_at=ensure_utc(row.updated_at),
            memory=_to_card_state(row),
            version=row.version,
        )
    except (KeyError, ValueError, TypeError, AttributeError) as exc:
        raise InvalidState(f"flashcard {row.id}: {exc!r}") from exc


def _to_log_entry(row: ReviewLogModel) -> ReviewLogEntry:
    try:
        return ReviewLogEntry(
            id=row.id,
            flashcard_id=row.flashcard_id,
            user_id=row.user_id,
            rating=Rating(row.rating),
            state_before=State.from_name(row.state_before),
            state_after=State.from_name(row.state_after),
            reviewed_at=ensure_utc(row.reviewed_at),
            elapsed_days=row.elapsed_days,
            scheduled_days=row.scheduled_days,
            stability_after=row.stability_after,
            difficulty_after=row.difficulty_after,
        )
    except (KeyError, ValueError, TypeError, AttributeError) as exc:
        raise InvalidState(f"review log {row.id}: {exc!r}") from exc


def _state_columns(memory: CardState) -> dict:
    return {
        "due": ensure_utc(memory.due),
        "stability": memory.stability,
        "difficulty": memory.difficulty,
        "elapsed_days": memory.elapsed_days,
        "scheduled_days": memory.scheduled_days,
        "reps": memory.reps,
        "lapses": memory.lapses,
        "state": State(memory.state).name,
        "last_review": ensure_utc(memory.last_review) if memory.last_review else None,
    }


# ---- Repository ----

class SqlFlashcardRepository(FlashcardRepository):
    """
    FlashcardRepository backed by a SQL database.

    The rating write is a single transaction: a version-guarded UPDATE of the
    flashcard row followed by the review log INSERT.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "SqlFlashcardRepository":
        return cls(get_engine(settings))

    @contextmanager
    def _session(self, action: str) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception("Database error while trying to %s", action)
            raise PersistenceError(f"Failed to {action}") from exc
        finally:
            session.close()

    def find_due_cards(self, user_id: str, now: datetime) -> list[Flashcard]:
        with self._session("load due flashcards") as session:
            rows = session.execute(
                select(FlashcardModel)
                .where(
                    FlashcardModel.user_id == user_id,
                    FlashcardModel.due <= ensure_utc(now),
                )
                .order_by(FlashcardModel.due.asc(), FlashcardModel.id.asc())
            ).scalars().all()
            return [_to_flashcard(row) for row in rows]

    def find_card_by_id(self, card_id: int, user_id: str) -> Optional[Flashcard]:
        with self._session("load flashcard") as session:
            row = session.execute(
                select(FlashcardModel).where(
                    FlashcardModel.id == card_id,
                    FlashcardModel.user_id == user_id,
                )
            ).scalar_one_or_none()
            return _to_flashcard(row) if row is not None else None

    def atomic_update_card_and_append_log(
        self,
        card_id: int,
        user_id: str,
        expected_version: int,
        new_state: CardState,
        log_entry: ReviewLogEntry
    ) -> Flashcard:
        with self._session("update flashcard and log review") as session:
            with session.begin():
                result = session.execute(
                    update(FlashcardModel)
                    .where(
                        FlashcardModel.id == card_id,
                        FlashcardModel.user_id == user_id,
                        FlashcardModel.version == expected_version,
                    )
                    .values(
                        **_state_columns(new_state),
                        updated_at=ensure_utc(log_entry.reviewed_at),
                        version=FlashcardModel.version + 1,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise ConcurrentUpdateError(card_id, expected_version)

                session.add(ReviewLogModel(
                    flashcard_id=card_id,
                    user_id=user_id,
                    rating=int(log_entry.rating),
                    state_before=State(log_entry.state_before).name,
                    state_after=State(log_entry.state_after).name,
                    reviewed_at=ensure_utc(log_entry.reviewed_at),
                    elapsed_days=log_entry.elapsed_days,
                    scheduled_days=log_entry.scheduled_days,
                    stability_after=log_entry.stability_after,
                    difficulty_after=log_entry.difficulty_after,
                ))
                session.flush()

                row = session.get(FlashcardModel, card_id)
                return _to_flashcard(row)

    def create_flashcard(self, user_id: str, draft: FlashcardDraft, now: datetime) -> Flashcard:
        now = ensure_utc(now)
        memory = CardState.new(now)
        with self._session("create flashcard") as session:
            with session.begin():
                row = FlashcardModel(
                    user_id=user_id,
                    front=draft.front,
                    back=draft.back,
                    source=Source(draft.source).value,
                    generation_id=draft.generation_id,
                    created_at=now,
                    updated_at=now,
                    version=0,
                    **_state_columns(memory),
                )
                session.add(row)
                session.flush()
                return _to_flashcard(row)

    def recent_reviews(self, user_id: str, limit: int = 10) -> list[ReviewLogEntry]:
        with self._session("load review log") as session:
            rows = session.execute(
                select(ReviewLogModel)
                .where(ReviewLogModel.user_id == user_id)
                .order_by(ReviewLogModel.reviewed_at.desc(), ReviewLogModel.id.desc())
                .limit(limit)
            ).scalars().all()
            return [_to_log_entry(row) for row in rows]
