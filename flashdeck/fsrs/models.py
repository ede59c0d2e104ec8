"""
SQLAlchemy ORM Models for the flashcard store

Defines Flashcard (content + FSRS memory state) and ReviewLog (append-only
rating history).
"""

from sqlalchemy import Column, DateTime, Float, ForeignKey, Index, Integer, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class Flashcard(Base):
    """
    A user's flashcard and its current memory state.

    The memory-state columns are written only by the session service after
    a rating. `version` is the optimistic lock counter.
    """
    __tablename__ = 'flashcards'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(255), nullable=False)

    # Content
    front = Column(String(200), nullable=False)
    back = Column(String(500), nullable=False)
    source = Column(String(20), nullable=False)  # ai-full, ai-edited, manual
    generation_id = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    # FSRS memory state
    due = Column(DateTime(timezone=True), nullable=False)
    stability = Column(Float, nullable=False, default=0.0)
    difficulty = Column(Float, nullable=False, default=0.0)
    elapsed_days = Column(Integer, nullable=False, default=0)
    scheduled_days = Column(Integer, nullable=False, default=0)
    reps = Column(Integer, nullable=False, default=0)
    lapses = Column(Integer, nullable=False, default=0)
    state = Column(String(20), nullable=False, default="NEW")  # State enum name
    last_review = Column(DateTime(timezone=True), nullable=True)

    version = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("idx_flashcards_user_due", "user_id", "due"),
    )

    def __repr__(self):
        return f"<Flashcard(id={self.id}, user={self.user_id}, state={self.state})>"


class ReviewLog(Base):
    """
    Log entry for a single rating of a flashcard.

    Rows are only ever inserted. The foreign key does not cascade, so a
    flashcard with history cannot be deleted out from under its log.
    """
    __tablename__ = 'review_logs'

    id = Column(Integer, primary_key=True, autoincrement=True)
    flashcard_id = Column(
        Integer, ForeignKey('flashcards.id'), nullable=False
    )
    user_id = Column(String(255), nullable=False)

    rating = Column(Integer, nullable=False)  # 1=AGAIN, 2=HARD, 3=GOOD, 4=EASY
    state_before = Column(String(20), nullable=False)
    state_after = Column(String(20), nullable=False)
    reviewed_at = Column(DateTime(timezone=True), nullable=False)

    # Scheduling outcome
    elapsed_days = Column(Integer, nullable=False, default=0)
    scheduled_days = Column(Integer, nullable=False, default=0)
    stability_after = Column(Float, nullable=False)
    difficulty_after = Column(Float, nullable=False)

    __table_args__ = (
        Index("idx_review_logs_user_time", "user_id", "reviewed_at"),
        Index("idx_review_logs_flashcard", "flashcard_id"),
    )

    def __repr__(self):
        return f"<ReviewLog(id={self.id}, flashcard={self.flashcard_id}, rating={self.rating})>"
