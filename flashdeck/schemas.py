"""
Pydantic models for the HTTP boundary.

The HTTP layer itself lives elsewhere; these models define what it accepts
and returns, and how core errors map to status codes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from flashdeck.errors import (
    InvalidRating,
    InvalidState,
    NotFound,
    PersistenceError,
    Unauthenticated,
    UnknownGeneration,
)
from flashdeck.fsrs.constants import Rating
from flashdeck.repository import Flashcard, FlashcardDraft, ReviewLogEntry, Source

# Configuration
FRONT_MAX_LENGTH = 200
BACK_MAX_LENGTH = 500


# ---- Requests ----

class RateFlashcardRequest(BaseModel):
    """Body of POST session/rate."""
    model_config = ConfigDict(populate_by_name=True)

    flashcard_id: int = Field(..., alias="flashcardId", gt=0)
    rating: int = Field(..., ge=1, le=4, description="1=Again, 2=Hard, 3=Good, 4=Easy")

    def to_rating(self) -> Rating:
        return Rating(self.rating)


class FlashcardCreate(BaseModel):
    """A flashcard to store (manual or accepted from AI generation)."""
    model_config = ConfigDict(str_strip_whitespace=True)

    front: str = Field(..., min_length=1, max_length=FRONT_MAX_LENGTH)
    back: str = Field(..., min_length=1, max_length=BACK_MAX_LENGTH)
    source: Source = Source.MANUAL
    generation_id: Optional[int] = Field(default=None, gt=0)

    def to_draft(self) -> FlashcardDraft:
        return FlashcardDraft(
            front=self.front,
            back=self.back,
            source=self.source,
            generation_id=self.generation_id,
        )


# ---- Responses ----

class FlashcardOut(BaseModel):
    """A flashcard row as returned by GET session and POST session/rate."""
    model_config = ConfigDict(use_enum_values=True)

    id: int
    front: str
    back: str
    source: Source
    generation_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    # Memory state
    due: datetime
    stability: float
    difficulty: float
    elapsed_days: int
    scheduled_days: int
    reps: int
    lapses: int
    state: str
    last_review: Optional[datetime] = None

    @classmethod
    def from_flashcard(cls, card: Flashcard) -> "FlashcardOut":
        memory = card.memory
        return cls(
            id=card.id,
            front=card.front,
            back=card.back,
            source=card.source,
            generation_id=card.generation_id,
            created_at=card.created_at,
            updated_at=card.updated_at,
            due=memory.due,
            stability=memory.stability,
            difficulty=memory.difficulty,
            elapsed_days=memory.elapsed_days,
            scheduled_days=memory.scheduled_days,
            reps=memory.reps,
            lapses=memory.lapses,
            state=memory.state.name,
            last_review=memory.last_review,
        )


class ReviewLogOut(BaseModel):
    """One review log entry."""
    flashcard_id: int
    rating: int
    state_before: str
    state_after: str
    reviewed_at: datetime

    @classmethod
    def from_entry(cls, entry: ReviewLogEntry) -> "ReviewLogOut":
        return cls(
            flashcard_id=entry.flashcard_id,
            rating=int(entry.rating),
            state_before=entry.state_before.name,
            state_after=entry.state_after.name,
            reviewed_at=entry.reviewed_at,
        )


# ---- Error mapping ----

ERROR_STATUS = {
    InvalidRating: 400,
    UnknownGeneration: 400,
    Unauthenticated: 401,
    NotFound: 404,
    InvalidState: 500,
    PersistenceError: 500,
}


def status_for(error: Exception) -> int:
    """
    HTTP status code for a core error (500 for anything unknown).

    Subclasses map like their closest listed ancestor.
    """
    for klass in type(error).__mro__:
        if klass in ERROR_STATUS:
            return ERROR_STATUS[klass]
    return 500
