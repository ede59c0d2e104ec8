"""
flashdeck - spaced-repetition core of the flashcard app.

Quick start:
    from flashdeck import SessionService
    from flashdeck.fsrs import SqlFlashcardRepository, get_engine, init_db

    engine = get_engine()
    init_db(engine)
    service = SessionService(SqlFlashcardRepository(engine))
    due = service.get_due_cards(user_id)
    card = service.rate_card(user_id, due[0].id, 3)
"""

from flashdeck.errors import (
    ConcurrentUpdateError,
    FlashdeckError,
    InvalidRating,
    InvalidState,
    NotFound,
    PersistenceError,
    Unauthenticated,
    UnknownGeneration,
)
from flashdeck.session_service import SessionService

__version__ = "0.1.0"

__all__ = [
    "SessionService",
    "FlashdeckError",
    "InvalidRating",
    "InvalidState",
    "NotFound",
    "PersistenceError",
    "ConcurrentUpdateError",
    "Unauthenticated",
    "UnknownGeneration",
]
