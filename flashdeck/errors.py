"""
Error types shared by the scheduler, the session service and the repositories.

Each error class has a stable identity so the HTTP layer can map it to a
status code without inspecting messages.
"""

from __future__ import annotations

from typing import Optional


class FlashdeckError(Exception):
    """Base exception for the spaced-repetition core."""
    pass


class InvalidRating(FlashdeckError):
    """Raised when a rating is not one of 1 (Again), 2 (Hard), 3 (Good), 4 (Easy)."""
    def __init__(self, value: object, message: Optional[str] = None):
        self.value = value
        self.message = message or f"Invalid rating {value!r}: expected 1, 2, 3 or 4"
        super().__init__(self.message)


class InvalidState(FlashdeckError):
    """Raised when a persisted card state is malformed."""
    def __init__(self, reason: str):
        self.reason = reason
        self.message = f"Invalid card state: {reason}"
        super().__init__(self.message)


class NotFound(FlashdeckError):
    """Raised when a card does not exist or belongs to another user."""
    def __init__(self, card_id: object, user_id: str):
        self.card_id = card_id
        self.user_id = user_id
        self.message = f"Flashcard {card_id!r} not found for user {user_id!r}"
        super().__init__(self.message)


class PersistenceError(FlashdeckError):
    """Raised when the atomic card update plus review log append fails."""
    pass


class ConcurrentUpdateError(PersistenceError):
    """Raised when the card changed between read and write (stale version)."""
    def __init__(self, card_id: object, expected_version: int):
        self.card_id = card_id
        self.expected_version = expected_version
        super().__init__(
            f"Flashcard {card_id!r} was modified concurrently "
            f"(expected version {expected_version})"
        )


class Unauthenticated(FlashdeckError):
    """Raised when an operation is called without an authenticated user."""
    def __init__(self, message: str = "An authenticated user_id is required"):
        self.message = message
        super().__init__(message)


class UnknownGeneration(FlashdeckError):
    """Raised when a flashcard references a generation the user does not own."""
    def __init__(self, generation_id: object, user_id: str):
        self.generation_id = generation_id
        self.user_id = user_id
        self.message = f"Generation {generation_id!r} not found for user {user_id!r}"
        super().__init__(self.message)
