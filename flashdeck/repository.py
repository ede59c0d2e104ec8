"""
Flashcard domain objects and the storage port used by the session service.

Implementations:
    - SqlFlashcardRepository (flashdeck.fsrs.database): SQLAlchemy, one
      transaction with an optimistic version check.
    - MongoFlashcardRepository (flashdeck.mongo_repo): pymongo, multi-document
      transaction with a version-filtered update.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional

from flashdeck.fsrs.constants import Rating, State
from flashdeck.fsrs.memory_state import CardState


class Source(str, Enum):
    """How a flashcard was created."""
    AI_FULL = "ai-full"        # Accepted unchanged from AI generation
    AI_EDITED = "ai-edited"    # AI generated, edited before saving
    MANUAL = "manual"          # Written by the user


@dataclass(frozen=True)
class FlashcardDraft:
    """Content of a flashcard that has not been stored yet."""
    front: str
    back: str
    source: Source = Source.MANUAL
    generation_id: Optional[int] = None


@dataclass(frozen=True)
class Flashcard:
    """
    A stored flashcard together with its memory state.

    `version` increases by one on every successful rating write and is used
    to detect concurrent updates.
    """
    id: int
    user_id: str
    front: str
    back: str
    source: Source
    generation_id: Optional[int]
    created_at: datetime
    updated_at: datetime
    memory: CardState
    version: int = 0

    @property
    def due(self) -> datetime:
        return self.memory.due


@dataclass(frozen=True)
class ReviewLogEntry:
    """
    One append-only row per rating event.

    Kept for audit; the scheduler never reads it back.
    """
    flashcard_id: int
    user_id: str
    rating: Rating
    state_before: State
    state_after: State
    reviewed_at: datetime
    elapsed_days: int = 0
    scheduled_days: int = 0
    stability_after: float = 0.0
    difficulty_after: float = 0.0
    id: Optional[int] = None

    @classmethod
    def from_transition(
        cls,
        card: Flashcard,
        rating: Rating,
        before: CardState,
        after: CardState
    ) -> "ReviewLogEntry":
        return cls(
            flashcard_id=card.id,
            user_id=card.user_id,
            rating=Rating(rating),
            state_before=State(before.state),
            state_after=State(after.state),
            reviewed_at=after.last_review,
            elapsed_days=after.elapsed_days,
            scheduled_days=after.scheduled_days,
            stability_after=after.stability,
            difficulty_after=after.difficulty,
        )


class FlashcardRepository(ABC):
    """
    Port for flashcard storage.

    All reads are scoped to a user; a card owned by someone else is
    indistinguishable from a missing one.
    """

    @abstractmethod
    def find_due_cards(self, user_id: str, now: datetime) -> list[Flashcard]:
        """
        Cards of user_id with due <= now, ordered by (due, id) ascending.
        """
        pass

    @abstractmethod
    def find_card_by_id(self, card_id: int, user_id: str) -> Optional[Flashcard]:
        """
        The card if it exists and belongs to user_id, else None.
        """
        pass

    @abstractmethod
    def atomic_update_card_and_append_log(
        self,
        card_id: int,
        user_id: str,
        expected_version: int,
        new_state: CardState,
        log_entry: ReviewLogEntry
    ) -> Flashcard:
        """
        Write the new memory state and append the review log as one unit.

        The update only applies if the stored version still equals
        expected_version. Either both writes are visible or neither is.

        Returns:
            The updated card

        Raises:
            ConcurrentUpdateError: the card changed since it was read
            PersistenceError: any other storage failure
        """
        pass

    @abstractmethod
    def create_flashcard(self, user_id: str, draft: FlashcardDraft, now: datetime) -> Flashcard:
        """
        Store a new card in the New state, due at `now`.

        Generation ownership is checked by SessionService.create_flashcard.
        """
        pass

    @abstractmethod
    def recent_reviews(self, user_id: str, limit: int = 10) -> list[ReviewLogEntry]:
        """
        Review log entries of user_id, newest first.
        """
        pass


class GenerationLookup(ABC):
    """
    Port to the AI generation store, which lives outside this package.

    Used to check that a flashcard only references generations of its owner.
    """

    @abstractmethod
    def owned_generation_ids(self, user_id: str, generation_ids: Iterable[int]) -> set[int]:
        """
        The subset of generation_ids that exist and belong to user_id.
        """
        pass
