"""
Study session orchestration.

Main workflow for one rating:
1. Validate the rating
2. Load the card (scoped to the user)
3. Compute the next memory state with the scheduler
4. Persist card update + review log atomically (version-checked)

The scheduler is pure; this service is the only place that touches storage
and the clock.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Mapping, Optional

from flashdeck.config import Settings
from flashdeck.errors import ConcurrentUpdateError, NotFound, Unauthenticated, UnknownGeneration
from flashdeck.fsrs.constants import Rating
from flashdeck.fsrs.memory_state import CardState
from flashdeck.fsrs.scheduler import Scheduler
from flashdeck.repository import (
    Flashcard,
    FlashcardDraft,
    FlashcardRepository,
    GenerationLookup,
    ReviewLogEntry,
)

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _require_user(user_id: str) -> str:
    if not isinstance(user_id, str) or not user_id.strip():
        raise Unauthenticated()
    return user_id


class SessionService:
    """
    Review-session operations for one storage backend.

    Holds no per-request state, so one instance can serve concurrent
    requests.
    """

    def __init__(
        self,
        repository: FlashcardRepository,
        scheduler: Optional[Scheduler] = None,
        clock: Callable[[], datetime] = utc_now,
        max_attempts: int = 1,
        generations: Optional[GenerationLookup] = None
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.repository = repository
        self.scheduler = scheduler or Scheduler()
        self.clock = clock
        self.max_attempts = max_attempts
        self.generations = generations

    @classmethod
    def from_settings(
        cls,
        repository: FlashcardRepository,
        settings: Settings,
        generations: Optional[GenerationLookup] = None
    ) -> "SessionService":
        return cls(
            repository,
            scheduler=Scheduler(settings.fsrs_parameters),
            max_attempts=settings.rate_card_max_attempts,
            generations=generations,
        )

    def get_due_cards(self, user_id: str) -> list[Flashcard]:
        """
        All cards of the user that are due now, oldest due first.

        An empty list means the session is finished.
        """
        _require_user(user_id)
        return list(self.repository.find_due_cards(user_id, self.clock()))

    def rate_card(self, user_id: str, card_id: int, rating: object) -> Flashcard:
        """
        Apply a rating to one card and persist the result.

        Each attempt re-reads the card, so a retry after a concurrent update
        is computed from the current state, never from the stale one.

        Returns:
            The updated card

        Raises:
            Unauthenticated: missing user_id
            InvalidRating: rating outside 1-4
            NotFound: card missing or owned by another user
            InvalidState: stored memory state is malformed
            ConcurrentUpdateError: card changed concurrently on every attempt
            PersistenceError: storage failure
        """
        _require_user(user_id)
        rating = Rating.parse(rating)

        attempt = 1
        while True:
            card = self.repository.find_card_by_id(card_id, user_id)
            if card is None:
                raise NotFound(card_id, user_id)

            now = self.clock()
            new_state = self.scheduler.review(card.memory, rating, now)
            log_entry = ReviewLogEntry.from_transition(card, rating, card.memory, new_state)

            try:
                updated = self.repository.atomic_update_card_and_append_log(
                    card.id, user_id, card.version, new_state, log_entry
                )
            except ConcurrentUpdateError:
                if attempt >= self.max_attempts:
                    logger.warning(
                        "Rating of flashcard %s rejected after %d attempt(s): concurrent update",
                        card_id, attempt
                    )
                    raise
                logger.warning(
                    "Flashcard %s changed while rating (attempt %d/%d), re-reading",
                    card_id, attempt, self.max_attempts
                )
                attempt += 1
                continue

            logger.debug(
                "Flashcard %s rated %s: %s -> %s, due %s",
                card_id, rating.name, log_entry.state_before.name,
                log_entry.state_after.name, new_state.due.isoformat()
            )
            return updated

    def preview_card(self, user_id: str, card_id: int) -> Mapping[Rating, CardState]:
        """
        Next state for each rating without persisting anything.
        """
        _require_user(user_id)
        card = self.repository.find_card_by_id(card_id, user_id)
        if card is None:
            raise NotFound(card_id, user_id)
        return self.scheduler.preview(card.memory, self.clock())

    def recent_reviews(self, user_id: str, limit: int = 10) -> list[ReviewLogEntry]:
        """
        Most recent review log entries of the user, newest first.
        """
        _require_user(user_id)
        if limit < 1:
            raise ValueError("limit must be at least 1")
        return self.repository.recent_reviews(user_id, limit)

    def create_flashcard(self, user_id: str, draft: FlashcardDraft) -> Flashcard:
        """
        Store a new card for the user in the New state, due immediately.

        A referenced generation must belong to the user. Without a
        generation lookup no reference can be verified, so any
        generation_id is rejected.

        Raises:
            UnknownGeneration: generation missing, foreign or unverifiable
        """
        _require_user(user_id)
        if draft.generation_id is not None:
            owned = set()
            if self.generations is not None:
                owned = self.generations.owned_generation_ids(user_id, [draft.generation_id])
            if draft.generation_id not in owned:
                raise UnknownGeneration(draft.generation_id, user_id)
        return self.repository.create_flashcard(user_id, draft, self.clock())
