"""
Scheduler - FSRS Algorithm Logic

Pure FSRS scheduling and state updates (no database calls, no clock reads).

Main workflow:
1. Validate the incoming card state and rating
2. Compute elapsed days since the last review
3. Apply the update rules for the card's lifecycle phase
4. Return a new CardState with the next due date

Database I/O is handled by the repositories, orchestration by the session
service.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Mapping

from flashdeck.errors import InvalidState
from flashdeck.fsrs import memory_updates
from flashdeck.fsrs.constants import DEFAULT_PARAMETERS, FSRSParameters, Rating, State
from flashdeck.fsrs.memory_state import (
    CardState,
    calculate_retrievability,
    days_between,
    ensure_utc,
    next_interval,
)


def compute_next_state(
    card: CardState,
    rating: object,
    now: datetime,
    parameters: FSRSParameters = DEFAULT_PARAMETERS
) -> CardState:
    """
    Apply one rating to a card and return its next memory state.

    This is the core FSRS algorithm. Identical inputs always produce an
    identical result.

    Args:
        card: Current memory state
        rating: User rating (Rating or int 1-4)
        now: Review timestamp; naive datetimes are treated as UTC
        parameters: Versioned parameter set

    Returns:
        The next CardState (the input is not modified)

    Raises:
        InvalidRating: rating outside 1-4
        InvalidState: malformed card state, or now earlier than last_review
    """
    rating = Rating.parse(rating)
    card.validate(parameters)
    now = ensure_utc(now)

    if card.last_review is not None and now < ensure_utc(card.last_review):
        raise InvalidState("review time precedes last_review")

    elapsed_days = days_between(card.last_review, now)

    if card.state == State.NEW:
        stability, difficulty, scheduled_days, wait, phase = _review_new(rating, parameters)
    elif card.state in (State.LEARNING, State.RELEARNING):
        stability, difficulty, scheduled_days, wait, phase = _review_learning(card, rating, parameters)
    else:
        stability, difficulty, scheduled_days, wait, phase = _review_review(
            card, rating, elapsed_days, parameters
        )

    return CardState(
        due=now + wait,
        stability=stability,
        difficulty=difficulty,
        elapsed_days=elapsed_days,
        scheduled_days=scheduled_days,
        reps=card.reps + 1,
        lapses=card.lapses + (1 if rating == Rating.AGAIN else 0),
        state=phase,
        last_review=now,
    )


def preview(
    card: CardState,
    now: datetime,
    parameters: FSRSParameters = DEFAULT_PARAMETERS
) -> Mapping[Rating, CardState]:
    """
    Next state for every possible rating, e.g. to label the rating buttons.
    """
    return {rating: compute_next_state(card, rating, now, parameters) for rating in Rating}


def current_retrievability(
    card: CardState,
    now: datetime,
    parameters: FSRSParameters = DEFAULT_PARAMETERS
) -> float:
    """Recall probability right now (0.0 for cards never reviewed)."""
    if card.state == State.NEW:
        return 0.0
    elapsed = days_between(card.last_review, now)
    return calculate_retrievability(card.stability, elapsed, parameters)


class Scheduler:
    """
    Stateless scheduler bound to one parameter set.

    Safe to share between threads and requests.
    """

    def __init__(self, parameters: FSRSParameters = DEFAULT_PARAMETERS):
        self.parameters = parameters

    @property
    def version(self) -> str:
        return self.parameters.version

    def review(self, card: CardState, rating: object, now: datetime) -> CardState:
        return compute_next_state(card, rating, now, self.parameters)

    def preview(self, card: CardState, now: datetime) -> Mapping[Rating, CardState]:
        return preview(card, now, self.parameters)

    def retrievability(self, card: CardState, now: datetime) -> float:
        return current_retrievability(card, now, self.parameters)

    def __repr__(self):
        return f"<Scheduler({self.parameters.version})>"


# ---- Phase rules ----

def _wait(
    steps: Mapping[int, int],
    rating: Rating,
    stability: float,
    parameters: FSRSParameters
) -> tuple[int, timedelta]:
    """Short-term step in minutes if the rating has one, else whole days."""
    if rating in steps:
        return 0, timedelta(minutes=steps[rating])
    days = next_interval(stability, parameters)
    return days, timedelta(days=days)


def _review_new(rating: Rating, parameters: FSRSParameters):
    """First exposure: seed S and D from the initial tables, enter Learning."""
    stability = memory_updates.initial_stability(rating, parameters)
    difficulty = memory_updates.initial_difficulty(rating, parameters)
    scheduled_days, wait = _wait(parameters.new_steps, rating, stability, parameters)
    return stability, difficulty, scheduled_days, wait, State.LEARNING


def _review_learning(card: CardState, rating: Rating, parameters: FSRSParameters):
    """
    Learning/Relearning: short-term stability update.

    Ratings with a step stay in the current phase. The others graduate to
    Review, with Easy at least one day beyond Good.
    """
    steps = parameters.learning_steps if card.state == State.LEARNING else parameters.relearning_steps
    difficulty = memory_updates.next_difficulty(card.difficulty, rating, parameters)
    stability = memory_updates.next_short_term_stability(card.stability, rating, parameters)

    if rating in steps:
        return stability, difficulty, 0, timedelta(minutes=steps[rating]), State(card.state)

    days = next_interval(stability, parameters)
    if rating == Rating.EASY:
        good_stability = memory_updates.next_short_term_stability(card.stability, Rating.GOOD, parameters)
        days = max(days, next_interval(good_stability, parameters) + 1)
        days = min(days, parameters.maximum_interval)
    return stability, difficulty, days, timedelta(days=days), State.REVIEW


def _review_review(card: CardState, rating: Rating, elapsed_days: int, parameters: FSRSParameters):
    """
    Review: long-term update using retrievability at review time.

    Again lapses into Relearning. Hard/Good/Easy stay in Review with
    intervals ordered hard <= good < easy.
    """
    difficulty = memory_updates.next_difficulty(card.difficulty, rating, parameters)
    retrievability = calculate_retrievability(card.stability, elapsed_days, parameters)

    if rating == Rating.AGAIN:
        stability = memory_updates.next_forget_stability(
            card.difficulty, card.stability, retrievability, parameters
        )
        scheduled_days, wait = _wait(parameters.relearning_steps, rating, stability, parameters)
        return stability, difficulty, scheduled_days, wait, State.RELEARNING

    stabilities = {
        g: memory_updates.next_recall_stability(
            card.difficulty, card.stability, retrievability, g, parameters
        )
        for g in (Rating.HARD, Rating.GOOD, Rating.EASY)
    }
    hard = next_interval(stabilities[Rating.HARD], parameters)
    good = next_interval(stabilities[Rating.GOOD], parameters)
    easy = next_interval(stabilities[Rating.EASY], parameters)
    hard = min(hard, good)
    good = max(good, hard + 1)
    easy = max(easy, good + 1)
    intervals = {
        Rating.HARD: hard,
        Rating.GOOD: min(good, parameters.maximum_interval),
        Rating.EASY: min(easy, parameters.maximum_interval),
    }

    days = intervals[rating]
    return stabilities[rating], difficulty, days, timedelta(days=days), State.REVIEW
