"""
Memory State - FSRS Card State and Retrievability

Defines the per-card memory state and the derived quantities the scheduler
needs.

Key concepts:
- Stability (S): days until recall probability decays to the target retention
- Difficulty (D): how hard the card is to learn (1-10 scale once reviewed)
- Retrievability (R): probability of successful recall at time t
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from flashdeck.errors import InvalidState
from flashdeck.fsrs.constants import DEFAULT_PARAMETERS, FSRSParameters, State

SECONDS_PER_DAY = 86400.0


@dataclass(frozen=True)
class CardState:
    """
    Memory state owned by a single flashcard.

    Instances are immutable; the scheduler returns a new one per rating.
    """
    due: datetime
    stability: float = 0.0
    difficulty: float = 0.0
    elapsed_days: int = 0
    scheduled_days: int = 0
    reps: int = 0
    lapses: int = 0
    state: State = State.NEW
    last_review: Optional[datetime] = None

    @classmethod
    def new(cls, now: datetime) -> "CardState":
        """Default state of a freshly created flashcard, due immediately."""
        return cls(due=ensure_utc(now))

    @property
    def is_new(self) -> bool:
        return self.state == State.NEW

    def validate(self, parameters: FSRSParameters = DEFAULT_PARAMETERS) -> "CardState":
        """
        Check the state for internal consistency.

        Malformed states are reported, never repaired.

        Returns:
            self, so calls can be chained

        Raises:
            InvalidState: describing the first problem found
        """
        try:
            state = State(self.state)
        except ValueError:
            raise InvalidState(f"unknown lifecycle state {self.state!r}") from None

        for name in ("elapsed_days", "scheduled_days", "reps", "lapses"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise InvalidState(f"{name} must be a non-negative integer, got {value!r}")

        for name in ("stability", "difficulty"):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or not math.isfinite(value):
                raise InvalidState(f"{name} must be a finite number, got {value!r}")

        if self.stability < 0:
            raise InvalidState(f"stability must be non-negative, got {self.stability}")
        if self.lapses > self.reps:
            raise InvalidState(f"lapses ({self.lapses}) cannot exceed reps ({self.reps})")
        if not isinstance(self.due, datetime):
            raise InvalidState(f"due must be a datetime, got {self.due!r}")

        if state == State.NEW:
            consistent = self.reps == 0 and self.last_review is None
        else:
            consistent = self.reps > 0 and self.last_review is not None
        if not consistent:
            raise InvalidState(
                f"state {state.name} inconsistent with reps={self.reps}, "
                f"last_review={self.last_review!r}"
            )

        if state != State.NEW:
            if self.stability <= 0:
                raise InvalidState(f"reviewed card must have positive stability, got {self.stability}")
            if not parameters.d_min <= self.difficulty <= parameters.d_max:
                raise InvalidState(
                    f"difficulty {self.difficulty} outside "
                    f"[{parameters.d_min}, {parameters.d_max}]"
                )
            if ensure_utc(self.due) < ensure_utc(self.last_review):
                raise InvalidState("due precedes last_review")

        return self


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero (2.5 -> 3)."""
    return int(Decimal(repr(value)).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def days_between(earlier: Optional[datetime], later: datetime) -> int:
    """
    Whole days elapsed between two timestamps.

    Args:
        earlier: Timestamp of the previous review, or None for new cards
        later: Timestamp of the current review

    Returns:
        Rounded day count (0 if never reviewed)
    """
    if earlier is None:
        return 0
    delta = ensure_utc(later) - ensure_utc(earlier)
    return round_half_up(delta.total_seconds() / SECONDS_PER_DAY)


def calculate_retrievability(
    stability: float,
    elapsed_days: float,
    parameters: FSRSParameters = DEFAULT_PARAMETERS
) -> float:
    """
    Probability of recall after elapsed_days with the given stability.

    Formula: R = (1 + factor * t / S) ^ decay

    With the FSRS-5 constants R equals the request retention (0.9) when
    t == S.

    Args:
        stability: Current stability in days
        elapsed_days: Time since last review in days

    Returns:
        Retrievability between 0 and 1
    """
    if stability <= 0:
        return 0.0
    if elapsed_days <= 0:
        return 1.0
    return (1.0 + parameters.factor * elapsed_days / stability) ** parameters.decay


def next_interval(stability: float, parameters: FSRSParameters = DEFAULT_PARAMETERS) -> int:
    """
    Days until retrievability drops to the request retention.

    Grows with stability and shrinks as the request retention rises.
    Clamped to [1, maximum_interval].
    """
    retention = parameters.request_retention
    raw = stability / parameters.factor * (retention ** (1.0 / parameters.decay) - 1.0)
    return min(max(round_half_up(raw), 1), parameters.maximum_interval)
