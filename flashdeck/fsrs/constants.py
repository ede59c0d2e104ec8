"""
FSRS Constants and Parameters

All tunable numbers of the scheduler live in one versioned parameter set.
Changing scheduling behaviour means registering a new version in
PARAMETER_SETS and pointing FSRS_PARAMETER_VERSION at it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from types import MappingProxyType
from typing import Mapping

from flashdeck.errors import InvalidRating


# ---- Ratings ----

class Rating(IntEnum):
    """User rating of a retrieval attempt."""
    AGAIN = 1   # Retrieval failed
    HARD = 2    # Retrieved with high effort
    GOOD = 3    # Retrieved normally
    EASY = 4    # Retrieved fluently

    @classmethod
    def parse(cls, value: object) -> "Rating":
        """
        Convert a caller-supplied value into a Rating.

        Accepts Rating members, plain ints and digit strings. Anything else,
        including bools and out-of-range numbers, raises InvalidRating.
        """
        if isinstance(value, bool):
            raise InvalidRating(value)
        if isinstance(value, str) and value.strip().isdigit():
            value = int(value.strip())
        if not isinstance(value, int):
            raise InvalidRating(value)
        try:
            return cls(value)
        except ValueError:
            raise InvalidRating(value) from None


# ---- Lifecycle ----

class State(IntEnum):
    """Lifecycle phase of a card."""
    NEW = 0
    LEARNING = 1
    REVIEW = 2
    RELEARNING = 3

    @classmethod
    def from_name(cls, name: object) -> "State":
        """
        Look up a stored state name, case-insensitively ("Learning" -> LEARNING).

        Raises:
            KeyError: unknown name
            TypeError: name is not a string
        """
        if not isinstance(name, str):
            raise TypeError(f"state name must be a string, got {name!r}")
        return cls[name.strip().upper()]


# ---- Parameter set ----

# FSRS-5 population defaults
FSRS5_DEFAULT_WEIGHTS = (
    0.40255, 1.18385, 3.173, 15.69105,    # w0-w3   initial stability per rating
    7.1949, 0.5345,                       # w4-w5   initial difficulty
    1.4604, 0.0046,                       # w6-w7   difficulty delta / mean reversion
    1.54575, 0.1192, 1.01925,             # w8-w10  recall stability
    1.9395, 0.11, 0.29605, 2.2698,        # w11-w14 forget stability
    0.2315, 2.9898,                       # w15-w16 hard penalty / easy bonus
    0.51655, 0.6621,                      # w17-w18 short-term stability
)

WEIGHT_COUNT = 19


def _frozen(mapping: dict) -> Mapping:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class FSRSParameters:
    """
    Immutable, versioned scheduler configuration.

    Step tables are in minutes and only cover ratings that keep a card in a
    short-term phase. Ratings missing from a table schedule whole days.
    """
    version: str
    weights: tuple[float, ...] = FSRS5_DEFAULT_WEIGHTS
    request_retention: float = 0.9
    maximum_interval: int = 36500
    decay: float = -0.5
    factor: float = 19.0 / 81.0
    d_min: float = 1.0
    d_max: float = 10.0
    s_min: float = 0.01
    new_steps: Mapping[int, int] = field(default_factory=lambda: _frozen({
        Rating.AGAIN: 1,
        Rating.HARD: 5,
        Rating.GOOD: 10,
    }))
    learning_steps: Mapping[int, int] = field(default_factory=lambda: _frozen({
        Rating.AGAIN: 5,
        Rating.HARD: 10,
    }))
    relearning_steps: Mapping[int, int] = field(default_factory=lambda: _frozen({
        Rating.AGAIN: 5,
        Rating.HARD: 10,
    }))

    def __post_init__(self):
        if len(self.weights) != WEIGHT_COUNT:
            raise ValueError(
                f"FSRS parameter set {self.version!r} needs {WEIGHT_COUNT} weights, "
                f"got {len(self.weights)}"
            )
        if not 0.0 < self.request_retention < 1.0:
            raise ValueError("request_retention must be in (0, 1)")
        if self.maximum_interval < 1:
            raise ValueError("maximum_interval must be at least one day")
        if not 0.0 < self.d_min < self.d_max:
            raise ValueError("difficulty range must satisfy 0 < d_min < d_max")
        if self.decay >= 0.0 or self.factor <= 0.0:
            raise ValueError("decay must be negative and factor positive")

    @property
    def w(self) -> tuple[float, ...]:
        return self.weights


DEFAULT_VERSION = "fsrs-5-default"

DEFAULT_PARAMETERS = FSRSParameters(version=DEFAULT_VERSION)

PARAMETER_SETS: Mapping[str, FSRSParameters] = _frozen({
    DEFAULT_PARAMETERS.version: DEFAULT_PARAMETERS,
})


def get_parameters(version: str) -> FSRSParameters:
    """
    Look up a registered parameter set by version.

    Raises:
        ValueError: if the version is not registered
    """
    try:
        return PARAMETER_SETS[version]
    except KeyError:
        known = ", ".join(sorted(PARAMETER_SETS))
        raise ValueError(f"Unknown FSRS parameter version {version!r} (known: {known})") from None
