"""
FSRS - Free Spaced Repetition Scheduler

This package implements the memory model behind study sessions:
- Lifecycle phases New -> Learning -> Review <-> Relearning
- Power forgetting curve: R = (1 + factor * t / S) ^ decay
- Interpretable memory state (Stability, Difficulty, Retrievability)
- Versioned, immutable parameter sets

Quick start:
    from flashdeck import fsrs

    card = fsrs.CardState.new(now)
    card = fsrs.compute_next_state(card, fsrs.Rating.GOOD, now)
"""

# Core scheduler API (algorithm logic)
from flashdeck.fsrs.scheduler import (
    Scheduler,
    compute_next_state,
    current_retrievability,
    preview,
)

# Database API
from flashdeck.fsrs.database import (
    SqlFlashcardRepository,
    get_engine,
    init_db,
    reset_db,
)

# Constants and parameters
from flashdeck.fsrs.constants import (
    DEFAULT_PARAMETERS,
    DEFAULT_VERSION,
    PARAMETER_SETS,
    FSRSParameters,
    Rating,
    State,
    get_parameters,
)

# Memory state
from flashdeck.fsrs.memory_state import (
    CardState,
    calculate_retrievability,
    days_between,
    next_interval,
)


__all__ = [
    # Core algorithm
    "Scheduler",
    "compute_next_state",
    "current_retrievability",
    "preview",

    # Database operations
    "SqlFlashcardRepository",
    "get_engine",
    "init_db",
    "reset_db",

    # Enums
    "Rating",
    "State",

    # Memory state
    "CardState",
    "calculate_retrievability",
    "days_between",
    "next_interval",

    # Parameters
    "DEFAULT_PARAMETERS",
    "DEFAULT_VERSION",
    "PARAMETER_SETS",
    "FSRSParameters",
    "get_parameters",
]
