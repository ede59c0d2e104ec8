"""
Memory Updates

Stability and difficulty update rules for a single rating event.

Key principles:
- Spaced, effortful success produces the largest stability gains
- Failures reset stability, more gently for cards that were already stable
- Difficulty drifts toward the "Easy" baseline to avoid getting stuck at 10

Every function takes the parameter set explicitly so that alternative
parameter versions can be swapped in without touching the algorithm.
"""

from __future__ import annotations

import math

from flashdeck.fsrs.constants import FSRSParameters, Rating


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def initial_stability(rating: Rating, parameters: FSRSParameters) -> float:
    """
    Stability after the first exposure.

    S0(G) = w[G-1]
    """
    return max(parameters.w[rating - 1], 0.1)


def initial_difficulty(rating: Rating, parameters: FSRSParameters) -> float:
    """
    Difficulty after the first exposure.

    D0(G) = w4 - exp(w5 * (G - 1)) + 1, clipped to [d_min, d_max]
    """
    w = parameters.w
    d = w[4] - math.exp(w[5] * (rating - 1)) + 1.0
    return _clamp(d, parameters.d_min, parameters.d_max)


def next_difficulty(difficulty: float, rating: Rating, parameters: FSRSParameters) -> float:
    """
    Update difficulty after a rating.

    Formula:
        delta = -w6 * (G - 3)
        D'    = D + delta * (10 - D) / 9          (linear damping)
        D''   = w7 * D0(Easy) + (1 - w7) * D'     (mean reversion)

    Again/Hard raise difficulty, Good leaves it nearly unchanged, Easy
    lowers it. The result is clipped to [d_min, d_max].
    """
    w = parameters.w
    delta = -w[6] * (rating - 3)
    damped = difficulty + delta * (10.0 - difficulty) / 9.0
    reverted = w[7] * initial_difficulty(Rating.EASY, parameters) + (1.0 - w[7]) * damped
    return _clamp(reverted, parameters.d_min, parameters.d_max)


def next_recall_stability(
    difficulty: float,
    stability: float,
    retrievability: float,
    rating: Rating,
    parameters: FSRSParameters
) -> float:
    """
    Stability after a successful review (Hard/Good/Easy).

    Formula:
        S' = S * (1 + e^w8 * (11 - D) * S^-w9 * (e^(w10 * (1 - R)) - 1) * hp * eb)

    Where:
        - (11 - D) makes gains smaller for difficult cards
        - S^-w9 makes gains saturate for already stable cards
        - (e^(w10 (1-R)) - 1) rewards reviews close to or past the scheduled
          interval (the spacing effect)
        - hp = w15 for Hard, eb = w16 for Easy
    """
    if rating == Rating.AGAIN:
        raise ValueError("Use next_forget_stability for AGAIN ratings")

    w = parameters.w
    hard_penalty = w[15] if rating == Rating.HARD else 1.0
    easy_bonus = w[16] if rating == Rating.EASY else 1.0

    new_stability = stability * (
        1.0
        + math.exp(w[8])
        * (11.0 - difficulty)
        * stability ** -w[9]
        * (math.exp(w[10] * (1.0 - retrievability)) - 1.0)
        * hard_penalty
        * easy_bonus
    )
    return max(parameters.s_min, new_stability)


def next_forget_stability(
    difficulty: float,
    stability: float,
    retrievability: float,
    parameters: FSRSParameters
) -> float:
    """
    Stability after a lapse (Again on a Review card).

    Formula:
        S' = w11 * D^-w12 * ((S + 1)^w13 - 1) * e^(w14 * (1 - R))

    A lapse never increases stability, so the result is capped at S.
    """
    w = parameters.w
    new_stability = (
        w[11]
        * difficulty ** -w[12]
        * ((stability + 1.0) ** w[13] - 1.0)
        * math.exp(w[14] * (1.0 - retrievability))
    )
    return max(parameters.s_min, min(new_stability, stability))


def next_short_term_stability(stability: float, rating: Rating, parameters: FSRSParameters) -> float:
    """
    Stability after a same-phase review in Learning/Relearning.

    S' = S * e^(w17 * (G - 3 + w18))
    """
    w = parameters.w
    new_stability = stability * math.exp(w[17] * (rating - 3 + w[18]))
    return max(parameters.s_min, new_stability)
