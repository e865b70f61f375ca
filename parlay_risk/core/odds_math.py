"""Fundamental odds mathematics: the single source of truth.

Every function here is **pure**: no I/O, no logging, no side effects.
Import from this module; never reimplement odds conversion in services.

Design decisions
----------------
* American odds are accepted as ``int`` or ``float`` because sportsbook feeds
  return both.  Magnitudes below 100 are not representable and raise.
* Even money (+100 / -100) converts to exactly 2.0 in both sign conventions,
  so neither branch can divide by zero.
* Parlay odds are the product of the leg decimal odds.  Probabilities are
  multiplied the same way by :func:`combine_probabilities`; any dependence
  adjustment happens later, in the joint-probability service.

Run tests with::

    pytest tests/test_odds_math.py -v
"""

from __future__ import annotations

import math
from typing import Final, Iterable

# ---------------------------------------------------------------------------
# Module-level constants
# ---------------------------------------------------------------------------

#: American-odds magnitude floor.  Values below this indicate a data error.
_MIN_ODDS_MAGNITUDE: Final[int] = 100

#: Smallest probability the engine will ever report.  Keeps every returned
#: probability inside the open-closed interval (0, 1].
PROBABILITY_FLOOR: Final[float] = 1e-6


# ---------------------------------------------------------------------------
# Odds conversion
# ---------------------------------------------------------------------------


def american_to_decimal(american: int | float) -> float:
    """Convert American odds to decimal (European) format.

    Decimal odds represent the total payout per unit staked, **including**
    the return of the stake itself.  Examples::

        american_to_decimal(-110) → 1.9091   (risk 110 to win 100)
        american_to_decimal(+150) → 2.5000   (risk 100 to win 150)
        american_to_decimal(-100) → 2.0000

    Args:
        american: American odds.  Negative = favourite, positive = underdog.

    Returns:
        Decimal odds ≥ 1.0.

    Raises:
        ValueError: If ``|american| < 100``.
    """
    if abs(american) < _MIN_ODDS_MAGNITUDE:
        raise ValueError(
            f"Invalid American odds {american!r}: magnitude must be ≥ 100. "
            "Check upstream odds parsing for data errors."
        )
    if american > 0:
        return american / 100.0 + 1.0
    # Negative: risk |american| to win 100
    return 100.0 / abs(american) + 1.0


def decimal_to_american(decimal_odds: float) -> int:
    """Convert decimal odds to the nearest American integer.

    Inverse of :func:`american_to_decimal`.  Use the result for display, not
    for further arithmetic.

    Raises:
        ValueError: If ``decimal_odds <= 1.0`` (no payout to express).
    """
    if decimal_odds <= 1.0:
        raise ValueError(
            f"Decimal odds {decimal_odds!r} must be > 1.0 to express as American odds."
        )
    if decimal_odds >= 2.0:
        return round((decimal_odds - 1.0) * 100)
    return round(-100.0 / (decimal_odds - 1.0))


def to_decimal(odds: float, odds_format: str = "american") -> float:
    """Normalise a price in either format to decimal odds.

    Args:
        odds: The quoted price.
        odds_format: ``"american"`` or ``"decimal"``.

    Raises:
        ValueError: On an unknown format or a decimal price ≤ 1.0.
    """
    if odds_format == "american":
        return american_to_decimal(odds)
    if odds_format == "decimal":
        if odds <= 1.0:
            raise ValueError(f"Decimal odds must be > 1.0, got {odds!r}.")
        return float(odds)
    raise ValueError(f"Unknown odds_format {odds_format!r}; expected 'american' or 'decimal'.")


# ---------------------------------------------------------------------------
# Products and clamping
# ---------------------------------------------------------------------------


def combine_decimal_odds(decimal_odds: Iterable[float]) -> float:
    """Parlay payout: the product of every leg's decimal odds."""
    return math.prod(decimal_odds)


def combine_probabilities(probabilities: Iterable[float]) -> float:
    """Naive joint probability under independence: Π p_i.

    Raises:
        ValueError: If any probability lies outside ``[0, 1]``.
    """
    joint = 1.0
    for p in probabilities:
        if not (0.0 <= p <= 1.0):
            raise ValueError(f"Leg probability must be in [0, 1], got {p!r}.")
        joint *= p
    return joint


def clamp_probability(p: float, floor: float = PROBABILITY_FLOOR) -> float:
    """Clamp a probability into ``(0, 1]``.

    NaN inputs collapse to the floor rather than propagating.
    """
    if math.isnan(p):
        return floor
    return min(1.0, max(floor, p))
