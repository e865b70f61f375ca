"""Kelly criterion sizing: the single source of truth for stake-fraction math.

All functions here are **pure**: no I/O, no logging.
Import from this module; never reimplement Kelly locally in services.

The functions cover the distinct steps the stake sizer composes:

1. :func:`full_kelly_fraction`: the closed-form Kelly fraction for a
   win/loss bet, expressed through the edge ``p·d − 1``.
2. :func:`kelly_fraction`: fractional Kelly (multiplier ``m``), capped at
   the configured maximum share of bankroll.
3. :func:`risk_level`: monotone banding of the adjusted fraction into the
   four labels shown next to a stake recommendation.

Design decisions
----------------
* **Fractional Kelly** is expressed as a *multiplier* ``m ∈ (0, 1]`` rather
  than a divisor, because that is how users configure it (half-Kelly = 0.5).
* The edge is written ``p·d − 1`` (expected profit per unit staked) instead of
  ``p·b − q``.  The two are algebraically identical, but the former makes the
  "no edge → no bet" test and the edge-percentage display share one number.
* A parlay's combined odds can be very long.  Parlay sizing therefore uses a
  lower cap than singles; the cap is a parameter here, not a constant.

Run tests with::

    pytest tests/test_kelly.py -v
"""

from __future__ import annotations

from typing import Final, Literal, Optional

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Default fractional-Kelly multiplier (half-Kelly).
DEFAULT_KELLY_MULTIPLIER: Final[float] = 0.5

#: Default hard cap on any single stake, as a fraction of bankroll.
DEFAULT_MAX_BET_FRACTION: Final[float] = 0.05

#: Upper bounds of the risk bands, as fractions of bankroll.  Anything above
#: the last bound is ``"reckless"``.
_CONSERVATIVE_MAX: Final[float] = 0.02
_MODERATE_MAX: Final[float] = 0.04
_AGGRESSIVE_MAX: Final[float] = 0.08

RiskLevel = Literal["conservative", "moderate", "aggressive", "reckless"]


# ---------------------------------------------------------------------------
# Standard Kelly
# ---------------------------------------------------------------------------


def edge(win_prob: float, decimal_odds: float) -> float:
    """Expected profit per unit staked: ``p · d − 1``."""
    return win_prob * decimal_odds - 1.0


def full_kelly_fraction(win_prob: float, decimal_odds: float) -> float:
    """Full Kelly fraction for a simple win/loss outcome.

    The Kelly criterion maximises expected log-wealth.  With profit per unit
    ``b = d − 1`` and loss probability ``q = 1 − p`` the closed form is::

        f*  =  (p · b − q) / b  =  (p · d − 1) / (d − 1)          (1)

    Returns:
        The (possibly negative) full Kelly fraction.  Returns 0.0 when
        ``decimal_odds <= 1`` because such a price has no payout and no edge.

    Examples::

        full_kelly_fraction(0.55, 1.909)  →  0.055
        full_kelly_fraction(0.45, 1.909)  →  -0.155
    """
    if not (0.0 <= win_prob <= 1.0):
        raise ValueError(
            f"win_prob must be in [0, 1], got {win_prob!r}. "
            "Check upstream probability clipping."
        )
    profit_per_unit = decimal_odds - 1.0
    if profit_per_unit <= 0.0:
        return 0.0
    return edge(win_prob, decimal_odds) / profit_per_unit


def kelly_fraction(
    win_prob: float,
    decimal_odds: float,
    *,
    multiplier: float = DEFAULT_KELLY_MULTIPLIER,
    max_fraction: float = DEFAULT_MAX_BET_FRACTION,
) -> float:
    """Fractional Kelly bet size, floored at zero and capped.

    Args:
        win_prob: Estimated true probability of winning, in ``[0, 1]``.
        decimal_odds: Decimal odds for the bet.
        multiplier: Fractional-Kelly multiplier ``m ∈ (0, 1]``.
        max_fraction: Hard cap on the output fraction.

    Returns:
        Fractional Kelly in ``[0, max_fraction]``.  Returns 0.0 for a
        negative-EV bet.

    Raises:
        ValueError: If ``multiplier`` is outside ``(0, 1]`` or
            ``max_fraction`` is negative.

    Examples::

        kelly_fraction(0.55, 1.909)                   →  0.0275
        kelly_fraction(0.90, 1.500, max_fraction=0.03) →  0.03
        kelly_fraction(0.45, 1.909)                   →  0.0
    """
    if not (0.0 < multiplier <= 1.0):
        raise ValueError(f"multiplier must be in (0, 1], got {multiplier!r}.")
    if max_fraction < 0.0:
        raise ValueError(f"max_fraction must be ≥ 0, got {max_fraction!r}.")

    full = full_kelly_fraction(win_prob, decimal_odds)
    if full <= 0.0:
        # Negative or zero edge: do not bet.
        return 0.0
    return min(full * multiplier, max_fraction)


# ---------------------------------------------------------------------------
# Risk banding
# ---------------------------------------------------------------------------


def risk_level(adjusted_fraction: float) -> Optional[RiskLevel]:
    """Band an adjusted Kelly fraction into a risk label.

    Monotone non-decreasing in ``adjusted_fraction``.  A fraction of zero
    (no bet) has no risk level.

    Examples::

        risk_level(0.0)   → None
        risk_level(0.015) → "conservative"
        risk_level(0.03)  → "moderate"
        risk_level(0.06)  → "aggressive"
        risk_level(0.12)  → "reckless"
    """
    if adjusted_fraction <= 0.0:
        return None
    if adjusted_fraction <= _CONSERVATIVE_MAX:
        return "conservative"
    if adjusted_fraction <= _MODERATE_MAX:
        return "moderate"
    if adjusted_fraction <= _AGGRESSIVE_MAX:
        return "aggressive"
    return "reckless"

