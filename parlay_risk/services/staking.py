"""
Kelly stake sizing for parlays.

Turns a parlay's (probability, combined odds) pair into a bankroll-aware
stake recommendation:

    1. combined odds       = supplied total, else Π leg decimal odds
    2. true probability    = supplied correlated probability, else
                             Π leg probabilities × correlation factor
    3. edge %              = (p·d − 1)·100;  ≤ 0 → no bet
    4. stake fraction      = full Kelly × multiplier, capped at max bet %
    5. stake, EV, risk band

Also provides the bankroll-side diagnostics shown next to a stake: payout
variance and risk of ruin, a user-stake vs Kelly comparison, tilt detection
and input validation.

Configuration (env vars, loaded with python-dotenv):
    STARTING_BANKROLL          default bankroll when none is supplied (1000)
    KELLY_MULTIPLIER           fractional Kelly (0.5)
    PARLAY_MAX_BET_PERCENT     stake cap as a bankroll fraction (0.03)
    PARLAY_CORRELATION_FACTOR  naive-product discount (0.85)
"""

import logging
import math
import os
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional, Sequence

from dotenv import load_dotenv

from parlay_risk.core.kelly import full_kelly_fraction, kelly_fraction, risk_level
from parlay_risk.core.odds_math import (
    clamp_probability,
    combine_decimal_odds,
    combine_probabilities,
)
from parlay_risk.schemas import BankrollConfig, Leg

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_CORRELATION_FACTOR = float(os.getenv("PARLAY_CORRELATION_FACTOR", "0.85"))

NO_EDGE_WARNING = "No edge detected - Kelly suggests no bet"
AGGRESSIVE_WARNING = "Full Kelly suggests very aggressive sizing - use fractional Kelly"
THIN_EDGE_WARNING = "Thin edge (<2%) - consider passing or reducing stake"
EMPTY_BANKROLL_WARNING = "Bankroll is empty - Kelly suggests no bet"

# Full Kelly above this is flagged as aggressive; edges below this % are thin
_AGGRESSIVE_FULL_KELLY = 0.25
_THIN_EDGE_PCT = 2.0

# ~95% two-sided normal band on a single bet's profit
_Z_95 = 1.96

# Tilt thresholds
_LOSS_STREAK = 3
_LOSS_STREAK_STAKE = 0.03
_WIN_STREAK = 4
_WIN_STREAK_STAKE = 0.06
_CHASE_DRAWDOWN_PCT = 20.0
_CHASE_STAKE = 0.04

# Validation bounds
_MIN_BANKROLL = 10.0
_MAX_BET_PERCENT_LIMIT = 0.25


def load_bankroll_config() -> BankrollConfig:
    """
    Bankroll configuration from the environment.

    The stake cap defaults to 3% of bankroll: parlays carry more variance
    than single bets, so they get a lower ceiling than the 5% singles cap.
    """
    return BankrollConfig(
        bankroll_amount=float(os.getenv("STARTING_BANKROLL", "1000")),
        kelly_multiplier=float(os.getenv("KELLY_MULTIPLIER", "0.5")),
        max_bet_percent=float(os.getenv("PARLAY_MAX_BET_PERCENT", "0.03")),
    )


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class KellyResult:
    """Stake recommendation for one parlay."""

    full_kelly_fraction: float
    adjusted_kelly_fraction: float
    recommended_stake: float
    expected_value: float
    edge_percent: float
    true_probability: float
    combined_odds: float
    risk_level: Optional[str] = None
    warning: Optional[str] = None

    @property
    def is_bet(self) -> bool:
        return self.recommended_stake > 0.0

    def to_dict(self) -> Dict:
        d = asdict(self)
        d["recommended_stake"] = round(self.recommended_stake, 2)
        d["expected_value"] = round(self.expected_value, 2)
        d["edge_percent"] = round(self.edge_percent, 2)
        return d


@dataclass
class VarianceMetrics:
    """Single-bet payout distribution summary, in bankroll currency."""

    expected_return: float
    standard_deviation: float
    sharpe_ratio: float
    worst_case_95: float
    best_case_95: float
    risk_of_ruin: float      # percent
    max_drawdown_risk: float  # percent of bankroll staked

    def to_dict(self) -> Dict:
        return {k: round(v, 4) for k, v in asdict(self).items()}


@dataclass
class StakeComparison:
    difference: float
    percent_difference: float
    assessment: str
    advice: str


@dataclass
class TiltAnalysis:
    is_tilting: bool
    suggested_action: str = "Proceed with bet"
    tilt_reason: Optional[str] = None
    streak_impact: int = 0


@dataclass
class KellyValidation:
    errors: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


# ---------------------------------------------------------------------------
# Stake sizing
# ---------------------------------------------------------------------------

def size_parlay_stake(
    legs: Optional[Sequence[Leg]] = None,
    *,
    probability: Optional[float] = None,
    total_decimal_odds: Optional[float] = None,
    correlated_probability: Optional[float] = None,
    correlation_factor: Optional[float] = None,
    bankroll: Optional[BankrollConfig] = None,
) -> KellyResult:
    """
    Kelly stake for a parlay.

    Args:
        legs: Parlay legs; used for whichever of odds/probability is not
            supplied directly.
        probability: Pre-combined naive probability (used with
            ``total_decimal_odds`` when ``legs`` is absent).
        total_decimal_odds: Pre-combined parlay decimal odds.
        correlated_probability: Dependence-adjusted joint probability.  When
            given, ``correlation_factor`` is ignored.
        correlation_factor: Discount on the naive product; defaults to
            PARLAY_CORRELATION_FACTOR.
        bankroll: Bankroll configuration; defaults to the environment.

    Raises:
        ValueError: If neither legs nor the combined inputs are provided.
    """
    cfg = bankroll or load_bankroll_config()
    factor = DEFAULT_CORRELATION_FACTOR if correlation_factor is None else correlation_factor

    if total_decimal_odds is not None:
        combined_odds = float(total_decimal_odds)
    elif legs:
        combined_odds = combine_decimal_odds(leg.decimal_odds for leg in legs)
    else:
        raise ValueError("size_parlay_stake needs legs or total_decimal_odds.")

    if correlated_probability is not None:
        true_prob = correlated_probability
    elif probability is not None:
        true_prob = probability * factor
    elif legs:
        true_prob = combine_probabilities(leg.probability for leg in legs) * factor
    else:
        raise ValueError("size_parlay_stake needs legs, probability or correlated_probability.")
    true_prob = clamp_probability(true_prob)

    edge_pct = (true_prob * combined_odds - 1.0) * 100.0
    full_kelly = full_kelly_fraction(true_prob, combined_odds)

    if edge_pct <= 0.0:
        logger.debug(
            "No edge: p=%.4f d=%.3f edge=%.2f%%", true_prob, combined_odds, edge_pct
        )
        return KellyResult(
            full_kelly_fraction=full_kelly,
            adjusted_kelly_fraction=0.0,
            recommended_stake=0.0,
            expected_value=0.0,
            edge_percent=edge_pct,
            true_probability=true_prob,
            combined_odds=combined_odds,
            risk_level=None,
            warning=NO_EDGE_WARNING,
        )

    adjusted = kelly_fraction(
        true_prob,
        combined_odds,
        multiplier=cfg.kelly_multiplier,
        max_fraction=cfg.max_bet_percent,
    )
    stake = cfg.bankroll_amount * adjusted
    if stake <= 0.0:
        return KellyResult(
            full_kelly_fraction=full_kelly,
            adjusted_kelly_fraction=adjusted,
            recommended_stake=0.0,
            expected_value=0.0,
            edge_percent=edge_pct,
            true_probability=true_prob,
            combined_odds=combined_odds,
            risk_level=None,
            warning=EMPTY_BANKROLL_WARNING,
        )
    expected_value = stake * (true_prob * combined_odds - 1.0)

    warning = None
    if full_kelly > _AGGRESSIVE_FULL_KELLY:
        warning = AGGRESSIVE_WARNING
    elif edge_pct < _THIN_EDGE_PCT:
        warning = THIN_EDGE_WARNING

    return KellyResult(
        full_kelly_fraction=full_kelly,
        adjusted_kelly_fraction=adjusted,
        recommended_stake=stake,
        expected_value=expected_value,
        edge_percent=edge_pct,
        true_probability=true_prob,
        combined_odds=combined_odds,
        risk_level=risk_level(adjusted),
        warning=warning,
    )


# ---------------------------------------------------------------------------
# Variance and risk of ruin
# ---------------------------------------------------------------------------

def risk_of_ruin(expected_return: float, variance: float, bankroll: float) -> float:
    """
    Diffusion approximation to the probability of losing the whole bankroll
    when repeating the same bet indefinitely::

        RoR = exp(−2 · μ · B / σ²)

    Returned as a percentage.  Non-positive drift is certain ruin (100);
    zero variance with positive drift can never lose (0).
    """
    if expected_return <= 0.0:
        return 100.0
    if variance <= 0.0:
        return 0.0
    if bankroll <= 0.0:
        return 100.0
    return 100.0 * math.exp(-2.0 * expected_return * bankroll / variance)


def calculate_variance(
    win_probability: float,
    stake: float,
    decimal_odds: float,
    bankroll: float,
) -> VarianceMetrics:
    """Bernoulli payout variance and derived risk figures for one bet."""
    if stake <= 0.0:
        return VarianceMetrics(0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0)

    p = win_probability
    q = 1.0 - p
    win_amount = stake * (decimal_odds - 1.0)
    loss_amount = -stake

    mean = p * win_amount + q * loss_amount
    variance = p * (win_amount - mean) ** 2 + q * (loss_amount - mean) ** 2
    std = math.sqrt(variance)

    return VarianceMetrics(
        expected_return=mean,
        standard_deviation=std,
        sharpe_ratio=mean / std if std > 0 else 0.0,
        worst_case_95=mean - _Z_95 * std,
        best_case_95=mean + _Z_95 * std,
        risk_of_ruin=risk_of_ruin(mean, variance, bankroll),
        max_drawdown_risk=(stake / bankroll * 100.0) if bankroll > 0 else 100.0,
    )


# ---------------------------------------------------------------------------
# Behavioural checks
# ---------------------------------------------------------------------------

def compare_to_kelly(user_stake: float, kelly_recommended: float) -> StakeComparison:
    """Grade a user-chosen stake against the Kelly recommendation."""
    difference = user_stake - kelly_recommended
    pct = (difference / kelly_recommended * 100.0) if kelly_recommended > 0 else 0.0

    if pct < -20:
        assessment = "under-betting"
        advice = "Your stake is conservative. Consider increasing to capture more expected value."
    elif pct <= 20:
        assessment = "optimal"
        advice = "Your stake is within optimal range. Good bankroll management!"
    elif pct <= 100:
        assessment = "over-betting"
        advice = "Your stake exceeds Kelly optimal. Consider reducing to manage variance."
    else:
        assessment = "significantly-over"
        advice = "Warning: Your stake is significantly above Kelly optimal. High risk of ruin!"

    return StakeComparison(difference, pct, assessment, advice)


def analyze_tilt(
    win_streak: int,
    loss_streak: int,
    proposed_stake: float,
    bankroll: float,
    peak_bankroll: float,
) -> TiltAnalysis:
    """
    Flag stakes that look emotionally driven.

    Checks run in order and the last match wins: loss-streak tilt,
    win-streak overconfidence, then drawdown chasing.
    """
    stake_pct = proposed_stake / bankroll if bankroll > 0 else 1.0
    drawdown_pct = (
        (peak_bankroll - bankroll) / peak_bankroll * 100.0 if peak_bankroll > 0 else 0.0
    )
    result = TiltAnalysis(is_tilting=False)

    if loss_streak >= _LOSS_STREAK and stake_pct > _LOSS_STREAK_STAKE:
        result = TiltAnalysis(
            is_tilting=True,
            tilt_reason=f"{loss_streak} consecutive losses - potential tilt detected",
            suggested_action="Consider taking a break or reducing stake by 50%",
            streak_impact=-loss_streak * 5,
        )
    if win_streak >= _WIN_STREAK and stake_pct > _WIN_STREAK_STAKE:
        result = TiltAnalysis(
            is_tilting=True,
            tilt_reason=f"{win_streak} consecutive wins - potential overconfidence",
            suggested_action="Stay disciplined - variance will regress",
            streak_impact=win_streak * 2,
        )
    if drawdown_pct > _CHASE_DRAWDOWN_PCT and stake_pct > _CHASE_STAKE:
        result = TiltAnalysis(
            is_tilting=True,
            tilt_reason=f"{drawdown_pct:.1f}% drawdown from peak - chasing losses",
            suggested_action="Reduce stake to rebuild bankroll gradually",
            streak_impact=-15,
        )

    if result.is_tilting:
        logger.info("Tilt flagged: %s", result.tilt_reason)
    return result


def validate_kelly_inputs(
    win_probability: Optional[float] = None,
    decimal_odds: Optional[float] = None,
    bankroll: Optional[float] = None,
    kelly_multiplier: Optional[float] = None,
    max_bet_percent: Optional[float] = None,
) -> KellyValidation:
    """Collect every problem with a set of Kelly inputs instead of raising."""
    errors: List[str] = []

    if win_probability is None:
        errors.append("Win probability is required")
    elif not (0.0 < win_probability < 1.0):
        errors.append("Win probability must be between 0.01 and 0.99")

    if decimal_odds is None:
        errors.append("Decimal odds are required")
    elif decimal_odds <= 1.0:
        errors.append("Decimal odds must be greater than 1")

    if bankroll is None:
        errors.append("Bankroll is required")
    elif bankroll < _MIN_BANKROLL:
        errors.append(f"Minimum bankroll is ${_MIN_BANKROLL:.0f}")

    if kelly_multiplier is not None and not (0.0 < kelly_multiplier <= 1.0):
        errors.append("Kelly multiplier must be between 0.01 and 1")

    if max_bet_percent is not None and not (0.0 < max_bet_percent <= _MAX_BET_PERCENT_LIMIT):
        errors.append("Max bet percent must be between 0.01 and 0.25")

    return KellyValidation(errors=errors)
