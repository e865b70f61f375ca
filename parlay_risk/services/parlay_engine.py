"""
Parlay evaluation and construction.

Runs a candidate ticket through the full pipeline:

    compatibility rules → correlation matrix → joint probability → Kelly stake

and builds the best non-overlapping tickets from a pool of legs.  A rejected
candidate never reaches the correlation or sizing steps.  Parlays compound
edge but also variance; sizing stays inside the bankroll cap.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from parlay_risk.core.odds_math import decimal_to_american
from parlay_risk.schemas import MAX_BUILD_POOL, MAX_PARLAY_LEGS, BankrollConfig, Leg
from parlay_risk.services.compatibility import (
    SAFE_MODE,
    assert_no_duplicate_players,
    can_add_player_leg,
    no_same_event_in_safe_mode,
    validate_parlay,
    violates_combo_overlap,
)
from parlay_risk.services.correlation import (
    CorrelationMatrix,
    CorrelationTable,
    build_correlation_matrix,
    format_correlation_impact,
)
from parlay_risk.services.joint_probability import JointProbability, adjust_joint_probability
from parlay_risk.services.staking import KellyResult, size_parlay_stake

logger = logging.getLogger(__name__)

# Minimum stake (currency units) below which a built ticket is dropped.
# A cap-limited bankroll can leave positive-edge tickets worth cents.
MIN_STAKE = 0.50


@dataclass
class ParlayEvaluation:
    """Everything the pipeline knows about one candidate ticket."""

    legs: List[Leg]
    accepted: bool
    failed_rules: List[str] = field(default_factory=list)
    correlation: Optional[CorrelationMatrix] = None
    joint: Optional[JointProbability] = None
    kelly: Optional[KellyResult] = None

    @property
    def num_legs(self) -> int:
        return len(self.legs)

    @property
    def combined_odds(self) -> float:
        return self.kelly.combined_odds if self.kelly else 0.0

    @property
    def expected_value(self) -> float:
        return self.kelly.expected_value if self.kelly else 0.0

    @property
    def leg_summary(self) -> str:
        return " + ".join(leg.label for leg in self.legs)

    def to_dict(self) -> Dict:
        return {
            "accepted": self.accepted,
            "failed_rules": list(self.failed_rules),
            "num_legs": self.num_legs,
            "leg_summary": self.leg_summary,
            "correlation": self.correlation.to_dict() if self.correlation else None,
            "joint_probability": self.joint.to_dict() if self.joint else None,
            "kelly": self.kelly.to_dict() if self.kelly else None,
        }


def evaluate_parlay(
    legs: Sequence[Leg],
    *,
    sport: str = "nba",
    mode: str = SAFE_MODE,
    correlation_table: Optional[CorrelationTable] = None,
    bankroll: Optional[BankrollConfig] = None,
    method: str = "factor",
    seed: Optional[int] = None,
) -> ParlayEvaluation:
    """
    Validate, correlate, adjust and size one parlay.

    Returns:
        :class:`ParlayEvaluation`.  When a rule fails, ``accepted`` is False,
        ``failed_rules`` names every failure and the numeric fields are None.
    """
    legs = list(legs)
    verdict = validate_parlay(legs, mode)
    if not verdict.accepted:
        logger.info(
            "Rejected %d-leg parlay (%s): %s",
            len(legs), ", ".join(verdict.failed_rules), " + ".join(leg.label for leg in legs),
        )
        return ParlayEvaluation(legs=legs, accepted=False, failed_rules=verdict.failed_rules)

    assert_no_duplicate_players(legs, "evaluate_parlay")

    matrix = build_correlation_matrix(legs, sport, correlation_table)
    joint = adjust_joint_probability(
        [leg.probability for leg in legs], matrix, method=method, seed=seed
    )
    kelly = size_parlay_stake(
        legs,
        correlated_probability=joint.correlated_probability,
        bankroll=bankroll,
    )

    logger.info(
        "Evaluated %d-leg parlay: p=%.4f (%s) edge=%.2f%% stake=%.2f",
        len(legs), joint.correlated_probability,
        format_correlation_impact(joint.correlation_impact),
        kelly.edge_percent, kelly.recommended_stake,
    )
    return ParlayEvaluation(
        legs=legs, accepted=True, correlation=matrix, joint=joint, kelly=kelly
    )


def _compatible_tickets(
    pool: Sequence[Leg], mode: str, max_legs: int
) -> Tuple[List[Tuple[Leg, ...]], int]:
    """
    Every 2..``max_legs`` ticket from ``pool`` that passes the compatibility rules.

    Tickets grow one leg at a time in pool order, and a leg is only appended
    when the partial ticket accepts it, so an incompatible prefix is never
    extended.  Returns the tickets and the number of pruned extensions.
    """
    tickets: List[Tuple[Leg, ...]] = []
    pruned = 0

    def extend(ticket: List[Leg], players: Counter, start: int) -> None:
        nonlocal pruned
        for j in range(start, len(pool)):
            leg = pool[j]
            if (
                not can_add_player_leg(players, leg.player_name)
                or violates_combo_overlap(ticket, leg)
                or not no_same_event_in_safe_mode(ticket + [leg], mode)
            ):
                pruned += 1
                continue
            grown = ticket + [leg]
            if len(grown) >= 2:
                tickets.append(tuple(grown))
            if len(grown) < max_legs:
                players[leg.player_key] += 1
                extend(grown, players, j + 1)
                players[leg.player_key] -= 1

    extend([], Counter(), 0)
    return tickets, pruned


def build_optimal_parlays(
    pool: Sequence[Leg],
    *,
    sport: str = "nba",
    mode: str = SAFE_MODE,
    max_legs: int = 3,
    max_parlays: int = 10,
    correlation_table: Optional[CorrelationTable] = None,
    bankroll: Optional[BankrollConfig] = None,
) -> List[ParlayEvaluation]:
    """
    Build the best positive-EV parlays from a pool of legs.

    Compatible 2..``max_legs`` tickets are enumerated incrementally and
    evaluated; accepted tickets with a recommended stake of at least
    :data:`MIN_STAKE` are ranked by expected value.  Selection is greedy and
    non-overlapping: once a player appears in a returned ticket no later
    ticket may use that player again.

    Args:
        pool: Candidate legs, at most :data:`MAX_BUILD_POOL`.
        sport: Sport for correlation defaults and table lookup.
        mode: ``"safe"`` (one leg per event) or ``"high_risk"``.
        max_legs: Largest ticket size considered, at most :data:`MAX_PARLAY_LEGS`.
        max_parlays: Maximum number of tickets returned.
        correlation_table: Historical market-pair snapshot.
        bankroll: Bankroll configuration; defaults to the environment.

    Returns:
        Accepted evaluations, best expected value first.

    Raises:
        ValueError: if the pool or ticket size exceeds the builder limits.
    """
    if len(pool) > MAX_BUILD_POOL:
        raise ValueError(f"Pool of {len(pool)} legs exceeds the builder limit of {MAX_BUILD_POOL}.")
    if max_legs > MAX_PARLAY_LEGS:
        raise ValueError(f"max_legs={max_legs} exceeds the builder limit of {MAX_PARLAY_LEGS}.")

    logger.info("Building parlays from %d legs (max_legs=%d, mode=%s)", len(pool), max_legs, mode)

    if len(pool) < 2:
        logger.info("Not enough legs for parlays (need 2+, have %d)", len(pool))
        return []

    tickets, pruned = _compatible_tickets(list(pool), mode, max_legs)
    candidates: List[ParlayEvaluation] = []

    for ticket in tickets:
        evaluation = evaluate_parlay(
            ticket,
            sport=sport,
            mode=mode,
            correlation_table=correlation_table,
            bankroll=bankroll,
        )
        if evaluation.kelly is None or evaluation.kelly.recommended_stake < MIN_STAKE:
            continue
        candidates.append(evaluation)

    candidates.sort(key=lambda e: e.expected_value, reverse=True)

    # Greedy non-overlapping selection.  A player in an accepted ticket is
    # spent: stacking the same player across tickets compounds exposure to
    # one box score.
    selected: List[ParlayEvaluation] = []
    used_players: set = set()

    for evaluation in candidates:
        players = {leg.player_key for leg in evaluation.legs}
        if players & used_players:
            continue
        selected.append(evaluation)
        used_players.update(players)
        if len(selected) >= max_parlays:
            break

    logger.info(
        "Evaluated %d compatible tickets (%d extensions pruned), %d positive-EV, "
        "returning top %d non-overlapping (best EV: %.2f)",
        len(tickets), pruned, len(candidates), len(selected),
        selected[0].expected_value if selected else 0.0,
    )
    return selected


def format_parlay_ticket(evaluation: ParlayEvaluation) -> str:
    """
    Format an evaluated parlay for human-readable display.

    Args:
        evaluation: Result of :func:`evaluate_parlay`.

    Returns:
        Multi-line summary string.
    """
    if not evaluation.accepted:
        return (
            f"{evaluation.num_legs}-Leg Parlay REJECTED "
            f"({', '.join(evaluation.failed_rules)})\n"
            f"   Legs: {evaluation.leg_summary}"
        )

    kelly = evaluation.kelly
    joint = evaluation.joint
    corr = evaluation.correlation
    lines = [
        f"{evaluation.num_legs}-Leg Parlay @ {decimal_to_american(kelly.combined_odds):+d}",
        f"   Legs: {evaluation.leg_summary}",
        f"   Joint Prob: {joint.correlated_probability:.2%} "
        f"(independent {joint.independent_probability:.2%}, "
        f"{format_correlation_impact(joint.correlation_impact)})",
        f"   Correlation: avg {corr.avg_correlation:.2f}, max {corr.max_correlation:.2f} "
        f"[{corr.severity}]",
        f"   Edge: {kelly.edge_percent:.2f}%",
    ]
    if kelly.is_bet:
        lines.append(
            f"   Kelly Rec: ${kelly.recommended_stake:.2f} "
            f"({kelly.adjusted_kelly_fraction:.2%} of bankroll, {kelly.risk_level})"
        )
        lines.append(f"   Expected Value: ${kelly.expected_value:.2f}")
    if kelly.warning:
        lines.append(f"   Warning: {kelly.warning}")
    return "\n".join(lines)
