"""
Parlay compatibility rules: which legs may legally share a ticket.

Every rule here is a boolean predicate.  A failed rule is a normal outcome
(the caller drops the candidate and moves on), never an exception.  The one
exception is :func:`assert_no_duplicate_players`, which guards code paths
that must already have filtered duplicates; tripping it means an upstream
bug, so it raises :class:`ParlayInvariantError`.

Rules
-----
    no_same_player          one leg per player per ticket
    no_base_combo_overlap   a compound stat (PRA, PR, PA, RA) never shares a
                            ticket with one of its own components for the
                            same player
    no_same_event (safe)    in safe mode, at most one leg per event
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, List, Mapping, Optional, Sequence

from parlay_risk.core.stat_types import (
    combo_components,
    is_combo,
    normalize_player_name,
    stat_safety_weight,
)
from parlay_risk.schemas import Leg, PropCandidate

logger = logging.getLogger(__name__)

SAFE_MODE = "safe"
HIGH_RISK_MODE = "high_risk"
_MODES = (SAFE_MODE, HIGH_RISK_MODE)

# Quality score weights for choosing one prop among several for a player
_HIT_RATE_WEIGHT = 100.0
_EDGE_WEIGHT = 8.0
_VOLATILITY_PENALTY = 40.0
_SAFETY_WEIGHT = 5.0

RULE_SAME_PLAYER = "same_player"
RULE_COMBO_OVERLAP = "combo_overlap"
RULE_SAME_EVENT = "same_event"


class ParlayInvariantError(RuntimeError):
    """Raised when a parlay that must already be clean still breaks a rule."""


@dataclass(frozen=True)
class ValidationVerdict:
    """Outcome of running every compatibility rule over one candidate."""

    accepted: bool
    failed_rules: List[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Incremental checks (used while a ticket is being assembled)
# ---------------------------------------------------------------------------

def can_add_player_leg(existing_counts: Mapping[str, int], player: Optional[str]) -> bool:
    """True iff ``player`` has no leg yet in ``existing_counts``.

    ``existing_counts`` is keyed by normalized player name.
    """
    return existing_counts.get(normalize_player_name(player), 0) == 0


def violates_combo_overlap(existing_legs: Iterable[Leg], candidate: Leg) -> bool:
    """
    Would adding ``candidate`` stack a compound stat on one of its components?

    Only legs on the candidate's own player are considered.  A compound
    candidate is rejected as soon as that player has *any* other leg.  A base
    candidate is rejected only when the player already holds a compound stat
    containing it; two different base stats are fine under this rule.
    """
    player = candidate.player_key
    same_player_stats = {
        leg.canonical_stat for leg in existing_legs if leg.player_key == player
    }
    if not same_player_stats:
        return False

    stat = candidate.canonical_stat
    if is_combo(stat):
        return True
    return any(
        is_combo(existing) and stat in combo_components(existing)
        for existing in same_player_stats
    )


# ---------------------------------------------------------------------------
# Whole-ticket predicates
# ---------------------------------------------------------------------------

def no_same_player(legs: Sequence[Leg]) -> bool:
    """True iff every leg belongs to a different (normalized) player."""
    keys = [leg.player_key for leg in legs]
    return len(keys) == len(set(keys))


def no_base_combo_overlap(legs: Sequence[Leg]) -> bool:
    """Check each leg against every leg before it; False on the first overlap."""
    for i, leg in enumerate(legs):
        if violates_combo_overlap(legs[:i], leg):
            logger.debug(
                "Combo overlap at leg %d (%s %s)", i, leg.player_name, leg.canonical_stat
            )
            return False
    return True


def no_same_event_in_safe_mode(legs: Sequence[Leg], mode: str) -> bool:
    """
    In ``"safe"`` mode every non-empty event id must be distinct.

    ``"high_risk"`` mode allows same-game stacking.  Legs with no event id
    are never considered to collide.
    """
    if mode not in _MODES:
        raise ValueError(f"Unknown parlay mode {mode!r}; expected one of {_MODES}.")
    if mode == HIGH_RISK_MODE:
        return True
    events = [leg.event_id for leg in legs if leg.event_id]
    return len(events) == len(set(events))


def validate_parlay(legs: Sequence[Leg], mode: str = SAFE_MODE) -> ValidationVerdict:
    """Run every rule and report all failures, not just the first."""
    failed: List[str] = []
    if not no_same_player(legs):
        failed.append(RULE_SAME_PLAYER)
    if not no_base_combo_overlap(legs):
        failed.append(RULE_COMBO_OVERLAP)
    if not no_same_event_in_safe_mode(legs, mode):
        failed.append(RULE_SAME_EVENT)
    return ValidationVerdict(accepted=not failed, failed_rules=failed)


def assert_no_duplicate_players(legs: Sequence[Leg], context: str) -> None:
    """
    Invariant guard: callers must already have filtered with no_same_player.

    Raises:
        ParlayInvariantError: naming the duplicated players and ``context``.
    """
    counts = Counter(leg.player_key for leg in legs)
    duplicates = sorted(name for name, n in counts.items() if n > 1)
    if duplicates:
        logger.error("Duplicate players reached %s: %s", context, duplicates)
        raise ParlayInvariantError(
            f"Invariant violation [{context}]: duplicate players {duplicates}"
        )


# ---------------------------------------------------------------------------
# Best-prop selection
# ---------------------------------------------------------------------------

def prop_quality(candidate: PropCandidate) -> float:
    """hitRate·100 + |edge|·8 − volatility·40 + statSafety·5."""
    return (
        candidate.hit_rate * _HIT_RATE_WEIGHT
        + abs(candidate.edge) * _EDGE_WEIGHT
        - candidate.volatility * _VOLATILITY_PENALTY
        + stat_safety_weight(candidate.canonical_stat) * _SAFETY_WEIGHT
    )


def select_best_prop(candidates: Sequence[PropCandidate]) -> Optional[PropCandidate]:
    """Pick the highest-quality prop; ties go to the earliest candidate."""
    best: Optional[PropCandidate] = None
    best_score = float("-inf")
    for candidate in candidates:
        score = prop_quality(candidate)
        if score > best_score:
            best, best_score = candidate, score
    return best
