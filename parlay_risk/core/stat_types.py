"""Prop-market canonicalisation and the static combo tables.

Sportsbooks and upstream scanners spell the same market a dozen ways
(``player_points_rebounds_assists``, ``pts+rebs+asts``, ``PRA``).  Every rule
in the compatibility validator compares *canonical* tokens, so this module is
the only place raw market strings are interpreted.

Canonical tokens
----------------
Base stats:     ``points``, ``rebounds``, ``assists``
Compound stats: ``pr`` (points + rebounds), ``pa`` (points + assists),
                ``ra`` (rebounds + assists), ``pra`` (all three)

Matching is **longest pattern first**: the three-component combo is tried
before any two-component combo, and two-component combos before single base
stats.  Checking ``points`` first would classify ``points_rebounds_assists``
as a plain points prop and silently let it stack with a points leg.

The tables below are module-level read-only mappings.  They are initialised
once at import and can never be mutated by callers.
"""

from __future__ import annotations

import re
from types import MappingProxyType
from typing import Final, Mapping, Optional, Pattern, Tuple

# ---------------------------------------------------------------------------
# Static tables
# ---------------------------------------------------------------------------

BASE_STATS: Final[frozenset] = frozenset({"points", "rebounds", "assists"})

#: Compound stat → the base stats it sums.
COMBO_BASES: Final[Mapping[str, frozenset]] = MappingProxyType({
    "pra": frozenset({"points", "rebounds", "assists"}),
    "pr": frozenset({"points", "rebounds"}),
    "pa": frozenset({"points", "assists"}),
    "ra": frozenset({"rebounds", "assists"}),
})

#: Relative reliability of each market when choosing between several
#: qualifying props for the same player.  Higher is safer.
STAT_SAFETY_WEIGHTS: Final[Mapping[str, int]] = MappingProxyType({
    "ra": 5,
    "rebounds": 4,
    "assists": 3,
    "points": 2,
    "pr": 2,
    "pa": 2,
    "pra": 1,
})

_PREFIX_RE: Final[Pattern[str]] = re.compile(r"^(player|batter|pitcher)_")
_NON_ALNUM_RE: Final[Pattern[str]] = re.compile(r"[^a-z0-9]+")


def _word(alternatives: str) -> str:
    # Whole-word match inside an underscore-joined token ("pts" but not "attempts").
    return rf"(?<![a-z])(?:{alternatives})(?![a-z])"


_P: Final[str] = _word("points|point|pts|pt")
_R: Final[str] = _word("rebounds|rebound|rebs|reb")
_A: Final[str] = _word("assists|assist|asts|ast")

#: Ordered longest-first.  Order is load-bearing.  Component order inside a
#: combo does not matter ("assists_points" is still ``pa``).
_STAT_PATTERNS: Final[Tuple[Tuple[str, Pattern[str]], ...]] = (
    ("pra", re.compile(rf"^pra$|^p_r_a$|^(?=.*{_P})(?=.*{_R})(?=.*{_A})")),
    ("pr", re.compile(rf"^pr$|^p_r$|^(?=.*{_P})(?=.*{_R})")),
    ("pa", re.compile(rf"^pa$|^p_a$|^(?=.*{_P})(?=.*{_A})")),
    ("ra", re.compile(rf"^ra$|^r_a$|^(?=.*{_R})(?=.*{_A})")),
    ("points", re.compile(_P)),
    ("rebounds", re.compile(_R)),
    ("assists", re.compile(_A)),
)


# ---------------------------------------------------------------------------
# Canonicalisation
# ---------------------------------------------------------------------------


def normalize_player_name(name: Optional[str]) -> str:
    """Canonical player identity: lower-cased and trimmed.

    Idempotent, and ``None`` maps to the empty string.
    """
    return (name or "").strip().lower()


def normalize_stat_type(raw: Optional[str]) -> str:
    """Map a raw market string to its canonical token.

    Unrecognised markets (``threes``, ``blocks``) are returned cleaned but
    otherwise unchanged; they behave as base stats with no components.

    Examples::

        normalize_stat_type("player_points_rebounds_assists") → "pra"
        normalize_stat_type("Pts+Rebs")                       → "pr"
        normalize_stat_type("player_assists")                 → "assists"
        normalize_stat_type("player_threes")                  → "threes"
    """
    cleaned = _NON_ALNUM_RE.sub("_", (raw or "").strip().lower()).strip("_")
    cleaned = _PREFIX_RE.sub("", cleaned)
    if not cleaned:
        return ""
    for token, pattern in _STAT_PATTERNS:
        if pattern.search(cleaned):
            return token
    return cleaned


def is_combo(stat: str) -> bool:
    """True when ``stat`` (already canonical) is a compound stat."""
    return stat in COMBO_BASES


def combo_components(stat: str) -> frozenset:
    """
    Base components of a canonical stat.

    A compound maps to the base stats it sums, a base stat to itself, and an
    unrecognised market to the empty set (it can never overlap anything).
    """
    if stat in COMBO_BASES:
        return COMBO_BASES[stat]
    if stat in BASE_STATS:
        return frozenset({stat})
    return frozenset()


def stat_safety_weight(stat: str) -> int:
    """Reliability weight of a canonical stat; unknown markets weigh 0."""
    return STAT_SAFETY_WEIGHTS.get(stat, 0)
