"""
Pairwise correlation estimation for parlay legs.

Every pair of legs gets a coefficient ρ from one of three sources, in order:

    same player, same event   → SportConfig.same_player_rho (fixed, > 0.5)
    same event, other player  → SportConfig.same_event_rho  (sport default)
    different events          → historical table lookup by
                                (sport, market pair), 0.0 when absent

The historical table is a snapshot fetched by a collaborator; this module
never performs I/O.  The resulting :class:`CorrelationMatrix` is symmetric
with a unit diagonal and feeds the joint-probability adjuster.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Literal, Optional, Sequence, Tuple

import numpy as np

from parlay_risk.core.sport_config import SportConfig, get_sport_config
from parlay_risk.schemas import CorrelationRecord, Leg

logger = logging.getLogger(__name__)

# Severity bands on the mean absolute off-diagonal correlation
_SEVERITY_LOW = 0.10
_SEVERITY_MEDIUM = 0.20
_SEVERITY_HIGH = 0.30

#: A single pair above this |ρ| flags the parlay as highly correlated.
HIGH_CORRELATION_THRESHOLD = 0.30

# Sample-size thresholds for the per-pair confidence label
_HIGH_CONFIDENCE_N = 100
_MEDIUM_CONFIDENCE_N = 20

PairType = Literal["same_player", "same_event", "cross_event"]
Severity = Literal["none", "low", "medium", "high"]


@dataclass(frozen=True)
class LegCorrelation:
    """Correlation detail for one off-diagonal pair (i < j)."""

    leg_index_1: int
    leg_index_2: int
    correlation: float
    pair_type: PairType
    sample_size: int
    confidence: Literal["high", "medium", "low", "estimated"]


@dataclass
class CorrelationMatrix:
    """Symmetric N×N correlation matrix plus its summary statistics."""

    matrix: np.ndarray
    correlations: List[LegCorrelation] = field(default_factory=list)
    avg_correlation: float = 0.0
    max_correlation: float = 0.0
    severity: Severity = "none"
    has_high_correlation: bool = False

    @property
    def leg_count(self) -> int:
        return int(self.matrix.shape[0])

    def to_dict(self) -> Dict:
        return {
            "matrix": self.matrix.round(4).tolist(),
            "leg_count": self.leg_count,
            "correlations": [c.__dict__ for c in self.correlations],
            "avg_correlation": round(self.avg_correlation, 4),
            "max_correlation": round(self.max_correlation, 4),
            "severity": self.severity,
            "has_high_correlation": self.has_high_correlation,
        }


# ---------------------------------------------------------------------------
# Historical lookup table
# ---------------------------------------------------------------------------

class CorrelationTable:
    """
    Read-only index over a snapshot of historical market-pair correlations.

    Keys are ``(sport, market_a, market_b)`` with the two markets sorted, so
    lookups succeed regardless of leg order.
    """

    def __init__(self, records: Iterable[CorrelationRecord] = ()):
        self._index: Dict[Tuple[str, str, str], CorrelationRecord] = {}
        for rec in records:
            key = self._key(rec.sport, rec.market_type_1, rec.market_type_2)
            existing = self._index.get(key)
            # Keep the better-sampled row when a snapshot has duplicates
            if existing is None or rec.sample_size > existing.sample_size:
                self._index[key] = rec

    @staticmethod
    def _key(sport: str, market_1: str, market_2: str) -> Tuple[str, str, str]:
        m1, m2 = sorted((market_1.strip().lower(), market_2.strip().lower()))
        return sport.strip().lower(), m1, m2

    def __len__(self) -> int:
        return len(self._index)

    def lookup(self, sport: str, market_1: str, market_2: str) -> Optional[CorrelationRecord]:
        return self._index.get(self._key(sport, market_1, market_2))


# ---------------------------------------------------------------------------
# Pair classification
# ---------------------------------------------------------------------------

def classify_pair(leg_a: Leg, leg_b: Leg) -> PairType:
    """Same-event pairs are split by player; everything else is cross-event."""
    same_event = bool(leg_a.event_id) and leg_a.event_id == leg_b.event_id
    if not same_event:
        return "cross_event"
    if leg_a.player_key and leg_a.player_key == leg_b.player_key:
        return "same_player"
    return "same_event"


def _confidence(sample_size: int, estimated: bool) -> str:
    if sample_size >= _HIGH_CONFIDENCE_N:
        return "high"
    if sample_size >= _MEDIUM_CONFIDENCE_N:
        return "medium"
    return "estimated" if estimated else "low"


def pair_correlation(
    leg_a: Leg,
    leg_b: Leg,
    sport_config: SportConfig,
    table: Optional[CorrelationTable] = None,
) -> Tuple[float, PairType, int, bool]:
    """
    Coefficient for one pair.

    Returns:
        ``(rho, pair_type, sample_size, is_estimated)``
    """
    pair_type = classify_pair(leg_a, leg_b)
    if pair_type == "same_player":
        return sport_config.same_player_rho, pair_type, 0, True
    if pair_type == "same_event":
        return sport_config.same_event_rho, pair_type, 0, True

    record = None
    if table is not None:
        record = table.lookup(sport_config.sport_id, leg_a.canonical_stat, leg_b.canonical_stat)
    if record is None:
        return 0.0, pair_type, 0, True
    return float(record.correlation_coefficient), pair_type, record.sample_size, False


def correlation_severity(avg_correlation: float) -> Severity:
    """
    Band the mean absolute correlation.

        none   < 0.10
        low    0.10 – < 0.20
        medium 0.20 – 0.30
        high   > 0.30
    """
    if avg_correlation < _SEVERITY_LOW:
        return "none"
    if avg_correlation < _SEVERITY_MEDIUM:
        return "low"
    if avg_correlation <= _SEVERITY_HIGH:
        return "medium"
    return "high"


# ---------------------------------------------------------------------------
# Matrix construction
# ---------------------------------------------------------------------------

def build_correlation_matrix(
    legs: Sequence[Leg],
    sport: str = "nba",
    table: Optional[CorrelationTable] = None,
) -> CorrelationMatrix:
    """
    Build the pairwise correlation matrix for an (already validated) parlay.

    Args:
        legs: The parlay's legs, in ticket order.
        sport: Sport identifier used for same-event defaults and table lookup.
        table: Historical snapshot; ``None`` means cross-event pairs are 0.

    Returns:
        :class:`CorrelationMatrix` with aggregates over |ρ_ij|, i < j.
    """
    cfg = get_sport_config(sport)
    n = len(legs)
    matrix = np.eye(n, dtype=float)
    details: List[LegCorrelation] = []

    for i in range(n):
        for j in range(i + 1, n):
            rho, pair_type, sample_size, estimated = pair_correlation(
                legs[i], legs[j], cfg, table
            )
            rho = float(np.clip(rho, -1.0, 1.0))
            matrix[i, j] = matrix[j, i] = rho
            details.append(LegCorrelation(
                leg_index_1=i,
                leg_index_2=j,
                correlation=rho,
                pair_type=pair_type,
                sample_size=sample_size,
                confidence=_confidence(sample_size, estimated),
            ))
            logger.debug("ρ[%d,%d] = %.3f (%s, n=%d)", i, j, rho, pair_type, sample_size)

    if not details:
        return CorrelationMatrix(matrix=matrix)

    magnitudes = np.abs([d.correlation for d in details])
    avg_corr = float(magnitudes.mean())
    max_corr = float(magnitudes.max())

    return CorrelationMatrix(
        matrix=matrix,
        correlations=details,
        avg_correlation=avg_corr,
        max_correlation=max_corr,
        severity=correlation_severity(avg_corr),
        has_high_correlation=max_corr > HIGH_CORRELATION_THRESHOLD,
    )


def format_correlation_impact(impact_pct: float) -> str:
    """Human-readable description of a correlation impact percentage."""
    if abs(impact_pct) < 0.1:
        return "No significant impact"
    if impact_pct > 0:
        return f"+{impact_pct:.2f}% more likely to hit"
    return f"{impact_pct:.2f}% less likely to hit"
