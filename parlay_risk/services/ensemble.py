"""
Ensemble consensus scoring.

Two views of "how much do independent signals agree on this pick":

Per-leg scoring (:func:`score_leg`)
    Each available leg signal contributes a signed, bounded number of points:

        hit rate       (hr − 0.5)·100               clamp ±30
        trend          hot +15 / cold −15
        consistency    (c − 50)·0.4                 clamp ±20
        line vs avg    ±15 · min(|avg − line| / 5, 1), sign by side
        confidence     (c − 0.5)·40                 clamp ±20

    The sum (clamped ±100) maps to a five-step label.  Parlay aggregation is
    driven by the weakest leg: one strongly negative leg escalates risk even
    when the mean looks fine.

Multi-engine scoring (:func:`combine_engine_signals`)
    Weighted vote over upstream engine verdicts, each engine weighted by its
    base weight, historical accuracy and sample size.
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional, Sequence

from parlay_risk.schemas import EngineSignal, Leg

logger = logging.getLogger(__name__)

# Per-leg contribution caps (points)
_HIT_RATE_CAP = 30.0
_TREND_POINTS = 15.0
_CONSISTENCY_CAP = 20.0
_CONSISTENCY_SCALE = 0.4
_LINE_VALUE_POINTS = 15.0
_LINE_VALUE_FULL_DEVIATION = 5.0
_CONFIDENCE_CAP = 20.0
_CONFIDENCE_SCALE = 40.0
_SCORE_CAP = 100.0

# Label thresholds
STRONG_THRESHOLD = 30.0
LEAN_THRESHOLD = 10.0

_HOT_TRENDS = ("hot", "up", "rising")
_COLD_TRENDS = ("cold", "down", "falling")


def _clamp(value: float, cap: float) -> float:
    return max(-cap, min(cap, value))


@dataclass
class EnsembleResult:
    consensus_score: float
    consensus: str
    contributions: Dict[str, float] = field(default_factory=dict)


@dataclass
class ParlayEnsembleSummary:
    overall_score: float
    overall_consensus: str
    weakest_leg: Optional[int]
    strongest_leg: Optional[int]
    parlay_risk: str
    recommendation: str

    def to_dict(self) -> Dict:
        d = asdict(self)
        d["overall_score"] = round(self.overall_score, 2)
        return d


# ---------------------------------------------------------------------------
# Per-leg scoring
# ---------------------------------------------------------------------------

def classify_consensus(score: float) -> str:
    if score >= STRONG_THRESHOLD:
        return "strong_pick"
    if score >= LEAN_THRESHOLD:
        return "lean_pick"
    if score > -LEAN_THRESHOLD:
        return "neutral"
    if score > -STRONG_THRESHOLD:
        return "lean_fade"
    return "strong_fade"


def _line_value(leg: Leg) -> Optional[float]:
    if leg.line is None or leg.season_avg is None:
        return None
    if leg.side not in ("over", "under"):
        return None
    deviation = leg.season_avg - leg.line
    magnitude = min(abs(deviation) / _LINE_VALUE_FULL_DEVIATION, 1.0)
    favours = deviation > 0 if leg.side == "over" else deviation < 0
    return _LINE_VALUE_POINTS * magnitude * (1.0 if favours else -1.0)


def score_leg(leg: Leg) -> EnsembleResult:
    """Sum every available signal on ``leg`` into a consensus score."""
    contributions: Dict[str, float] = {
        "hit_rate": _clamp((leg.probability - 0.5) * 100.0, _HIT_RATE_CAP),
    }

    if leg.trend_direction:
        trend = leg.trend_direction.strip().lower()
        if trend in _HOT_TRENDS:
            contributions["trend"] = _TREND_POINTS
        elif trend in _COLD_TRENDS:
            contributions["trend"] = -_TREND_POINTS
        else:
            contributions["trend"] = 0.0

    if leg.consistency_score is not None:
        contributions["consistency"] = _clamp(
            (leg.consistency_score - 50.0) * _CONSISTENCY_SCALE, _CONSISTENCY_CAP
        )

    line_value = _line_value(leg)
    if line_value is not None:
        contributions["line_value"] = line_value

    if leg.confidence is not None:
        # Accept both 0–1 and 0–100 confidence scales
        conf = leg.confidence / 100.0 if leg.confidence > 1.0 else leg.confidence
        contributions["confidence"] = _clamp((conf - 0.5) * _CONFIDENCE_SCALE, _CONFIDENCE_CAP)

    score = _clamp(sum(contributions.values()), _SCORE_CAP)
    return EnsembleResult(
        consensus_score=score,
        consensus=classify_consensus(score),
        contributions=contributions,
    )


# ---------------------------------------------------------------------------
# Parlay aggregation
# ---------------------------------------------------------------------------

def _parlay_risk(scores: Sequence[float], mean: float) -> str:
    weakest = min(scores)
    fade_legs = sum(1 for s in scores if s <= -LEAN_THRESHOLD)
    if weakest <= -STRONG_THRESHOLD or fade_legs >= 2:
        return "extreme"
    if weakest <= -LEAN_THRESHOLD:
        return "high"
    if weakest < LEAN_THRESHOLD or mean < STRONG_THRESHOLD:
        return "medium"
    return "low"


_RISK_RECOMMENDATIONS = {
    "low": "All legs carry supporting signals. Parlay is well constructed.",
    "medium": "Playable, but at least one leg lacks strong support. Consider a smaller stake.",
    "high": "A leg is leaning against you. Swap or drop the weakest leg.",
    "extreme": "Multiple or severe fade signals. Avoid this parlay.",
}


def aggregate_parlay_ensemble(results: Sequence[EnsembleResult]) -> ParlayEnsembleSummary:
    """Parlay-level summary; risk follows the weakest leg, not just the mean."""
    if not results:
        return ParlayEnsembleSummary(
            overall_score=0.0,
            overall_consensus="neutral",
            weakest_leg=None,
            strongest_leg=None,
            parlay_risk="extreme",
            recommendation="No legs to evaluate.",
        )

    scores = [r.consensus_score for r in results]
    mean = sum(scores) / len(scores)
    # list.index returns the first occurrence, so ties resolve to the lowest index
    weakest = scores.index(min(scores))
    strongest = scores.index(max(scores))
    risk = _parlay_risk(scores, mean)

    return ParlayEnsembleSummary(
        overall_score=mean,
        overall_consensus=classify_consensus(mean),
        weakest_leg=weakest,
        strongest_leg=strongest,
        parlay_risk=risk,
        recommendation=_RISK_RECOMMENDATIONS[risk],
    )


# ---------------------------------------------------------------------------
# Multi-engine consensus
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EngineWeight:
    name: str
    display_name: str
    base_weight: float
    accuracy_multiplier: float
    sample_size_threshold: int


DEFAULT_ENGINE_WEIGHTS: Dict[str, EngineWeight] = {
    w.name: w
    for w in (
        EngineWeight("sharp_money", "Sharp Money", 1.0, 1.2, 20),
        EngineWeight("hitrate", "Hit Rate", 0.9, 1.1, 30),
        EngineWeight("juiced_props", "Juiced Props", 0.85, 1.0, 25),
        EngineWeight("fatigue", "Fatigue Edge", 0.8, 1.15, 15),
        EngineWeight("god_mode", "God Mode", 0.75, 1.3, 10),
        EngineWeight("trap_scanner", "Trap Scanner", 0.9, 1.1, 20),
        EngineWeight("correlation", "Correlation Model", 0.7, 1.0, 50),
        EngineWeight("monte_carlo", "Monte Carlo", 0.85, 1.0, 100),
    )
}
_UNKNOWN_ENGINE = EngineWeight("unknown", "Unknown", 0.5, 1.0, 20)

# Untracked engines keep 70% of their base weight
_NO_HISTORY_PENALTY = 0.7


def calculate_engine_weight(
    engine: EngineWeight,
    historical_accuracy: Optional[float],
    sample_size: Optional[int],
) -> float:
    """
    Dynamic weight: base × accuracy multiplier × sample confidence × accuracy factor.

    Sample confidence rises linearly from 0.5 to 1.0 as the sample reaches
    the engine's threshold.  The accuracy factor maps 40–70% accuracy onto
    0.5–1.5.
    """
    if not historical_accuracy or not sample_size:
        return engine.base_weight * _NO_HISTORY_PENALTY

    sample_confidence = min(1.0, sample_size / engine.sample_size_threshold * 0.5 + 0.5)
    normalized = max(0.0, min(1.0, (historical_accuracy - 0.4) / 0.3))
    return engine.base_weight * engine.accuracy_multiplier * sample_confidence * (0.5 + normalized)


def combine_engine_signals(signals: Sequence[EngineSignal]) -> Dict:
    """
    Weighted consensus across engines.

    Returns a dict with ``consensus``, ``consensus_score`` (−100..100),
    ``weighted_confidence``, ``agreement_percent``, ``top_contributors``,
    ``conflicting_signals``, ``risk_level`` and ``recommendation``.
    """
    if not signals:
        return {
            "consensus": "neutral",
            "consensus_score": 0.0,
            "weighted_confidence": 0.0,
            "agreement_percent": 0.0,
            "top_contributors": [],
            "conflicting_signals": [],
            "risk_level": "high",
            "recommendation": "Insufficient data for consensus",
        }

    total_weight = 0.0
    weighted_score = 0.0
    weighted_conf = 0.0
    contributions: List[tuple] = []

    for sig in signals:
        engine = DEFAULT_ENGINE_WEIGHTS.get(sig.engine_name, _UNKNOWN_ENGINE)
        weight = calculate_engine_weight(engine, sig.historical_accuracy, sig.sample_size)
        direction = {"pick": 1.0, "fade": -1.0}.get(sig.recommendation, 0.0)
        contribution = direction * sig.confidence * weight
        weighted_score += contribution
        weighted_conf += sig.confidence * weight
        total_weight += weight
        contributions.append((sig.engine_name, contribution))

    score = weighted_score / total_weight * 100.0 if total_weight > 0 else 0.0
    if score >= 40:
        consensus = "strong_pick"
    elif score >= 15:
        consensus = "lean_pick"
    elif score <= -40:
        consensus = "strong_fade"
    elif score <= -15:
        consensus = "lean_fade"
    else:
        consensus = "neutral"

    picks = sum(1 for s in signals if s.recommendation == "pick")
    fades = sum(1 for s in signals if s.recommendation == "fade")
    agreement = max(picks, fades) / len(signals) * 100.0

    top = [name for name, c in sorted(contributions, key=lambda x: abs(x[1]), reverse=True)[:3]]
    conflicting = [
        s.engine_name for s in signals
        if (score > 0 and s.recommendation == "fade") or (score < 0 and s.recommendation == "pick")
    ]

    if agreement >= 70 and abs(score) >= 30:
        risk = "low"
    elif agreement >= 50 or abs(score) >= 20:
        risk = "medium"
    else:
        risk = "high"

    if consensus == "strong_pick":
        text = f"Strong consensus to PICK. {agreement:.0f}% of engines aligned."
    elif consensus == "lean_pick":
        text = "Lean PICK with moderate confidence. Some engines disagree."
    elif consensus == "strong_fade":
        text = f"Strong consensus to FADE. {agreement:.0f}% of engines aligned."
    elif consensus == "lean_fade":
        text = "Lean FADE. Proceed with caution."
    else:
        text = "Mixed signals - no clear consensus. Consider passing or reducing stake."

    logger.debug("Engine consensus %.1f (%s) from %d signals", score, consensus, len(signals))

    return {
        "consensus": consensus,
        "consensus_score": round(score, 2),
        "weighted_confidence": round(weighted_conf / total_weight, 4) if total_weight > 0 else 0.0,
        "agreement_percent": round(agreement, 1),
        "top_contributors": top,
        "conflicting_signals": conflicting,
        "risk_level": risk,
        "recommendation": text,
    }
