"""
Probability calibration tracking.

Answers "when we say 60%, does it hit 60% of the time?" from a snapshot of
settled (predicted, outcome) records:

    buckets       fixed-width slices of [0, 1], each with predicted mean,
                  realised hit rate and a Wilson 95% interval
    ECE / MCE     count-weighted mean / max of |actual − predicted|
    Brier         mean squared error, with Murphy decomposition
    log loss      cross-entropy
    grade         letter grade from the Brier score
    direction     over- vs under-confidence
    isotonic      pool-adjacent-violators mapping raw → calibrated

Records arrive pre-fetched; nothing here touches storage.
"""

import logging
import math
from dataclasses import asdict, dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from parlay_risk.schemas import CalibrationRecord

logger = logging.getLogger(__name__)

# 95% two-sided normal quantile
_Z = 1.96

DEFAULT_NUM_BUCKETS = 10

# Float slack when a prediction sits exactly on a bucket edge
_EDGE_EPSILON = 1e-9

# Mean (actual − predicted) beyond this is a directional bias
_DIRECTION_THRESHOLD = 0.03

# Log-loss clipping so log(0) never occurs
_LOG_EPS = 1e-15

# (max Brier, grade, label), checked in order
_GRADE_TABLE: Tuple[Tuple[float, str, str], ...] = (
    (0.10, "A+", "Excellent"),
    (0.15, "A", "Very Good"),
    (0.20, "B", "Good"),
    (0.25, "C", "Average"),
    (0.30, "D", "Below Average"),
)
_FAILING_GRADE = ("F", "Poor")

# (min sample size, tier), checked in order
_SAMPLE_TIERS: Tuple[Tuple[int, str], ...] = (
    (100, "excellent"),
    (50, "good"),
    (20, "moderate"),
    (10, "low"),
)


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WilsonInterval:
    """Wilson score interval, all fields in percent."""

    lower: float
    upper: float
    margin: float


@dataclass
class CalibrationBucket:
    bucket_start: float
    bucket_end: float
    predicted_avg: float
    actual_avg: float
    sample_count: int
    confidence_lower: float
    confidence_upper: float


@dataclass(frozen=True)
class BrierDecomposition:
    brier_score: float
    reliability: float
    resolution: float
    uncertainty: float
    calibration_error: float


@dataclass(frozen=True)
class IsotonicPoint:
    raw_probability: float
    calibrated_probability: float


# ---------------------------------------------------------------------------
# Wilson interval and sample tiers
# ---------------------------------------------------------------------------

def wilson_score(success_rate: float, sample_size: int) -> WilsonInterval:
    """
    Wilson 95% score interval for a hit rate.

    Args:
        success_rate: Observed hit rate in percent (0–100).
        sample_size: Number of trials.

    Returns:
        Interval bounds and half-width, in percent.  With no data the
        interval is the whole range: ``(0, 100, 50)``.
    """
    if sample_size <= 0:
        return WilsonInterval(lower=0.0, upper=100.0, margin=50.0)

    n = sample_size
    p = success_rate / 100.0
    z2 = _Z * _Z
    denom = 1.0 + z2 / n
    center = (p + z2 / (2 * n)) / denom
    margin = _Z * math.sqrt((p * (1.0 - p) + z2 / (4 * n)) / n) / denom

    return WilsonInterval(
        lower=min(100.0, max(0.0, (center - margin) * 100.0)),
        upper=min(100.0, max(0.0, (center + margin) * 100.0)),
        margin=margin * 100.0,
    )


def sample_size_tier(sample_size: int) -> str:
    """excellent (≥100), good (≥50), moderate (≥20), low (≥10), else insufficient."""
    for minimum, tier in _SAMPLE_TIERS:
        if sample_size >= minimum:
            return tier
    return "insufficient"


# ---------------------------------------------------------------------------
# Buckets, ECE and MCE
# ---------------------------------------------------------------------------

def _bucket_index(p: float, num_buckets: int) -> int:
    # Epsilon keeps edge values such as 0.58 * 50 = 28.999... in the upper
    # bucket; p == 1.0 belongs to the last bucket, not a phantom (n+1)th
    return min(int(math.floor(p * num_buckets + _EDGE_EPSILON)), num_buckets - 1)


def build_calibration_buckets(
    records: Sequence[CalibrationRecord],
    num_buckets: int = DEFAULT_NUM_BUCKETS,
    include_empty: bool = False,
) -> List[CalibrationBucket]:
    """
    Partition records into ``num_buckets`` equal-width predicted-probability bins.

    Empty bins are dropped unless ``include_empty`` is set, in which case they
    are returned with zero count and zero averages.
    """
    if num_buckets < 1:
        raise ValueError(f"num_buckets must be ≥ 1, got {num_buckets!r}.")

    width = 1.0 / num_buckets
    predicted_sums = [0.0] * num_buckets
    actual_sums = [0] * num_buckets
    counts = [0] * num_buckets

    for rec in records:
        idx = _bucket_index(rec.predicted, num_buckets)
        predicted_sums[idx] += rec.predicted
        actual_sums[idx] += rec.outcome
        counts[idx] += 1

    buckets: List[CalibrationBucket] = []
    for i in range(num_buckets):
        n = counts[i]
        if n == 0 and not include_empty:
            continue
        predicted_avg = predicted_sums[i] / n if n else 0.0
        actual_avg = actual_sums[i] / n if n else 0.0
        interval = wilson_score(actual_avg * 100.0, n)
        buckets.append(CalibrationBucket(
            bucket_start=round(i * width, 10),
            bucket_end=round((i + 1) * width, 10),
            predicted_avg=predicted_avg,
            actual_avg=actual_avg,
            sample_count=n,
            confidence_lower=interval.lower / 100.0,
            confidence_upper=interval.upper / 100.0,
        ))
    return buckets


def calculate_ece(buckets: Sequence[CalibrationBucket]) -> float:
    """Expected calibration error; 0.0 when there is no data."""
    total = sum(b.sample_count for b in buckets)
    if total == 0:
        return 0.0
    return sum(
        (b.sample_count / total) * abs(b.actual_avg - b.predicted_avg) for b in buckets
    )


def calculate_mce(buckets: Sequence[CalibrationBucket]) -> float:
    """Maximum calibration error over non-empty buckets; 0.0 when none."""
    gaps = [abs(b.actual_avg - b.predicted_avg) for b in buckets if b.sample_count > 0]
    return max(gaps) if gaps else 0.0


# ---------------------------------------------------------------------------
# Scoring rules
# ---------------------------------------------------------------------------

def brier_score(records: Sequence[CalibrationRecord]) -> float:
    if not records:
        return 0.0
    return sum((r.predicted - r.outcome) ** 2 for r in records) / len(records)


def log_loss(records: Sequence[CalibrationRecord]) -> float:
    if not records:
        return 0.0
    total = 0.0
    for r in records:
        p = min(1.0 - _LOG_EPS, max(_LOG_EPS, r.predicted))
        total -= r.outcome * math.log(p) + (1 - r.outcome) * math.log(1.0 - p)
    return total / len(records)


def decompose_brier(
    records: Sequence[CalibrationRecord],
    num_buckets: int = DEFAULT_NUM_BUCKETS,
) -> BrierDecomposition:
    """
    Murphy decomposition: Brier ≈ reliability − resolution + uncertainty.

    reliability  Σ w_b (predicted_b − actual_b)²   lower is better
    resolution   Σ w_b (actual_b − base rate)²     higher is better
    uncertainty  base rate · (1 − base rate)
    """
    if not records:
        return BrierDecomposition(0.0, 0.0, 0.0, 0.0, 0.0)

    total = len(records)
    base_rate = sum(r.outcome for r in records) / total
    reliability = 0.0
    resolution = 0.0
    for b in build_calibration_buckets(records, num_buckets):
        w = b.sample_count / total
        reliability += w * (b.predicted_avg - b.actual_avg) ** 2
        resolution += w * (b.actual_avg - base_rate) ** 2

    return BrierDecomposition(
        brier_score=brier_score(records),
        reliability=reliability,
        resolution=resolution,
        uncertainty=base_rate * (1.0 - base_rate),
        calibration_error=math.sqrt(reliability),
    )


def calibration_grade(brier: float) -> Tuple[str, str]:
    """Letter grade and label for a Brier score.  Lower Brier never grades worse."""
    for ceiling, grade, label in _GRADE_TABLE:
        if brier <= ceiling:
            return grade, label
    return _FAILING_GRADE


def calibration_direction(buckets: Sequence[CalibrationBucket]) -> str:
    """
    ``underconfident`` when outcomes beat predictions by more than 3 points on
    average, ``overconfident`` when they trail by more than 3, else
    ``calibrated``.
    """
    total = sum(b.sample_count for b in buckets)
    if total == 0:
        return "calibrated"
    bias = sum(b.sample_count * (b.actual_avg - b.predicted_avg) for b in buckets) / total
    if bias > _DIRECTION_THRESHOLD:
        return "underconfident"
    if bias < -_DIRECTION_THRESHOLD:
        return "overconfident"
    return "calibrated"


# ---------------------------------------------------------------------------
# Isotonic recalibration
# ---------------------------------------------------------------------------

def isotonic_regression(records: Sequence[CalibrationRecord]) -> List[IsotonicPoint]:
    """
    Monotone raw → calibrated mapping via pool adjacent violators.

    Records are sorted by prediction; each starts as its own block valued at
    its outcome.  Adjacent blocks whose values decrease are merged into their
    weighted mean until the sequence is non-decreasing.  Each surviving block
    yields one point at its mean raw prediction.
    """
    if not records:
        return []

    # Each block: [Σ weight·outcome, Σ weight, record count, Σ raw prediction]
    blocks: List[List[float]] = []
    for rec in sorted(records, key=lambda r: r.predicted):
        blocks.append([rec.weight * rec.outcome, rec.weight, 1, rec.predicted])
        while len(blocks) > 1 and (
            blocks[-2][0] / blocks[-2][1] > blocks[-1][0] / blocks[-1][1]
        ):
            top = blocks.pop()
            prev = blocks[-1]
            for k in range(4):
                prev[k] += top[k]

    return [
        IsotonicPoint(
            raw_probability=raw_sum / count,
            calibrated_probability=value_sum / weight,
        )
        for value_sum, weight, count, raw_sum in blocks
    ]


def apply_isotonic(raw_probability: float, mapping: Sequence[IsotonicPoint]) -> float:
    """Piecewise-linear interpolation through ``mapping``, flat beyond its ends."""
    if not mapping:
        return raw_probability
    points = sorted(mapping, key=lambda m: m.raw_probability)
    if raw_probability <= points[0].raw_probability:
        return points[0].calibrated_probability
    if raw_probability >= points[-1].raw_probability:
        return points[-1].calibrated_probability

    for lo, hi in zip(points, points[1:]):
        if lo.raw_probability <= raw_probability < hi.raw_probability:
            t = (raw_probability - lo.raw_probability) / (hi.raw_probability - lo.raw_probability)
            return lo.calibrated_probability + t * (hi.calibrated_probability - lo.calibrated_probability)
    return raw_probability


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------

def build_calibration_report(
    records: Sequence[CalibrationRecord],
    num_buckets: int = DEFAULT_NUM_BUCKETS,
) -> Dict:
    """Everything the calibration dashboard shows, in one dict."""
    buckets = build_calibration_buckets(records, num_buckets)
    brier = brier_score(records)
    grade, label = calibration_grade(brier)
    decomposition = decompose_brier(records, num_buckets)
    hits = sum(r.outcome for r in records)
    overall: Optional[WilsonInterval] = None
    if records:
        overall = wilson_score(hits / len(records) * 100.0, len(records))

    logger.info(
        "Calibration report: n=%d brier=%.4f grade=%s", len(records), brier, grade
    )

    return {
        "sample_size": len(records),
        "sample_tier": sample_size_tier(len(records)),
        "hit_rate": round(hits / len(records), 4) if records else None,
        "hit_rate_interval": asdict(overall) if overall else None,
        "buckets": [asdict(b) for b in buckets],
        "ece": round(calculate_ece(buckets), 4),
        "mce": round(calculate_mce(buckets), 4),
        "brier_score": round(brier, 4),
        "log_loss": round(log_loss(records), 4),
        "decomposition": {k: round(v, 4) for k, v in asdict(decomposition).items()},
        "grade": grade,
        "grade_label": label,
        "direction": calibration_direction(buckets),
        "isotonic": [asdict(p) for p in isotonic_regression(records)],
    }
