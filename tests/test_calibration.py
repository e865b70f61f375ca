"""
Tests for services/calibration.py

Run with: pytest tests/test_calibration.py -v
"""

import math

import pytest

from parlay_risk.schemas import CalibrationRecord
from parlay_risk.services.calibration import (
    apply_isotonic,
    brier_score,
    build_calibration_buckets,
    build_calibration_report,
    calculate_ece,
    calculate_mce,
    calibration_direction,
    calibration_grade,
    decompose_brier,
    isotonic_regression,
    log_loss,
    sample_size_tier,
    wilson_score,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _rec(predicted, outcome, weight=1.0):
    return CalibrationRecord(predicted=predicted, outcome=outcome, weight=weight)


def _block(predicted, hits, total):
    """``total`` records at ``predicted`` with ``hits`` successes."""
    return [_rec(predicted, 1) for _ in range(hits)] + [
        _rec(predicted, 0) for _ in range(total - hits)
    ]


# ---------------------------------------------------------------------------
# Wilson interval
# ---------------------------------------------------------------------------

class TestWilsonScore:

    def test_no_data(self):
        w = wilson_score(55.0, 0)
        assert (w.lower, w.upper, w.margin) == (0.0, 100.0, 50.0)

    def test_matches_closed_form(self):
        n, p, z = 100, 0.6, 1.96
        denom = 1 + z * z / n
        center = (p + z * z / (2 * n)) / denom
        margin = z * math.sqrt((p * (1 - p) + z * z / (4 * n)) / n) / denom
        w = wilson_score(60.0, n)
        assert w.lower == pytest.approx((center - margin) * 100)
        assert w.upper == pytest.approx((center + margin) * 100)
        assert w.margin == pytest.approx(margin * 100)

    def test_contains_observed_rate(self):
        w = wilson_score(60.0, 50)
        assert w.lower < 60.0 < w.upper

    def test_width_shrinks_with_sample(self):
        widths = [wilson_score(60.0, n).margin for n in (5, 10, 20, 50, 100, 500)]
        assert all(a > b for a, b in zip(widths, widths[1:]))

    @pytest.mark.parametrize("rate", [0.0, 100.0])
    def test_bounds_stay_in_range(self, rate):
        w = wilson_score(rate, 10)
        assert 0.0 <= w.lower <= w.upper <= 100.0


@pytest.mark.parametrize("n,tier", [
    (0, "insufficient"),
    (9, "insufficient"),
    (10, "low"),
    (20, "moderate"),
    (50, "good"),
    (99, "good"),
    (100, "excellent"),
])
def test_sample_size_tier(n, tier):
    assert sample_size_tier(n) == tier


# ---------------------------------------------------------------------------
# Buckets
# ---------------------------------------------------------------------------

class TestBuckets:

    def test_empty_buckets_omitted_by_default(self):
        buckets = build_calibration_buckets(_block(0.65, 13, 20))
        assert len(buckets) == 1
        b = buckets[0]
        assert b.bucket_start == pytest.approx(0.6)
        assert b.bucket_end == pytest.approx(0.7)
        assert b.sample_count == 20
        assert b.predicted_avg == pytest.approx(0.65)
        assert b.actual_avg == pytest.approx(0.65)
        assert b.confidence_lower < 0.65 < b.confidence_upper

    def test_include_empty(self):
        buckets = build_calibration_buckets(_block(0.65, 13, 20), include_empty=True)
        assert len(buckets) == 10
        empty = [b for b in buckets if b.sample_count == 0]
        assert len(empty) == 9
        assert all(b.actual_avg == 0.0 and b.predicted_avg == 0.0 for b in empty)
        assert calculate_ece(buckets) == pytest.approx(calculate_ece(build_calibration_buckets(_block(0.65, 13, 20))))

    def test_prediction_of_one_goes_to_last_bucket(self):
        buckets = build_calibration_buckets([_rec(1.0, 1)])
        assert buckets[0].bucket_end == pytest.approx(1.0)
        assert buckets[0].bucket_start == pytest.approx(0.9)

    def test_prediction_of_zero(self):
        buckets = build_calibration_buckets([_rec(0.0, 0)])
        assert buckets[0].bucket_start == 0.0

    def test_custom_bucket_count(self):
        buckets = build_calibration_buckets(_block(0.3, 1, 4) + _block(0.8, 3, 4), num_buckets=4)
        assert [b.bucket_start for b in buckets] == [0.25, 0.75]

    def test_edge_prediction_lands_in_upper_bucket(self):
        buckets = build_calibration_buckets([_rec(0.58, 1)], num_buckets=50)
        assert buckets[0].bucket_start == pytest.approx(0.58)
        assert buckets[0].bucket_end == pytest.approx(0.60)

    @pytest.mark.parametrize("num_buckets", [10, 20, 25, 50])
    def test_every_boundary_opens_its_own_bucket(self, num_buckets):
        for k in range(num_buckets):
            edge = round(k / num_buckets, 2)
            buckets = build_calibration_buckets([_rec(edge, 1)], num_buckets=num_buckets)
            assert buckets[0].bucket_start == pytest.approx(k / num_buckets), edge

    def test_invalid_bucket_count(self):
        with pytest.raises(ValueError):
            build_calibration_buckets([], num_buckets=0)


class TestEceMce:

    def test_perfect_calibration(self):
        records = _block(0.25, 1, 4) + _block(0.75, 3, 4)
        buckets = build_calibration_buckets(records)
        assert calculate_ece(buckets) == pytest.approx(0.0)
        assert calculate_mce(buckets) == pytest.approx(0.0)

    def test_known_errors(self):
        # 0.55 bucket hits 80% (gap 0.25, n=10); 0.35 bucket hits 30% (gap 0.05, n=30)
        records = _block(0.55, 8, 10) + _block(0.35, 9, 30)
        buckets = build_calibration_buckets(records)
        assert calculate_ece(buckets) == pytest.approx(0.25 * 10 / 40 + 0.05 * 30 / 40)
        assert calculate_mce(buckets) == pytest.approx(0.25)

    def test_mce_at_least_ece(self):
        records = _block(0.15, 5, 10) + _block(0.45, 2, 10) + _block(0.85, 6, 10)
        buckets = build_calibration_buckets(records)
        assert calculate_mce(buckets) >= calculate_ece(buckets)

    def test_empty(self):
        assert calculate_ece([]) == 0.0
        assert calculate_mce([]) == 0.0


# ---------------------------------------------------------------------------
# Scores, grade, direction
# ---------------------------------------------------------------------------

class TestScores:

    def test_brier(self):
        records = [_rec(0.8, 1), _rec(0.3, 0)]
        assert brier_score(records) == pytest.approx((0.04 + 0.09) / 2)

    def test_brier_empty(self):
        assert brier_score([]) == 0.0

    def test_log_loss(self):
        records = [_rec(0.8, 1), _rec(0.3, 0)]
        expected = -(math.log(0.8) + math.log(0.7)) / 2
        assert log_loss(records) == pytest.approx(expected)

    def test_log_loss_never_infinite(self):
        assert math.isfinite(log_loss([_rec(0.0, 1), _rec(1.0, 0)]))

    def test_decomposition(self):
        records = _block(0.25, 1, 4) + _block(0.75, 3, 4)
        d = decompose_brier(records)
        assert d.reliability == pytest.approx(0.0)
        assert d.uncertainty == pytest.approx(0.25)
        assert d.resolution == pytest.approx(0.0625)
        assert d.brier_score == pytest.approx(d.reliability - d.resolution + d.uncertainty)

    def test_decomposition_empty(self):
        assert decompose_brier([]).brier_score == 0.0


class TestGrade:

    @pytest.mark.parametrize("brier,grade", [
        (0.05, "A+"),
        (0.10, "A+"),
        (0.12, "A"),
        (0.18, "B"),
        (0.24, "C"),
        (0.29, "D"),
        (0.31, "F"),
    ])
    def test_table(self, brier, grade):
        assert calibration_grade(brier)[0] == grade

    def test_monotonic(self):
        order = ["A+", "A", "B", "C", "D", "F"]
        grades = [calibration_grade(b / 100)[0] for b in range(0, 50)]
        ranks = [order.index(g) for g in grades]
        assert ranks == sorted(ranks)


class TestDirection:

    def test_underconfident(self):
        buckets = build_calibration_buckets(_block(0.55, 8, 10))
        assert calibration_direction(buckets) == "underconfident"

    def test_overconfident(self):
        buckets = build_calibration_buckets(_block(0.75, 5, 10))
        assert calibration_direction(buckets) == "overconfident"

    def test_calibrated(self):
        buckets = build_calibration_buckets(_block(0.65, 13, 20))
        assert calibration_direction(buckets) == "calibrated"

    def test_no_data(self):
        assert calibration_direction([]) == "calibrated"


# ---------------------------------------------------------------------------
# Isotonic
# ---------------------------------------------------------------------------

class TestIsotonic:

    def test_empty(self):
        assert isotonic_regression([]) == []

    def test_output_is_monotone(self):
        records = [_rec(0.1, 1), _rec(0.2, 0), _rec(0.3, 0), _rec(0.4, 1), _rec(0.5, 1), _rec(0.6, 0)]
        mapping = isotonic_regression(records)
        values = [p.calibrated_probability for p in mapping]
        raws = [p.raw_probability for p in mapping]
        assert values == sorted(values)
        assert raws == sorted(raws)

    def test_pools_violators(self):
        mapping = isotonic_regression([_rec(0.2, 1), _rec(0.4, 0)])
        assert len(mapping) == 1
        assert mapping[0].raw_probability == pytest.approx(0.3)
        assert mapping[0].calibrated_probability == pytest.approx(0.5)

    def test_weights(self):
        mapping = isotonic_regression([_rec(0.2, 1, weight=3.0), _rec(0.4, 0, weight=1.0)])
        assert mapping[0].calibrated_probability == pytest.approx(0.75)

    def test_apply_interpolates(self):
        mapping = isotonic_regression([_rec(0.2, 0), _rec(0.8, 1)])
        assert apply_isotonic(0.5, mapping) == pytest.approx(0.5)
        assert apply_isotonic(0.05, mapping) == 0.0
        assert apply_isotonic(0.95, mapping) == 1.0

    def test_apply_without_mapping(self):
        assert apply_isotonic(0.42, []) == 0.42


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------

def test_report_bundle():
    records = _block(0.55, 8, 10) + _block(0.35, 9, 30)
    report = build_calibration_report(records)
    assert report["sample_size"] == 40
    assert report["sample_tier"] == "moderate"
    assert report["hit_rate"] == pytest.approx(17 / 40)
    assert len(report["buckets"]) == 2
    assert report["mce"] >= report["ece"]
    assert report["grade"] in {"A+", "A", "B", "C", "D", "F"}
    assert report["direction"] in {"underconfident", "overconfident", "calibrated"}
    assert report["isotonic"]


def test_report_empty():
    report = build_calibration_report([])
    assert report["sample_size"] == 0
    assert report["buckets"] == []
    assert report["ece"] == 0.0
    assert report["hit_rate"] is None
    assert report["sample_tier"] == "insufficient"
