"""
Tests for the FastAPI surface in parlay_risk/main.py

Run with: pytest tests/test_api.py -v
"""

import pytest
from fastapi.testclient import TestClient

from parlay_risk.auth import VALID_API_KEYS
from parlay_risk.main import app


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def headers():
    return {"X-API-Key": next(iter(VALID_API_KEYS))}


BANKROLL = {"bankrollAmount": 1000, "kellyMultiplier": 0.5, "maxBetPercent": 0.05}


def _leg(player, stat="player_points", event=None, probability=0.6, odds=100):
    return {
        "playerName": player,
        "propType": stat,
        "eventId": event,
        "probability": probability,
        "odds": odds,
    }


class TestPublic:

    def test_root(self, client):
        body = client.get("/").json()
        assert body["status"] == "operational"

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}


class TestAuth:

    def test_missing_key(self, client):
        resp = client.post("/api/parlays/validate", json={"legs": []})
        assert resp.status_code == 401

    def test_wrong_key(self, client):
        resp = client.post(
            "/api/parlays/validate", json={"legs": []}, headers={"X-API-Key": "nope"}
        )
        assert resp.status_code == 401


class TestParlayEndpoints:

    def test_validate_reports_failures(self, client, headers):
        payload = {
            "legs": [_leg("Bub Carrington", "points", "g1"), _leg("Bub Carrington", "pra", "g1")],
            "mode": "safe",
        }
        body = client.post("/api/parlays/validate", json=payload, headers=headers).json()
        assert body == {
            "accepted": False,
            "failed_rules": ["same_player", "combo_overlap", "same_event"],
        }

    def test_evaluate_accepted(self, client, headers):
        payload = {
            "legs": [_leg("A", event="g1"), _leg("B", "player_assists", "g2")],
            "sport": "nba",
            "bankroll": BANKROLL,
        }
        resp = client.post("/api/parlays/evaluate", json=payload, headers=headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["accepted"] is True
        assert body["joint_probability"]["correlated_probability"] == pytest.approx(0.36)
        assert body["kelly"]["recommended_stake"] == pytest.approx(50.0)
        assert body["ticket"].startswith("2-Leg Parlay")

    def test_evaluate_rejected_has_null_sections(self, client, headers):
        payload = {"legs": [_leg("A", "points", "g1"), _leg("a", "rebounds", "g2")]}
        body = client.post("/api/parlays/evaluate", json=payload, headers=headers).json()
        assert body["accepted"] is False
        assert body["kelly"] is None
        assert body["correlation"] is None

    def test_evaluate_uses_correlation_snapshot(self, client, headers):
        payload = {
            "legs": [_leg("A", "points", "g1"), _leg("B", "assists", "g2")],
            "correlations": [{
                "sport": "nba", "marketType1": "assists", "marketType2": "points",
                "correlationCoefficient": 0.12, "sampleSize": 80,
            }],
            "bankroll": BANKROLL,
        }
        body = client.post("/api/parlays/evaluate", json=payload, headers=headers).json()
        assert body["correlation"]["matrix"][0][1] == pytest.approx(0.12)

    def test_evaluate_invalid_odds(self, client, headers):
        payload = {"legs": [_leg("A", odds=50), _leg("B")]}
        resp = client.post("/api/parlays/evaluate", json=payload, headers=headers)
        assert resp.status_code == 422

    def test_build(self, client, headers):
        payload = {
            "pool": [_leg(name, event=f"g{i}") for i, name in enumerate("ABCD")],
            "max_legs": 2,
            "bankroll": BANKROLL,
        }
        body = client.post("/api/parlays/build", json=payload, headers=headers).json()
        assert body["count"] == 2
        assert len(body["parlays"]) == 2
        assert all(p["accepted"] for p in body["parlays"])

    @pytest.mark.parametrize("pool_size,max_legs,status", [
        (20, 4, 200),
        (21, 3, 422),
        (8, 5, 422),
        (8, 1, 422),
    ])
    def test_build_bounds(self, client, headers, pool_size, max_legs, status):
        payload = {
            "pool": [_leg(f"P{i}", event=f"g{i}", probability=0.3) for i in range(pool_size)],
            "max_legs": max_legs,
            "bankroll": BANKROLL,
        }
        resp = client.post("/api/parlays/build", json=payload, headers=headers)
        assert resp.status_code == status


class TestSizingEndpoints:

    def test_kelly_from_combined_inputs(self, client, headers):
        payload = {
            "probability": 0.35,
            "total_decimal_odds": 3.64,
            "correlation_factor": 1.0,
            "bankroll": BANKROLL,
        }
        body = client.post("/api/kelly/parlay", json=payload, headers=headers).json()
        assert body["kelly"]["edge_percent"] == pytest.approx(27.4, abs=0.01)
        assert body["variance"]["risk_of_ruin"] >= 0.0

    def test_kelly_requires_inputs(self, client, headers):
        resp = client.post("/api/kelly/parlay", json={"probability": 0.4}, headers=headers)
        assert resp.status_code == 422


class TestCalibrationEndpoints:

    def test_report(self, client, headers):
        records = [{"predicted": 0.6, "outcome": 1}] * 6 + [{"predicted": 0.6, "outcome": 0}] * 4
        body = client.post(
            "/api/calibration/report", json={"records": records}, headers=headers
        ).json()
        assert body["sample_size"] == 10
        assert body["sample_tier"] == "low"
        assert len(body["buckets"]) == 1

    def test_wilson(self, client, headers):
        resp = client.get(
            "/api/calibration/wilson",
            params={"success_rate": 60, "sample_size": 50},
            headers=headers,
        )
        body = resp.json()
        assert body["lower"] < 60 < body["upper"]
        assert body["tier"] == "good"

    def test_wilson_rejects_out_of_range(self, client, headers):
        resp = client.get(
            "/api/calibration/wilson",
            params={"success_rate": 140, "sample_size": 50},
            headers=headers,
        )
        assert resp.status_code == 422


class TestEnsembleEndpoint:

    def test_legs_and_summary(self, client, headers):
        payload = {
            "legs": [
                {**_leg("A"), "trendDirection": "hot", "consistencyScore": 80},
                {**_leg("B", probability=0.3), "trendDirection": "cold"},
            ]
        }
        body = client.post("/api/ensemble/parlay", json=payload, headers=headers).json()
        assert len(body["legs"]) == 2
        assert body["legs"][0]["label"] == "A OVER player_points"
        assert body["summary"]["weakest_leg"] == 1
        assert body["summary"]["parlay_risk"] == "extreme"
        assert "engine_consensus" not in body

    def test_engine_signals(self, client, headers):
        payload = {
            "legs": [_leg("A")],
            "engineSignals": [
                {"engineName": "sharp_money", "recommendation": "pick", "confidence": 0.8},
            ],
        }
        body = client.post("/api/ensemble/parlay", json=payload, headers=headers).json()
        assert body["engine_consensus"]["consensus"] == "strong_pick"
