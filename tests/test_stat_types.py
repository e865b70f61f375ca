"""
Tests for core/stat_types.py and core/sport_config.py

Run with: pytest tests/test_stat_types.py -v
"""

from dataclasses import replace

import pytest

from parlay_risk.core.sport_config import SportConfig, get_sport_config
from parlay_risk.core.stat_types import (
    COMBO_BASES,
    STAT_SAFETY_WEIGHTS,
    combo_components,
    is_combo,
    normalize_player_name,
    normalize_stat_type,
    stat_safety_weight,
)


class TestNormalizeStatType:

    @pytest.mark.parametrize("raw,expected", [
        ("player_points_rebounds_assists", "pra"),
        ("PRA", "pra"),
        ("pts+rebs+asts", "pra"),
        ("p+r+a", "pra"),
        ("player_points_rebounds", "pr"),
        ("Pts+Rebs", "pr"),
        ("player_points_assists", "pa"),
        ("assists_points", "pa"),
        ("player_rebounds_assists", "ra"),
        ("reb+ast", "ra"),
        ("player_points", "points"),
        ("PTS", "points"),
        ("player_rebounds", "rebounds"),
        ("player_assists", "assists"),
        ("batter_points", "points"),
    ])
    def test_known_markets(self, raw, expected):
        assert normalize_stat_type(raw) == expected

    def test_combo_before_base(self):
        # A three-component market must never canonicalise to a base stat
        assert normalize_stat_type("points_rebounds_assists") != "points"

    def test_unknown_market_is_cleaned(self):
        assert normalize_stat_type("player_threes") == "threes"
        assert normalize_stat_type("  Blocks ") == "blocks"

    def test_empty(self):
        assert normalize_stat_type("") == ""
        assert normalize_stat_type(None) == ""

    def test_attempts_is_not_points(self):
        assert normalize_stat_type("player_field_goal_attempts") == "field_goal_attempts"

    @pytest.mark.parametrize("raw", ["player_points", "PRA", "Pts+Rebs", "threes"])
    def test_idempotent(self, raw):
        once = normalize_stat_type(raw)
        assert normalize_stat_type(once) == once


class TestNormalizePlayerName:

    def test_case_and_whitespace(self):
        assert normalize_player_name("  LeBron James ") == "lebron james"
        assert normalize_player_name("LEBRON JAMES") == normalize_player_name("lebron james")

    def test_idempotent(self):
        once = normalize_player_name(" Nikola Jokić ")
        assert normalize_player_name(once) == once

    def test_none(self):
        assert normalize_player_name(None) == ""


class TestStaticTables:

    def test_combo_bases_read_only(self):
        with pytest.raises(TypeError):
            COMBO_BASES["pra"] = frozenset()

    def test_safety_weights_read_only(self):
        with pytest.raises(TypeError):
            STAT_SAFETY_WEIGHTS["pra"] = 10

    def test_is_combo(self):
        assert is_combo("pra")
        assert not is_combo("points")

    def test_components(self):
        assert combo_components("pr") == {"points", "rebounds"}
        assert combo_components("assists") == {"assists"}
        assert combo_components("") == frozenset()
        assert combo_components("threes") == frozenset()

    def test_safety_weight_unknown_is_zero(self):
        assert stat_safety_weight("ra") == 5
        assert stat_safety_weight("threes") == 0


class TestSportConfig:

    @pytest.mark.parametrize("sport,rho", [
        ("nba", 0.20),
        ("wnba", 0.20),
        ("ncaab", 0.18),
        ("nfl", 0.15),
        ("nhl", 0.12),
        ("mlb", 0.10),
        ("cricket", 0.15),
    ])
    def test_same_event_rho(self, sport, rho):
        assert get_sport_config(sport).same_event_rho == pytest.approx(rho)

    def test_same_player_rho_exceeds_half(self):
        assert get_sport_config("nba").same_player_rho > 0.5

    def test_odds_api_key_and_case(self):
        assert get_sport_config("basketball_nba").sport_id == "nba"
        assert get_sport_config("NFL").sport_id == "nfl"

    def test_frozen(self):
        cfg = SportConfig.nba()
        with pytest.raises(Exception):
            cfg.same_event_rho = 0.5

    def test_replace_validates(self):
        with pytest.raises(ValueError):
            replace(SportConfig.nba(), same_player_rho=0.4)
        with pytest.raises(ValueError):
            replace(SportConfig.nba(), same_event_rho=1.5)
