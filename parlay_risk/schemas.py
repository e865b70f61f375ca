"""
Pydantic schemas for the parlay risk engine.

These models are the boundary adapter between collaborators and the engine.
Upstream scanners send leg objects with a mix of snake_case and camelCase
field names (``player_name`` / ``playerName``, ``stat_type`` / ``propType``);
every alias is resolved here, once, so the services only ever see one
spelling.  Leg-like values are frozen: the engine reads them, never edits them.
"""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from parlay_risk.core.odds_math import to_decimal
from parlay_risk.core.stat_types import normalize_player_name, normalize_stat_type

ParlayMode = Literal["safe", "high_risk"]
JointMethod = Literal["factor", "copula"]

# Builder limits: 20 legs at 4 per ticket is under 6,200 combinations
MAX_BUILD_POOL = 20
MAX_PARLAY_LEGS = 4

# Default parlay stake cap, below the usual 5% singles cap
PARLAY_MAX_BET_PERCENT = 0.03


def _aliases(*names: str) -> AliasChoices:
    return AliasChoices(*names)


# ---------------------------------------------------------------------------
# Legs and prop candidates
# ---------------------------------------------------------------------------

class Leg(BaseModel):
    """
    One proposition bet inside a parlay.

    ``probability`` is the model's win probability (or historical hit rate)
    for the chosen ``side``.  ``odds`` is the quoted price in ``odds_format``.
    The trailing optional fields are signal metadata consumed only by the
    ensemble scorer.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    player_name: str = Field(
        "", validation_alias=_aliases("player_name", "playerName", "player")
    )
    stat_type: str = Field(
        "",
        validation_alias=_aliases(
            "stat_type", "statType", "prop_type", "propType", "market_type", "marketType"
        ),
    )
    event_id: Optional[str] = Field(
        None, validation_alias=_aliases("event_id", "eventId", "game_id", "gameId")
    )
    side: str = Field(
        "over",
        validation_alias=_aliases("side", "recommended_side", "recommendedSide"),
    )
    probability: float = Field(
        0.5,
        ge=0.0,
        le=1.0,
        validation_alias=_aliases(
            "probability", "win_probability", "winProbability", "hit_rate", "hitRate"
        ),
    )
    odds: float = Field(-110.0, validation_alias=_aliases("odds", "price"))
    odds_format: Literal["american", "decimal"] = Field(
        "american", validation_alias=_aliases("odds_format", "oddsFormat")
    )

    # Ensemble signal metadata
    line: Optional[float] = Field(
        None, validation_alias=_aliases("line", "current_line", "currentLine")
    )
    season_avg: Optional[float] = Field(
        None, validation_alias=_aliases("season_avg", "seasonAvg")
    )
    trend_direction: Optional[str] = Field(
        None, validation_alias=_aliases("trend_direction", "trendDirection")
    )
    consistency_score: Optional[float] = Field(
        None, validation_alias=_aliases("consistency_score", "consistencyScore")
    )
    confidence: Optional[float] = Field(
        None, validation_alias=_aliases("confidence", "confidence_score", "confidenceScore")
    )

    @field_validator("event_id", mode="before")
    @classmethod
    def coerce_event_id(cls, v):
        if v is None:
            return None
        text = str(v).strip()
        return text or None

    @field_validator("side", mode="before")
    @classmethod
    def normalize_side(cls, v):
        return str(v or "over").strip().lower()

    @model_validator(mode="after")
    def validate_odds(self) -> "Leg":
        # Raises ValueError on -99..99 American or decimal <= 1.0
        to_decimal(self.odds, self.odds_format)
        return self

    @property
    def player_key(self) -> str:
        return normalize_player_name(self.player_name)

    @property
    def canonical_stat(self) -> str:
        return normalize_stat_type(self.stat_type)

    @property
    def decimal_odds(self) -> float:
        return to_decimal(self.odds, self.odds_format)

    @property
    def label(self) -> str:
        return f"{self.player_name} {self.side.upper()} {self.stat_type}".strip()


class PropCandidate(BaseModel):
    """A qualifying prop for one player, as produced by the hit-rate scanner."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    player_name: str = Field(
        "", validation_alias=_aliases("player_name", "playerName", "player")
    )
    stat_type: str = Field(
        "", validation_alias=_aliases("stat_type", "statType", "prop_type", "propType")
    )
    hit_rate_over: float = Field(
        0.0,
        ge=0.0,
        le=1.0,
        validation_alias=_aliases("hit_rate_over", "hit_rate_over_10", "hitRateOver"),
    )
    hit_rate_under: float = Field(
        0.0,
        ge=0.0,
        le=1.0,
        validation_alias=_aliases("hit_rate_under", "hit_rate_under_10", "hitRateUnder"),
    )
    edge: float = 0.0
    volatility: float = Field(0.0, ge=0.0)
    recommendation: str = Field(
        "OVER",
        validation_alias=_aliases("recommendation", "recommended_side", "recommendedSide"),
    )

    @property
    def canonical_stat(self) -> str:
        return normalize_stat_type(self.stat_type)

    @property
    def hit_rate(self) -> float:
        """Hit rate for the candidate's own recommended direction."""
        if self.recommendation.strip().upper().startswith("UNDER"):
            return self.hit_rate_under
        return self.hit_rate_over


# ---------------------------------------------------------------------------
# Configuration and historical snapshots
# ---------------------------------------------------------------------------

class BankrollConfig(BaseModel):
    """Bankroll configuration supplied by the user's settings."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    bankroll_amount: float = Field(
        1000.0, ge=0.0, validation_alias=_aliases("bankroll_amount", "bankrollAmount")
    )
    kelly_multiplier: float = Field(
        0.5,
        gt=0.0,
        le=1.0,
        validation_alias=_aliases("kelly_multiplier", "kellyMultiplier"),
        description="1.0 = full Kelly, 0.5 = half, 0.25 = quarter",
    )
    max_bet_percent: float = Field(
        PARLAY_MAX_BET_PERCENT,
        gt=0.0,
        le=0.25,
        validation_alias=_aliases("max_bet_percent", "maxBetPercent"),
        description="Maximum stake as a fraction of bankroll (0.03 = 3%)",
    )


class CorrelationRecord(BaseModel):
    """One row of the historical per-sport market-pair correlation table."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    sport: str
    market_type_1: str = Field(validation_alias=_aliases("market_type_1", "marketType1"))
    market_type_2: str = Field(validation_alias=_aliases("market_type_2", "marketType2"))
    correlation_coefficient: float = Field(
        ge=-1.0,
        le=1.0,
        validation_alias=_aliases(
            "correlation_coefficient", "correlationCoefficient", "coefficient"
        ),
    )
    sample_size: int = Field(0, ge=0, validation_alias=_aliases("sample_size", "sampleSize"))


class CalibrationRecord(BaseModel):
    """A settled prediction: the stated probability and what actually happened."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    predicted: float = Field(
        ge=0.0,
        le=1.0,
        validation_alias=_aliases("predicted", "predicted_probability", "model_prob"),
    )
    outcome: Literal[0, 1] = Field(validation_alias=_aliases("outcome", "actual"))
    weight: float = Field(1.0, gt=0.0)

    @field_validator("outcome", mode="before")
    @classmethod
    def coerce_outcome(cls, v):
        if isinstance(v, bool):
            return int(v)
        return v


class EngineSignal(BaseModel):
    """A directional verdict from one upstream scoring engine."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    engine_name: str = Field(validation_alias=_aliases("engine_name", "engineName"))
    recommendation: Literal["pick", "fade", "neutral"]
    confidence: float = Field(ge=0.0, le=1.0)
    historical_accuracy: Optional[float] = Field(
        None,
        ge=0.0,
        le=1.0,
        validation_alias=_aliases("historical_accuracy", "historicalAccuracy"),
    )
    sample_size: Optional[int] = Field(
        None, ge=0, validation_alias=_aliases("sample_size", "sampleSize")
    )


# ---------------------------------------------------------------------------
# API request bodies
# ---------------------------------------------------------------------------

class ValidateParlayRequest(BaseModel):
    """Payload for POST /api/parlays/validate."""
    legs: List[Leg]
    mode: ParlayMode = "safe"


class EvaluateParlayRequest(BaseModel):
    """
    Payload for POST /api/parlays/evaluate.

    ``correlations`` is the pre-fetched historical snapshot for ``sport``;
    an empty list means every cross-event pair defaults to ρ = 0.
    """
    legs: List[Leg] = Field(..., min_length=1, max_length=10)
    sport: str = "nba"
    mode: ParlayMode = "safe"
    method: JointMethod = "factor"
    correlations: List[CorrelationRecord] = Field(default_factory=list)
    bankroll: Optional[BankrollConfig] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "sport": "nba",
                "mode": "safe",
                "legs": [
                    {"player_name": "LeBron James", "stat_type": "player_points",
                     "event_id": "LAL@BOS", "probability": 0.62, "odds": -115},
                    {"playerName": "Stephen Curry", "propType": "player_assists",
                     "eventId": "GSW@DEN", "probability": 0.58, "odds": -105},
                ],
                "bankroll": {"bankrollAmount": 1000, "kellyMultiplier": 0.5,
                             "maxBetPercent": 0.03},
            }
        }
    }


class BuildParlaysRequest(BaseModel):
    """
    Payload for POST /api/parlays/build.

    Pool size and ticket length are bounded so that the combinations the
    builder walks stay in the low thousands.
    """
    pool: List[Leg] = Field(..., min_length=2, max_length=MAX_BUILD_POOL)
    sport: str = "nba"
    mode: ParlayMode = "safe"
    max_legs: int = Field(3, ge=2, le=MAX_PARLAY_LEGS)
    max_parlays: int = Field(10, ge=1, le=50)
    correlations: List[CorrelationRecord] = Field(default_factory=list)
    bankroll: Optional[BankrollConfig] = None


class KellyRequest(BaseModel):
    """
    Payload for POST /api/kelly/parlay.

    Supply either ``legs`` or both ``probability`` and ``total_decimal_odds``.
    """
    legs: Optional[List[Leg]] = None
    probability: Optional[float] = Field(None, gt=0.0, le=1.0)
    total_decimal_odds: Optional[float] = Field(None, gt=1.0)
    correlated_probability: Optional[float] = Field(None, gt=0.0, le=1.0)
    correlation_factor: Optional[float] = Field(None, gt=0.0, le=1.0)
    bankroll: Optional[BankrollConfig] = None

    @model_validator(mode="after")
    def require_inputs(self) -> "KellyRequest":
        if not self.legs and (self.probability is None or self.total_decimal_odds is None):
            raise ValueError(
                "Provide either legs or both probability and total_decimal_odds"
            )
        return self


class CalibrationRequest(BaseModel):
    """Payload for POST /api/calibration/report."""
    records: List[CalibrationRecord]
    num_buckets: int = Field(10, ge=2, le=50)


class EnsembleRequest(BaseModel):
    """
    Payload for POST /api/ensemble/parlay.

    ``engine_signals`` is optional; when present the response also carries
    the weighted multi-engine consensus.
    """
    legs: List[Leg] = Field(..., min_length=1, max_length=10)
    engine_signals: List[EngineSignal] = Field(
        default_factory=list,
        validation_alias=AliasChoices("engine_signals", "engineSignals", "signals"),
    )
