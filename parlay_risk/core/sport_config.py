"""Sport-level configuration: all sport-specific correlation constants in one place.

This module is the **registry** for every constant that differs between
sports.  Nowhere else in the codebase should same-game correlation defaults
be hard-coded.

Architecture
------------
:class:`SportConfig` is a frozen dataclass carrying all per-sport constants.
Named constructors (:meth:`SportConfig.nba`, :meth:`SportConfig.nfl`, …)
return pre-populated instances, and :func:`get_sport_config` resolves a
sport identifier string to one of them.  To add a new sport:

1. Add a ``@classmethod`` constructor here.
2. Register it in ``_REGISTRY``.
3. The correlation estimator picks it up through :func:`get_sport_config`.

Typical usage::

    from parlay_risk.core.sport_config import get_sport_config

    cfg = get_sport_config("nba")
    cfg.same_event_rho   # 0.20

    # Override a single constant for an A/B test:
    from dataclasses import replace
    custom_cfg = replace(cfg, same_event_rho=0.25)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Final

#: Sport identifier strings used in API payloads and correlation snapshots.
SPORT_ID_NBA: Final[str] = "nba"
SPORT_ID_WNBA: Final[str] = "wnba"
SPORT_ID_NCAAB: Final[str] = "ncaab"
SPORT_ID_NFL: Final[str] = "nfl"
SPORT_ID_NHL: Final[str] = "nhl"
SPORT_ID_MLB: Final[str] = "mlb"

#: Two legs on the same player in the same event move together strongly:
#: one big night lifts every counting stat at once.
SAME_PLAYER_RHO: Final[float] = 0.60

#: Same-event default for a sport missing from the registry.
DEFAULT_SAME_EVENT_RHO: Final[float] = 0.15


@dataclass(frozen=True)
class SportConfig:
    """Immutable correlation configuration for a single sport.

    Attributes:
        sport_id: Short identifier string (``"nba"``, ``"nfl"``, …) used in
            payloads and as the first key of the historical correlation table.
        sport_name: Human-readable name for logging and display.
        same_event_rho: Default correlation between two legs on *different*
            players in the *same* event.  Driven by shared game script: pace,
            blowout risk and overtime affect every player on the floor.
        same_player_rho: Correlation between two legs on the same player in
            the same event.  Must exceed 0.5.
    """

    sport_id: str
    sport_name: str
    same_event_rho: float = DEFAULT_SAME_EVENT_RHO
    same_player_rho: float = SAME_PLAYER_RHO

    def __post_init__(self) -> None:
        if not (-1.0 <= self.same_event_rho <= 1.0):
            raise ValueError(
                f"same_event_rho must be in [-1, 1], got {self.same_event_rho!r}."
            )
        if not (0.5 < self.same_player_rho <= 1.0):
            raise ValueError(
                f"same_player_rho must be in (0.5, 1], got {self.same_player_rho!r}."
            )

    # ------------------------------------------------------------------ #
    #  Named constructors                                                  #
    # ------------------------------------------------------------------ #

    @classmethod
    def nba(cls) -> SportConfig:
        """NBA: high usage concentration, strongest same-game dependence."""
        return cls(sport_id=SPORT_ID_NBA, sport_name="NBA", same_event_rho=0.20)

    @classmethod
    def wnba(cls) -> SportConfig:
        return cls(sport_id=SPORT_ID_WNBA, sport_name="WNBA", same_event_rho=0.20)

    @classmethod
    def ncaa_basketball(cls) -> SportConfig:
        """NCAA D1 basketball: slightly deeper rotations than the NBA."""
        return cls(sport_id=SPORT_ID_NCAAB, sport_name="NCAA D1 Basketball", same_event_rho=0.18)

    @classmethod
    def nfl(cls) -> SportConfig:
        """NFL: game script matters, but usage is spread across units."""
        return cls(sport_id=SPORT_ID_NFL, sport_name="NFL", same_event_rho=0.15)

    @classmethod
    def nhl(cls) -> SportConfig:
        return cls(sport_id=SPORT_ID_NHL, sport_name="NHL", same_event_rho=0.12)

    @classmethod
    def mlb(cls) -> SportConfig:
        """MLB: plate appearances are close to independent trials."""
        return cls(sport_id=SPORT_ID_MLB, sport_name="MLB", same_event_rho=0.10)

    @classmethod
    def generic(cls, sport_id: str) -> SportConfig:
        """Fallback for a sport with no calibrated constants."""
        return cls(sport_id=sport_id, sport_name=sport_id.upper() or "Unknown")

    def __repr__(self) -> str:
        return (
            f"SportConfig(sport_id={self.sport_id!r}, "
            f"same_event_rho={self.same_event_rho}, "
            f"same_player_rho={self.same_player_rho})"
        )


_REGISTRY: Final[Dict[str, Callable[[], SportConfig]]] = {
    SPORT_ID_NBA: SportConfig.nba,
    SPORT_ID_WNBA: SportConfig.wnba,
    SPORT_ID_NCAAB: SportConfig.ncaa_basketball,
    SPORT_ID_NFL: SportConfig.nfl,
    SPORT_ID_NHL: SportConfig.nhl,
    SPORT_ID_MLB: SportConfig.mlb,
}


def get_sport_config(sport: str) -> SportConfig:
    """Resolve a sport identifier (case-insensitive) to its configuration.

    Also accepts The Odds API style keys such as ``"basketball_nba"``.
    Unknown sports get :meth:`SportConfig.generic`.
    """
    key = (sport or "").strip().lower()
    if key not in _REGISTRY and "_" in key:
        key = key.rsplit("_", 1)[-1]
    factory = _REGISTRY.get(key)
    return factory() if factory else SportConfig.generic(key)
