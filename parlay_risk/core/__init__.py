"""Core mathematics and static configuration for the parlay risk engine.

This package contains pure, sport-agnostic building blocks:

- ``odds_math``   : American ↔ decimal conversion, combined odds and probabilities
- ``kelly``       : Kelly criterion fractions and risk-level banding
- ``stat_types``  : prop-market canonicalisation and the static combo tables
- ``sport_config``: per-sport correlation constants

Nothing in this package imports from ``parlay_risk.services`` or the web layer.
All modules are side-effect-free and unit-testable in isolation.
"""
