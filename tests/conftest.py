"""Shared fixtures for the parlay risk test suite."""

import os

# auth.py resolves API keys at import time; fall back to the dev key in tests
os.environ.setdefault("ENVIRONMENT", "development")

import pytest

from parlay_risk.schemas import BankrollConfig


@pytest.fixture
def bankroll():
    return BankrollConfig(bankroll_amount=1000.0, kelly_multiplier=0.5, max_bet_percent=0.05)
