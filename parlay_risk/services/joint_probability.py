"""
Joint win probability for a parlay, adjusted for leg dependence.

Two estimators share one result type:

    factor  (default)
        P_indep = Π p_i
        P_corr  = P_indep × (1 + sensitivity × avg|ρ|)

        Cheap and deterministic.  ``sensitivity`` is the single tuning knob:
        positive values boost the joint probability when legs move together
        (a big night for one leg makes the next more likely), negative values
        turn the same term into a haircut.  Default from
        CORRELATION_SENSITIVITY (0.5).

    copula
        Gaussian-copula Monte Carlo.  Each leg is a latent standard normal
        Z_i with correlation matrix Σ; leg i hits when Z_i < Φ⁻¹(p_i).  The
        joint hit rate over ``n_sims`` draws estimates P(all legs hit)
        directly from Σ rather than from its mean.

Every returned probability is clamped into (0, 1].
"""

import logging
import os
from dataclasses import asdict, dataclass
from typing import Dict, Optional, Sequence

import numpy as np
from dotenv import load_dotenv
from scipy.stats import norm

from parlay_risk.core.odds_math import clamp_probability, combine_probabilities
from parlay_risk.services.correlation import CorrelationMatrix

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_SENSITIVITY = float(os.getenv("CORRELATION_SENSITIVITY", "0.5"))

DEFAULT_SIMULATIONS = 20_000

# Eigenvalue floor used when repairing a non-positive-definite matrix
_EIGEN_FLOOR = 1e-3

_METHODS = ("factor", "copula")


@dataclass(frozen=True)
class JointProbability:
    independent_probability: float
    correlated_probability: float
    probability_ratio: float
    correlation_impact: float
    method: str

    def to_dict(self) -> Dict:
        d = asdict(self)
        for key in ("independent_probability", "correlated_probability", "probability_ratio"):
            d[key] = round(d[key], 6)
        d["correlation_impact"] = round(d["correlation_impact"], 2)
        return d


# ---------------------------------------------------------------------------
# Matrix repair
# ---------------------------------------------------------------------------

def nearest_correlation_matrix(matrix: np.ndarray) -> np.ndarray:
    """
    Project a symmetric matrix onto a positive-definite correlation matrix.

    Negative or tiny eigenvalues are lifted to a small floor and the result
    is rescaled back to a unit diagonal.  Off-diagonals shrink slightly;
    the sign pattern is preserved.
    """
    sym = (matrix + matrix.T) / 2.0
    eigvals, eigvecs = np.linalg.eigh(sym)
    eigvals = np.clip(eigvals, _EIGEN_FLOOR, None)
    repaired = eigvecs @ np.diag(eigvals) @ eigvecs.T
    scale = np.sqrt(np.diag(repaired))
    repaired = repaired / np.outer(scale, scale)
    np.fill_diagonal(repaired, 1.0)
    return repaired


def cholesky_factor(matrix: np.ndarray) -> np.ndarray:
    """Lower-triangular Cholesky factor, repairing the matrix if needed."""
    try:
        return np.linalg.cholesky(matrix)
    except np.linalg.LinAlgError:
        logger.warning(
            "Correlation matrix (%dx%d) is not positive definite; regularising",
            matrix.shape[0], matrix.shape[1],
        )
        return np.linalg.cholesky(nearest_correlation_matrix(matrix))


# ---------------------------------------------------------------------------
# Estimators
# ---------------------------------------------------------------------------

def _validate_leg_probs(leg_probs: Sequence[float]) -> float:
    if not leg_probs:
        raise ValueError("At least one leg probability is required.")
    return combine_probabilities(leg_probs)


def _result(independent: float, correlated: float, method: str) -> JointProbability:
    correlated = clamp_probability(correlated)
    ratio = correlated / independent if independent > 0 else 1.0
    return JointProbability(
        independent_probability=independent,
        correlated_probability=correlated,
        probability_ratio=ratio,
        correlation_impact=(ratio - 1.0) * 100.0,
        method=method,
    )


def simulate_joint_probability(
    leg_probs: Sequence[float],
    matrix: np.ndarray,
    n_sims: int = DEFAULT_SIMULATIONS,
    seed: Optional[int] = None,
) -> float:
    """
    Monte Carlo estimate of P(every leg hits) under a Gaussian copula.

    Args:
        leg_probs: Marginal hit probability per leg.
        matrix: N×N correlation matrix (unit diagonal).
        n_sims: Number of joint draws.
        seed: Seed for a call-local ``numpy.random.Generator``.

    Returns:
        Fraction of draws in which every leg hit.
    """
    probs = np.asarray(leg_probs, dtype=float)
    n = probs.size
    if matrix.shape != (n, n):
        raise ValueError(
            f"Correlation matrix shape {matrix.shape} does not match {n} legs."
        )
    if n_sims < 1:
        raise ValueError(f"n_sims must be ≥ 1, got {n_sims!r}.")

    # Legs certain to hit or miss need no simulation
    if np.any(probs <= 0.0):
        return 0.0
    thresholds = norm.ppf(np.clip(probs, 0.0, 1.0))

    rng = np.random.default_rng(seed)
    chol = cholesky_factor(matrix)
    latent = rng.standard_normal((n_sims, n)) @ chol.T
    hits = np.all(latent < thresholds, axis=1)
    return float(hits.mean())


def adjust_joint_probability(
    leg_probs: Sequence[float],
    correlation: CorrelationMatrix,
    *,
    sensitivity: Optional[float] = None,
    method: str = "factor",
    n_sims: int = DEFAULT_SIMULATIONS,
    seed: Optional[int] = None,
) -> JointProbability:
    """
    Adjust the naive product of leg probabilities for dependence.

    Args:
        leg_probs: Win probability per leg, same order as the matrix.
        correlation: Output of ``build_correlation_matrix``.
        sensitivity: Factor-method scale; ``None`` uses CORRELATION_SENSITIVITY.
        method: ``"factor"`` or ``"copula"``.
        n_sims: Copula draws.
        seed: Copula RNG seed.

    Raises:
        ValueError: On an unknown method, an empty leg list, or a probability
            outside [0, 1].
    """
    if method not in _METHODS:
        raise ValueError(f"Unknown joint-probability method {method!r}; expected one of {_METHODS}.")
    independent = _validate_leg_probs(leg_probs)

    if method == "copula":
        estimate = simulate_joint_probability(leg_probs, correlation.matrix, n_sims, seed)
        logger.debug("Copula joint probability %.5f vs independent %.5f", estimate, independent)
        return _result(independent, estimate, method)

    k = DEFAULT_SENSITIVITY if sensitivity is None else sensitivity
    correlated = independent * (1.0 + k * correlation.avg_correlation)
    return _result(independent, correlated, method)
