"""
FastAPI application for the Parlay Risk & Construction Engine.

Thin HTTP surface over the pure services: validation, evaluation and
building of parlays, Kelly sizing, calibration reports and ensemble scoring.
"""

from fastapi import FastAPI, Depends, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from datetime import datetime
from dataclasses import asdict
import logging

from parlay_risk.auth import verify_api_key
from parlay_risk.schemas import (
    BuildParlaysRequest,
    CalibrationRequest,
    EnsembleRequest,
    EvaluateParlayRequest,
    KellyRequest,
    ValidateParlayRequest,
)
from parlay_risk.services.calibration import (
    build_calibration_report,
    sample_size_tier,
    wilson_score,
)
from parlay_risk.services.compatibility import ParlayInvariantError, validate_parlay
from parlay_risk.services.correlation import CorrelationTable
from parlay_risk.services.ensemble import (
    aggregate_parlay_ensemble,
    combine_engine_signals,
    score_leg,
)
from parlay_risk.services.parlay_engine import (
    build_optimal_parlays,
    evaluate_parlay,
    format_parlay_ticket,
)
from parlay_risk.services.staking import (
    calculate_variance,
    load_bankroll_config,
    size_parlay_stake,
)

# Logging setup
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

APP_VERSION = "1.0"

app = FastAPI(
    title="Parlay Risk Engine",
    description="Parlay compatibility, correlation, Kelly sizing and calibration",
    version=APP_VERSION,
)

# CORS (adjust origins for production)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# PUBLIC ENDPOINTS
# ============================================================================

@app.get("/")
async def root():
    return {
        "app": "Parlay Risk Engine",
        "version": APP_VERSION,
        "status": "operational",
        "timestamp": datetime.utcnow().isoformat(),
    }


@app.get("/health")
async def health_check():
    """Liveness probe; the engine has no external dependencies to check."""
    return {"status": "healthy"}


# ============================================================================
# AUTHENTICATED ENDPOINTS - PARLAYS
# ============================================================================

@app.post("/api/parlays/validate")
async def validate_parlay_endpoint(
    req: ValidateParlayRequest,
    user: str = Depends(verify_api_key),
):
    """Run every compatibility rule and list the ones that fail."""
    verdict = validate_parlay(req.legs, req.mode)
    return {"accepted": verdict.accepted, "failed_rules": verdict.failed_rules}


@app.post("/api/parlays/evaluate")
async def evaluate_parlay_endpoint(
    req: EvaluateParlayRequest,
    user: str = Depends(verify_api_key),
):
    """
    Full pipeline for one ticket: rules, correlation, joint probability, stake.

    Rejected tickets return ``accepted: false`` with null numeric sections.
    """
    evaluation = evaluate_parlay(
        req.legs,
        sport=req.sport,
        mode=req.mode,
        correlation_table=CorrelationTable(req.correlations),
        bankroll=req.bankroll,
        method=req.method,
    )
    result = evaluation.to_dict()
    result["ticket"] = format_parlay_ticket(evaluation)
    return result


@app.post("/api/parlays/build")
async def build_parlays_endpoint(
    req: BuildParlaysRequest,
    user: str = Depends(verify_api_key),
):
    """Best non-overlapping positive-EV tickets from a pool of legs."""
    parlays = build_optimal_parlays(
        req.pool,
        sport=req.sport,
        mode=req.mode,
        max_legs=req.max_legs,
        max_parlays=req.max_parlays,
        correlation_table=CorrelationTable(req.correlations),
        bankroll=req.bankroll,
    )
    return {
        "count": len(parlays),
        "parlays": [
            {**p.to_dict(), "ticket": format_parlay_ticket(p)} for p in parlays
        ],
    }


# ============================================================================
# AUTHENTICATED ENDPOINTS - SIZING, CALIBRATION, ENSEMBLE
# ============================================================================

@app.post("/api/kelly/parlay")
async def kelly_parlay_endpoint(
    req: KellyRequest,
    user: str = Depends(verify_api_key),
):
    """Kelly stake plus payout variance and risk of ruin."""
    bankroll = req.bankroll or load_bankroll_config()
    kelly = size_parlay_stake(
        req.legs,
        probability=req.probability,
        total_decimal_odds=req.total_decimal_odds,
        correlated_probability=req.correlated_probability,
        correlation_factor=req.correlation_factor,
        bankroll=bankroll,
    )
    variance = calculate_variance(
        kelly.true_probability,
        kelly.recommended_stake,
        kelly.combined_odds,
        bankroll.bankroll_amount,
    )
    return {"kelly": kelly.to_dict(), "variance": variance.to_dict()}


@app.post("/api/calibration/report")
async def calibration_report_endpoint(
    req: CalibrationRequest,
    user: str = Depends(verify_api_key),
):
    """Buckets, ECE/MCE, Brier, grade, direction and isotonic mapping."""
    return build_calibration_report(req.records, req.num_buckets)


@app.get("/api/calibration/wilson")
async def wilson_endpoint(
    success_rate: float = Query(..., ge=0.0, le=100.0),
    sample_size: int = Query(..., ge=0),
    user: str = Depends(verify_api_key),
):
    """Wilson 95% interval (percent) and sample-size tier for a hit rate."""
    interval = wilson_score(success_rate, sample_size)
    return {**asdict(interval), "tier": sample_size_tier(sample_size)}


@app.post("/api/ensemble/parlay")
async def ensemble_parlay_endpoint(
    req: EnsembleRequest,
    user: str = Depends(verify_api_key),
):
    """Per-leg consensus scores and the parlay-level risk summary."""
    results = [score_leg(leg) for leg in req.legs]
    response = {
        "legs": [
            {"label": leg.label, **asdict(r)} for leg, r in zip(req.legs, results)
        ],
        "summary": aggregate_parlay_ensemble(results).to_dict(),
    }
    if req.engine_signals:
        response["engine_consensus"] = combine_engine_signals(req.engine_signals)
    return response


# ============================================================================
# ERROR HANDLERS
# ============================================================================

@app.exception_handler(ParlayInvariantError)
async def invariant_exception_handler(request, exc):
    """Upstream logic error: a parlay that must be clean was not."""
    logger.error("Parlay invariant violated on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=500,
        content={"detail": str(exc), "type": type(exc).__name__},
    )


@app.exception_handler(ValueError)
async def value_error_handler(request, exc):
    """Invalid arguments that passed schema validation (odds, modes, methods)."""
    logger.warning("Rejected request on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=400,
        content={"detail": str(exc), "type": type(exc).__name__},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Catch-all exception handler"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": type(exc).__name__}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
