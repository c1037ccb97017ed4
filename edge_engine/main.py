"""
FastAPI application for the Edge Engine
Exposes match analysis, accumulator building and staking over REST
"""

from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sqlalchemy import text
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime
import logging
import os

from edge_engine.core.engine_config import EngineConfig, MonteCarloConfig
from edge_engine.core.kelly import compute_kelly_stake, stake_to_amount
from edge_engine.models import Base, engine, get_db
from edge_engine.services.acca_freeze import (
    FixtureLambdas,
    build_accas,
    calculate_freeze_value,
    derive_win_predictions,
    filter_freeze_legs,
    filter_safe_legs,
    format_acca_ticket,
    get_freeze_recommendation,
)
from edge_engine.services.engine import (
    MatchContext,
    TeamStats,
    process_match,
    to_match_prediction,
)
from edge_engine.services.portfolio import get_portfolio_manager
from edge_engine.schemas import (
    AccaFreezeRequest,
    AccaFreezeResponse,
    AnalysisRequest,
    AnalysisResponse,
    FreezeValueRequest,
    FreezeValueResponse,
    KellyRequest,
    KellyResponse,
)

# Logging setup
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Read once at import; restart to pick up changes
ENGINE_SETTINGS = EngineConfig.from_env()
MONTE_CARLO_SETTINGS = MonteCarloConfig.from_env()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    logger.info("🚀 Starting Edge Engine")
    Base.metadata.create_all(bind=engine)
    logger.info(
        "Engine config: odds %.2f-%.2f (display >= %.2f), %d MC iterations",
        ENGINE_SETTINGS.odds_min,
        ENGINE_SETTINGS.odds_max,
        ENGINE_SETTINGS.odds_display_min,
        MONTE_CARLO_SETTINGS.iterations,
    )
    yield
    logger.info("👋 Shutting down Edge Engine")


app = FastAPI(
    title="Edge Engine",
    description="Football match prediction and bet selection",
    version="1.0",
    lifespan=lifespan,
)

# CORS (adjust origins for production)
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "http://localhost:3000").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# PUBLIC ENDPOINTS
# ============================================================================

@app.get("/health")
async def health_check(db: Session = Depends(get_db)):
    """Health check endpoint"""
    health = {"status": "healthy", "database": "connected"}

    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Health check database error: %s", e)
        health["status"] = "degraded"
        health["database"] = f"error: {str(e)}"

    return health


# ============================================================================
# ANALYSIS
# ============================================================================

@app.post("/api/analysis", response_model=AnalysisResponse)
def analyse_match(payload: AnalysisRequest):
    """Run the full pipeline for one match and return its best bet."""
    context = MatchContext(
        fixture_id=payload.fixture_id,
        home_team=payload.home_team,
        away_team=payload.away_team,
        league_id=payload.league_id,
        league_name=payload.league_name,
        start_time=payload.start_time,
        home=TeamStats(**payload.home.model_dump()),
        away=TeamStats(**payload.away.model_dump()),
    )
    result = process_match(
        context,
        [entry.model_dump() for entry in payload.odds],
        engine_config=ENGINE_SETTINGS,
        mc_config=MONTE_CARLO_SETTINGS,
    )
    prediction = to_match_prediction(context, result)

    return {
        "fixture_id": context.fixture_id,
        "lambda_home": round(result.lambda_home, 4),
        "lambda_away": round(result.lambda_away, 4),
        "confidence": result.confidence,
        "prediction": prediction.to_dict() if prediction else None,
        "candidates": [
            {
                "market_id": c.market_id,
                "label": c.label,
                "odds": c.odds,
                "probability": round(c.probability, 4),
                "edge": round(c.edge, 4),
                "ev_adjusted": round(c.ev_adjusted, 4),
                "edge_score": c.edge_score,
                "risk_tier": c.risk_tier,
                "rejection_reason": (
                    c.risk_assessment.rejection_reason if c.risk_assessment else None
                ),
            }
            for c in result.candidates
        ],
        "simulation": result.simulation.to_dict() if result.simulation else None,
    }


# ============================================================================
# ACCUMULATORS
# ============================================================================

@app.post("/api/acca-freeze", response_model=AccaFreezeResponse)
def acca_freeze(payload: AccaFreezeRequest):
    """Build 4-safe + 1-freeze accumulators from a day's fixtures."""
    fixtures = [FixtureLambdas(**f.model_dump()) for f in payload.fixtures]

    def lookup(fixture_id, market_id, home_team, away_team):
        return payload.odds.get(f"{fixture_id}:{market_id}")

    win_predictions = derive_win_predictions(fixtures, lookup)
    safe_legs = filter_safe_legs(win_predictions)

    # A fixture used as a safe leg is never offered as a freeze leg
    safe_ids = {leg.fixture_id for leg in safe_legs}
    freeze_legs = filter_freeze_legs(p for p in win_predictions if p.fixture_id not in safe_ids)

    accas = build_accas(safe_legs, freeze_legs, count=payload.count, stake=payload.stake)

    return {
        "accas": [dict(asdict(a), ticket=format_acca_ticket(a)) for a in accas],
        "meta": {
            "total_fixtures": len(fixtures),
            "win_predictions": len(win_predictions),
            "safe_legs_available": len(safe_legs),
            "freeze_legs_available": len(freeze_legs),
            "generated_at": datetime.utcnow().isoformat(),
        },
    }


@app.post("/api/acca-freeze/value", response_model=FreezeValueResponse)
def acca_freeze_value(payload: FreezeValueRequest):
    """Current freeze value and action for an accumulator in play."""
    value = calculate_freeze_value(payload.legs, payload.stake)
    return {
        "freeze_value": value,
        "recommendation": get_freeze_recommendation(value, payload.stake),
    }


# ============================================================================
# STAKING
# ============================================================================

@app.post("/api/kelly", response_model=KellyResponse)
def kelly(payload: KellyRequest):
    """Fractional-Kelly stake for one bet."""
    suggestion = compute_kelly_stake(payload.probability, payload.odds, fraction=payload.fraction)
    return {
        "full_kelly": suggestion.full_kelly,
        "fractional_kelly": suggestion.fractional_kelly,
        "suggested_stake": suggestion.suggested_stake,
        "stake_amount": (
            stake_to_amount(suggestion.suggested_stake, payload.bankroll)
            if payload.bankroll
            else None
        ),
        "reasoning": suggestion.reasoning,
    }


@app.get("/api/portfolio/status")
def portfolio_status():
    """Bankroll, drawdown and today's exposure."""
    state = get_portfolio_manager().get_state()
    return {
        "current_bankroll": state.current_bankroll,
        "peak_bankroll": state.peak_bankroll,
        "drawdown": round(state.drawdown, 4),
        "daily_exposure": round(state.daily_exposure, 4),
        "positions": len(state.positions),
        "is_halted": state.is_halted,
        "halt_reason": state.halt_reason,
    }


# ============================================================================
# ERROR HANDLERS
# ============================================================================

@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Catch-all exception handler"""
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": type(exc).__name__}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
