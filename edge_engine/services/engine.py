"""
Per-match orchestrator: team stats and odds in, one best bet out.

Pipeline
--------
    1. Blend season / form averages (40/60)
    2. Elo ratings from league rank and form
    3. Attack/defence strength → λ (league home advantage)
    4. Nudge λ toward the Elo-implied goal split
    5. Fatigue and injury adjustments, then clamp
    6. Bayesian form update on λ/λ_max, then clamp again
    7. Analytical score matrix → market probabilities
    8. Monte Carlo simulation (seeded by fixture id)
    9. Match confidence (40–95)
   10. Every whitelisted market with a probability and matched odds:
       blend → calibrate → evaluate → CLV → risk → edge score
   11. Select the highest edge score priced at or above the display floor

Design decisions
----------------
* Negative-edge markets are scored, not dropped, so diagnostics show the
  full candidate list.  Risk assessment does not gate selection: an
  approved assessment swaps in its variance-adjusted EV, and the tier
  comes from the edge score.
* Ties on edge score keep whitelist order.
* Diagnostics go through an injected :class:`EngineObserver`; the default
  forwards to :mod:`logging`.
"""

import logging
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from edge_engine.core.clv import predict_clv
from edge_engine.core.edge_score import compute_edge_score
from edge_engine.core.elo import adjust_lambdas_with_elo, bayesian_update, compute_elo_ratings
from edge_engine.core.engine_config import (
    CONFIDENCE_WEIGHTS,
    ENGINE_CONFIG,
    MONTE_CARLO_CONFIG,
    POISSON_CONFIG,
    ConfidenceWeights,
    EngineConfig,
    MonteCarloConfig,
    PoissonConfig,
    get_league_home_advantage,
)
from edge_engine.core.markets import (
    MARKET_WHITELIST,
    EvaluatedMarket,
    OddsEntry,
    evaluate_market,
    find_odds_for_market,
)
from edge_engine.core.poisson import (
    apply_fatigue_adjustment,
    apply_injury_weight,
    blend_stats,
    build_score_matrix,
    calculate_strength,
    clamp_lambdas,
    compute_lambdas,
    derive_market_probabilities,
)
from edge_engine.core.risk import assess_risk
from edge_engine.services.montecarlo import (
    SimulationResult,
    blend_probabilities,
    calibrate_probability,
    run_monte_carlo_simulation,
)
from edge_engine.services.observer import EngineObserver, LoggingObserver

logger = logging.getLogger(__name__)

DEFAULT_RANK = 10
DEFAULT_GAMES_PLAYED = 10
DEFAULT_FORM_PPG = 1.0
#: Conceded average assumed by the confidence model when none is supplied.
DEFAULT_CONFIDENCE_CONCEDED = 1.2
INJURY_STABILITY = 75.0
CONFIDENCE_MIN = 40
CONFIDENCE_MAX = 95
#: Half-width of the fallback interval when the simulation has no CI.
FALLBACK_CI_HALF_WIDTH = 0.05
#: Points per game are divided by this to give a 0–1 form signal.
MAX_POINTS_PER_GAME = 3.0

OddsInput = Union[OddsEntry, Mapping[str, Any]]


# ---------------------------------------------------------------------------
# Input / output types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TeamStats:
    """Per-team inputs; every field is optional and defaults downstream."""

    avg_scored: Optional[float] = None
    avg_conceded: Optional[float] = None
    form_scored: Optional[float] = None
    form_conceded: Optional[float] = None
    form_ppg: Optional[float] = None
    rank: Optional[int] = None
    games_played: Optional[int] = None
    days_rest: Optional[float] = None
    injury_factor: Optional[float] = None


@dataclass(frozen=True)
class MatchContext:
    fixture_id: int
    home_team: str
    away_team: str
    league_id: int
    league_name: str = ""
    start_time: str = ""
    home: TeamStats = field(default_factory=TeamStats)
    away: TeamStats = field(default_factory=TeamStats)

    @property
    def date(self) -> str:
        """Calendar date part of ``start_time`` (ISO-8601)."""
        return self.start_time[:10]


@dataclass
class MatchPrediction:
    """The selected market for one match, flattened for publication."""

    fixture_id: int
    home_team: str
    away_team: str
    league_id: int
    league_name: str
    start_time: str
    market: str
    market_id: str
    probability: float
    implied_probability: float
    odds: float
    bet365_odds: Optional[float]
    best_bookmaker: str
    edge: float
    ev: float
    ev_adjusted: float
    confidence: int
    edge_score: int
    risk_tier: str
    suggested_stake: float
    clv_projection: float
    simulation_win_freq: int
    confidence_interval: Tuple[float, float]
    lambda_home: float
    lambda_away: float
    is_locked: bool = False
    checksum: Optional[str] = None
    goal_distribution: Optional[List[float]] = None
    scorelines: Optional[Dict[str, float]] = None

    @property
    def date(self) -> str:
        return self.start_time[:10]

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["confidence_interval"] = list(self.confidence_interval)
        return data


@dataclass
class MatchResult:
    best: Optional[EvaluatedMarket]
    lambda_home: float
    lambda_away: float
    confidence: int
    simulation: Optional[SimulationResult]
    candidates: List[EvaluatedMarket] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Confidence model
# ---------------------------------------------------------------------------

def calculate_confidence(
    context: MatchContext,
    elo_strength_delta: float,
    weights: ConfidenceWeights = CONFIDENCE_WEIGHTS,
) -> int:
    """Data-quality confidence for a match, an integer in [40, 95].

    Components (each 0–100, weighted by ``weights``):
        attack stability      — combined games played / 40
        defensive consistency — gap between conceded averages
        market stability      — league-rank gap
        form reliability      — combined points per game
        Elo strength          — rating gap
        injury stability      — neutral 75
    """
    home, away = context.home, context.away

    home_gp = DEFAULT_GAMES_PLAYED if home.games_played is None else home.games_played
    away_gp = DEFAULT_GAMES_PLAYED if away.games_played is None else away.games_played
    attack = min(100.0, (home_gp + away_gp) / 40.0 * 100.0)

    home_c = DEFAULT_CONFIDENCE_CONCEDED if home.avg_conceded is None else home.avg_conceded
    away_c = DEFAULT_CONFIDENCE_CONCEDED if away.avg_conceded is None else away.avg_conceded
    defence = min(100.0, 100.0 - abs(home_c - away_c) * 30.0)

    home_rank = DEFAULT_RANK if home.rank is None else home.rank
    away_rank = DEFAULT_RANK if away.rank is None else away.rank
    market = min(100.0, 90.0 - abs(home_rank - away_rank) * 2.0)

    home_ppg = DEFAULT_FORM_PPG if home.form_ppg is None else home.form_ppg
    away_ppg = DEFAULT_FORM_PPG if away.form_ppg is None else away.form_ppg
    form = min(100.0, 80.0 + (home_ppg + away_ppg) * 5.0)

    elo = min(100.0, 90.0 - elo_strength_delta * 0.15)

    raw = (
        weights.attack_stability * attack
        + weights.defensive_consistency * defence
        + weights.market_stability * market
        + weights.form_reliability * form
        + weights.elo_strength * elo
        + weights.injury_stability * INJURY_STABILITY
    )
    return min(CONFIDENCE_MAX, max(CONFIDENCE_MIN, round(raw)))


# ---------------------------------------------------------------------------
# λ model
# ---------------------------------------------------------------------------

def _team_value(value, default):
    return default if value is None else value


def compute_match_lambdas(
    context: MatchContext,
    config: PoissonConfig = POISSON_CONFIG,
) -> Tuple[float, float, float]:
    """Run steps 1–6 of the pipeline.

    Returns:
        ``(lambda_home, lambda_away, elo_strength_delta)``.
    """
    home, away = context.home, context.away

    home_scored, home_conceded = blend_stats(
        home.avg_scored, home.avg_conceded, home.form_scored, home.form_conceded
    )
    away_scored, away_conceded = blend_stats(
        away.avg_scored, away.avg_conceded, away.form_scored, away.form_conceded
    )

    home_ppg = _team_value(home.form_ppg, DEFAULT_FORM_PPG)
    away_ppg = _team_value(away.form_ppg, DEFAULT_FORM_PPG)
    home_gp = _team_value(home.games_played, DEFAULT_GAMES_PLAYED)
    away_gp = _team_value(away.games_played, DEFAULT_GAMES_PLAYED)

    elo = compute_elo_ratings(
        _team_value(home.rank, DEFAULT_RANK),
        _team_value(away.rank, DEFAULT_RANK),
        home_gp,
        away_gp,
        home_ppg,
        away_ppg,
    )

    strength = calculate_strength(home_scored, home_conceded, away_scored, away_conceded, config)
    lambda_home, lambda_away = compute_lambdas(
        strength, get_league_home_advantage(context.league_id, config), config
    )
    lambda_home, lambda_away = adjust_lambdas_with_elo(lambda_home, lambda_away, elo)

    lambda_home = apply_injury_weight(apply_fatigue_adjustment(lambda_home, home.days_rest), home.injury_factor)
    lambda_away = apply_injury_weight(apply_fatigue_adjustment(lambda_away, away.days_rest), away.injury_factor)
    lambda_home, lambda_away = clamp_lambdas(lambda_home, lambda_away, config)

    home_bayes = bayesian_update(
        lambda_home / config.lambda_home_max, home_ppg / MAX_POINTS_PER_GAME, home_gp
    )
    away_bayes = bayesian_update(
        lambda_away / config.lambda_away_max, away_ppg / MAX_POINTS_PER_GAME, away_gp
    )
    lambda_home, lambda_away = clamp_lambdas(
        home_bayes.adjusted_probability * config.lambda_home_max,
        away_bayes.adjusted_probability * config.lambda_away_max,
        config,
    )
    return lambda_home, lambda_away, elo.strength_delta


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------

def _as_entries(odds: Iterable[OddsInput]) -> List[OddsEntry]:
    return [o if isinstance(o, OddsEntry) else OddsEntry.from_dict(o) for o in odds]


def process_match(
    context: MatchContext,
    odds: Iterable[OddsInput],
    engine_config: EngineConfig = ENGINE_CONFIG,
    mc_config: MonteCarloConfig = MONTE_CARLO_CONFIG,
    poisson_config: PoissonConfig = POISSON_CONFIG,
    observer: Optional[EngineObserver] = None,
) -> MatchResult:
    """
    Run the full pipeline for one match.

    Args:
        context: Fixture identity and team statistics.
        odds: Odds-feed rows, as :class:`OddsEntry` or raw dicts.
        observer: Diagnostics sink; defaults to a :class:`LoggingObserver`.

    Returns:
        MatchResult.  ``best`` is ``None`` when no candidate is priced at or
        above ``engine_config.odds_display_min``.
    """
    obs = observer if observer is not None else LoggingObserver(logger)
    entries = _as_entries(odds)
    fixture_id = context.fixture_id

    lambda_home, lambda_away, strength_delta = compute_match_lambdas(context, poisson_config)
    poisson_probs = derive_market_probabilities(
        build_score_matrix(lambda_home, lambda_away, poisson_config), poisson_config
    )
    simulation = run_monte_carlo_simulation(
        lambda_home, lambda_away, fixture_id, config=mc_config,
        half_time_factor=poisson_config.half_time_factor,
    )
    confidence = calculate_confidence(context, strength_delta)

    obs.emit(
        "match.lambdas",
        fixture_id=fixture_id,
        lambda_home=round(lambda_home, 3),
        lambda_away=round(lambda_away, 3),
        confidence=confidence,
    )

    candidates: List[EvaluatedMarket] = []
    for market in MARKET_WHITELIST:
        poisson_prob = poisson_probs.get(market.prob_key)
        if poisson_prob is None or poisson_prob <= 0:
            obs.emit("market.skipped", fixture_id=fixture_id, market_id=market.id,
                     reason="no model probability")
            continue

        mc_prob = simulation.market_probabilities.get(market.prob_key, poisson_prob)
        probability = calibrate_probability(
            market.id, blend_probabilities(poisson_prob, mc_prob)
        )

        match = find_odds_for_market(entries, market, context.home_team, context.away_team)
        if match is None:
            obs.emit("market.skipped", fixture_id=fixture_id, market_id=market.id,
                     reason="no odds matched")
            continue

        evaluated = evaluate_market(
            market, probability, match.best_odds, confidence,
            context.home_team, context.away_team,
            bet365_odds=match.bet365_odds,
            best_bookmaker=match.best_bookmaker,
            bookmaker_count=match.bookmaker_count,
            config=engine_config,
        )
        if evaluated is None:
            obs.emit("market.skipped", fixture_id=fixture_id, market_id=market.id,
                     reason="not evaluable")
            continue

        scored = _enrich(
            evaluated, market.prob_key, simulation, mc_prob,
            match.bookmaker_count, engine_config, mc_config,
        )
        candidates.append(scored)
        obs.emit(
            "market.scored",
            fixture_id=fixture_id,
            market_id=market.id,
            odds=scored.odds,
            probability=round(scored.probability, 4),
            edge_score=scored.edge_score,
            risk_tier=scored.risk_tier,
        )

    best: Optional[EvaluatedMarket] = None
    for candidate in candidates:
        if candidate.odds < engine_config.odds_display_min:
            obs.emit(
                "display_floor.rejected",
                fixture_id=fixture_id,
                market_id=candidate.market_id,
                odds=candidate.odds,
                floor=engine_config.odds_display_min,
            )
            continue
        if best is None or candidate.edge_score > best.edge_score:
            best = candidate

    obs.emit(
        "match.selected",
        fixture_id=fixture_id,
        market_id=best.market_id if best else None,
        candidates=len(candidates),
    )

    return MatchResult(
        best=best,
        lambda_home=lambda_home,
        lambda_away=lambda_away,
        confidence=confidence,
        simulation=simulation,
        candidates=candidates,
    )


def _enrich(
    evaluated: EvaluatedMarket,
    prob_key: str,
    simulation: SimulationResult,
    mc_prob: float,
    bookmaker_count: int,
    engine_config: EngineConfig,
    mc_config: MonteCarloConfig,
) -> EvaluatedMarket:
    """Attach CI, simulation frequency, CLV, risk and edge score."""
    p = evaluated.probability
    ci = simulation.confidence_intervals.get(
        prob_key, (p - FALLBACK_CI_HALF_WIDTH, p + FALLBACK_CI_HALF_WIDTH)
    )

    clv = predict_clv(evaluated.odds, p, evaluated.edge, bookmaker_count)
    risk = assess_risk(
        evaluated.ev, evaluated.odds, ci, simulation.volatility_score,
        bookmaker_count, evaluated.variance_multiplier,
        engine_config=engine_config, mc_config=mc_config,
    )
    ev_adjusted = risk.variance_adjusted_ev if risk.is_approved else evaluated.ev_adjusted

    score = compute_edge_score(
        ev_adjusted, evaluated.edge, clv, risk, evaluated.confidence, p, evaluated.odds
    )
    return replace(
        evaluated,
        ev_adjusted=ev_adjusted,
        confidence_interval=ci,
        simulation_win_freq=round(mc_prob * simulation.n_sims),
        clv_projection=clv,
        risk_assessment=risk,
        edge_score=score.edge_score,
        risk_tier=score.risk_tier,
        suggested_stake=score.suggested_stake,
    )


def to_match_prediction(
    context: MatchContext,
    result: MatchResult,
    market: Optional[EvaluatedMarket] = None,
    is_locked: bool = False,
    checksum: Optional[str] = None,
) -> Optional[MatchPrediction]:
    """Flatten a context and its selected market; ``None`` if nothing was selected."""
    chosen = market if market is not None else result.best
    if chosen is None:
        return None

    simulation = result.simulation
    return MatchPrediction(
        fixture_id=context.fixture_id,
        home_team=context.home_team,
        away_team=context.away_team,
        league_id=context.league_id,
        league_name=context.league_name,
        start_time=context.start_time,
        market=chosen.label,
        market_id=chosen.market_id,
        probability=chosen.probability,
        implied_probability=chosen.implied_probability,
        odds=chosen.odds,
        bet365_odds=chosen.bet365_odds,
        best_bookmaker=chosen.best_bookmaker,
        edge=chosen.edge,
        ev=chosen.ev,
        ev_adjusted=chosen.ev_adjusted,
        confidence=chosen.confidence,
        edge_score=chosen.edge_score,
        risk_tier=chosen.risk_tier,
        suggested_stake=chosen.suggested_stake,
        clv_projection=chosen.clv_projection.clv_percent if chosen.clv_projection else 0.0,
        simulation_win_freq=chosen.simulation_win_freq,
        confidence_interval=chosen.confidence_interval,
        lambda_home=result.lambda_home,
        lambda_away=result.lambda_away,
        is_locked=is_locked,
        checksum=checksum,
        goal_distribution=(
            [float(g) for g in simulation.goal_distribution] if simulation is not None else None
        ),
        scorelines=simulation.top_scorelines if simulation is not None else None,
    )
