"""
Daily slate runner.

Takes a day's fixtures and an odds provider and produces the day's picks:

    1. Odds lookups through the TTL cache (one provider call per fixture)
    2. process_match for every fixture on a thread pool
    3. Flatten each selection to a MatchPrediction; REJECT-tier picks stop here
    4. Correlation de-duplication, then the max_picks_per_day cap
    5. Portfolio impact (an over-limit slate stops here) and staking
    6. Optional publication to the immutable history

A failure on one fixture (provider error, bad stats) is logged and counted;
it never aborts the rest of the slate.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from edge_engine.core.engine_config import (
    ENGINE_CONFIG,
    MONTE_CARLO_CONFIG,
    POISSON_CONFIG,
    TIER_REJECT,
    EngineConfig,
    MonteCarloConfig,
    PoissonConfig,
)
from edge_engine.services.cache import TTLCache
from edge_engine.services.engine import (
    MatchContext,
    MatchPrediction,
    MatchResult,
    OddsInput,
    process_match,
    to_match_prediction,
)
from edge_engine.services.integrity import PredictionRepository, publish_prediction
from edge_engine.services.observer import EngineObserver
from edge_engine.services.portfolio import (
    PortfolioImpact,
    PortfolioManager,
    StakeDecision,
    assess_portfolio_impact,
    deduplicate_correlated_picks,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4

OddsProvider = Callable[[int], Iterable[OddsInput]]


@dataclass
class SlateSummary:
    fixtures_processed: int = 0
    no_selection: int = 0
    rejected: int = 0
    correlated_dropped: int = 0
    capped: int = 0
    picks: List[MatchPrediction] = field(default_factory=list)
    stakes: List[StakeDecision] = field(default_factory=list)
    impact: Optional[PortfolioImpact] = None
    published: Dict[int, str] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    rejected_reason: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def to_dict(self) -> Dict:
        return {
            "fixtures_processed": self.fixtures_processed,
            "no_selection": self.no_selection,
            "rejected": self.rejected,
            "correlated_dropped": self.correlated_dropped,
            "capped": self.capped,
            "picks": [p.to_dict() for p in self.picks],
            "stakes": [
                {
                    "fixture_id": s.fixture_id,
                    "approved": s.approved,
                    "stake_fraction": s.stake_fraction,
                    "stake_amount": s.stake_amount,
                    "reason": s.reason,
                }
                for s in self.stakes
            ],
            "worst_case_drawdown": self.impact.worst_case_drawdown if self.impact else 0.0,
            "published": len(self.published),
            "errors": self.errors,
            "rejected_reason": self.rejected_reason,
            "duration_seconds": self.duration_seconds,
        }


def _fetch_odds(
    context: MatchContext,
    odds_provider: OddsProvider,
    cache: Optional[TTLCache],
) -> List[OddsInput]:
    if cache is None:
        return list(odds_provider(context.fixture_id) or [])
    odds = cache.get_or_set(
        f"odds:{context.fixture_id}",
        lambda: list(odds_provider(context.fixture_id) or []),
    )
    return odds or []


def run_slate(
    fixtures: Sequence[MatchContext],
    odds_provider: OddsProvider,
    *,
    cache: Optional[TTLCache] = None,
    repository: Optional[PredictionRepository] = None,
    portfolio: Optional[PortfolioManager] = None,
    engine_config: EngineConfig = ENGINE_CONFIG,
    mc_config: MonteCarloConfig = MONTE_CARLO_CONFIG,
    poisson_config: PoissonConfig = POISSON_CONFIG,
    max_workers: int = DEFAULT_MAX_WORKERS,
    observer: Optional[EngineObserver] = None,
    published_at: Optional[str] = None,
) -> SlateSummary:
    """
    Run the full day's pipeline.

    Args:
        fixtures: Contexts for the day, in display order.
        odds_provider: ``fixture_id -> odds rows``.  May raise; the fixture
            is then counted as an error.
        cache: Optional TTL cache in front of ``odds_provider``.
        repository: When given, surviving picks are published to it.
        portfolio: Bankroll state used for staking; a fresh
            :class:`PortfolioManager` when omitted.

    Returns:
        SlateSummary with the picks in edge-score order.
    """
    started = time.monotonic()
    summary = SlateSummary()
    manager = portfolio if portfolio is not None else PortfolioManager()

    def analyse(context: MatchContext) -> MatchResult:
        odds = _fetch_odds(context, odds_provider, cache)
        return process_match(
            context, odds,
            engine_config=engine_config,
            mc_config=mc_config,
            poisson_config=poisson_config,
            observer=observer,
        )

    logger.info("Analysing slate of %d fixtures", len(fixtures))

    # ------------------------------------------------------------------
    # Per-fixture analysis (results consumed in input order)
    # ------------------------------------------------------------------
    candidates: List[MatchPrediction] = []
    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
        futures = [(ctx, executor.submit(analyse, ctx)) for ctx in fixtures]
        for context, future in futures:
            try:
                result = future.result()
            except Exception as exc:
                logger.exception(
                    "Error analysing fixture %s (%s v %s)",
                    context.fixture_id, context.home_team, context.away_team,
                )
                summary.errors.append(f"{context.fixture_id}: {str(exc)[:100]}")
                continue

            summary.fixtures_processed += 1
            prediction = to_match_prediction(context, result)
            if prediction is None:
                summary.no_selection += 1
                continue
            if prediction.risk_tier == TIER_REJECT:
                logger.debug(
                    "Fixture %s best market %s is REJECT tier",
                    context.fixture_id, prediction.market_id,
                )
                summary.rejected += 1
                continue
            candidates.append(prediction)

    # ------------------------------------------------------------------
    # Correlation filter and daily cap
    # ------------------------------------------------------------------
    kept = deduplicate_correlated_picks(candidates)
    summary.correlated_dropped = len(candidates) - len(kept)
    if len(kept) > engine_config.max_picks_per_day:
        summary.capped = len(kept) - engine_config.max_picks_per_day
        kept = kept[: engine_config.max_picks_per_day]
    summary.picks = kept

    # ------------------------------------------------------------------
    # Portfolio impact and staking
    # ------------------------------------------------------------------
    # A slate over the drawdown limit is neither staked nor published
    summary.impact = assess_portfolio_impact(kept)
    if kept and not summary.impact.approved:
        summary.rejected_reason = summary.impact.reason
        logger.warning("Slate rejected: %s", summary.impact.reason)
    else:
        for pick in kept:
            summary.stakes.append(manager.size_pick(pick))

    # ------------------------------------------------------------------
    # Publication
    # ------------------------------------------------------------------
    if repository is not None and kept and summary.rejected_reason is None:
        timestamp = published_at or datetime.now(timezone.utc).isoformat()
        for pick in kept:
            checksum = publish_prediction(repository, pick, timestamp)
            if checksum is None:
                continue
            pick.checksum = checksum
            pick.is_locked = True
            summary.published[pick.fixture_id] = checksum

    summary.duration_seconds = round(time.monotonic() - started, 2)
    logger.info(
        "Slate complete in %.1fs: %d fixtures, %d picks, %d published, %d errors",
        summary.duration_seconds,
        summary.fixtures_processed,
        len(summary.picks),
        len(summary.published),
        summary.error_count,
    )
    return summary
