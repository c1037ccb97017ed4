"""
Portfolio-level correlation filtering, impact assessment and bankroll-aware
stake sizing.

Prevents the "twenty goal overs on one Saturday" problem where independent
per-match selection ignores shared risk.  Implements:

    1. Correlation detection — same fixture, same-league goal markets, and
       any two result-family markets.
    2. Greedy de-duplication — keep the highest edge score, drop anything
       correlated with an already-kept pick.
    3. Impact assessment — worst-case drawdown if every pick loses, expected
       return and a diversification score.
    4. PortfolioManager — tracks bankroll, peak and the day's stakes, and
       sizes each pick through the drawdown breaker, Kelly and the daily
       exposure cap.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from edge_engine.core.engine_config import KELLY_CONFIG, KellyConfig
from edge_engine.core.kelly import (
    check_daily_exposure,
    check_drawdown,
    compute_kelly_stake,
    stake_to_amount,
)
from edge_engine.core.markets import is_goal_market, is_result_market, market_family
from edge_engine.services.engine import MatchPrediction

logger = logging.getLogger(__name__)

#: Worst-case drawdown above this fraction of bankroll rejects the slate.
MAX_WORST_CASE_DRAWDOWN = 0.15


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CorrelationResult:
    is_correlated: bool
    correlation_type: Optional[str] = None  # same_match | same_league_goals | result_family
    description: Optional[str] = None


@dataclass(frozen=True)
class PortfolioImpact:
    worst_case_drawdown: float
    expected_return: float
    diversification_score: int
    approved: bool
    reason: Optional[str] = None


@dataclass
class PortfolioPosition:
    """A stake placed today."""

    fixture_id: int
    market_id: str
    stake_fraction: float
    league_id: Optional[int] = None


@dataclass
class PortfolioState:
    """Snapshot of the current bankroll and exposure."""

    current_bankroll: float
    peak_bankroll: float
    positions: List[PortfolioPosition] = field(default_factory=list)
    drawdown: float = 0.0
    daily_exposure: float = 0.0
    is_halted: bool = False
    halt_reason: Optional[str] = None


@dataclass(frozen=True)
class StakeDecision:
    """Output of portfolio-aware sizing for one pick."""

    fixture_id: int
    approved: bool
    stake_fraction: float
    stake_amount: float
    kelly_fraction: float
    reason: str


# ---------------------------------------------------------------------------
# Correlation
# ---------------------------------------------------------------------------

def check_correlation(pick_a: MatchPrediction, pick_b: MatchPrediction) -> CorrelationResult:
    """
    Whether two picks should not both appear in one day's output.

    Goal-market correlation requires a shared league; result-family
    correlation applies across leagues and fixtures.
    """
    if pick_a.fixture_id == pick_b.fixture_id:
        return CorrelationResult(True, "same_match", "Same match: one bet per match")

    if (
        pick_a.league_id == pick_b.league_id
        and is_goal_market(pick_a.market_id)
        and is_goal_market(pick_b.market_id)
    ):
        return CorrelationResult(
            True,
            "same_league_goals",
            f"Same league ({pick_a.league_name or pick_a.league_id}) with goal markets",
        )

    if is_result_market(pick_a.market_id) and is_result_market(pick_b.market_id):
        return CorrelationResult(True, "result_family", "Both picks are result-family markets")

    return CorrelationResult(False)


def deduplicate_correlated_picks(picks: Sequence[MatchPrediction]) -> List[MatchPrediction]:
    """Greedy filter: highest edge score first, drop picks correlated with a kept one."""
    ranked = sorted(picks, key=lambda p: p.edge_score, reverse=True)
    kept: List[MatchPrediction] = []
    for pick in ranked:
        if any(check_correlation(pick, existing).is_correlated for existing in kept):
            logger.debug("Dropped correlated pick %s (%s)", pick.fixture_id, pick.market_id)
            continue
        kept.append(pick)
    return kept


# ---------------------------------------------------------------------------
# Impact
# ---------------------------------------------------------------------------

def assess_portfolio_impact(
    picks: Sequence[MatchPrediction],
    bankroll_fraction: float = 1.0,
) -> PortfolioImpact:
    """
    Worst case (every pick loses), expected return and diversification.

    Diversification is up to 50 points for league spread plus up to 50 for
    market-family spread (goals / btts / result).
    """
    if not picks:
        return PortfolioImpact(0.0, 0.0, 100, True)

    n = len(picks)
    total_stake = sum(p.suggested_stake for p in picks)
    worst_case = total_stake / bankroll_fraction
    expected = sum(p.suggested_stake * p.ev_adjusted for p in picks)

    leagues = len({p.league_id for p in picks})
    families = len({market_family(p.market_id) for p in picks})
    diversification = round(min(50.0, leagues / n * 100.0) + min(50.0, families / n * 100.0))

    if worst_case > MAX_WORST_CASE_DRAWDOWN:
        return PortfolioImpact(
            worst_case_drawdown=worst_case,
            expected_return=expected,
            diversification_score=diversification,
            approved=False,
            reason=(
                f"Worst-case drawdown {worst_case * 100:.1f}% exceeds "
                f"{MAX_WORST_CASE_DRAWDOWN * 100:g}% limit"
            ),
        )
    return PortfolioImpact(worst_case, expected, diversification, True)


# ---------------------------------------------------------------------------
# Bankroll-aware sizing
# ---------------------------------------------------------------------------

class PortfolioManager:
    """
    Tracks bankroll state across a day's picks.

    Each pick is sized in three steps:

    1. Drawdown circuit breaker (from peak bankroll).
    2. Quarter-Kelly suggestion capped at the single-stake limit.
    3. Daily exposure cap; a stake that would breach it is scaled down to
       the remaining headroom, or rejected when there is none.
    """

    def __init__(
        self,
        starting_bankroll: Optional[float] = None,
        config: KellyConfig = KELLY_CONFIG,
    ):
        self.starting_bankroll = starting_bankroll or float(
            os.getenv("STARTING_BANKROLL", "1000")
        )
        self.current_bankroll = self.starting_bankroll
        self.peak_bankroll = self.starting_bankroll
        self.config = config
        self._positions: List[PortfolioPosition] = []

    # ------------------------------------------------------------------
    # Bankroll state
    # ------------------------------------------------------------------

    def update_bankroll(self, current: float) -> None:
        """Record a settled bankroll; the peak only ever rises."""
        self.current_bankroll = current
        self.peak_bankroll = max(self.peak_bankroll, current)

    @property
    def drawdown(self) -> float:
        return check_drawdown(self.current_bankroll, self.peak_bankroll, self.config).current_drawdown

    @property
    def is_halted(self) -> bool:
        return not check_drawdown(self.current_bankroll, self.peak_bankroll, self.config).approved

    @property
    def daily_exposure(self) -> float:
        return sum(p.stake_fraction for p in self._positions)

    # ------------------------------------------------------------------
    # Positions
    # ------------------------------------------------------------------

    def add_position(self, position: PortfolioPosition) -> None:
        self._positions.append(position)

    def clear_day(self) -> None:
        """Reset the day's positions (e.g. after settlement)."""
        self._positions.clear()

    # ------------------------------------------------------------------
    # Sizing
    # ------------------------------------------------------------------

    def size_pick(self, pick: MatchPrediction, record: bool = True) -> StakeDecision:
        """Size ``pick`` against the current bankroll and the day's exposure.

        Approved stakes are added to the day's positions unless
        ``record`` is false.
        """
        drawdown = check_drawdown(self.current_bankroll, self.peak_bankroll, self.config)
        if not drawdown.approved:
            return self._rejected(pick, 0.0, f"HALTED: {drawdown.reason}")

        kelly = compute_kelly_stake(pick.probability, pick.odds, config=self.config)
        if kelly.suggested_stake <= 0:
            return self._rejected(pick, 0.0, kelly.reasoning)

        stake = kelly.suggested_stake
        reason = kelly.reasoning
        exposure = check_daily_exposure(
            (p.stake_fraction for p in self._positions), stake, self.config
        )
        if not exposure.approved:
            headroom = round(exposure.max_exposure - exposure.current_exposure, 4)
            if headroom <= 0:
                return self._rejected(pick, kelly.suggested_stake, exposure.reason or "No headroom")
            stake = headroom
            reason = f"Scaled to daily headroom {headroom * 100:.1f}% ({exposure.reason})"

        decision = StakeDecision(
            fixture_id=pick.fixture_id,
            approved=True,
            stake_fraction=stake,
            stake_amount=stake_to_amount(stake, self.current_bankroll),
            kelly_fraction=kelly.suggested_stake,
            reason=reason,
        )
        if record:
            self.add_position(
                PortfolioPosition(pick.fixture_id, pick.market_id, stake, pick.league_id)
            )
        return decision

    def _rejected(self, pick: MatchPrediction, kelly_fraction: float, reason: str) -> StakeDecision:
        logger.info("No stake for fixture %s: %s", pick.fixture_id, reason)
        return StakeDecision(pick.fixture_id, False, 0.0, 0.0, kelly_fraction, reason)

    def get_state(self) -> PortfolioState:
        halted = self.is_halted
        return PortfolioState(
            current_bankroll=self.current_bankroll,
            peak_bankroll=self.peak_bankroll,
            positions=list(self._positions),
            drawdown=self.drawdown,
            daily_exposure=self.daily_exposure,
            is_halted=halted,
            halt_reason=(
                f"Drawdown {self.drawdown * 100:.1f}% >= {self.config.max_drawdown_halt * 100:g}%"
                if halted
                else None
            ),
        )


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_portfolio_manager: Optional[PortfolioManager] = None


def get_portfolio_manager() -> PortfolioManager:
    global _portfolio_manager
    if _portfolio_manager is None:
        _portfolio_manager = PortfolioManager()
    return _portfolio_manager
