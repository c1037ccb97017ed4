"""
Tests for the daily slate runner

Run with: pytest tests/test_slate.py -v
"""

import logging
from unittest.mock import MagicMock, patch

import pytest

from edge_engine.core.engine_config import EngineConfig, MonteCarloConfig
from edge_engine.services.cache import InMemoryTTLCache
from edge_engine.services.engine import MatchContext, MatchPrediction, TeamStats
from edge_engine.services.integrity import InMemoryPredictionRepository
from edge_engine.services.portfolio import PortfolioManager
from edge_engine.services.slate import run_slate

FAST_MC = MonteCarloConfig(iterations=500)


def make_context(fixture_id, league_id=8):
    return MatchContext(
        fixture_id=fixture_id,
        home_team=f"Home{fixture_id}",
        away_team=f"Away{fixture_id}",
        league_id=league_id,
        start_time="2026-10-17T15:00:00Z",
        home=TeamStats(avg_scored=1.6, avg_conceded=1.0),
        away=TeamStats(avg_scored=1.2, avg_conceded=1.3),
    )


def make_pick(fixture_id, market_id, league_id=8, edge_score=80, risk_tier="A",
              probability=0.55, odds=2.0, stake=0.02):
    return MatchPrediction(
        fixture_id=fixture_id,
        home_team=f"Home{fixture_id}",
        away_team=f"Away{fixture_id}",
        league_id=league_id,
        league_name=f"League {league_id}",
        start_time="2026-10-17T15:00:00Z",
        market=market_id,
        market_id=market_id,
        probability=probability,
        implied_probability=1 / odds,
        odds=odds,
        bet365_odds=None,
        best_bookmaker="bet365",
        edge=probability - 1 / odds,
        ev=probability * odds - 1,
        ev_adjusted=0.05,
        confidence=75,
        edge_score=edge_score,
        risk_tier=risk_tier,
        suggested_stake=stake,
        clv_projection=1.5,
        simulation_win_freq=270,
        confidence_interval=(0.5, 0.6),
        lambda_home=1.5,
        lambda_away=1.1,
    )


def picks_by_fixture(mapping):
    """Stand-in for to_match_prediction keyed by fixture id."""
    return lambda context, result: mapping.get(context.fixture_id)


class TestRunSlateWithEngine:
    """End to end through process_match"""

    def test_provider_error_isolated(self):
        def provider(fixture_id):
            if fixture_id == 2:
                raise ConnectionError("odds feed timeout")
            return []

        summary = run_slate(
            [make_context(1), make_context(2), make_context(3)],
            provider, mc_config=FAST_MC,
        )

        assert summary.fixtures_processed == 2
        assert summary.no_selection == 2
        assert summary.errors == ["2: odds feed timeout"]
        assert summary.error_count == 1
        assert summary.picks == []

    def test_cache_shares_provider_calls(self):
        provider = MagicMock(return_value=[])
        cache = InMemoryTTLCache()
        fixtures = [make_context(1), make_context(2)]

        run_slate(fixtures, provider, cache=cache, mc_config=FAST_MC)
        run_slate(fixtures, provider, cache=cache, mc_config=FAST_MC)

        assert provider.call_count == 2

    def test_summary_to_dict(self):
        summary = run_slate([make_context(1)], MagicMock(return_value=[]), mc_config=FAST_MC)
        data = summary.to_dict()

        assert data["fixtures_processed"] == 1
        assert data["picks"] == []
        assert data["published"] == 0


@patch("edge_engine.services.slate.process_match", MagicMock(return_value=MagicMock()))
class TestRunSlateFiltering:
    """Rejection, correlation, cap, staking and publication"""

    def _run(self, mapping, **kwargs):
        fixtures = [make_context(fid) for fid in mapping]
        with patch("edge_engine.services.slate.to_match_prediction",
                   side_effect=picks_by_fixture(mapping)):
            return run_slate(fixtures, MagicMock(return_value=[]), **kwargs)

    def test_counts(self):
        summary = self._run({
            1: make_pick(1, "over_2.5", edge_score=90),
            2: make_pick(2, "btts", edge_score=40, risk_tier="REJECT"),
            3: None,
            4: make_pick(4, "under_3.5", edge_score=70),
            5: make_pick(5, "btts", league_id=9, edge_score=60, risk_tier="B"),
        })

        assert summary.fixtures_processed == 5
        assert summary.rejected == 1
        assert summary.no_selection == 1
        assert summary.correlated_dropped == 1
        assert [p.fixture_id for p in summary.picks] == [1, 5]

    def test_daily_cap(self):
        summary = self._run(
            {fid: make_pick(fid, "btts", league_id=fid, edge_score=50 + fid) for fid in range(1, 6)},
            engine_config=EngineConfig(max_picks_per_day=3),
        )

        assert summary.capped == 2
        assert [p.fixture_id for p in summary.picks] == [5, 4, 3]

    def test_stakes_sized_through_portfolio(self):
        manager = PortfolioManager(starting_bankroll=2000)
        summary = self._run(
            {1: make_pick(1, "btts"), 2: make_pick(2, "over_2.5", league_id=9)},
            portfolio=manager,
        )

        assert len(summary.stakes) == 2
        assert all(s.approved for s in summary.stakes)
        assert summary.stakes[0].stake_amount == pytest.approx(50.0)
        assert manager.daily_exposure == pytest.approx(0.05)

    def test_over_limit_slate_rejected(self, caplog):
        """Worst case 25% > 15%: nothing is staked or published"""
        picks = {fid: make_pick(fid, "btts", league_id=fid, stake=0.05) for fid in range(1, 6)}
        repo = InMemoryPredictionRepository()
        manager = PortfolioManager(starting_bankroll=1000)

        with caplog.at_level(logging.WARNING, logger="edge_engine.services.slate"):
            summary = self._run(picks, repository=repo, portfolio=manager)

        assert not summary.impact.approved
        assert summary.impact.worst_case_drawdown == pytest.approx(0.25)
        assert "exceeds 15% limit" in summary.rejected_reason
        assert "Slate rejected" in caplog.text
        assert summary.stakes == []
        assert summary.published == {}
        assert repo.get_range("2000-01-01", "2100-01-01") == []
        assert manager.daily_exposure == 0.0
        assert summary.to_dict()["rejected_reason"] == summary.rejected_reason

    def test_within_limit_has_no_rejection(self):
        summary = self._run({1: make_pick(1, "btts"), 2: make_pick(2, "over_2.5", league_id=9)})

        assert summary.impact.approved
        assert summary.rejected_reason is None
        assert len(summary.stakes) == 2

    def test_publication_locks_picks(self):
        repo = InMemoryPredictionRepository()
        summary = self._run(
            {1: make_pick(1, "btts"), 2: make_pick(2, "over_2.5", league_id=9)},
            repository=repo,
            published_at="2026-10-17T09:00:00+00:00",
        )

        assert set(summary.published) == {1, 2}
        for pick in summary.picks:
            assert pick.is_locked
            assert pick.checksum == summary.published[pick.fixture_id]
            assert repo.get(pick.fixture_id).checksum == pick.checksum

    def test_already_published_not_relocked(self):
        repo = InMemoryPredictionRepository()
        self._run({1: make_pick(1, "btts")}, repository=repo)
        summary = self._run({1: make_pick(1, "btts")}, repository=repo)

        assert summary.published == {}
        assert not summary.picks[0].is_locked
