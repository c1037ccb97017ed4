"""
Tests for the REST API

Run with: pytest tests/test_api.py -v
"""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from edge_engine.main import app
from edge_engine.models import get_db


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def db_session():
    session = MagicMock()
    app.dependency_overrides[get_db] = lambda: session
    yield session
    app.dependency_overrides.clear()


ANALYSIS_PAYLOAD = {
    "fixture_id": 19135003,
    "home_team": "Arsenal",
    "away_team": "Chelsea",
    "league_id": 8,
    "league_name": "Premier League",
    "start_time": "2026-10-17T14:00:00Z",
    "home": {"avg_scored": 1.9, "avg_conceded": 0.9, "rank": 2, "form_ppg": 2.2},
    "away": {"avg_scored": 1.5, "avg_conceded": 1.2, "rank": 6, "form_ppg": 1.6},
    "odds": [
        {
            "bookmaker_id": 2,
            "bookmaker_name": "bet365",
            "market_id": 80,
            "label": "Over",
            "odds_name": "2.5",
            "odds_value": 1.95,
        }
    ],
}


class TestHealth:
    def test_healthy(self, client, db_session):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "database": "connected"}
        db_session.execute.assert_called_once()

    def test_degraded(self, client, db_session):
        db_session.execute.side_effect = RuntimeError("connection refused")
        body = client.get("/health").json()

        assert body["status"] == "degraded"
        assert "connection refused" in body["database"]


class TestAnalysis:
    """POST /api/analysis"""

    def test_single_market(self, client):
        response = client.post("/api/analysis", json=ANALYSIS_PAYLOAD)
        assert response.status_code == 200

        body = response.json()
        assert body["fixture_id"] == 19135003
        assert 0.3 <= body["lambda_home"] <= 4.0
        assert 40 <= body["confidence"] <= 95
        assert [c["market_id"] for c in body["candidates"]] == ["over_2.5"]
        # one bookmaker is below the liquidity gate
        assert "Low liquidity" in body["candidates"][0]["rejection_reason"]
        assert body["prediction"]["market_id"] == "over_2.5"
        assert body["simulation"]["n_sims"] > 0

    def test_no_odds(self, client):
        payload = dict(ANALYSIS_PAYLOAD, odds=[])
        body = client.post("/api/analysis", json=payload).json()

        assert body["prediction"] is None
        assert body["candidates"] == []

    def test_same_teams_rejected(self, client):
        payload = dict(ANALYSIS_PAYLOAD, away_team="arsenal ")
        assert client.post("/api/analysis", json=payload).status_code == 422

    def test_out_of_range_stats_rejected(self, client):
        payload = dict(ANALYSIS_PAYLOAD, home={"form_ppg": 4.0})
        assert client.post("/api/analysis", json=payload).status_code == 422


class TestAccaFreeze:
    """POST /api/acca-freeze and /api/acca-freeze/value"""

    @pytest.fixture
    def payload(self):
        safe = [
            {"fixture_id": i, "home_team": f"Fav{i}", "away_team": f"Dog{i}",
             "league_id": league, "lambda_home": 2.6, "lambda_away": 0.6,
             "start_time": f"2026-10-17T1{i}:00:00Z"}
            for i, league in zip(range(1, 6), (8, 8, 9, 9, 564))
        ]
        freeze = [
            {"fixture_id": i, "home_team": f"Under{i}", "away_team": f"Over{i}",
             "league_id": league, "lambda_home": 1.0, "lambda_away": 1.6,
             "start_time": "2026-10-17T19:45:00Z"}
            for i, league in ((20, 82), (21, 384))
        ]
        return {
            "fixtures": safe + freeze,
            "count": 2,
            "stake": 10,
            "odds": {f"{i}:result_home": 1.5 for i in range(1, 6)},
        }

    def test_builds_accas(self, client, payload):
        response = client.post("/api/acca-freeze", json=payload)
        assert response.status_code == 200

        body = response.json()
        assert body["meta"]["total_fixtures"] == 7
        assert body["meta"]["safe_legs_available"] == 5
        assert body["meta"]["freeze_legs_available"] == 2
        assert len(body["accas"]) == 2

        for acca in body["accas"]:
            assert len(acca["legs"]) == 5
            freeze_legs = [leg for leg in acca["legs"] if leg["is_freeze_leg"]]
            assert len(freeze_legs) == 1
            assert freeze_legs[0]["fixture_id"] in (20, 21)
            assert acca["ticket"].startswith("🎫 5-Fold Acca")

    def test_not_enough_fixtures(self, client, payload):
        payload["fixtures"] = payload["fixtures"][:3]
        body = client.post("/api/acca-freeze", json=payload).json()
        assert body["accas"] == []

    def test_invalid_lambda(self, client, payload):
        payload["fixtures"][0]["lambda_home"] = 0
        assert client.post("/api/acca-freeze", json=payload).status_code == 422

    def test_freeze_value(self, client):
        response = client.post("/api/acca-freeze/value", json={
            "legs": [
                {"odds": 1.5, "probability": 0.8, "status": "won"},
                {"odds": 6.0, "probability": 0.5},
            ],
            "stake": 10,
        })
        assert response.status_code == 200
        assert response.json() == {"freeze_value": 7.5, "recommendation": "LET_IT_RIDE"}

    def test_freeze_value_dead(self, client):
        body = client.post("/api/acca-freeze/value", json={
            "legs": [{"odds": 1.5, "probability": 0.8, "status": "lost"}],
        }).json()
        assert body["recommendation"] == "ACCA_DEAD"

    def test_freeze_value_needs_legs(self, client):
        assert client.post("/api/acca-freeze/value", json={"legs": []}).status_code == 422


class TestKelly:
    """POST /api/kelly"""

    def test_stake_with_bankroll(self, client):
        body = client.post("/api/kelly", json={
            "probability": 0.55, "odds": 2.0, "bankroll": 1000,
        }).json()

        assert body["suggested_stake"] == pytest.approx(0.025)
        assert body["stake_amount"] == pytest.approx(25.0)

    def test_no_bankroll(self, client):
        body = client.post("/api/kelly", json={"probability": 0.55, "odds": 2.0}).json()
        assert body["stake_amount"] is None

    def test_invalid_odds_are_zero_stake(self, client):
        body = client.post("/api/kelly", json={"probability": 0.6, "odds": 1.0}).json()
        assert body["suggested_stake"] == 0.0
        assert "Invalid" in body["reasoning"]

    def test_negative_odds_rejected(self, client):
        assert client.post("/api/kelly", json={"probability": 0.6, "odds": -1.5}).status_code == 422


class TestPortfolioStatus:
    def test_status(self, client):
        body = client.get("/api/portfolio/status").json()

        assert body["current_bankroll"] > 0
        assert body["peak_bankroll"] >= body["current_bankroll"]
        assert body["is_halted"] is False
