"""
Tests for checksummed, write-once prediction history

Run with: pytest tests/test_integrity.py -v
"""

import logging
from dataclasses import replace
from unittest.mock import MagicMock

import pytest

from edge_engine.services.engine import MatchPrediction
from edge_engine.services.integrity import (
    ImmutablePrediction,
    InMemoryPredictionRepository,
    generate_checksum,
    publish_prediction,
    verify_checksum,
)

PUBLISHED_AT = "2026-10-17T09:00:00+00:00"

CHECKSUM_FIELDS = dict(
    fixture_id=19135003,
    lambda_home=1.5,
    lambda_away=1.1,
    market="Over 2.5 Goals",
    p_model=0.58,
    odds=2.1,
    ev_adjusted=0.12,
    confidence=78,
    published_at=PUBLISHED_AT,
)


def make_prediction(fixture_id=19135003, risk_tier="A+"):
    return MatchPrediction(
        fixture_id=fixture_id,
        home_team="Arsenal",
        away_team="Chelsea",
        league_id=8,
        league_name="Premier League",
        start_time="2026-10-17T15:00:00Z",
        market="Over 2.5 Goals",
        market_id="over_2.5",
        probability=0.58,
        implied_probability=1 / 2.1,
        odds=2.1,
        bet365_odds=2.05,
        best_bookmaker="Betfair",
        edge=0.58 - 1 / 2.1,
        ev=0.218,
        ev_adjusted=0.12,
        confidence=78,
        edge_score=88,
        risk_tier=risk_tier,
        suggested_stake=0.05,
        clv_projection=4.2,
        simulation_win_freq=5800,
        confidence_interval=(0.55, 0.61),
        lambda_home=1.5,
        lambda_away=1.1,
    )


class TestChecksum:
    """SHA-256 over the canonical pipe-joined fields"""

    def test_known_digest(self):
        # 19135003|1.5000|1.1000|Over 2.5 Goals|0.5800|2.100|0.1200|78|2026-10-17T09:00:00+00:00
        assert generate_checksum(**CHECKSUM_FIELDS) == (
            "09dfa707de8f0431e1ac7648474acf64e8025b6a141304c9708c87900870ad8c"
        )

    def test_integral_float_confidence_matches_int(self):
        fields = dict(CHECKSUM_FIELDS, confidence=78.0)
        assert generate_checksum(**fields) == generate_checksum(**CHECKSUM_FIELDS)

    def test_rounding_below_precision_ignored(self):
        fields = dict(CHECKSUM_FIELDS, lambda_home=1.50001)
        assert generate_checksum(**fields) == generate_checksum(**CHECKSUM_FIELDS)

    @pytest.mark.parametrize("field,value", [
        ("odds", 2.2),
        ("market", "Under 2.5 Goals"),
        ("published_at", "2026-10-17T09:00:01+00:00"),
        ("confidence", 79),
    ])
    def test_any_field_change_detected(self, field, value):
        checksum = generate_checksum(**CHECKSUM_FIELDS)
        assert not verify_checksum(checksum, **dict(CHECKSUM_FIELDS, **{field: value}))

    def test_verify(self):
        assert verify_checksum(generate_checksum(**CHECKSUM_FIELDS), **CHECKSUM_FIELDS)


class TestImmutablePrediction:
    def test_from_prediction(self):
        record = ImmutablePrediction.from_prediction(make_prediction(), PUBLISHED_AT)

        assert record.checksum == generate_checksum(**CHECKSUM_FIELDS)
        assert record.p_model == 0.58
        assert record.market_id == "over_2.5"
        assert record.tier == "elite"
        assert record.is_intact()
        assert not record.is_frozen

    def test_non_a_plus_published_as_safe(self):
        record = ImmutablePrediction.from_prediction(make_prediction(risk_tier="B"), PUBLISHED_AT)
        assert record.tier == "safe"

    def test_tampered_record_not_intact(self):
        record = ImmutablePrediction.from_prediction(make_prediction(), PUBLISHED_AT)
        assert not replace(record, odds=3.0).is_intact()

    def test_settlement_outside_checksum(self):
        record = ImmutablePrediction.from_prediction(make_prediction(), PUBLISHED_AT)
        settled = replace(record, result="WIN", profit_loss=11.0, is_frozen=True)
        assert settled.is_intact()


class TestInMemoryRepository:
    """Write-once semantics"""

    @pytest.fixture
    def repo(self):
        return InMemoryPredictionRepository()

    @pytest.fixture
    def record(self):
        return ImmutablePrediction.from_prediction(make_prediction(), PUBLISHED_AT)

    def test_publish_and_get(self, repo, record):
        assert repo.publish(record) == record
        assert repo.exists(record.fixture_id)
        assert repo.get(record.fixture_id) == record

    def test_second_publish_returns_original(self, repo, record):
        repo.publish(record)
        later = ImmutablePrediction.from_prediction(make_prediction(), "2026-10-17T10:00:00+00:00")

        assert repo.publish(later) == record
        assert repo.get(record.fixture_id).published_at == PUBLISHED_AT

    def test_missing(self, repo):
        assert repo.get(1) is None
        assert not repo.exists(1)

    def test_checksum_mismatch_hidden(self, repo, record, caplog):
        repo.publish(replace(record, odds=3.0))

        with caplog.at_level(logging.ERROR):
            assert repo.get(record.fixture_id) is None
        assert "Checksum mismatch" in caplog.text

    def test_freeze_once(self, repo, record):
        repo.publish(record)

        assert repo.freeze(record.fixture_id, "WIN", 11.0)
        assert not repo.freeze(record.fixture_id, "LOSS", -10.0)

        stored = repo.get(record.fixture_id)
        assert stored.result == "WIN"
        assert stored.profit_loss == 11.0
        assert stored.is_frozen

    def test_freeze_missing(self, repo):
        assert not repo.freeze(42, "VOID", 0.0)

    def test_get_range_newest_first(self, repo):
        for fixture_id, ts in [(1, "2026-10-15T09:00:00"), (2, "2026-10-17T09:00:00"),
                               (3, "2026-10-16T09:00:00"), (4, "2026-10-20T09:00:00")]:
            repo.publish(ImmutablePrediction.from_prediction(make_prediction(fixture_id), ts))

        records = repo.get_range("2026-10-15", "2026-10-18")
        assert [r.fixture_id for r in records] == [2, 3, 1]

    def test_get_range_skips_tampered(self, repo, caplog):
        repo.publish(ImmutablePrediction.from_prediction(make_prediction(1), PUBLISHED_AT))
        tampered = ImmutablePrediction.from_prediction(make_prediction(2), PUBLISHED_AT)
        repo.publish(replace(tampered, odds=9.99))

        with caplog.at_level(logging.ERROR):
            records = repo.get_range("2026-10-17", "2026-10-18")

        assert [r.fixture_id for r in records] == [1]
        assert "Checksum mismatch for fixture 2" in caplog.text


class TestPublishPrediction:
    def test_returns_checksum(self):
        repo = InMemoryPredictionRepository()
        checksum = publish_prediction(repo, make_prediction(), PUBLISHED_AT)

        assert checksum == generate_checksum(**CHECKSUM_FIELDS)
        assert repo.exists(19135003)

    def test_already_published(self):
        repo = InMemoryPredictionRepository()
        publish_prediction(repo, make_prediction(), PUBLISHED_AT)
        assert publish_prediction(repo, make_prediction(), PUBLISHED_AT) is None

    def test_default_timestamp(self):
        repo = InMemoryPredictionRepository()
        publish_prediction(repo, make_prediction())
        assert repo.get(19135003).published_at.endswith("+00:00")

    def test_repository_failure_returns_none(self):
        repo = MagicMock()
        repo.exists.return_value = False
        repo.publish.side_effect = RuntimeError("disk full")

        assert publish_prediction(repo, make_prediction(), PUBLISHED_AT) is None
