"""
Immutable prediction history.

Write-once, read-many storage for published picks.  Every record carries a
SHA-256 checksum over the fields that define the pick; a record whose
checksum no longer matches is treated as missing and logged, never
repaired.  Once a result is attached the record is frozen: only
``result`` and ``profit_loss`` ever change, and only once.

Storage is behind the :class:`PredictionRepository` protocol.  This module
ships the in-memory implementation; ``edge_engine.models`` provides the
SQLAlchemy one.
"""

import hashlib
import hmac
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional, Protocol

from edge_engine.core.engine_config import TIER_A_PLUS
from edge_engine.services.engine import MatchPrediction

logger = logging.getLogger(__name__)

SettlementResult = Literal["WIN", "LOSS", "VOID"]


# ---------------------------------------------------------------------------
# Checksum
# ---------------------------------------------------------------------------

def _format_confidence(confidence: float) -> str:
    if float(confidence).is_integer():
        return str(int(confidence))
    return str(confidence)


def generate_checksum(
    fixture_id: int,
    lambda_home: float,
    lambda_away: float,
    market: str,
    p_model: float,
    odds: float,
    ev_adjusted: float,
    confidence: float,
    published_at: str,
) -> str:
    """SHA-256 hex digest of the pipe-joined canonical field list."""
    payload = "|".join([
        str(fixture_id),
        f"{lambda_home:.4f}",
        f"{lambda_away:.4f}",
        market,
        f"{p_model:.4f}",
        f"{odds:.3f}",
        f"{ev_adjusted:.4f}",
        _format_confidence(confidence),
        published_at,
    ])
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def verify_checksum(stored_checksum: str, **fields) -> bool:
    """Recompute the checksum from ``fields`` and compare in constant time."""
    return hmac.compare_digest(stored_checksum, generate_checksum(**fields))


# ---------------------------------------------------------------------------
# Record
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ImmutablePrediction:
    fixture_id: int
    lambda_home: float
    lambda_away: float
    market: str
    market_id: str
    p_model: float
    odds: float
    ev_adjusted: float
    confidence: int
    home_team: str
    away_team: str
    league_name: str
    tier: str
    published_at: str
    checksum: str
    bet365_odds: Optional[float] = None
    best_bookmaker: str = ""
    edge: float = 0.0
    result: Optional[str] = None
    profit_loss: Optional[float] = None
    is_frozen: bool = False

    def checksum_fields(self) -> Dict:
        return {
            "fixture_id": self.fixture_id,
            "lambda_home": self.lambda_home,
            "lambda_away": self.lambda_away,
            "market": self.market,
            "p_model": self.p_model,
            "odds": self.odds,
            "ev_adjusted": self.ev_adjusted,
            "confidence": self.confidence,
            "published_at": self.published_at,
        }

    def is_intact(self) -> bool:
        return verify_checksum(self.checksum, **self.checksum_fields())

    @classmethod
    def from_prediction(
        cls,
        prediction: MatchPrediction,
        published_at: str,
    ) -> "ImmutablePrediction":
        checksum = generate_checksum(
            fixture_id=prediction.fixture_id,
            lambda_home=prediction.lambda_home,
            lambda_away=prediction.lambda_away,
            market=prediction.market,
            p_model=prediction.probability,
            odds=prediction.odds,
            ev_adjusted=prediction.ev_adjusted,
            confidence=prediction.confidence,
            published_at=published_at,
        )
        return cls(
            fixture_id=prediction.fixture_id,
            lambda_home=prediction.lambda_home,
            lambda_away=prediction.lambda_away,
            market=prediction.market,
            market_id=prediction.market_id,
            p_model=prediction.probability,
            odds=prediction.odds,
            ev_adjusted=prediction.ev_adjusted,
            confidence=prediction.confidence,
            home_team=prediction.home_team,
            away_team=prediction.away_team,
            league_name=prediction.league_name,
            tier="elite" if prediction.risk_tier == TIER_A_PLUS else "safe",
            published_at=published_at,
            checksum=checksum,
            bet365_odds=prediction.bet365_odds,
            best_bookmaker=prediction.best_bookmaker,
            edge=prediction.edge,
        )


# ---------------------------------------------------------------------------
# Repository contract
# ---------------------------------------------------------------------------

class PredictionRepository(Protocol):
    def publish(self, record: ImmutablePrediction) -> ImmutablePrediction:
        """Store ``record``; if the fixture already exists, return the stored one."""

    def get(self, fixture_id: int) -> Optional[ImmutablePrediction]:
        """The stored record, or ``None`` if missing or its checksum fails."""

    def freeze(self, fixture_id: int, result: SettlementResult, profit_loss: float) -> bool:
        """Attach a result; ``False`` if missing or already frozen."""

    def exists(self, fixture_id: int) -> bool:
        ...

    def get_range(self, start: str, end: str) -> List[ImmutablePrediction]:
        """Intact records published in ``[start, end]``, newest first."""


class InMemoryPredictionRepository:
    """Dict-backed repository for tests and local runs."""

    def __init__(self):
        self._records: Dict[int, ImmutablePrediction] = {}

    def publish(self, record: ImmutablePrediction) -> ImmutablePrediction:
        existing = self._records.get(record.fixture_id)
        if existing is not None:
            return existing
        self._records[record.fixture_id] = record
        return record

    def get(self, fixture_id: int) -> Optional[ImmutablePrediction]:
        record = self._records.get(fixture_id)
        if record is None:
            return None
        if not record.is_intact():
            logger.error("Checksum mismatch for fixture %s", fixture_id)
            return None
        return record

    def freeze(self, fixture_id: int, result: SettlementResult, profit_loss: float) -> bool:
        record = self._records.get(fixture_id)
        if record is None or record.is_frozen:
            return False
        self._records[fixture_id] = replace(
            record, result=result, profit_loss=profit_loss, is_frozen=True
        )
        return True

    def exists(self, fixture_id: int) -> bool:
        return fixture_id in self._records

    def get_range(self, start: str, end: str) -> List[ImmutablePrediction]:
        matched = []
        for record in self._records.values():
            if not start <= record.published_at <= end:
                continue
            if not record.is_intact():
                logger.error("Checksum mismatch for fixture %s", record.fixture_id)
                continue
            matched.append(record)
        return sorted(matched, key=lambda r: r.published_at, reverse=True)


# ---------------------------------------------------------------------------
# Publication
# ---------------------------------------------------------------------------

def publish_prediction(
    repository: PredictionRepository,
    prediction: MatchPrediction,
    published_at: Optional[str] = None,
) -> Optional[str]:
    """
    Publish ``prediction`` once per fixture.

    Returns:
        The checksum of the new record, or ``None`` when the fixture was
        already published or the repository failed.
    """
    timestamp = published_at or datetime.now(timezone.utc).isoformat()
    try:
        if repository.exists(prediction.fixture_id):
            logger.info("Fixture %s already published; skipping", prediction.fixture_id)
            return None
        record = repository.publish(ImmutablePrediction.from_prediction(prediction, timestamp))
    except Exception:
        logger.exception("Failed to publish prediction for fixture %s", prediction.fixture_id)
        return None
    return record.checksum
