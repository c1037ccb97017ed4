"""
Database models for the Edge Engine prediction history
SQLAlchemy ORM (SQLite by default, PostgreSQL in production)
"""

from sqlalchemy import (
    create_engine,
    Column,
    Integer,
    String,
    Float,
    DateTime,
    Boolean,
    update,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import declarative_base, sessionmaker
from datetime import datetime
from typing import List, Optional
import logging
import os
from dotenv import load_dotenv

from edge_engine.services.integrity import ImmutablePrediction, SettlementResult

logger = logging.getLogger(__name__)

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./edge_engine.db")

engine = create_engine(DATABASE_URL, pool_pre_ping=True, echo=False)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


# Dependency for FastAPI
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


class ImmutablePredictionRow(Base):
    """One published pick per fixture; only result columns change after insert"""

    __tablename__ = "immutable_predictions"

    id = Column(Integer, primary_key=True, index=True)
    fixture_id = Column(Integer, unique=True, nullable=False, index=True)

    # Model inputs / outputs covered by the checksum
    lambda_home = Column(Float, nullable=False)
    lambda_away = Column(Float, nullable=False)
    market = Column(String, nullable=False)
    market_id = Column(String, nullable=False)
    p_model = Column(Float, nullable=False)
    odds = Column(Float, nullable=False)
    ev_adjusted = Column(Float, nullable=False)
    confidence = Column(Integer, nullable=False)
    published_at = Column(String, nullable=False, index=True)  # ISO-8601, part of the checksum
    checksum = Column(String(64), nullable=False)

    # Display
    home_team = Column(String, nullable=False)
    away_team = Column(String, nullable=False)
    league_name = Column(String, default="")
    tier = Column(String, default="elite")
    bet365_odds = Column(Float)
    best_bookmaker = Column(String, default="")
    edge = Column(Float, default=0.0)

    # Settlement (written once)
    result = Column(String)  # WIN | LOSS | VOID
    profit_loss = Column(Float)
    is_frozen = Column(Boolean, default=False, nullable=False)
    frozen_at = Column(DateTime)

    created_at = Column(DateTime, default=datetime.utcnow)

    def to_record(self) -> ImmutablePrediction:
        return ImmutablePrediction(
            fixture_id=self.fixture_id,
            lambda_home=self.lambda_home,
            lambda_away=self.lambda_away,
            market=self.market,
            market_id=self.market_id,
            p_model=self.p_model,
            odds=self.odds,
            ev_adjusted=self.ev_adjusted,
            confidence=self.confidence,
            home_team=self.home_team,
            away_team=self.away_team,
            league_name=self.league_name or "",
            tier=self.tier or "elite",
            published_at=self.published_at,
            checksum=self.checksum,
            bet365_odds=self.bet365_odds,
            best_bookmaker=self.best_bookmaker or "",
            edge=self.edge or 0.0,
            result=self.result,
            profit_loss=self.profit_loss,
            is_frozen=bool(self.is_frozen),
        )

    @classmethod
    def from_record(cls, record: ImmutablePrediction) -> "ImmutablePredictionRow":
        return cls(
            fixture_id=record.fixture_id,
            lambda_home=record.lambda_home,
            lambda_away=record.lambda_away,
            market=record.market,
            market_id=record.market_id,
            p_model=record.p_model,
            odds=record.odds,
            ev_adjusted=record.ev_adjusted,
            confidence=record.confidence,
            published_at=record.published_at,
            checksum=record.checksum,
            home_team=record.home_team,
            away_team=record.away_team,
            league_name=record.league_name,
            tier=record.tier,
            bet365_odds=record.bet365_odds,
            best_bookmaker=record.best_bookmaker,
            edge=record.edge,
            result=record.result,
            profit_loss=record.profit_loss,
            is_frozen=record.is_frozen,
        )


class SqlPredictionRepository:
    """PredictionRepository backed by the immutable_predictions table."""

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def publish(self, record: ImmutablePrediction) -> ImmutablePrediction:
        db = self.session_factory()
        try:
            existing = (
                db.query(ImmutablePredictionRow)
                .filter(ImmutablePredictionRow.fixture_id == record.fixture_id)
                .first()
            )
            if existing is not None:
                return existing.to_record()
            db.add(ImmutablePredictionRow.from_record(record))
            try:
                db.commit()
            except IntegrityError:
                # Another writer published the same fixture first
                db.rollback()
                existing = (
                    db.query(ImmutablePredictionRow)
                    .filter(ImmutablePredictionRow.fixture_id == record.fixture_id)
                    .one()
                )
                return existing.to_record()
            return record
        finally:
            db.close()

    def get(self, fixture_id: int) -> Optional[ImmutablePrediction]:
        db = self.session_factory()
        try:
            row = (
                db.query(ImmutablePredictionRow)
                .filter(ImmutablePredictionRow.fixture_id == fixture_id)
                .first()
            )
            if row is None:
                return None
            record = row.to_record()
        finally:
            db.close()

        if not record.is_intact():
            logger.error("Checksum mismatch for fixture %s", fixture_id)
            return None
        return record

    def freeze(self, fixture_id: int, result: SettlementResult, profit_loss: float) -> bool:
        db = self.session_factory()
        try:
            stmt = (
                update(ImmutablePredictionRow)
                .where(ImmutablePredictionRow.fixture_id == fixture_id)
                .where(ImmutablePredictionRow.is_frozen.is_(False))
                .values(
                    result=result,
                    profit_loss=profit_loss,
                    is_frozen=True,
                    frozen_at=datetime.utcnow(),
                )
            )
            updated = db.execute(stmt).rowcount
            db.commit()
            return updated == 1
        finally:
            db.close()

    def exists(self, fixture_id: int) -> bool:
        db = self.session_factory()
        try:
            return (
                db.query(ImmutablePredictionRow.id)
                .filter(ImmutablePredictionRow.fixture_id == fixture_id)
                .first()
                is not None
            )
        finally:
            db.close()

    def get_range(self, start: str, end: str) -> List[ImmutablePrediction]:
        db = self.session_factory()
        try:
            rows = (
                db.query(ImmutablePredictionRow)
                .filter(ImmutablePredictionRow.published_at >= start)
                .filter(ImmutablePredictionRow.published_at <= end)
                .order_by(ImmutablePredictionRow.published_at.desc())
                .all()
            )
            records = [row.to_record() for row in rows]
        finally:
            db.close()

        intact = []
        for record in records:
            if not record.is_intact():
                logger.error("Checksum mismatch for fixture %s", record.fixture_id)
                continue
            intact.append(record)
        return intact
