#!/usr/bin/env python3
"""
Prediction history database setup
Creates the immutable_predictions table, optionally publishes a demo pick
and lists what has been published recently
"""

import sys
import os

# Run from a checkout without installing
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from dotenv import load_dotenv
load_dotenv()

from edge_engine.models import Base, engine, SessionLocal, SqlPredictionRepository
from edge_engine.services.engine import MatchContext, TeamStats, process_match, to_match_prediction
from edge_engine.services.integrity import publish_prediction
from datetime import datetime, timedelta, timezone
import logging
from sqlalchemy import text, inspect

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEMO_FIXTURE_ID = 1


def create_tables(drop_existing: bool = False) -> bool:
    """
    Create the history tables.

    Args:
        drop_existing: Drop every table first.  Published picks are meant to
            be permanent, so this asks for confirmation.
    """
    if drop_existing:
        logger.warning("⚠️  This deletes every published prediction and its settlement")
        answer = input("Type the database URL's last path segment to confirm: ")
        expected = str(engine.url).rsplit("/", 1)[-1]
        if answer.strip() != expected:
            logger.info("Confirmation did not match %r; nothing dropped", expected)
            return False

        Base.metadata.drop_all(bind=engine)
        logger.info("🗑️  Dropped history tables")

    Base.metadata.create_all(bind=engine)
    present = inspect(engine).get_table_names()
    logger.info("✅ Tables ready: %s", ", ".join(present) or "(none)")
    return True


def publish_demo_pick():
    """Run one synthetic fixture through the engine and publish its pick"""
    context = MatchContext(
        fixture_id=DEMO_FIXTURE_ID,
        home_team="Home FC",
        away_team="Away United",
        league_id=8,
        league_name="Premier League",
        start_time="2026-01-01T15:00:00Z",
        home=TeamStats(avg_scored=1.9, avg_conceded=1.0, rank=3, form_ppg=2.1),
        away=TeamStats(avg_scored=1.4, avg_conceded=1.3, rank=9, form_ppg=1.4),
    )
    odds = [
        {"bookmaker_id": bid, "bookmaker_name": name, "market_id": 80,
         "label": label, "odds_name": "2.5", "odds_value": price}
        for bid, name in ((2, "bet365"), (7, "William Hill"))
        for label, price in (("Over", 1.95), ("Under", 1.90))
    ]

    prediction = to_match_prediction(context, process_match(context, odds))
    if prediction is None:
        logger.info("Demo fixture produced no pick above the display floor")
        return

    checksum = publish_prediction(SqlPredictionRepository(SessionLocal), prediction)
    if checksum:
        logger.info("🌱 Published demo pick %s @ %.2f (checksum %s…)",
                    prediction.market, prediction.odds, checksum[:12])
    else:
        logger.info("Demo fixture %s is already in the history", DEMO_FIXTURE_ID)


def list_recent(days: int):
    """Log intact picks published in the last ``days`` days, newest first"""
    end = datetime.now(timezone.utc)
    start = end - timedelta(days=days)
    records = SqlPredictionRepository(SessionLocal).get_range(start.isoformat(), end.isoformat())

    logger.info("%d picks published since %s", len(records), start.date())
    for r in records:
        status = r.result or "pending"
        logger.info("  %s  %s v %s  %s @ %.2f  [%s]",
                    r.published_at[:16], r.home_team, r.away_team, r.market, r.odds, status)


def database_reachable() -> bool:
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("❌ Cannot reach %s: %s", engine.url.render_as_string(hide_password=True), e)
        return False
    finally:
        db.close()
    logger.info("✅ Connected to %s", engine.url.render_as_string(hide_password=True))
    return True


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Set up the Edge Engine prediction history")
    parser.add_argument("--drop", action="store_true", help="Drop and recreate tables (asks first)")
    parser.add_argument("--seed", action="store_true", help="Publish a demo prediction")
    parser.add_argument("--check", action="store_true", help="Only check the connection")
    parser.add_argument("--list", type=int, metavar="DAYS", help="List picks from the last DAYS days")
    args = parser.parse_args()

    if not database_reachable():
        sys.exit(1)
    if args.check:
        sys.exit(0)

    if not create_tables(drop_existing=args.drop):
        sys.exit(1)
    if args.seed:
        publish_demo_pick()
    if args.list:
        list_recent(args.list)
