"""
Per-source run state (the pipeline's watermark).

A source is either never-run (no row) or has a last_scrape_date. When that date is
today the source is skipped; otherwise the date bounds the recency filter. The row is
written once per successful run, including runs that found nothing.
"""

import logging
from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from dbpulse.config import settings
from dbpulse.models import SourceRunState
from dbpulse.utils import utc_now

logger = logging.getLogger("dbpulse.runstate")
logger.setLevel(getattr(logging, settings.LOG_LEVEL, "INFO"))


def get_state(db: Session, source_id: str) -> Optional[SourceRunState]:
    return db.query(SourceRunState).filter(SourceRunState.source_id == source_id).first()


def last_scrape_date(db: Session, source_id: str) -> Optional[date]:
    state = get_state(db, source_id)
    return state.last_scrape_date if state else None


def has_run_today(db: Session, source_id: str, today: date) -> bool:
    return last_scrape_date(db, source_id) == today


def record_run(db: Session, source_id: str, today: date, added: int = 0) -> SourceRunState:
    """Advance the watermark to today and accumulate the added count."""
    state = get_state(db, source_id)
    if state is None:
        state = SourceRunState(source_id=source_id, total_articles_scraped=0)
        db.add(state)
    state.last_scrape_date = today
    state.last_scrape_timestamp = utc_now()
    state.articles_added_last_run = added
    state.total_articles_scraped = (state.total_articles_scraped or 0) + added
    db.commit()
    logger.info("Updated run state for %s to %s (%d added)", source_id, today, added)
    return state


def list_states(db: Session) -> List[SourceRunState]:
    return db.query(SourceRunState).order_by(SourceRunState.last_scrape_timestamp.desc()).all()
