"""
Read-only views over pipeline output for the serving layer.
"""

from datetime import date
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from dbpulse import runstate
from dbpulse.config import settings
from dbpulse.jobs import ScrapeJobManager, manual_runs_used, remaining_manual_runs
from dbpulse.models import Article, RawArticle, Release, SourceRunState
from dbpulse.sources import NEWS_SOURCES, RELEASE_SOURCES


def todays_releases(db: Session, today: date) -> List[Release]:
    return (
        db.query(Release)
        .filter(Release.scraped_date == today)
        .order_by(Release.id.desc())
        .all()
    )


def todays_articles(db: Session, today: date) -> List[Article]:
    return (
        db.query(Article)
        .filter(Article.pubdate == today)
        .order_by(Article.created_at.desc(), Article.id.desc())
        .all()
    )


def all_releases(db: Session) -> List[Release]:
    return db.query(Release).order_by(Release.scraped_date.desc(), Release.name.asc()).all()


def processing_stats(db: Session) -> dict:
    pending = db.query(RawArticle).filter(RawArticle.processed.is_(False)).count()
    processed = db.query(RawArticle).filter(RawArticle.processed.is_(True)).count()
    total = db.query(Article).count()
    by_category = (
        db.query(Article.category, func.count(Article.id))
        .group_by(Article.category)
        .order_by(func.count(Article.id).desc())
        .all()
    )
    return {
        "pending_raw": pending,
        "processed_raw": processed,
        "total_articles": total,
        "by_category": [{"category": c, "count": n} for c, n in by_category],
    }


def scrape_history(db: Session) -> List[SourceRunState]:
    return runstate.list_states(db)


def _all_ran(db: Session, sources, today: date) -> bool:
    return all(runstate.has_run_today(db, s.id, today) for s in sources)


def scraper_status(db: Session, today: date, jobs: Optional[ScrapeJobManager] = None) -> dict:
    used = manual_runs_used(db, today)
    max_daily = jobs.max_daily if jobs else settings.MAX_DAILY_MANUAL_RUNS
    return {
        "date": today.isoformat(),
        "manual_runs": {
            "used": used,
            "remaining": remaining_manual_runs(db, today, max_daily),
            "max": max_daily,
        },
        "daily": {
            "releases_ran_today": _all_ran(db, RELEASE_SOURCES, today),
            "news_ran_today": _all_ran(db, NEWS_SOURCES, today),
        },
        "job": jobs.status() if jobs else None,
        "processing": processing_stats(db),
    }
