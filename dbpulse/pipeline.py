"""
Scrape -> extract -> filter -> ingest orchestration.

Provides:
 - run_release_source / run_news_source : one full cycle for one source
 - run_releases / run_news : all registered sources, strictly one after another
 - run_daily(db) : the once-a-day job (sources already done today are skipped)
 - run_manual(db, ...) : same work for a manual trigger, bypassing the daily skip
 - run_forever() : background thread that re-checks the daily job periodically

A failing source is reported in its SourceResult and never stops its siblings. Its
watermark is left untouched so the next invocation retries it.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dbpulse import runstate
from dbpulse.articles import extract_article_paragraphs
from dbpulse.config import settings
from dbpulse.fetcher import Fetcher, FetchError, RetryPolicy
from dbpulse.ingest import (
    IngestError,
    IngestResult,
    ingest_raw_articles,
    ingest_releases,
    known_article_urls,
    process_raw_articles,
)
from dbpulse.normalize import DatedArticle, select_recent
from dbpulse.notify import create_release_notifications
from dbpulse.sources import NEWS_SOURCES, RELEASE_SOURCES, Source
from dbpulse.utils import shorten, utc_today
from dbpulse.versions import select_latest_version

logger = logging.getLogger("dbpulse.pipeline")
logger.setLevel(getattr(logging, settings.LOG_LEVEL, "INFO"))

SUCCESS = "success"
SKIPPED = "skipped"
ERROR = "error"


@dataclass
class SourceResult:
    source_id: str
    status: str
    found: int = 0
    filtered: int = 0
    inserted: int = 0
    skipped: int = 0
    rejected: int = 0
    error: Optional[str] = None
    records: List = field(default_factory=list, repr=False)

    def as_dict(self) -> dict:
        return {
            "source": self.source_id,
            "status": self.status,
            "found": self.found,
            "filtered": self.filtered,
            "inserted": self.inserted,
            "skipped": self.skipped,
            "rejected": self.rejected,
            "error": self.error,
        }


def _extract(fetcher: Fetcher, source: Source) -> list:
    candidates = []
    for page in fetcher.fetch_source(source):
        candidates.extend(source.extract(page))
    return candidates


def _already_done(db: Session, source: Source, today: date, force: bool) -> bool:
    if not force and runstate.has_run_today(db, source.id, today):
        logger.info("%s already scraped today (%s). Skipping.", source.name, today)
        return True
    return False


def _database_error(db: Session, source: Source, error: SQLAlchemyError) -> SourceResult:
    db.rollback()
    logger.exception("Database error while processing %s", source.id)
    return SourceResult(source.id, ERROR, error=str(error))


def run_release_source(
    db: Session,
    source: Source,
    fetcher: Fetcher,
    today: Optional[date] = None,
    force: bool = False,
) -> SourceResult:
    today = today or utc_today()
    try:
        return _release_cycle(db, source, fetcher, today, force)
    except SQLAlchemyError as e:
        return _database_error(db, source, e)


def _release_cycle(db: Session, source: Source, fetcher: Fetcher, today: date, force: bool) -> SourceResult:
    if _already_done(db, source, today, force):
        return SourceResult(source.id, SKIPPED)

    logger.info("Scraping %s (%s)", source.name, source.url)
    try:
        candidates = _extract(fetcher, source)
    except FetchError as e:
        logger.error("Fetch failed for %s: %s", source.id, e)
        return SourceResult(source.id, ERROR, error=str(e))
    except Exception as e:
        logger.exception("Extraction failed for %s", source.id)
        return SourceResult(source.id, ERROR, error=str(e))

    version = select_latest_version(candidates)
    if version is None:
        logger.warning("Could not extract version for %s", source.name)
        runstate.record_run(db, source.id, today, added=0)
        return SourceResult(source.id, SUCCESS, found=len(candidates), rejected=1)

    logger.info("Found version %s for %s (%d candidates)", version, source.name, len(candidates))
    try:
        result = ingest_releases(db, [(source.name, version, source.url)], today)
    except IngestError as e:
        return SourceResult(source.id, ERROR, found=len(candidates), error=str(e))

    runstate.record_run(db, source.id, today, added=result.inserted)
    return SourceResult(
        source.id,
        SUCCESS,
        found=len(candidates),
        inserted=result.inserted,
        skipped=result.skipped,
        records=result.records,
    )


def _attach_details(
    db: Session,
    fetcher: Fetcher,
    articles: List[DatedArticle],
    delay: Optional[float] = None,
):
    """Replace excerpts with the full article body for urls not stored yet."""
    delay = settings.DETAIL_DELAY_SECONDS if delay is None else delay
    known = known_article_urls(db, [a.url for a in articles])
    single_attempt = RetryPolicy(max_attempts=1, base_delay=0)
    for article in articles:
        if article.url in known:
            continue
        logger.info("Fetching full content: %s", shorten(article.title, 40))
        try:
            page = fetcher.fetch(article.url, timeout=settings.DETAIL_TIMEOUT_SECONDS, policy=single_attempt)
            body = extract_article_paragraphs(page)
        except FetchError as e:
            logger.warning("Could not fetch article %s: %s", article.url, e)
            body = ""
        if body:
            article.content_text = body
        fetcher.pause(delay)


def run_news_source(
    db: Session,
    source: Source,
    fetcher: Fetcher,
    today: Optional[date] = None,
    force: bool = False,
) -> SourceResult:
    today = today or utc_today()
    try:
        return _news_cycle(db, source, fetcher, today, force)
    except SQLAlchemyError as e:
        return _database_error(db, source, e)


def _news_cycle(db: Session, source: Source, fetcher: Fetcher, today: date, force: bool) -> SourceResult:
    if _already_done(db, source, today, force):
        return SourceResult(source.id, SKIPPED)

    last = runstate.last_scrape_date(db, source.id)
    logger.info(
        "Processing %s (%s), last scrape: %s", source.name, source.id, last or "never"
    )
    try:
        candidates = _extract(fetcher, source)
    except FetchError as e:
        logger.error("Fetch failed for %s: %s", source.id, e)
        return SourceResult(source.id, ERROR, error=str(e))
    except Exception as e:
        logger.exception("Extraction failed for %s", source.id)
        return SourceResult(source.id, ERROR, error=str(e))

    recent = select_recent(candidates, today, last)
    logger.info("%s: %d articles found, %d in date range", source.id, len(candidates), len(recent))

    if recent and source.fetch_details:
        _attach_details(db, fetcher, recent)

    result = IngestResult()
    if recent:
        try:
            result = ingest_raw_articles(db, recent, source.id)
        except IngestError as e:
            return SourceResult(source.id, ERROR, found=len(candidates), error=str(e))

    runstate.record_run(db, source.id, today, added=result.inserted)
    return SourceResult(
        source.id,
        SUCCESS,
        found=len(candidates),
        filtered=len(candidates) - len(recent),
        inserted=result.inserted,
        skipped=result.skipped,
        records=result.records,
    )


def run_releases(
    db: Session,
    fetcher: Optional[Fetcher] = None,
    today: Optional[date] = None,
    force: bool = False,
    sources=RELEASE_SOURCES,
) -> List[SourceResult]:
    fetcher = fetcher or Fetcher()
    today = today or utc_today()
    return [run_release_source(db, s, fetcher, today, force=force) for s in sources]


def run_news(
    db: Session,
    fetcher: Optional[Fetcher] = None,
    today: Optional[date] = None,
    force: bool = False,
    sources=NEWS_SOURCES,
    store_uncategorized: Optional[bool] = None,
) -> Tuple[List[SourceResult], dict]:
    """Stage new articles from every news source, then process the staging table."""
    fetcher = fetcher or Fetcher()
    today = today or utc_today()
    results = [run_news_source(db, s, fetcher, today, force=force) for s in sources]
    try:
        processing = process_raw_articles(db, store_uncategorized=store_uncategorized).as_dict()
    except IngestError as e:
        processing = {"error": str(e)}
    return results, processing


def _run(
    db: Session,
    scrape_releases: bool,
    scrape_news: bool,
    force: bool,
    fetcher: Optional[Fetcher],
    today: Optional[date],
    progress: Optional[Callable[[str], None]],
) -> dict:
    fetcher = fetcher or Fetcher()
    today = today or utc_today()
    report = {"date": today.isoformat(), "releases": None, "news": None}
    report_progress = progress or (lambda message: None)

    if scrape_releases:
        report_progress("Scraping releases...")
        results = run_releases(db, fetcher, today, force=force)
        new_releases = [r for res in results for r in res.records]
        notifications = create_release_notifications(db, new_releases)
        report["releases"] = {
            "sources": [r.as_dict() for r in results],
            "new_releases": [{"name": r.name, "version": r.version} for r in new_releases],
            "notifications": len(notifications),
        }

    if scrape_news:
        report_progress("Scraping articles...")
        results, processing = run_news(db, fetcher, today, force=force)
        report["news"] = {
            "sources": [r.as_dict() for r in results],
            "new_raw_articles": sum(r.inserted for r in results),
            "processing": processing,
        }

    _log_summary(report)
    return report


def _log_summary(report: dict):
    for section in ("releases", "news"):
        part = report.get(section)
        if not part:
            continue
        for res in part["sources"]:
            if res["status"] == ERROR:
                logger.warning("%s: error: %s", res["source"], res["error"])
            else:
                logger.info(
                    "%s: %s (inserted=%d skipped=%d)",
                    res["source"], res["status"], res["inserted"], res["skipped"],
                )


def run_daily(db: Session, fetcher: Optional[Fetcher] = None, today: Optional[date] = None) -> dict:
    """The scheduled job; safe to call many times a day."""
    return _run(db, True, True, False, fetcher, today, None)


def run_manual(
    db: Session,
    scrape_news: bool = True,
    scrape_releases: bool = True,
    progress: Optional[Callable[[str], None]] = None,
    fetcher: Optional[Fetcher] = None,
    today: Optional[date] = None,
) -> dict:
    """Manually triggered run; re-scrapes sources even if they already ran today."""
    return _run(db, scrape_releases, scrape_news, True, fetcher, today, progress)


def _background_loop(stop_event: threading.Event):
    # create a new DB session in this thread
    from dbpulse.db import SessionLocal
    db = SessionLocal()
    try:
        while not stop_event.is_set():
            try:
                run_daily(db)
            except Exception:
                logger.exception("Unexpected error in daily run")
            stop_event.wait(settings.CHECK_INTERVAL_SECONDS)
    finally:
        db.close()


_daily_thread = None
_daily_stop = None

def run_forever(start_immediately: bool = True):
    """
    Start a background thread that runs the daily job every CHECK_INTERVAL_SECONDS.

    Sources that already ran today skip themselves, so the loop only does real work
    once per day. Returns a dict with thread and stop_event; repeated calls return
    the existing thread info.
    """
    global _daily_thread, _daily_stop
    if _daily_thread and _daily_thread.is_alive():
        return {"thread": _daily_thread, "stop_event": _daily_stop}

    _daily_stop = threading.Event()
    _daily_thread = threading.Thread(target=_background_loop, args=(_daily_stop,), daemon=True, name="daily-scrape")
    if start_immediately:
        _daily_thread.start()
    return {"thread": _daily_thread, "stop_event": _daily_stop}


if __name__ == "__main__":
    from dbpulse.db import SessionLocal, init_db

    logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL, "INFO"))
    init_db()
    session = SessionLocal()
    try:
        run_daily(session)
    finally:
        session.close()
