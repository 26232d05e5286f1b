"""
Idempotent ingestion of normalized records.

Provides:
 - ingest_releases(db, releases, today) : store (name, version) pairs not seen before
 - ingest_raw_articles(db, articles, source_id) : stage articles whose url is new
 - process_raw_articles(db) : clean, classify and promote staged articles

Notes:
 - One transaction per batch. Each insert runs inside a SAVEPOINT so a uniqueness
   violation only undoes that row; it is counted as skipped, never as an error.
 - Any other database error rolls back the whole batch and raises IngestError.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Iterable, List, Optional, Set, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from dbpulse.config import settings
from dbpulse.models import Article, RawArticle, Release
from dbpulse.normalize import DatedArticle, categorize, clean_content
from dbpulse.utils import shorten

logger = logging.getLogger("dbpulse.ingest")
logger.setLevel(getattr(logging, settings.LOG_LEVEL, "INFO"))


class IngestError(Exception):
    """A batch could not be written and was rolled back."""


@dataclass
class IngestResult:
    inserted: int = 0
    skipped: int = 0
    rejected: int = 0
    records: List = field(default_factory=list)

    def as_dict(self) -> dict:
        return {"inserted": self.inserted, "skipped": self.skipped, "rejected": self.rejected}


def _add_row(db: Session, row) -> bool:
    """Insert row inside a savepoint; False when the unique key already exists."""
    try:
        with db.begin_nested():
            db.add(row)
            db.flush()
    except IntegrityError:
        return False
    return True


def _insert_batch(db: Session, rows: Iterable, exists: Callable, label: str) -> IngestResult:
    result = IngestResult()
    try:
        for row in rows:
            if exists(row) or not _add_row(db, row):
                result.skipped += 1
                logger.debug("Skipped existing %s: %s", label, row)
                continue
            result.inserted += 1
            result.records.append(row)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Rolled back %s batch: %s", label, e)
        raise IngestError(f"{label} batch failed: {e}") from e
    return result


def release_exists(db: Session, name: str, version: str) -> bool:
    return db.query(Release.id).filter(Release.name == name, Release.version == version).first() is not None


def ingest_releases(db: Session, releases: Iterable[Tuple[str, str, Optional[str]]], today: date) -> IngestResult:
    """releases: (name, version, release_url) triples."""
    rows = [
        Release(name=name, version=version, release_url=url, scraped_date=today)
        for name, version, url in releases
    ]
    result = _insert_batch(
        db, rows, lambda r: release_exists(db, r.name, r.version), "release"
    )
    for release in result.records:
        logger.info("Inserted new release: %s %s (id: %s)", release.name, release.version, release.id)
    return result


def known_article_urls(db: Session, urls: Iterable[str]) -> Set[str]:
    """Urls already present in either the staging or the final article table."""
    urls = list(set(urls))
    if not urls:
        return set()
    known = {u for (u,) in db.query(RawArticle.url).filter(RawArticle.url.in_(urls))}
    known |= {u for (u,) in db.query(Article.url).filter(Article.url.in_(urls))}
    return known


def ingest_raw_articles(db: Session, articles: Iterable[DatedArticle], source_id: str) -> IngestResult:
    rows = [
        RawArticle(
            title=a.title,
            url=a.url,
            author=a.author or None,
            pubdate=a.pubdate,
            content_text=a.content_text or None,
            tags=list(a.tags or []),
            source=source_id,
            processed=False,
        )
        for a in articles
    ]
    result = _insert_batch(
        db, rows, lambda r: bool(known_article_urls(db, [r.url])), "raw article"
    )
    for raw in result.records:
        logger.info("Inserted raw: %s", shorten(raw.title))
    return result


def process_raw_articles(db: Session, store_uncategorized: Optional[bool] = None) -> IngestResult:
    """
    Promote unprocessed raw articles into the articles table.

    Every raw article is marked processed, whether it was inserted, skipped as a
    duplicate or rejected (no usable content, or no category unless store_uncategorized).
    """
    if store_uncategorized is None:
        store_uncategorized = settings.STORE_UNCATEGORIZED

    result = IngestResult()
    try:
        pending = (
            db.query(RawArticle)
            .filter(RawArticle.processed.is_(False))
            .order_by(RawArticle.created_at.asc(), RawArticle.id.asc())
            .all()
        )
        logger.info("Found %d unprocessed articles", len(pending))

        for raw in pending:
            raw.processed = True
            cleaned = clean_content(raw.content_text)
            if not cleaned and not raw.title:
                logger.info("Rejected (no valid content): %s", raw.url)
                result.rejected += 1
                continue

            category = categorize(raw.title, cleaned or raw.content_text)
            if category is None and not store_uncategorized:
                logger.info("Rejected (no matching category): %s", shorten(raw.title))
                result.rejected += 1
                continue

            if db.query(Article.id).filter(Article.url == raw.url).first() is not None:
                result.skipped += 1
                continue

            article = Article(
                title=raw.title,
                url=raw.url,
                author=raw.author,
                pubdate=raw.pubdate,
                content_text=cleaned or raw.content_text,
                tags=list(raw.tags or []),
                category=category,
                source=raw.source,
            )
            if not _add_row(db, article):
                result.skipped += 1
                continue
            result.inserted += 1
            result.records.append(article)
            logger.info("Inserted [%s]: %s", category, shorten(raw.title, 40))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Rolled back raw article processing: %s", e)
        raise IngestError(f"processing failed: {e}") from e

    logger.info(
        "Processing summary: inserted=%d rejected=%d skipped=%d",
        result.inserted, result.rejected, result.skipped,
    )
    return result
