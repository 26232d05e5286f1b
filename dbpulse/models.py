"""
Database models.

- Release: one row per (vendor name, version) ever seen
- Article: classified articles, unique by url
- RawArticle: staged articles waiting for cleaning/classification
- SourceRunState: per-source watermark of the last successful scrape
- Notification: user-facing notices derived from releases
- ManualRunCount / ScrapeJob: bookkeeping for manually triggered runs
"""

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    Index,
)
from sqlalchemy.sql import func
from dbpulse.db import Base


class Release(Base):
    __tablename__ = "releases"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    version = Column(String(50), nullable=False)
    release_url = Column(String(2048), nullable=True)
    scraped_date = Column(Date, nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("name", "version", name="uix_release_name_version"),
    )

    def __repr__(self):
        return f"<Release(id={self.id} name={self.name} version={self.version})>"


class Article(Base):
    __tablename__ = "articles"
    id = Column(Integer, primary_key=True, index=True)
    title = Column(Text, nullable=False)
    url = Column(String(2048), nullable=False, unique=True)
    author = Column(String(255), nullable=True)
    pubdate = Column(Date, nullable=True)
    content_text = Column(Text, nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    category = Column(String(100), nullable=True)
    source = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("ix_article_pubdate", "pubdate"),
    )

    def __repr__(self):
        return f"<Article(id={self.id} title={self.title[:30]!r})>"


class RawArticle(Base):
    __tablename__ = "raw_articles"
    id = Column(Integer, primary_key=True, index=True)
    title = Column(Text, nullable=False)
    url = Column(String(2048), nullable=False, unique=True)
    author = Column(String(255), nullable=True)
    pubdate = Column(Date, nullable=True)
    content_text = Column(Text, nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    source = Column(String(100), nullable=False)
    processed = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<RawArticle(id={self.id} processed={self.processed} title={self.title[:30]!r})>"


class SourceRunState(Base):
    __tablename__ = "source_run_state"
    id = Column(Integer, primary_key=True)
    source_id = Column(String(100), nullable=False, unique=True)
    last_scrape_date = Column(Date, nullable=False)
    last_scrape_timestamp = Column(DateTime(timezone=True), nullable=False)
    articles_added_last_run = Column(Integer, nullable=False, default=0)
    total_articles_scraped = Column(Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<SourceRunState(source={self.source_id} last={self.last_scrape_date})>"


class Notification(Base):
    __tablename__ = "notifications"
    id = Column(Integer, primary_key=True, index=True)
    type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=True)
    data = Column(JSON, nullable=False, default=dict)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class ManualRunCount(Base):
    __tablename__ = "manual_run_counts"
    id = Column(Integer, primary_key=True)
    run_date = Column(Date, nullable=False, unique=True)
    count = Column(Integer, nullable=False, default=0)


class ScrapeJob(Base):
    __tablename__ = "scrape_jobs"
    job_id = Column(String(64), primary_key=True)
    status = Column(String(20), nullable=False)
    message = Column(Text, nullable=True)
    options = Column(JSON, nullable=False, default=dict)
    result = Column(JSON, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=False)
    finished_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<ScrapeJob(id={self.job_id} status={self.status})>"
