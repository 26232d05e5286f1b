"""
Database initialization and session provider.

Uses SQLAlchemy. By default uses SQLite file dbpulse.db in the project root.
If you want to use Postgres, set DATABASE_URL in environment (e.g. in .env).

For SQLite the pysqlite driver's own transaction handling is switched off so that
SAVEPOINTs (used by the ingestor for duplicate handling) behave correctly.
"""

import logging

from sqlalchemy import create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base, Session
from dbpulse.config import settings

logger = logging.getLogger("dbpulse.db")

Base = declarative_base()


def make_engine(url: str) -> Engine:
    """Create an engine; SQLite gets thread sharing and explicit BEGIN handling."""
    if not url.startswith("sqlite"):
        return create_engine(url, future=True)

    engine = create_engine(url, connect_args={"check_same_thread": False}, future=True)

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


engine = make_engine(settings.DATABASE_URL)
SessionLocal = make_session_factory(engine)


def get_db() -> Session:
    """
    Yield a SQLAlchemy session (use as dependency in FastAPI).
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine = None):
    """Create tables. Safe to call on startup."""
    # models must be imported so their tables are registered on Base.metadata
    import dbpulse.models  # noqa: F401
    target = bind or engine
    try:
        Base.metadata.create_all(bind=target)
        logger.info("Database initialized: %s", target.url)
    except SQLAlchemyError as e:
        logger.exception("Failed to initialize database: %s", e)
        raise
