"""
Manually triggered scrape jobs.

ScrapeJobManager owns the "is a manual scrape running" state for this process and
persists every job as a ScrapeJob row so its status can be polled by id. Manual runs
are limited to MAX_DAILY_MANUAL_RUNS per calendar day (ManualRunCount).

start() never raises for the expected refusals; it returns a dict with
error="already_running" or error="limit_reached".
"""

import logging
import threading
import uuid
from datetime import date
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from dbpulse.config import settings
from dbpulse.models import ManualRunCount, ScrapeJob
from dbpulse.utils import utc_now, utc_today

logger = logging.getLogger("dbpulse.jobs")
logger.setLevel(getattr(logging, settings.LOG_LEVEL, "INFO"))

IDLE = "idle"
RUNNING = "running"
COMPLETED = "completed"
ERROR = "error"

ALREADY_RUNNING = "already_running"
LIMIT_REACHED = "limit_reached"
START_FAILED = "start_failed"


def manual_runs_used(db: Session, day: date) -> int:
    row = db.query(ManualRunCount).filter(ManualRunCount.run_date == day).first()
    return row.count if row else 0


def remaining_manual_runs(db: Session, day: date, max_daily: Optional[int] = None) -> int:
    max_daily = settings.MAX_DAILY_MANUAL_RUNS if max_daily is None else max_daily
    return max(0, max_daily - manual_runs_used(db, day))


def _count_manual_run(db: Session, day: date):
    """Increment the day's counter; the caller commits."""
    row = db.query(ManualRunCount).filter(ManualRunCount.run_date == day).first()
    if row is None:
        row = ManualRunCount(run_date=day, count=0)
        db.add(row)
    row.count = (row.count or 0) + 1


def _job_dict(job: ScrapeJob) -> dict:
    return {
        "job_id": job.job_id,
        "status": job.status,
        "message": job.message,
        "options": job.options,
        "result": job.result,
        "started_at": job.started_at.isoformat() if job.started_at else None,
        "finished_at": job.finished_at.isoformat() if job.finished_at else None,
    }


def _default_runner(db: Session, scrape_news: bool, scrape_releases: bool, progress: Callable[[str], None]) -> dict:
    from dbpulse.pipeline import run_manual
    return run_manual(db, scrape_news=scrape_news, scrape_releases=scrape_releases, progress=progress)


class ScrapeJobManager:
    """
    Runs at most one manual scrape at a time in a background thread.

    The running flag lives in memory and is per-process; the job rows make the
    outcome observable after the fact, and recover_interrupted() cleans up rows
    left "running" by a process that died mid-job.
    """

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        runner: Optional[Callable[..., dict]] = None,
        max_daily: Optional[int] = None,
        clock: Callable[[], date] = utc_today,
    ):
        if session_factory is None:
            from dbpulse.db import SessionLocal
            session_factory = SessionLocal
        self.session_factory = session_factory
        self.runner = runner or _default_runner
        self.max_daily = settings.MAX_DAILY_MANUAL_RUNS if max_daily is None else max_daily
        self.clock = clock
        self._lock = threading.Lock()
        self._thread = None
        self._current = None

    @property
    def is_running(self) -> bool:
        return self._current is not None and self._current["status"] == RUNNING

    def start(self, scrape_news: bool = True, scrape_releases: bool = True) -> dict:
        with self._lock:
            if self.is_running:
                return {
                    "success": False,
                    "error": ALREADY_RUNNING,
                    "message": "A scrape is already in progress.",
                    "job_id": self._current["job_id"],
                    "status": RUNNING,
                }

            today = self.clock()
            options = {"scrape_news": scrape_news, "scrape_releases": scrape_releases}
            db = self.session_factory()
            try:
                used = manual_runs_used(db, today)
                if used >= self.max_daily:
                    return {
                        "success": False,
                        "error": LIMIT_REACHED,
                        "message": f"Maximum {self.max_daily} manual runs per day.",
                        "remaining": 0,
                    }
                job_id = f"scrape_{uuid.uuid4().hex[:12]}"
                job = ScrapeJob(
                    job_id=job_id,
                    status=RUNNING,
                    message="Scraping in progress...",
                    options=options,
                    started_at=utc_now(),
                )
                _count_manual_run(db, today)
                db.add(job)
                # counter and job row land together or not at all
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                logger.exception("Could not start manual scrape")
                return {
                    "success": False,
                    "error": START_FAILED,
                    "message": f"Could not start scrape: {e}",
                }
            finally:
                db.close()

            remaining = max(0, self.max_daily - used - 1)
            self._current = _job_dict(job)

            self._thread = threading.Thread(
                target=self._run, args=(job_id, options), daemon=True, name=f"manual-{job_id}"
            )
            self._thread.start()

        logger.info("Started manual scrape %s (%d runs left today)", job_id, remaining)
        return {
            "success": True,
            "message": "Scraping started in the background",
            "job_id": job_id,
            "status": RUNNING,
            "remaining": remaining,
        }

    def _progress(self, job_id: str, message: str):
        if self._current and self._current["job_id"] == job_id:
            self._current["message"] = message

    def _finish(self, job_id: str, status: str, message: str, result: Optional[dict]):
        db = self.session_factory()
        try:
            job = db.query(ScrapeJob).filter(ScrapeJob.job_id == job_id).first()
            if job is not None:
                job.status = status
                job.message = message
                job.result = result
                job.finished_at = utc_now()
                db.commit()
                self._current = _job_dict(job)
        except Exception:
            logger.exception("Could not persist final state of job %s", job_id)
            db.rollback()
            self._current = dict(self._current or {}, status=status, message=message, result=result)
        finally:
            db.close()

    def _run(self, job_id: str, options: dict):
        db = self.session_factory()
        try:
            result = self.runner(
                db,
                options["scrape_news"],
                options["scrape_releases"],
                lambda message: self._progress(job_id, message),
            )
        except Exception as e:
            logger.exception("Manual scrape %s failed", job_id)
            db.rollback()
            db.close()
            self._finish(job_id, ERROR, f"Error: {e}", None)
            return
        db.close()
        self._finish(job_id, COMPLETED, "Scraping finished", result)
        logger.info("Manual scrape %s completed", job_id)

    def join(self, timeout: Optional[float] = None):
        if self._thread is not None:
            self._thread.join(timeout)

    def status(self, job_id: Optional[str] = None) -> dict:
        """Current job (or idle) without job_id, otherwise the persisted job."""
        if job_id is None:
            if self._current is None:
                return {"job_id": None, "status": IDLE, "message": ""}
            return dict(self._current)
        if self._current and self._current["job_id"] == job_id:
            return dict(self._current)
        db = self.session_factory()
        try:
            job = db.query(ScrapeJob).filter(ScrapeJob.job_id == job_id).first()
            return _job_dict(job) if job else None
        finally:
            db.close()

    def recover_interrupted(self) -> int:
        """Mark jobs left running by a previous process as errored."""
        if self.is_running:
            return 0
        db = self.session_factory()
        try:
            stale = db.query(ScrapeJob).filter(ScrapeJob.status == RUNNING).all()
            for job in stale:
                job.status = ERROR
                job.message = "Interrupted by a process restart"
                job.finished_at = utc_now()
            db.commit()
            if stale:
                logger.warning("Marked %d interrupted scrape job(s) as error", len(stale))
            return len(stale)
        finally:
            db.close()
