"""
FastAPI application entrypoint.

Exposes endpoints:
 - POST /scraper/trigger : run the daily job now (sources done today are skipped)
 - POST /scraper/start : start a manual scrape in the background (limited per day)
 - GET /scraper/job-status, /scraper/jobs/{job_id} : poll manual scrape jobs
 - GET /scraper/status, /scraper/history, /scraper/processing-stats
 - POST /scraper/process : process staged raw articles
 - GET /releases, /releases/today, /news/today
 - GET /notifications, PUT /notifications/{id}/read, PUT /notifications/read-all
 - GET /health : simple health check

On startup the DB is created (if missing), interrupted jobs are cleaned up and the
daily background loop is started.
"""

import logging
from typing import List, Optional
from fastapi import FastAPI, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from dbpulse import notify, reports
from dbpulse.db import init_db, get_db
from dbpulse.ingest import IngestError, process_raw_articles
from dbpulse.jobs import ALREADY_RUNNING, LIMIT_REACHED, ScrapeJobManager
from dbpulse.pipeline import run_daily, run_forever
from dbpulse.schemas import (
    ArticleOut,
    NotificationsOut,
    ReleaseOut,
    RunStateOut,
    StartScrapeIn,
)
from dbpulse.config import settings
from dbpulse.utils import utc_today

logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL, "INFO"))
logger = logging.getLogger("dbpulse.main")

app = FastAPI(title="dbpulse", version="0.1.0")
jobs = ScrapeJobManager()


@app.on_event("startup")
def startup_event():
    init_db()
    jobs.recover_interrupted()
    if settings.RUN_ON_STARTUP:
        run_forever(start_immediately=True)
        logger.info("Daily scrape loop started (interval=%s seconds).", settings.CHECK_INTERVAL_SECONDS)
    logger.info("Application startup complete.")


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/scraper/trigger")
def trigger_daily(db: Session = Depends(get_db)):
    """
    Run the daily job synchronously. Sources that already ran today are skipped.
    """
    try:
        report = run_daily(db)
    except Exception as e:
        logger.exception("Daily scrape failed")
        return JSONResponse(status_code=500, content={"success": False, "message": str(e)})
    return {"success": True, "data": report}


@app.post("/scraper/start")
def start_manual(body: Optional[StartScrapeIn] = None):
    body = body or StartScrapeIn()
    result = jobs.start(scrape_news=body.scrape_news, scrape_releases=body.scrape_releases)
    if not result["success"]:
        status_code = {ALREADY_RUNNING: 409, LIMIT_REACHED: 429}.get(result["error"], 500)
        return JSONResponse(status_code=status_code, content=result)
    return result


@app.get("/scraper/job-status")
def job_status():
    return jobs.status()


@app.get("/scraper/jobs/{job_id}")
def job_by_id(job_id: str):
    job = jobs.status(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@app.get("/scraper/status")
def scraper_status(db: Session = Depends(get_db)):
    return reports.scraper_status(db, utc_today(), jobs)


@app.get("/scraper/history", response_model=List[RunStateOut])
def scrape_history(db: Session = Depends(get_db)):
    return reports.scrape_history(db)


@app.get("/scraper/processing-stats")
def processing_stats(db: Session = Depends(get_db)):
    return reports.processing_stats(db)


@app.post("/scraper/process")
def process_articles(db: Session = Depends(get_db)):
    try:
        result = process_raw_articles(db)
    except IngestError as e:
        return JSONResponse(status_code=500, content={"success": False, "message": str(e)})
    return {"success": True, "data": result.as_dict()}


@app.get("/releases", response_model=List[ReleaseOut])
def list_releases(db: Session = Depends(get_db)):
    return reports.all_releases(db)


@app.get("/releases/today", response_model=List[ReleaseOut])
def releases_today(db: Session = Depends(get_db)):
    return reports.todays_releases(db, utc_today())


@app.get("/news/today", response_model=List[ArticleOut])
def news_today(db: Session = Depends(get_db)):
    return reports.todays_articles(db, utc_today())


@app.get("/notifications", response_model=NotificationsOut)
def list_notifications(unread_only: bool = False, db: Session = Depends(get_db)):
    # today's releases that have no notification yet
    notify.generate_notifications_for_today(db, utc_today())
    return {
        "notifications": notify.list_notifications(db, unread_only=unread_only),
        "unread_count": notify.unread_count(db),
    }


@app.put("/notifications/read-all")
def mark_all_notifications_read(db: Session = Depends(get_db)):
    return {"success": True, "updated": notify.mark_all_read(db)}


@app.put("/notifications/{notification_id}/read")
def mark_notification_read(notification_id: int, db: Session = Depends(get_db)):
    if not notify.mark_read(db, notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"success": True}
