"""
Release notifications.

Turns newly stored Release rows into user-facing Notification rows and provides the
small read/unread API the serving layer needs.
"""

import logging
from datetime import date
from typing import Iterable, List

from sqlalchemy.orm import Session

from dbpulse.config import settings
from dbpulse.models import Notification, Release

logger = logging.getLogger("dbpulse.notify")
logger.setLevel(getattr(logging, settings.LOG_LEVEL, "INFO"))

RELEASE = "release"


def _release_notification(release: Release) -> Notification:
    return Notification(
        type=RELEASE,
        title=f"New {release.name} release: {release.version}",
        message=(
            f"{release.name} version {release.version} is now available. "
            "Click to view release notes."
        ),
        data={
            "releaseId": release.id,
            "name": release.name,
            "version": release.version,
            "releaseUrl": release.release_url,
        },
        is_read=False,
    )


def create_release_notifications(db: Session, releases: Iterable[Release]) -> List[Notification]:
    created = [_release_notification(r) for r in releases]
    if not created:
        return []
    db.add_all(created)
    db.commit()
    for n in created:
        logger.info("Created notification: %s", n.title)
    return created


def generate_notifications_for_today(db: Session, today: date) -> List[Notification]:
    """Notify about releases scraped today that have no notification yet."""
    notified = {
        (n.data.get("name"), n.data.get("version"))
        for n in db.query(Notification).filter(Notification.type == RELEASE)
        if n.data
    }
    pending = [
        r for r in db.query(Release).filter(Release.scraped_date == today).order_by(Release.id)
        if (r.name, r.version) not in notified
    ]
    if not pending:
        logger.info("No new releases to notify about")
    return create_release_notifications(db, pending)


def list_notifications(db: Session, unread_only: bool = False, limit: int = 50) -> List[Notification]:
    q = db.query(Notification)
    if unread_only:
        q = q.filter(Notification.is_read.is_(False))
    return q.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def unread_count(db: Session) -> int:
    return db.query(Notification).filter(Notification.is_read.is_(False)).count()


def mark_read(db: Session, notification_id: int) -> bool:
    notification = db.query(Notification).filter(Notification.id == notification_id).first()
    if notification is None:
        return False
    notification.is_read = True
    db.commit()
    return True


def mark_all_read(db: Session) -> int:
    updated = (
        db.query(Notification)
        .filter(Notification.is_read.is_(False))
        .update({Notification.is_read: True}, synchronize_session=False)
    )
    db.commit()
    return updated
