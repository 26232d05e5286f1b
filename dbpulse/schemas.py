"""
Pydantic schemas for API responses.
"""

from typing import Optional, List, Any, Dict
from datetime import date, datetime
from pydantic import BaseModel


class ReleaseOut(BaseModel):
    id: int
    name: str
    version: str
    release_url: Optional[str] = None
    scraped_date: date

    class Config:
        from_attributes = True


class ArticleOut(BaseModel):
    id: int
    title: str
    url: str
    author: Optional[str] = None
    pubdate: Optional[date] = None
    content_text: Optional[str] = None
    tags: List[str] = []
    category: Optional[str] = None
    source: Optional[str] = None

    class Config:
        from_attributes = True


class RunStateOut(BaseModel):
    source_id: str
    last_scrape_date: date
    last_scrape_timestamp: datetime
    articles_added_last_run: int
    total_articles_scraped: int

    class Config:
        from_attributes = True


class NotificationOut(BaseModel):
    id: int
    type: str
    title: str
    message: Optional[str] = None
    data: Dict[str, Any] = {}
    is_read: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class NotificationsOut(BaseModel):
    notifications: List[NotificationOut]
    unread_count: int


class StartScrapeIn(BaseModel):
    scrape_news: bool = True
    scrape_releases: bool = True
