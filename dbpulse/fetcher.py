"""
Page fetching.

Provides:
 - RetryPolicy : bounded attempts with linear backoff (attempt * base_delay)
 - Page : fetched HTML with a lazily parsed BeautifulSoup tree
 - Fetcher : requests-based fetch with retries, or saved snapshots when SNAPSHOT_DIR is set

Timeouts apply per attempt, never across retries.
"""

import logging
import os
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

import requests
from bs4 import BeautifulSoup

from dbpulse.config import settings

logger = logging.getLogger("dbpulse.fetcher")
logger.setLevel(getattr(logging, settings.LOG_LEVEL, "INFO"))

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class FetchError(Exception):
    """Raised when a page could not be retrieved."""

    def __init__(self, url: str, reason: str, status: Optional[int] = None):
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason
        self.status = status


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 2.0

    def delay(self, attempt: int) -> float:
        return attempt * self.base_delay

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(max_attempts=settings.FETCH_MAX_ATTEMPTS, base_delay=settings.FETCH_BACKOFF_SECONDS)


class Page:
    """A fetched HTML document."""

    def __init__(self, url: str, html: str):
        self.url = url
        self.html = html
        self._soup = None

    @property
    def soup(self) -> BeautifulSoup:
        if self._soup is None:
            self._soup = BeautifulSoup(self.html, "html.parser")
        return self._soup

    @property
    def text(self) -> str:
        body = self.soup.body or self.soup
        return body.get_text("\n", strip=True)

    @property
    def title(self) -> str:
        return self.soup.title.get_text(strip=True) if self.soup.title else ""

    def select(self, css: str):
        return self.soup.select(css)

    def meta(self, name: str) -> Optional[str]:
        tag = self.soup.find("meta", attrs={"name": name})
        return tag.get("content") if tag else None

    def __repr__(self):
        return f"<Page(url={self.url} size={len(self.html)})>"


class Fetcher:
    """
    Sequential page fetcher.

    `sleep` is injectable so callers (and tests) control the deliberate delays.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        policy: Optional[RetryPolicy] = None,
        timeout: Optional[float] = None,
        settle_delay: Optional[float] = None,
        snapshot_dir: Optional[str] = None,
        user_agent: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": user_agent or settings.USER_AGENT})
        self.policy = policy or RetryPolicy.from_settings()
        self.timeout = timeout if timeout is not None else settings.FETCH_TIMEOUT_SECONDS
        self.settle_delay = settle_delay if settle_delay is not None else settings.PAGE_SETTLE_SECONDS
        self.snapshot_dir = snapshot_dir if snapshot_dir is not None else settings.SNAPSHOT_DIR
        self.sleep = sleep
        self.fetch_count = 0

    def pause(self, seconds: float):
        if seconds and seconds > 0:
            self.sleep(seconds)

    def fetch(self, url: str, timeout: Optional[float] = None, policy: Optional[RetryPolicy] = None) -> Page:
        """Fetch url, retrying transient failures. Raises FetchError once attempts are exhausted."""
        policy = policy or self.policy
        timeout = timeout if timeout is not None else self.timeout
        attempts = max(1, policy.max_attempts)
        last_error = "no attempt made"
        last_status = None

        for attempt in range(1, attempts + 1):
            self.fetch_count += 1
            try:
                resp = self.session.get(url, timeout=timeout)
            except requests.RequestException as e:
                last_error, last_status = str(e) or e.__class__.__name__, None
            else:
                if resp.status_code < 400:
                    return Page(url=url, html=resp.text)
                last_error, last_status = f"HTTP {resp.status_code}", resp.status_code
                if resp.status_code not in RETRYABLE_STATUS:
                    raise FetchError(url, last_error, status=last_status)

            logger.warning("Attempt %d/%d failed for %s: %s", attempt, attempts, url, last_error)
            if attempt < attempts:
                self.pause(policy.delay(attempt))

        raise FetchError(url, last_error, status=last_status)

    def load_snapshot(self, path: str, url: str) -> Page:
        with open(path, "r", encoding="utf-8") as fh:
            return Page(url=url, html=fh.read())

    def fetch_source(self, source) -> List[Page]:
        """
        Return the listing page(s) for a source.

        With a snapshot directory configured, the source's saved files are read instead of
        the live URL; files that are missing are skipped.
        """
        if self.snapshot_dir and source.snapshots:
            pages = []
            for name in source.snapshots:
                path = os.path.join(self.snapshot_dir, name)
                if not os.path.exists(path):
                    logger.warning("Snapshot not found for %s: %s", source.id, path)
                    continue
                logger.info("Reading snapshot %s", path)
                pages.append(self.load_snapshot(path, source.url))
            if not pages:
                raise FetchError(source.url, "no snapshot files found")
            return pages

        logger.info("Fetching live page %s", source.url)
        page = self.fetch(source.url)
        # let the target site breathe before the next request
        self.pause(self.settle_delay)
        return [page]
