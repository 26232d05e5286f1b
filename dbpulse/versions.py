"""
Version extraction for vendor release-notes pages.

Each extractor scans one vendor's page (anchor hrefs, visible text, meta tags) and
returns every version-looking candidate it finds. Pages usually list many historical
versions, so the newest is chosen afterwards with select_latest_version() instead of
trusting page order.
"""

import logging
import re
from typing import Iterable, List, Optional

from dbpulse.config import settings
from dbpulse.fetcher import Page

logger = logging.getLogger("dbpulse.versions")
logger.setLevel(getattr(logging, settings.LOG_LEVEL, "INFO"))

_LEADING_INT = re.compile(r"^\d+")


def version_key(version: str) -> List[int]:
    """Leading integer of each dot-separated component; non-numeric components count as 0."""
    key = []
    for component in version.split("."):
        match = _LEADING_INT.match(component.strip())
        key.append(int(match.group()) if match else 0)
    return key


def compare_versions(a: str, b: str) -> int:
    """Return 1 if a > b, -1 if a < b, 0 if equal. Missing trailing components are 0."""
    ka, kb = version_key(a), version_key(b)
    width = max(len(ka), len(kb))
    ka += [0] * (width - len(ka))
    kb += [0] * (width - len(kb))
    return (ka > kb) - (ka < kb)


def select_latest_version(candidates: Iterable[str]) -> Optional[str]:
    """Highest version among candidates; on ties the first one seen wins."""
    latest = None
    for candidate in dict.fromkeys(c for c in candidates if c):
        if latest is None or compare_versions(candidate, latest) > 0:
            latest = candidate
    return latest


def _href_matches(page: Page, css: str, pattern: str, flags: int = 0) -> List[str]:
    found = []
    regex = re.compile(pattern, flags)
    for link in page.select(css):
        match = regex.search(link.get("href") or "")
        if match:
            found.append(match.group(1))
    return found


def _text_matches(text: str, patterns: Iterable[str]) -> List[str]:
    found = []
    for pattern in patterns:
        found.extend(m.group(1) for m in re.finditer(pattern, text, re.IGNORECASE))
    return found


def mongodb_versions(page: Page) -> List[str]:
    versions = _href_matches(page, 'a[href*="/release-notes/"]', r"release-notes/(\d+\.\d+)")
    versions += _text_matches(page.text, [r"MongoDB\s+(\d+\.\d+)"])
    return versions


def neo4j_versions(page: Page) -> List[str]:
    versions = []
    for section in page.select(".recent-releases"):
        for link in section.select('a[href*="/database/neo4j-"]'):
            match = re.search(r"Neo4j\s+([\d.]+)", link.get_text(" ", strip=True), re.IGNORECASE)
            if match:
                versions.append(match.group(1))
    for href in _href_matches(
        page,
        'a[href*="neo4j-5-"], a[href*="neo4j-2025"], a[href*="neo4j-2024"]',
        r"neo4j-([\d-]+)/?$",
    ):
        versions.append(href.strip("-").replace("-", "."))
    versions += _text_matches(page.text, [r"Neo4j\s+([\d.]+)"])
    # "Neo4j 5." at a sentence end leaves a trailing dot
    return [v.strip(".") for v in versions if v.strip(".")]


def redis_versions(page: Page) -> List[str]:
    versions = _text_matches(
        page.text,
        [
            r"Redis\s+(?:Enterprise\s+)?(?:Software\s+)?(\d+\.\d+(?:\.\d+)?)",
            r"version\s+(\d+\.\d+(?:\.\d+)?)",
            r"v(\d+\.\d+(?:\.\d+)?)",
        ],
    )
    for link in page.select('a[href*="release-notes"]'):
        match = re.search(r"rs-(\d+)-(\d+)(?:-(\d+))?", link.get("href") or "")
        if match:
            versions.append(".".join(part for part in match.groups() if part))
    return versions


def tidb_versions(page: Page) -> List[str]:
    versions = []
    description = page.meta("description") or ""
    match = re.search(r"(\d+\.\d+\.\d+(?:-\w+)?)", description)
    if match:
        versions.append(match.group(1))
    versions += _text_matches(page.title, [r"TiDB\s+v?(\d+\.\d+\.\d+)"])
    versions += _text_matches(page.text, [r"TiDB\s+v?(\d+\.\d+\.\d+)"])
    versions += _href_matches(page, 'a[href*="release-"]', r"release-(\d+\.\d+\.\d+)")
    return versions


def yugabytedb_versions(page: Page) -> List[str]:
    versions = _href_matches(
        page,
        'a[href*="/releases/ybdb-releases/v"]',
        r"v(\d{4}\.\d+(?:\.\d+)?|\d+\.\d+(?:\.\d+)?)",
    )
    versions += [m.group(1) for m in re.finditer(r"v(\d{4}\.\d+(?:\.\d+)?)", page.text)]
    return versions


def cockroachdb_versions(page: Page) -> List[str]:
    versions = _href_matches(page, 'a[href*="/releases/v"]', r"releases/v(\d+\.\d+(?:\.\d+)?)")
    versions += _text_matches(page.text, [r"CockroachDB\s+v?(\d+\.\d+(?:\.\d+)?)"])
    return versions


def cassandra_versions(page: Page) -> List[str]:
    versions = _text_matches(
        page.text,
        [
            r"Apache\s+Cassandra\s+(\d+\.\d+(?:\.\d+)?)",
            r"Cassandra\s+(\d+\.\d+(?:\.\d+)?)",
            r"version\s+(\d+\.\d+(?:\.\d+)?)",
        ],
    )
    versions += _href_matches(
        page, 'a[href*="cassandra"]', r"cassandra[/-](\d+\.\d+(?:\.\d+)?)", re.IGNORECASE
    )
    return versions
