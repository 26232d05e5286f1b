"""
Normalization and filtering of extracted records.

 - parse_date : ordered fallback chain over the date formats the sources use
 - is_recent / select_recent : watermark-based recency filter for articles
 - categorize : first matching keyword rule wins, no match -> None
 - clean_content : drop boilerplate paragraphs from scraped article bodies
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Iterable, List, Optional, Tuple

from dateutil import parser as dateutil_parser

from dbpulse.articles import ArticleCandidate
from dbpulse.config import settings
from dbpulse.utils import shorten

logger = logging.getLogger("dbpulse.normalize")
logger.setLevel(getattr(logging, settings.LOG_LEVEL, "INFO"))

CATEGORIES = ("Key-Value", "Columnar", "Graph", "Document", "Distributed SQL")

CATEGORY_RULES: Tuple[Tuple[str, re.Pattern], ...] = (
    ("Key-Value", re.compile(
        r"redis|riak|memcached|key-?value|dynamodb|aerospike|valkey|etcd|hazelcast|infinispan",
        re.IGNORECASE)),
    ("Columnar", re.compile(
        r"cassandra|clickhouse|hbase|columnar|column|wide column|scylladb|bigtable|druid"
        r"|timeseries|time series|influxdb",
        re.IGNORECASE)),
    ("Graph", re.compile(
        r"neo4j|tigergraph|graph database|graph db|orientdb|arangodb|titan|dgraph|neptune|janusgraph",
        re.IGNORECASE)),
    ("Document", re.compile(
        r"mongodb|couchdb|couchbase|document database|documentdb|firestore|ravendb|marklogic"
        r"|nosql|jnosql|eclipse jnosql",
        re.IGNORECASE)),
    ("Distributed SQL", re.compile(
        r"cockroachdb|tidb|yugabytedb|distributed sql|distributed transaction|newsql|vitess"
        r"|spanner|planetscale|neon|singlestore|postgresql|postgres|database cluster",
        re.IGNORECASE)),
)

NOISE_PATTERNS = [re.compile(p, re.IGNORECASE) for p in (
    r"subscribe\s+to\s+newsletter",
    r"sign\s+up\s+for",
    r"advertisement",
    r"sponsored\s+content",
    r"cookie\s+policy",
    r"privacy\s+policy",
    r"terms\s+of\s+service",
    r"all\s+rights\s+reserved",
    r"follow\s+us\s+on",
    r"share\s+on\s+(twitter|facebook|linkedin)",
    r"related\s+articles",
    r"you\s+may\s+also\s+like",
    r"click\s+here\s+to",
    r"learn\s+more\s+about",
    r"^menu$",
    r"^navigation$",
    r"^footer$",
    r"^header$",
)]
MIN_CONTENT_LENGTH = 100
MIN_PARAGRAPH_LENGTH = 30

_DAY_MONTH_YEAR = re.compile(r"(\d{1,2})\s+([A-Za-z]+)\.?\s+(\d{4})")
_MONTH_DAY_YEAR = re.compile(r"([A-Za-z]+)\.?\s+(\d{1,2}),?\s+(\d{4})")
_YEAR = re.compile(r"\b\d{4}\b")


@dataclass
class DatedArticle:
    title: str
    url: str
    pubdate: date
    author: Optional[str] = None
    content_text: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    date_defaulted: bool = False


def _to_date(value: datetime) -> date:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.date()


def _month_number(name: str) -> Optional[int]:
    for fmt in ("%B", "%b"):
        try:
            return datetime.strptime(name[:3] if fmt == "%b" else name, fmt).month
        except ValueError:
            continue
    return None


def _parse_iso(text: str) -> Optional[date]:
    try:
        return _to_date(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        return None


def _parse_rfc2822(text: str) -> Optional[date]:
    try:
        return _to_date(parsedate_to_datetime(text))
    except (TypeError, ValueError, IndexError):
        return None


def _parse_generic(text: str) -> Optional[date]:
    # without a year dateutil fills gaps from today's date, which would mis-date records
    if not _YEAR.search(text):
        return None
    try:
        return _to_date(dateutil_parser.parse(text))
    except (ValueError, OverflowError):
        return None


def _parse_day_month_year(text: str) -> Optional[date]:
    match = _DAY_MONTH_YEAR.search(text)
    if not match:
        return None
    day, month, year = match.groups()
    month_no = _month_number(month)
    if month_no is None:
        return None
    try:
        return date(int(year), month_no, int(day))
    except ValueError:
        return None


def _parse_month_day_year(text: str) -> Optional[date]:
    match = _MONTH_DAY_YEAR.search(text)
    if not match:
        return None
    month, day, year = match.groups()
    month_no = _month_number(month)
    if month_no is None:
        return None
    try:
        return date(int(year), month_no, int(day))
    except ValueError:
        return None


_DATE_PARSERS = (
    _parse_iso,
    _parse_rfc2822,
    _parse_generic,
    _parse_day_month_year,
    _parse_month_day_year,
)


def parse_date(text: Optional[str]) -> Optional[date]:
    """Parse a textual date; the first parser in the chain that succeeds wins."""
    if not text:
        return None
    cleaned = re.sub(r"\s+", " ", re.sub(r"^on\s*", "", text.strip(), flags=re.IGNORECASE))
    if not cleaned:
        return None
    for parse in _DATE_PARSERS:
        parsed = parse(cleaned)
        if parsed is not None:
            return parsed
    return None


def is_recent(pubdate: date, today: date, last_scrape_date: Optional[date]) -> bool:
    if pubdate > today:
        return False
    if pubdate == today:
        return True
    if last_scrape_date is None:
        return True
    return pubdate > last_scrape_date


def select_recent(
    candidates: Iterable[ArticleCandidate],
    today: date,
    last_scrape_date: Optional[date],
) -> List[DatedArticle]:
    """
    Keep the candidates newer than the watermark (plus anything dated today).

    Undated or unparseable candidates are kept and dated today so they are not lost.
    """
    selected = []
    for candidate in candidates:
        pubdate = parse_date(candidate.date_text)
        defaulted = pubdate is None
        if defaulted:
            logger.debug("Could not parse date %r for %s, using today", candidate.date_text, shorten(candidate.title, 40))
            pubdate = today
        if not is_recent(pubdate, today, last_scrape_date):
            continue
        selected.append(DatedArticle(
            title=candidate.title,
            url=candidate.url,
            pubdate=pubdate,
            author=candidate.author,
            content_text=candidate.content_text,
            tags=list(candidate.tags),
            date_defaulted=defaulted,
        ))
    return selected


def categorize(title: Optional[str], content: Optional[str] = None) -> Optional[str]:
    text = f"{title or ''} {content or ''}"
    for category, pattern in CATEGORY_RULES:
        if pattern.search(text):
            return category
    return None


def _is_valid_paragraph(text: str) -> bool:
    if len(text) < MIN_PARAGRAPH_LENGTH:
        return False
    if any(pattern.search(text) for pattern in NOISE_PATTERNS):
        return False
    alphanumeric = re.sub(r"[^a-zA-Z0-9]", "", text)
    return len(alphanumeric) >= len(text) * 0.5


def clean_content(raw: Optional[str]) -> Optional[str]:
    """Keep real article paragraphs; None when too little text survives."""
    if not raw or not isinstance(raw, str):
        return None
    paragraphs = [p.strip() for p in re.split(r"\n+", raw)]
    kept = [p for p in paragraphs if _is_valid_paragraph(p)]
    if not kept:
        return None
    cleaned = "\n\n".join(kept)
    if len(cleaned) < MIN_CONTENT_LENGTH:
        return None
    return cleaned
