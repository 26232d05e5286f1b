"""
Article extraction for news listing pages.

Each extractor walks the repeated "card" units of a listing page and produces
ArticleCandidate records. A unit that raises while being parsed is skipped; the rest
of the page is still extracted. Zero candidates is a valid result.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urljoin

from dbpulse.config import settings
from dbpulse.fetcher import Page

logger = logging.getLogger("dbpulse.articles")
logger.setLevel(getattr(logging, settings.LOG_LEVEL, "INFO"))

INFOQ_CARD_SELECTOR = 'li[data-path*="/news/"], li[data-path*="/articles/"], .card'
INFOQ_CONTENT_SELECTORS = [
    "article .article__content p",
    ".article-body p",
    ".article__text p",
    ".content-body p",
    "article p",
    ".post-content p",
    ".entry-content p",
]
MIN_DETAIL_PARAGRAPH = 50
MIN_EXCERPT_LENGTH = 20


@dataclass
class ArticleCandidate:
    title: str
    url: str
    author: Optional[str] = None
    date_text: Optional[str] = None
    content_text: Optional[str] = None
    tags: List[str] = field(default_factory=list)


def _text(node) -> Optional[str]:
    if node is None:
        return None
    value = node.get_text(" ", strip=True)
    return value or None


def _absolute(page: Page, href: str) -> str:
    """Resolve href against the page and drop the query string."""
    return urljoin(page.url, href.split("?")[0].strip())


def _candidate(url: Optional[str], title: Optional[str], **fields) -> Optional[ArticleCandidate]:
    # the url is the dedupe key, so a unit without one cannot be stored
    if not url:
        return None
    return ArticleCandidate(title=title or url, url=url, **fields)


def _parse_infoq_card(page: Page, card) -> Optional[ArticleCandidate]:
    data_path = card.get("data-path")
    if not data_path:
        link = card.select_one('a[href*="/news/"], a[href*="/articles/"]')
        data_path = link.get("href") if link else None
    if not data_path or ("/news/" not in data_path and "/articles/" not in data_path):
        return None

    title = _text(card.select_one("h3.card__title a, h4.card__title a, .card__title a, h3 a, h4 a"))
    author = _text(card.select_one(".card__authors a, .authors a, .author a"))

    date_el = card.select_one(".card__date span, .date span, time, .card__date")
    date_text = None
    if date_el is not None:
        date_text = date_el.get("datetime") or _text(date_el)

    excerpt = _text(card.select_one(".card__excerpt, p.card__excerpt"))
    tags = [t for t in (_text(el) for el in card.select(".card__topics a, .topics a, .tags a")) if t]

    return _candidate(
        _absolute(page, data_path),
        title,
        author=author,
        date_text=date_text,
        content_text=excerpt,
        tags=tags,
    )


def extract_infoq_articles(page: Page) -> List[ArticleCandidate]:
    articles = []
    seen = set()
    for card in page.select(INFOQ_CARD_SELECTOR):
        try:
            article = _parse_infoq_card(page, card)
        except Exception as e:
            logger.debug("Skipping unparseable InfoQ card on %s: %s", page.url, e)
            continue
        # ".card" also matches the li units themselves
        if article and article.url not in seen:
            seen.add(article.url)
            articles.append(article)
    return articles


def _parse_dbengines_entry(page: Page, entry) -> Optional[ArticleCandidate]:
    title_link = entry.select_one("a.blog_header")
    if title_link is None or not title_link.get("href"):
        return None
    title = _text(title_link)

    author = None
    date_text = None
    tags = []
    meta = entry.select_one(".blog_date")
    if meta is not None:
        meta_text = meta.get_text(" ", strip=True)
        author_link = meta.select_one("a.nound")
        sponsor = meta.select_one(".blog_sponsor")
        if author_link is not None:
            author = _text(author_link)
        elif sponsor is not None:
            author = _text(sponsor)
        else:
            by_match = re.search(r"by\s+([^,]+),", meta_text)
            if by_match:
                author = by_match.group(1).strip()

        date_match = re.search(r"(\d{1,2}\s+\w+\s+\d{4})", meta_text)
        if date_match:
            date_text = date_match.group(1)

        tags = [
            tag for tag in (_text(el) for el in meta.select('a.nound[href*="/blog/"]'))
            if tag and "Tags" not in tag
        ]

    content_text = None
    for paragraph in entry.select("p"):
        if paragraph.select_one(".blog_date") or paragraph.select_one("a.blog_header"):
            continue
        text = _text(paragraph)
        if text and len(text) > MIN_EXCERPT_LENGTH:
            content_text = text
            break

    return _candidate(
        _absolute(page, title_link["href"]),
        title,
        author=author,
        date_text=date_text,
        content_text=content_text,
        tags=tags,
    )


def extract_dbengines_articles(page: Page) -> List[ArticleCandidate]:
    articles = []
    for entry in page.select(".blog_index"):
        try:
            article = _parse_dbengines_entry(page, entry)
        except Exception as e:
            logger.debug("Skipping unparseable DB-Engines entry on %s: %s", page.url, e)
            continue
        if article:
            articles.append(article)
    return articles


def extract_article_paragraphs(page: Page) -> str:
    """Body text of an article detail page: long paragraphs of the first matching content selector."""
    for selector in INFOQ_CONTENT_SELECTORS:
        elements = page.select(selector)
        if not elements:
            continue
        paragraphs = [p.get_text(" ", strip=True) for p in elements]
        return "\n\n".join(p for p in paragraphs if len(p) > MIN_DETAIL_PARAGRAPH)
    return ""
