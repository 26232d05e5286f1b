from datetime import date

import pytest

from dbpulse.articles import ArticleCandidate
from dbpulse.normalize import categorize, clean_content, is_recent, parse_date, select_recent

TODAY = date(2025, 1, 15)
LAST = date(2025, 1, 10)


@pytest.mark.parametrize("text", [
    "Jan 16, 2025",
    "January 16, 2025",
    "16 January 2025",
    "on Jan 16, 2025",
    "2025-01-16",
    "2025-01-16T10:00:00Z",
    "Thu, 16 Jan 2025 10:00:00 +0000",
])
def test_parse_date_formats(text):
    assert parse_date(text) == date(2025, 1, 16)


@pytest.mark.parametrize("text", [None, "", "   ", "yesterday", "Jan 16"])
def test_parse_date_rejects_unusable_text(text):
    assert parse_date(text) is None


def test_is_recent_relative_to_watermark():
    assert is_recent(date(2025, 1, 12), TODAY, LAST)
    assert not is_recent(LAST, TODAY, LAST)
    assert not is_recent(date(2025, 1, 1), TODAY, LAST)
    assert is_recent(TODAY, TODAY, TODAY)
    assert is_recent(date(2020, 5, 1), TODAY, None)
    assert not is_recent(date(2025, 1, 16), TODAY, None)


def test_select_recent_keeps_only_new_articles():
    candidates = [
        ArticleCandidate(title="newer", url="https://x/1", date_text="Jan 12, 2025"),
        ArticleCandidate(title="at watermark", url="https://x/2", date_text="Jan 10, 2025"),
        ArticleCandidate(title="future", url="https://x/3", date_text="Feb 1, 2025"),
        ArticleCandidate(title="today", url="https://x/4", date_text="15 January 2025"),
    ]
    selected = select_recent(candidates, TODAY, LAST)

    assert [a.title for a in selected] == ["newer", "today"]
    assert selected[0].pubdate == date(2025, 1, 12)
    assert not selected[0].date_defaulted


def test_select_recent_dates_unparseable_as_today():
    candidates = [ArticleCandidate(title="undated", url="https://x/5", date_text="sometime")]
    selected = select_recent(candidates, TODAY, LAST)

    assert len(selected) == 1
    assert selected[0].pubdate == TODAY
    assert selected[0].date_defaulted


def test_categorize_first_rule_wins():
    assert categorize("New Redis Cluster features") == "Key-Value"
    assert categorize("Graph traversal benchmarks for Neo4j") == "Graph"
    assert categorize("Release notes", "MongoDB adds queryable encryption") == "Document"
    assert categorize("CockroachDB 25.2 ships") == "Distributed SQL"
    # rules are tried in order
    assert categorize("Cassandra vs MongoDB") == "Columnar"


def test_categorize_no_match():
    assert categorize("Quarterly earnings call", "Nothing about storage here.") is None
    assert categorize(None, None) is None


def test_clean_content_drops_noise_and_short_lines():
    raw = "\n".join([
        "Menu",
        "The new storage engine rewrites compaction to reduce write amplification.",
        "Subscribe to newsletter for weekly updates on everything data related.",
        "Benchmarks show a forty percent improvement for mixed read and write workloads.",
        "ok",
    ])
    cleaned = clean_content(raw)

    assert cleaned.split("\n\n") == [
        "The new storage engine rewrites compaction to reduce write amplification.",
        "Benchmarks show a forty percent improvement for mixed read and write workloads.",
    ]


def test_clean_content_too_little_text():
    assert clean_content("A single paragraph that is long enough alone.") is None
    assert clean_content("") is None
    assert clean_content(None) is None
