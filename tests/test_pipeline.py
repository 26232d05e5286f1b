from datetime import date

from sqlalchemy.exc import OperationalError

from dbpulse import pipeline, runstate
from dbpulse.models import Article, Notification, RawArticle, Release
from dbpulse.pipeline import (
    ERROR,
    SKIPPED,
    SUCCESS,
    run_daily,
    run_manual,
    run_news,
    run_news_source,
    run_release_source,
    run_releases,
)
from dbpulse.sources import get_source

TODAY = date(2025, 1, 15)

MONGODB = get_source("mongodb")
REDIS = get_source("redis")
DBENGINES = get_source("db-engines")
INFOQ = get_source("infoq-nosql")

MONGODB_PAGE = """
<html><body>
  <a href="/docs/manual/release-notes/7.0/">7.0</a>
  <a href="/docs/manual/release-notes/8.0/">8.0</a>
</body></html>
"""

REDIS_PAGE = '<html><body><a href="/docs/latest/operate/rs/release-notes/rs-7-22-releases/">notes</a></body></html>'

DBENGINES_PAGE = """
<html><body>
  <div class="blog_index">
    <a class="blog_header" href="/en/blog_post/1">Graph traversal benchmarks for Neo4j</a>
    <p><span class="blog_date">by <a class="nound" href="/en/authors/p">Paul</a>, 12 January 2025</span></p>
  </div>
  <div class="blog_index">
    <a class="blog_header" href="/en/blog_post/2">Old news about MongoDB</a>
    <p><span class="blog_date">by <a class="nound" href="/en/authors/p">Paul</a>, 5 January 2025</span></p>
  </div>
  <div class="blog_index">
    <a class="blog_header" href="/en/blog_post/3">Redis roundup</a>
    <p><span class="blog_date">by <a class="nound" href="/en/authors/p">Paul</a>, sometime soon</span></p>
  </div>
</body></html>
"""

INFOQ_PAGE = """
<html><body><ul>
  <li class="card" data-path="/news/2025/01/redis-cluster/">
    <h3 class="card__title"><a href="/news/2025/01/redis-cluster/">New Redis Cluster features</a></h3>
    <div class="card__date"><span>Jan 15, 2025</span></div>
    <p class="card__excerpt">Short excerpt.</p>
  </li>
</ul></body></html>
"""

INFOQ_ARTICLE_URL = "https://www.infoq.com/news/2025/01/redis-cluster/"
INFOQ_ARTICLE = """
<html><body><article><div class="article__content">
  <p>Redis introduced a new cluster mode with automatic resharding of hash slots today.</p>
  <p>Replication throughput improves substantially for large key-value workloads in production.</p>
</div></article></body></html>
"""


def test_release_source_inserts_latest_version(db, make_fetcher):
    fetcher = make_fetcher({MONGODB.url: MONGODB_PAGE})

    result = run_release_source(db, MONGODB, fetcher, TODAY)

    assert result.status == SUCCESS
    assert result.inserted == 1
    release = db.query(Release).one()
    assert (release.name, release.version, release.scraped_date) == ("MongoDB", "8.0", TODAY)
    assert runstate.last_scrape_date(db, "mongodb") == TODAY


def test_source_already_run_today_makes_no_request(db, make_fetcher):
    run_release_source(db, MONGODB, make_fetcher({MONGODB.url: MONGODB_PAGE}), TODAY)

    fetcher = make_fetcher({MONGODB.url: MONGODB_PAGE})
    result = run_release_source(db, MONGODB, fetcher, TODAY)

    assert result.status == SKIPPED
    assert fetcher.fetch_count == 0
    assert fetcher.session.calls == []


def test_forced_rerun_is_idempotent(db, make_fetcher):
    run_release_source(db, MONGODB, make_fetcher({MONGODB.url: MONGODB_PAGE}), TODAY)

    result = run_release_source(db, MONGODB, make_fetcher({MONGODB.url: MONGODB_PAGE}), TODAY, force=True)

    assert (result.inserted, result.skipped) == (0, 1)
    assert db.query(Release).count() == 1


def test_page_without_version_is_rejected_not_failed(db, make_fetcher):
    fetcher = make_fetcher({MONGODB.url: "<html><body>maintenance</body></html>"})

    result = run_release_source(db, MONGODB, fetcher, TODAY)

    assert result.status == SUCCESS
    assert result.rejected == 1
    assert db.query(Release).count() == 0
    assert runstate.has_run_today(db, "mongodb", TODAY)


def test_fetch_failure_isolated_and_watermark_kept(db, make_fetcher):
    runstate.record_run(db, "mongodb", date(2025, 1, 14))
    fetcher = make_fetcher({REDIS.url: REDIS_PAGE})

    results = run_releases(db, fetcher, TODAY, sources=(MONGODB, REDIS))

    assert [r.status for r in results] == [ERROR, SUCCESS]
    assert results[0].error
    assert runstate.last_scrape_date(db, "mongodb") == date(2025, 1, 14)
    assert runstate.last_scrape_date(db, "redis") == TODAY
    assert [r.version for r in db.query(Release)] == ["7.22"]


def test_news_source_filters_by_watermark(db, make_fetcher):
    runstate.record_run(db, DBENGINES.id, date(2025, 1, 10))
    fetcher = make_fetcher({DBENGINES.url: DBENGINES_PAGE})

    result = run_news_source(db, DBENGINES, fetcher, TODAY)

    assert result.status == SUCCESS
    assert (result.found, result.filtered, result.inserted) == (3, 1, 2)
    staged = {r.url: r for r in db.query(RawArticle)}
    assert set(staged) == {"https://db-engines.com/en/blog_post/1", "https://db-engines.com/en/blog_post/3"}
    assert staged["https://db-engines.com/en/blog_post/1"].pubdate == date(2025, 1, 12)
    # unparseable date is kept and dated today
    assert staged["https://db-engines.com/en/blog_post/3"].pubdate == TODAY
    assert runstate.get_state(db, DBENGINES.id).articles_added_last_run == 2


def test_news_source_fetches_full_article_for_new_urls(db, make_fetcher):
    fetcher = make_fetcher({INFOQ.url: INFOQ_PAGE, INFOQ_ARTICLE_URL: INFOQ_ARTICLE})

    result = run_news_source(db, INFOQ, fetcher, TODAY)

    assert result.inserted == 1
    raw = db.query(RawArticle).one()
    assert raw.content_text.startswith("Redis introduced a new cluster mode")
    assert [url for url, _ in fetcher.session.calls] == [INFOQ.url, INFOQ_ARTICLE_URL]

    again = make_fetcher({INFOQ.url: INFOQ_PAGE, INFOQ_ARTICLE_URL: INFOQ_ARTICLE})
    rerun = run_news_source(db, INFOQ, again, TODAY, force=True)

    assert (rerun.inserted, rerun.skipped) == (0, 1)
    assert [url for url, _ in again.session.calls] == [INFOQ.url]


def test_failed_detail_fetch_keeps_excerpt(db, make_fetcher):
    fetcher = make_fetcher({INFOQ.url: INFOQ_PAGE})

    result = run_news_source(db, INFOQ, fetcher, TODAY)

    assert result.inserted == 1
    assert db.query(RawArticle).one().content_text == "Short excerpt."


def test_daily_run_notifies_and_processes(db, make_fetcher):
    fetcher = make_fetcher({
        MONGODB.url: MONGODB_PAGE,
        DBENGINES.url: DBENGINES_PAGE,
        INFOQ.url: INFOQ_PAGE,
        INFOQ_ARTICLE_URL: INFOQ_ARTICLE,
    })

    report = run_daily(db, fetcher, TODAY)

    assert report["date"] == "2025-01-15"
    assert report["releases"]["new_releases"] == [{"name": "MongoDB", "version": "8.0"}]
    assert report["releases"]["notifications"] == 1
    statuses = {r["source"]: r["status"] for r in report["releases"]["sources"]}
    assert statuses["mongodb"] == SUCCESS
    assert statuses["redis"] == ERROR

    notification = db.query(Notification).one()
    assert notification.title == "New MongoDB release: 8.0"
    assert notification.data["version"] == "8.0"

    assert report["news"]["new_raw_articles"] == 4
    assert report["news"]["processing"]["inserted"] >= 1
    categories = {a.url: a.category for a in db.query(Article)}
    assert categories[INFOQ_ARTICLE_URL] == "Key-Value"

    # second call on the same day skips everything that already succeeded
    again = run_daily(db, make_fetcher({}), TODAY)
    assert {r["source"]: r["status"] for r in again["releases"]["sources"]}["mongodb"] == SKIPPED
    assert again["releases"]["notifications"] == 0


def test_manual_run_bypasses_daily_skip(db, make_fetcher):
    run_daily(db, make_fetcher({MONGODB.url: MONGODB_PAGE}), TODAY)
    messages = []

    report = run_manual(
        db,
        scrape_news=False,
        scrape_releases=True,
        progress=messages.append,
        fetcher=make_fetcher({MONGODB.url: MONGODB_PAGE}),
        today=TODAY,
    )

    assert report["news"] is None
    mongodb = [r for r in report["releases"]["sources"] if r["source"] == "mongodb"][0]
    assert (mongodb["status"], mongodb["skipped"]) == (SUCCESS, 1)
    assert messages == ["Scraping releases..."]


def _fail_once(original, message="database is locked"):
    calls = {"n": 0}

    def wrapper(*args, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            raise OperationalError("UPDATE", {}, Exception(message))
        return original(*args, **kwargs)
    return wrapper


def test_database_error_in_one_release_source_spares_the_rest(db, make_fetcher, monkeypatch):
    monkeypatch.setattr(runstate, "record_run", _fail_once(runstate.record_run))
    fetcher = make_fetcher({MONGODB.url: MONGODB_PAGE, REDIS.url: REDIS_PAGE})

    results = run_releases(db, fetcher, TODAY, sources=(MONGODB, REDIS))

    assert [r.status for r in results] == [ERROR, SUCCESS]
    assert "database is locked" in results[0].error
    assert runstate.last_scrape_date(db, "mongodb") is None
    assert runstate.last_scrape_date(db, "redis") == TODAY


def test_database_error_in_one_news_source_spares_the_rest(db, make_fetcher, monkeypatch):
    monkeypatch.setattr(pipeline, "known_article_urls", _fail_once(pipeline.known_article_urls))
    fetcher = make_fetcher({INFOQ.url: INFOQ_PAGE, DBENGINES.url: DBENGINES_PAGE})

    results, processing = run_news(db, fetcher, TODAY, sources=(INFOQ, DBENGINES))

    assert [r.status for r in results] == [ERROR, SUCCESS]
    assert runstate.last_scrape_date(db, INFOQ.id) is None
    assert results[1].inserted == 3
    assert processing["inserted"] == 3
