"""
Static registry of content sources.

Every source pairs a URL with the extractor that understands its page layout:
 - release sources return version candidates (List[str])
 - news sources return ArticleCandidate records

`snapshots` names saved HTML files used instead of the live page when SNAPSHOT_DIR is set.
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Tuple

from dbpulse import articles, versions
from dbpulse.fetcher import Page

RELEASE = "release"
NEWS = "news"


@dataclass(frozen=True)
class Source:
    id: str
    name: str
    kind: str
    url: str
    base_url: str
    extract: Callable[[Page], List]
    snapshots: Tuple[str, ...] = ()
    # fetch each article's own page for full body text
    fetch_details: bool = False


RELEASE_SOURCES: Tuple[Source, ...] = (
    Source(
        id="mongodb",
        name="MongoDB",
        kind=RELEASE,
        url="https://www.mongodb.com/docs/manual/release-notes/",
        base_url="https://www.mongodb.com",
        extract=versions.mongodb_versions,
        snapshots=("mongodb.html",),
    ),
    Source(
        id="neo4j",
        name="Neo4j",
        kind=RELEASE,
        url="https://neo4j.com/release-notes/",
        base_url="https://neo4j.com",
        extract=versions.neo4j_versions,
        snapshots=("neo4j.html",),
    ),
    Source(
        id="redis",
        name="Redis",
        kind=RELEASE,
        url="https://redis.io/docs/latest/operate/rs/release-notes/",
        base_url="https://redis.io",
        extract=versions.redis_versions,
        snapshots=("redis.html",),
    ),
    Source(
        id="tidb",
        name="TiDB",
        kind=RELEASE,
        url="https://docs.pingcap.com/tidb/stable/release-notes/",
        base_url="https://docs.pingcap.com",
        extract=versions.tidb_versions,
        snapshots=("tidb.html",),
    ),
    Source(
        id="yugabytedb",
        name="YugabyteDB",
        kind=RELEASE,
        url="https://docs.yugabyte.com/stable/releases/ybdb-releases/",
        base_url="https://docs.yugabyte.com",
        extract=versions.yugabytedb_versions,
        snapshots=("yugabytedb.html",),
    ),
    Source(
        id="cockroachdb",
        name="CockroachDB",
        kind=RELEASE,
        url="https://www.cockroachlabs.com/docs/releases/",
        base_url="https://www.cockroachlabs.com",
        extract=versions.cockroachdb_versions,
        snapshots=("cockroachdb.html",),
    ),
    Source(
        id="cassandra",
        name="Cassandra",
        kind=RELEASE,
        url="https://cassandra.apache.org/_/download.html",
        base_url="https://cassandra.apache.org",
        extract=versions.cassandra_versions,
        snapshots=("cassandra.html",),
    ),
)

NEWS_SOURCES: Tuple[Source, ...] = (
    Source(
        id="infoq-nosql",
        name="InfoQ NoSQL",
        kind=NEWS,
        url="https://www.infoq.com/nosql/",
        base_url="https://www.infoq.com",
        extract=articles.extract_infoq_articles,
        snapshots=("first_page.html",),
        fetch_details=True,
    ),
    Source(
        id="infoq-data",
        name="InfoQ Data",
        kind=NEWS,
        url="https://www.infoq.com/data/",
        base_url="https://www.infoq.com",
        extract=articles.extract_infoq_articles,
        snapshots=("second-page.html",),
        fetch_details=True,
    ),
    Source(
        id="db-engines",
        name="DB-Engines Blog",
        kind=NEWS,
        url="https://db-engines.com/en/blog",
        base_url="https://db-engines.com",
        extract=articles.extract_dbengines_articles,
        snapshots=("page1.html", "page2.html"),
    ),
)

_BY_ID: Dict[str, Source] = {s.id: s for s in RELEASE_SOURCES + NEWS_SOURCES}


def get_source(source_id: str) -> Source:
    """Look up a registered source; raises KeyError for unknown ids."""
    return _BY_ID[source_id]


def all_sources() -> Tuple[Source, ...]:
    return RELEASE_SOURCES + NEWS_SOURCES
