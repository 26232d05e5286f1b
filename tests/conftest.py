import pytest
import requests

from dbpulse.db import init_db, make_engine, make_session_factory
from dbpulse.fetcher import Fetcher, RetryPolicy


class FakeResponse:
    def __init__(self, text="", status_code=200):
        self.text = text
        self.status_code = status_code


class FakeSession:
    """
    Stand-in for requests.Session.

    routes maps url -> html string, FakeResponse, exception instance, or a list of
    those consumed one per call.
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.headers = {}
        self.calls = []

    def get(self, url, timeout=None):
        self.calls.append((url, timeout))
        outcome = self.routes.get(url)
        if isinstance(outcome, list):
            outcome = outcome.pop(0) if len(outcome) > 1 else outcome[0]
        if outcome is None:
            return FakeResponse("", 404)
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, FakeResponse):
            return outcome
        return FakeResponse(outcome)


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_fetcher():
    def _make(routes=None, attempts=3, base_delay=0, sleeps=None, snapshot_dir=""):
        sleep = sleeps.append if sleeps is not None else (lambda seconds: None)
        return Fetcher(
            session=FakeSession(routes),
            policy=RetryPolicy(max_attempts=attempts, base_delay=base_delay),
            timeout=5,
            settle_delay=0,
            snapshot_dir=snapshot_dir,
            sleep=sleep,
        )
    return _make


@pytest.fixture
def connection_error():
    return requests.ConnectionError("connection refused")
