"""
Pytest configuration and shared fixtures.
"""

import pytest
import requests
from typing import Any, Dict

from hnfetcher.database import init_database, get_session
from hnfetcher.logger import StructuredLogger, reset_logger
from hnfetcher.storage import StoryRepository

API_URL = "https://hn.test/v0"


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, payload: Any = None, status_code: int = 200, invalid_json: bool = False):
        self.payload = payload
        self.status_code = status_code
        self.invalid_json = invalid_json

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} Error", response=self)

    def json(self):
        if self.invalid_json:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self.payload


class FakeSession:
    """
    Routes GETs by URL to queued outcomes.

    Each route holds a list; entries are FakeResponse or exception instances
    and are consumed in order. The last entry repeats once the list runs out.
    """

    def __init__(self, routes: Dict[str, list] = None):
        self.routes = routes or {}
        self.calls = []

    def add(self, url: str, *outcomes):
        self.routes.setdefault(url, []).extend(outcomes)

    def get(self, url, timeout=None):
        self.calls.append((url, timeout))
        outcomes = self.routes.get(url)
        if not outcomes:
            return FakeResponse(None, status_code=404)
        outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def count(self, url: str) -> int:
        return sum(1 for u, _ in self.calls if u == url)


@pytest.fixture(autouse=True)
def fresh_global_logger():
    """Keep the process-wide logger from leaking between tests."""
    reset_logger()
    yield
    reset_logger()


@pytest.fixture
def quiet_logger() -> StructuredLogger:
    return StructuredLogger(name="hnfetcher-test", level="DEBUG", enable_file=False, enable_console=False)


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def story_payload() -> Dict[str, Any]:
    """Story as returned by /item/{id}.json."""
    return {
        "id": 101,
        "title": "Show HN: A tiny database",
        "url": "https://example.com/tiny-db",
        "score": 42,
        "by": "pg",
        "time": 1700000000,
        "descendants": 7,
        "type": "story",
    }


@pytest.fixture
def db_engine(tmp_path):
    engine = init_database(f"sqlite:///{tmp_path / 'test.db'}")
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    session = get_session(db_engine)
    yield session
    session.close()


@pytest.fixture
def repository(db_session) -> StoryRepository:
    return StoryRepository(db_session)
