"""
Tests for the fetch orchestrator.
"""

import threading

import pytest
import requests

from hnfetcher.client import HackerNewsClient
from hnfetcher.database import Story
from hnfetcher.errors import PersistenceError, TransportError
from hnfetcher.pipeline import FetchOrchestrator, FetchResult, RunState
from hnfetcher.retry import RetryExecutor, RetryPolicy
from hnfetcher.schema import Item
from conftest import API_URL, FakeResponse

IDS_URL = f"{API_URL}/newstories.json"


def item_url(story_id):
    return f"{API_URL}/item/{story_id}.json"


def story(story_id, **fields):
    payload = {"id": story_id, "title": f"Story {story_id}", "type": "story", "score": 1, "time": 1700000000}
    payload.update(fields)
    return payload


@pytest.fixture
def client(fake_session, quiet_logger):
    executor = RetryExecutor(RetryPolicy(max_attempts=3, initial_delay=0.01), sleep=lambda s: None)
    return HackerNewsClient(
        api_url=API_URL,
        max_stories=100,
        retry_executor=executor,
        session=fake_session,
        logger=quiet_logger,
    )


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_orchestrator(client, repository, quiet_logger, sleeps):
    def _make(**kwargs):
        kwargs.setdefault("item_delay", 0.1)
        kwargs.setdefault("sleep", sleeps.append)
        kwargs.setdefault("logger", quiet_logger)
        return FetchOrchestrator(client, repository, **kwargs)
    return _make


class TestSuccessfulRun:
    """Runs that reach COMPLETED."""

    def test_one_story_failing_does_not_abort_run(self, make_orchestrator, fake_session, repository):
        fake_session.add(IDS_URL, FakeResponse([101, 102, 103]))
        fake_session.add(item_url(101), FakeResponse(story(101)))
        fake_session.add(item_url(102), requests.exceptions.ConnectionError("Connection refused"))
        fake_session.add(item_url(103), FakeResponse(story(103)))

        orchestrator = make_orchestrator()
        result = orchestrator.run()

        assert result.to_dict() == {
            "success": True,
            "total_fetched": 2,
            "new_stories": 2,
            "updated_stories": 0,
            "errors": [],
        }
        assert orchestrator.state is RunState.COMPLETED
        assert fake_session.count(item_url(102)) == 3

        log = repository.recent_fetch_logs(limit=1)[0]
        assert log.stories_fetched == 2
        assert log.stories_new == 2
        assert log.stories_updated == 0
        assert log.success is True
        assert log.completed_at is not None
        assert log.errors is None

    def test_unexpected_story_error_does_not_abort_run(self, make_orchestrator, fake_session, repository):
        fake_session.add(IDS_URL, FakeResponse([1, 2]))
        fake_session.add(item_url(1), UnicodeError("bad label"))
        fake_session.add(item_url(2), FakeResponse(story(2)))

        result = make_orchestrator().run()

        assert result.success is True
        assert result.total_fetched == 1
        assert result.new_stories == 1
        assert result.errors == []
        assert repository.find_by_hn_id(2) is not None

    def test_paces_after_every_story(self, make_orchestrator, fake_session, sleeps):
        fake_session.add(IDS_URL, FakeResponse([1, 2, 3]))
        fake_session.add(item_url(1), FakeResponse(story(1)))
        fake_session.add(item_url(3), FakeResponse(story(3)))
        # item 2 is a 404 and still gets a pacing delay

        make_orchestrator(item_delay=0.25).run()

        assert sleeps == [0.25, 0.25, 0.25]

    def test_stories_fetched_and_saved_in_server_order(self, make_orchestrator, fake_session, db_session):
        fake_session.add(IDS_URL, FakeResponse([30, 10, 20]))
        for sid in (30, 10, 20):
            fake_session.add(item_url(sid), FakeResponse(story(sid)))

        make_orchestrator().run()

        fetched = [url for url, _ in fake_session.calls if "/item/" in url]
        assert fetched == [item_url(30), item_url(10), item_url(20)]
        saved = [s.hn_id for s in db_session.query(Story).order_by(Story.id).all()]
        assert saved == [30, 10, 20]

    def test_empty_id_list(self, make_orchestrator, fake_session, repository):
        fake_session.add(IDS_URL, FakeResponse([]))
        result = make_orchestrator().run()
        assert result == FetchResult(success=True, total_fetched=0, new_stories=0, updated_stories=0, errors=[])
        assert repository.recent_fetch_logs(limit=1)[0].success is True

    def test_rerun_is_idempotent(self, make_orchestrator, fake_session, repository):
        fake_session.add(IDS_URL, FakeResponse([1, 2]))
        fake_session.add(item_url(1), FakeResponse(story(1)))
        fake_session.add(item_url(2), FakeResponse(story(2)))

        first = make_orchestrator().run()
        second = make_orchestrator().run()

        assert (first.new_stories, first.updated_stories) == (2, 0)
        assert (second.new_stories, second.updated_stories) == (0, 2)
        assert repository.count_stories() == 2
        assert len(repository.recent_fetch_logs()) == 2

    def test_existing_story_gets_refreshed(self, make_orchestrator, fake_session, repository):
        repository.upsert(Item(id=7, title="Old title", url="https://example.com/a", by="alice", score=3, descendants=1))
        fake_session.add(IDS_URL, FakeResponse([7]))
        fake_session.add(item_url(7), FakeResponse(story(7, title="Old title", url="https://example.com/b", score=50, descendants=12)))

        result = make_orchestrator().run()

        assert (result.new_stories, result.updated_stories) == (0, 1)
        stored = repository.find_by_hn_id(7)
        assert stored.score == 50
        assert stored.descendants == 12
        assert stored.url == "https://example.com/a"
        assert stored.by == "alice"

    def test_persistence_failure_skips_only_that_story(self, make_orchestrator, fake_session, repository, monkeypatch):
        fake_session.add(IDS_URL, FakeResponse([1, 2, 3]))
        for sid in (1, 2, 3):
            fake_session.add(item_url(sid), FakeResponse(story(sid)))

        real_upsert = repository.upsert

        def flaky_upsert(item):
            if item.id == 2:
                raise PersistenceError("Insert of story 2 failed: database is locked")
            return real_upsert(item)

        monkeypatch.setattr(repository, "upsert", flaky_upsert)
        result = make_orchestrator().run()

        assert result.success is True
        assert result.total_fetched == 3
        assert result.new_stories == 2
        assert repository.find_by_hn_id(2) is None

    def test_progress_logged_periodically(self, make_orchestrator, fake_session, quiet_logger, caplog):
        ids = list(range(1, 26))
        fake_session.add(IDS_URL, FakeResponse(ids))
        for sid in ids:
            fake_session.add(item_url(sid), FakeResponse(story(sid)))

        quiet_logger.logger.propagate = True
        with caplog.at_level("INFO", logger=quiet_logger.logger.name):
            make_orchestrator(progress_every=10).run()

        progress = [r.getMessage() for r in caplog.records if r.getMessage().startswith("Fetch progress")]
        assert len(progress) == 2


class TestFailedRun:
    """Runs that end in FAILED."""

    def test_id_list_failure_fails_run(self, make_orchestrator, fake_session, repository):
        fake_session.add(IDS_URL, requests.exceptions.ConnectionError("Connection refused"))

        orchestrator = make_orchestrator()
        result = orchestrator.run()

        assert result.success is False
        assert result.total_fetched == 0
        assert result.new_stories == 0
        assert result.updated_stories == 0
        assert len(result.errors) == 1
        assert result.errors[0].startswith("Fetch operation failed: ")
        assert "Connection refused" in result.errors[0]
        assert orchestrator.state is RunState.FAILED
        assert fake_session.count(IDS_URL) == 3

        log = repository.recent_fetch_logs(limit=1)[0]
        assert log.success is False
        assert log.errors
        assert log.completed_at is not None

    def test_cancellation_between_stories(self, fake_session, client, repository, quiet_logger):
        fake_session.add(IDS_URL, FakeResponse([1, 2, 3]))
        for sid in (1, 2, 3):
            fake_session.add(item_url(sid), FakeResponse(story(sid)))

        cancel = threading.Event()
        orchestrator = FetchOrchestrator(
            client,
            repository,
            sleep=lambda s: cancel.set(),
            cancel_event=cancel,
            logger=quiet_logger,
        )
        result = orchestrator.run()

        assert result.success is False
        assert result.total_fetched == 1
        assert "cancelled after 1 of 3" in result.errors[0]
        assert repository.count_stories() == 0
        log = repository.recent_fetch_logs(limit=1)[0]
        assert log.stories_fetched == 1
        assert "cancelled" in log.errors

    def test_audit_creation_failure_propagates(self, make_orchestrator, fake_session, repository, monkeypatch):
        def broken_start(started_at=None):
            raise PersistenceError("Creating fetch log failed")

        monkeypatch.setattr(repository, "start_fetch_log", broken_start)
        orchestrator = make_orchestrator()
        with pytest.raises(PersistenceError):
            orchestrator.run()
        assert fake_session.calls == []
        assert orchestrator.state is RunState.STARTED


class StubClient:
    """Client double that never touches the network."""

    def __init__(self, ids=None, items=None, id_error=None):
        self.ids = ids or []
        self.items = items or {}
        self.id_error = id_error

    def fetch_new_story_ids(self, limit=None):
        if self.id_error:
            raise self.id_error
        return list(self.ids)

    def fetch_story(self, story_id):
        return self.items.get(story_id)


class TestWithStubClient:
    def test_each_run_gets_its_own_fetch_log(self, repository, quiet_logger):
        client = StubClient(ids=[1], items={1: Item(id=1, title="a")})
        for _ in range(3):
            FetchOrchestrator(client, repository, sleep=lambda s: None, logger=quiet_logger).run()
        assert len(repository.recent_fetch_logs()) == 3

    def test_failure_message_uses_error_text(self, repository, quiet_logger):
        client = StubClient(id_error=TransportError("HTTP 503 from newstories"))
        result = FetchOrchestrator(client, repository, sleep=lambda s: None, logger=quiet_logger).run()
        assert result.errors == ["Fetch operation failed: HTTP 503 from newstories"]
