"""
Fetch pipeline: one run pulls new story ids, fetches each story, and
reconciles the results into storage while recording a fetch log row.

States: STARTED -> FETCHING -> RECONCILING -> COMPLETED, or -> FAILED when
the id list cannot be fetched or the run is cancelled. A run never resumes;
every call to run() starts a new fetch log.
"""

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional

from .errors import PersistenceError, RunCancelledError
from .logger import StructuredLogger, get_logger
from .schema import Item


class RunState(Enum):
    PENDING = "pending"
    STARTED = "started"
    FETCHING = "fetching"
    RECONCILING = "reconciling"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class FetchResult:
    success: bool
    total_fetched: int = 0
    new_stories: int = 0
    updated_stories: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "success": self.success,
            "total_fetched": self.total_fetched,
            "new_stories": self.new_stories,
            "updated_stories": self.updated_stories,
            "errors": list(self.errors),
        }


class FetchOrchestrator:
    """Drives a single fetch-and-persist run."""

    def __init__(
        self,
        client,
        repository,
        item_delay: float = 0.1,
        progress_every: int = 10,
        sleep: Callable[[float], None] = time.sleep,
        cancel_event: Optional[threading.Event] = None,
        logger: Optional[StructuredLogger] = None,
    ):
        self.client = client
        self.repository = repository
        self.item_delay = item_delay
        self.progress_every = progress_every
        self.cancel_event = cancel_event
        self.logger = logger or get_logger()
        self._sleep = sleep
        self.state = RunState.PENDING

    def run(self) -> FetchResult:
        """
        Execute one run end to end.

        Raises:
            PersistenceError: If the fetch log row cannot be created; nothing
                else has happened at that point
        """
        self.state = RunState.STARTED
        log_id = self.repository.start_fetch_log(datetime.now())
        stories: List[Item] = []

        try:
            self.state = RunState.FETCHING
            self.logger.info("Starting fetch operation", fetch_log_id=log_id)
            story_ids = self.client.fetch_new_story_ids()
            self.logger.info("Processing story IDs", count=len(story_ids))
            self._fetch_stories(story_ids, stories)
            self.logger.info("API fetch complete", count=len(stories))
        except Exception as e:
            return self._fail(log_id, e, len(stories))

        self.state = RunState.RECONCILING
        new_count, updated_count = self._save_stories(stories)

        self.repository.finish_fetch_log(
            log_id,
            completed_at=datetime.now(),
            stories_fetched=len(stories),
            stories_new=new_count,
            stories_updated=updated_count,
            success=True,
        )
        self.state = RunState.COMPLETED
        return FetchResult(
            success=True,
            total_fetched=len(stories),
            new_stories=new_count,
            updated_stories=updated_count,
            errors=[],
        )

    def _fetch_stories(self, story_ids: List[int], stories: List[Item]) -> None:
        total = len(story_ids)
        for i, story_id in enumerate(story_ids, start=1):
            if self.cancel_event is not None and self.cancel_event.is_set():
                raise RunCancelledError(f"Run cancelled after {i - 1} of {total} stories")

            if self.progress_every and i % self.progress_every == 0:
                self.logger.info("Fetch progress", current=i, total=total)

            story = self.client.fetch_story(story_id)
            if story is not None:
                stories.append(story)

            # Rate limiting
            self._sleep(self.item_delay)

    def _save_stories(self, stories: List[Item]):
        new_count = 0
        updated_count = 0

        for story in stories:
            try:
                status = self.repository.upsert(story)
            except PersistenceError as e:
                self.logger.error(f"Error saving story {story.id}", error=str(e))
                continue
            if status == "new":
                new_count += 1
            elif status == "updated":
                updated_count += 1

        self.logger.info("Database save complete", new=new_count, updated=updated_count)
        return new_count, updated_count

    def _fail(self, log_id: int, error: Exception, fetched: int) -> FetchResult:
        errors = [f"Fetch operation failed: {error}"]
        self.logger.error("Fetch operation failed", error=str(error), error_type=type(error).__name__)

        self.repository.finish_fetch_log(
            log_id,
            completed_at=datetime.now(),
            stories_fetched=fetched,
            errors="\n".join(errors),
            success=False,
        )
        self.state = RunState.FAILED
        return FetchResult(
            success=False,
            total_fetched=fetched,
            new_stories=0,
            updated_stories=0,
            errors=errors,
        )
