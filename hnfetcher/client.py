"""Hacker News API client with retry and payload validation."""

from typing import Any, List, Optional

import requests

from .errors import ItemValidationError, TransportError
from .logger import StructuredLogger, get_logger
from .retry import RetryExecutor, RetryPolicy
from .schema import Item, parse_id_list, parse_item

DEFAULT_API_URL = "https://hacker-news.firebaseio.com/v0"


class HackerNewsClient:
    """
    Fetches new story ids and single items from the Hacker News API.

    Every HTTP call runs through the retry executor. Failures fetching the id
    list propagate; failures fetching one story come back as None.
    """

    def __init__(
        self,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 10.0,
        max_stories: int = 100,
        retry_executor: Optional[RetryExecutor] = None,
        session: Optional[requests.Session] = None,
        logger: Optional[StructuredLogger] = None,
    ):
        if not isinstance(max_stories, int) or max_stories <= 0:
            raise ValueError("max_stories must be a positive integer")
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.max_stories = max_stories
        self.retry_executor = retry_executor or RetryExecutor()
        self.session = session or requests.Session()
        self.logger = logger or get_logger()

    @classmethod
    def from_settings(cls, settings, session: Optional[requests.Session] = None, logger=None):
        return cls(
            api_url=settings.api_url,
            timeout=settings.request_timeout,
            max_stories=settings.max_stories,
            retry_executor=RetryExecutor(settings.retry_policy()),
            session=session,
            logger=logger,
        )

    def _get_json(self, url: str) -> Any:
        """GET url and decode the JSON body; raises TransportError or ItemValidationError."""
        self.logger.record_api_call()
        try:
            resp = self.session.get(url, timeout=self.timeout)
            resp.raise_for_status()
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise TransportError(f"HTTP {status} from {url}", status_code=status, url=url) from e
        except requests.exceptions.Timeout as e:
            raise TransportError(f"Request timeout for {url}: {e}", url=url) from e
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Request error for {url}: {e}", url=url) from e

        try:
            return resp.json()
        except ValueError as e:
            raise ItemValidationError([f"Response from {url} is not valid JSON"]) from e

    def fetch_new_story_ids(self, limit: Optional[int] = None, policy: Optional[RetryPolicy] = None) -> List[int]:
        """
        Fetch the newest story ids, front of the list first.

        Args:
            limit: Max ids to return (default: max_stories)
            policy: Optional retry policy for this call

        Raises:
            ValueError: If limit is not a positive integer
            TransportError, ItemValidationError: After retries are exhausted
        """
        if limit is not None and (isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0):
            raise ValueError(f"limit must be a positive integer, got {limit!r}")
        max_ids = limit or self.max_stories
        url = f"{self.api_url}/newstories.json"

        def _fetch() -> List[int]:
            result = parse_id_list(self._get_json(url))
            if not result.ok:
                raise result.error
            return result.value[:max_ids]

        def _on_retry(attempt, error, delay):
            self.logger.warning(
                f"Fetching new stories failed (attempt {attempt}). Retrying in {delay:.2f}s",
                error=str(error),
            )

        try:
            story_ids = self.retry_executor.execute(_fetch, policy, on_retry=_on_retry)
        except Exception as e:
            self.logger.error("Failed to fetch new stories", error=str(e), error_type=type(e).__name__)
            raise

        self.logger.info(f"Successfully fetched {len(story_ids)} new story IDs")
        return story_ids

    def fetch_story(self, story_id: int, policy: Optional[RetryPolicy] = None) -> Optional[Item]:
        """
        Fetch and validate one item.

        Returns:
            Item, or None when the item could not be fetched or validated

        Raises:
            ValueError: If story_id is not a positive integer
        """
        if isinstance(story_id, bool) or not isinstance(story_id, int) or story_id <= 0:
            raise ValueError(f"story_id must be a positive integer, got {story_id!r}")
        url = f"{self.api_url}/item/{story_id}.json"

        def _fetch() -> Item:
            result = parse_item(self._get_json(url))
            if not result.ok:
                raise result.error
            return result.value

        def _on_retry(attempt, error, delay):
            self.logger.debug(
                f"Story {story_id} fetch failed (attempt {attempt}). Retrying in {delay:.2f}s",
                error=str(error),
            )

        self.logger.record_story_attempt()
        try:
            item = self.retry_executor.execute(_fetch, policy, on_retry=_on_retry)
        except Exception as e:
            # One story never aborts the run
            self.logger.record_story_failure(type(e).__name__)
            self.logger.warning(
                f"Error fetching story {story_id} after retries",
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        self.logger.record_story_success()
        return item
