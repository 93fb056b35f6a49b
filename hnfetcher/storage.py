from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from .database import FetchLog, Story
from .errors import PersistenceError
from .schema import Item

FETCH_LOG_FIELDS = {
    "completed_at",
    "stories_fetched",
    "stories_new",
    "stories_updated",
    "errors",
    "success",
}


class StoryRepository:
    """Story upserts and fetch-log writes over one SQLAlchemy session."""

    def __init__(self, session):
        self.session = session

    def _commit(self, action: str) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceError(f"{action} failed: {e}") from e

    def find_by_hn_id(self, hn_id: int) -> Optional[Story]:
        try:
            return self.session.query(Story).filter_by(hn_id=hn_id).first()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceError(f"Lookup of story {hn_id} failed: {e}") from e

    def upsert(self, item: Item) -> str:
        """
        Insert a new story or refresh an existing one.

        Only title, score, descendants and updated_at change on update; the
        rest of the stored row is left as first seen.

        Returns:
            "new" or "updated"
        """
        existing = self.find_by_hn_id(item.id)
        if existing is not None:
            existing.title = item.title or ""
            existing.score = item.score
            existing.descendants = item.descendants
            existing.updated_at = datetime.now()
            self._commit(f"Update of story {item.id}")
            return "updated"

        self.session.add(Story(
            hn_id=item.id,
            title=item.title or "",
            url=item.url,
            text=item.text,
            score=item.score,
            by=item.by,
            time=item.time,
            descendants=item.descendants,
            story_type=item.type,
            dead=item.dead,
            deleted=item.deleted,
        ))
        self._commit(f"Insert of story {item.id}")
        return "new"

    def count_stories(self) -> int:
        return self.session.query(Story).count()

    def start_fetch_log(self, started_at: Optional[datetime] = None) -> int:
        """Create the audit row for a run; returns its id."""
        log = FetchLog(started_at=started_at or datetime.now())
        self.session.add(log)
        self._commit("Creating fetch log")
        return log.id

    def finish_fetch_log(self, log_id: int, **fields: Any) -> None:
        """Write the final outcome of a run to its audit row."""
        unknown = set(fields) - FETCH_LOG_FIELDS
        if unknown:
            raise ValueError(f"Unknown fetch log fields: {sorted(unknown)}")

        log = self.session.get(FetchLog, log_id)
        if log is None:
            raise PersistenceError(f"Fetch log {log_id} not found")
        for name, value in fields.items():
            setattr(log, name, value)
        self._commit(f"Finishing fetch log {log_id}")

    def recent_fetch_logs(self, limit: int = 10) -> List[FetchLog]:
        return (
            self.session.query(FetchLog)
            .order_by(FetchLog.started_at.desc(), FetchLog.id.desc())
            .limit(limit)
            .all()
        )
