"""
Database schema and connection management.

Uses SQLAlchemy; SQLite by default, any SQLAlchemy URL is accepted.
"""

from datetime import datetime
from pathlib import Path
from sqlalchemy import create_engine, text, Column, Integer, String, Text, Boolean, DateTime
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


class Story(Base):
    """Hacker News item as stored."""

    __tablename__ = "stories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    hn_id = Column(Integer, nullable=False, unique=True, index=True)
    title = Column(String(500), nullable=False, default="")
    url = Column(Text, nullable=True)
    text = Column(Text, nullable=True)
    score = Column(Integer, nullable=False, default=0, index=True)
    by = Column(String(100), nullable=True)
    time = Column(Integer, nullable=False, default=0, index=True)  # unix epoch from the API
    descendants = Column(Integer, nullable=False, default=0)
    story_type = Column(String(50), nullable=True)
    dead = Column(Boolean, nullable=False, default=False)
    deleted = Column(Boolean, nullable=False, default=False)
    fetched_at = Column(DateTime, nullable=False, default=datetime.now, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)


class FetchLog(Base):
    """Audit row, one per fetch run."""

    __tablename__ = "fetch_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    started_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    stories_fetched = Column(Integer, nullable=False, default=0)
    stories_new = Column(Integer, nullable=False, default=0)
    stories_updated = Column(Integer, nullable=False, default=0)
    errors = Column(Text, nullable=True)
    success = Column(Boolean, nullable=False, default=False)


def init_database(database_url: str) -> Engine:
    """
    Initialize database and create tables.

    Args:
        database_url: SQLAlchemy URL, e.g. sqlite:///data/hackernews.db

    Returns:
        Engine bound to the database
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(database_url)
    Base.metadata.create_all(engine)
    return engine


def get_session(engine: Engine):
    """
    Get database session.

    Args:
        engine: Engine from init_database

    Returns:
        SQLAlchemy session
    """
    Session = sessionmaker(bind=engine)
    return Session()


def check_connection(engine: Engine) -> None:
    """Run SELECT 1; raises SQLAlchemyError when the database is unreachable."""
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
