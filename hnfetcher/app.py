import argparse
import time
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from . import __version__
from .client import HackerNewsClient
from .config import Settings, load_settings
from .database import check_connection, get_session, init_database
from .env import load_env
from .errors import FatalStartupError, PersistenceError
from .logger import get_logger
from .pipeline import FetchOrchestrator
from .storage import StoryRepository


def _setup(args: argparse.Namespace, **overrides) -> Settings:
    settings = load_settings(database_url=getattr(args, "database_url", None), **overrides)
    get_logger(
        level=settings.log_level,
        log_dir=settings.log_path,
        enable_file=settings.log_to_file,
    )
    return settings


def _open_database(settings: Settings):
    """Create tables and verify connectivity; raises FatalStartupError."""
    try:
        engine = init_database(settings.database_url)
        check_connection(engine)
    except SQLAlchemyError as e:
        raise FatalStartupError(f"Database unavailable: {e}") from e
    return engine


def cmd_fetch(args: argparse.Namespace) -> int:
    started = time.monotonic()
    settings = _setup(args, max_stories=args.limit)
    logger = get_logger()
    logger.info("Starting Hacker News fetcher", version=__version__)
    logger.info(
        "Configuration validated",
        api_url=settings.api_url,
        max_stories=settings.max_stories,
    )

    engine = _open_database(settings)
    session = get_session(engine)
    try:
        client = HackerNewsClient.from_settings(settings, logger=logger)
        orchestrator = FetchOrchestrator(
            client,
            StoryRepository(session),
            item_delay=settings.item_delay,
            logger=logger,
        )
        try:
            result = orchestrator.run()
        except PersistenceError as e:
            raise FatalStartupError(f"Fetch log write failed: {e}") from e
    finally:
        session.close()
        engine.dispose()

    summary = result.to_dict()
    errors = summary.pop("errors")
    logger.info(
        "Fetch operation completed",
        duration_seconds=round(time.monotonic() - started, 2),
        **summary,
    )
    if errors:
        logger.warning(
            "Errors encountered during fetch",
            error_count=len(errors),
            errors=errors,
        )
    logger.log_metrics_summary()
    return 0 if result.success else 1


def cmd_init_db(args: argparse.Namespace) -> int:
    settings = _setup(args)
    engine = _open_database(settings)
    engine.dispose()
    print(f"Database ready: {settings.database_url}")
    return 0


def cmd_check(args: argparse.Namespace) -> int:
    settings = _setup(args)
    print(f"API: {settings.api_url} | max stories: {settings.max_stories} | timeout: {settings.request_timeout}s")
    print(f"Retry: {settings.retry_policy().model_dump()}")
    engine = _open_database(settings)
    engine.dispose()
    print("DB OK")
    return 0


def cmd_runs(args: argparse.Namespace) -> int:
    settings = _setup(args)
    engine = _open_database(settings)
    session = get_session(engine)
    try:
        repository = StoryRepository(session)
        print(f"Stories stored: {repository.count_stories()}")
        logs = repository.recent_fetch_logs(limit=args.limit)
        if not logs:
            print("No fetch runs recorded.")
            return 0
        for log in logs:
            status = "ok" if log.success else "failed"
            print(
                f"#{log.id} {log.started_at:%Y-%m-%d %H:%M:%S} [{status}] "
                f"fetched={log.stories_fetched} new={log.stories_new} updated={log.stories_updated}"
            )
            if log.errors:
                print(f"  errors: {log.errors}")
    finally:
        session.close()
        engine.dispose()
    return 0


def _positive_int(value: str) -> int:
    n = int(value)
    if n <= 0:
        raise argparse.ArgumentTypeError("must be a positive integer")
    return n


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hnfetcher", description="Fetch new Hacker News stories into a database")
    parser.add_argument("--version", action="store_true", help="Show version")

    subparsers = parser.add_subparsers(dest="command")
    fet = subparsers.add_parser("fetch", help="Run one fetch: new story ids, each story, save to database")
    fet.add_argument("--limit", type=_positive_int, help="Max story ids to process (default: MAX_STORIES)")
    fet.add_argument("--database-url", help="SQLAlchemy database URL (default: DATABASE_URL)")
    fet.set_defaults(func=cmd_fetch)

    ini = subparsers.add_parser("init-db", help="Create tables and verify the database connection")
    ini.add_argument("--database-url", help="SQLAlchemy database URL (default: DATABASE_URL)")
    ini.set_defaults(func=cmd_init_db)

    chk = subparsers.add_parser("check", help="Show configuration and verify database connectivity")
    chk.add_argument("--database-url", help="SQLAlchemy database URL (default: DATABASE_URL)")
    chk.set_defaults(func=cmd_check)

    rns = subparsers.add_parser("runs", help="List recent fetch runs")
    rns.add_argument("--limit", type=_positive_int, default=10, help="Number of runs to show (default 10)")
    rns.add_argument("--database-url", help="SQLAlchemy database URL (default: DATABASE_URL)")
    rns.set_defaults(func=cmd_runs)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    # Load .env if present (DATABASE_URL, MAX_STORIES, etc.)
    load_env()
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return 0

    if not hasattr(args, "func"):
        parser.print_help()
        return 0

    try:
        return args.func(args)
    except FatalStartupError as e:
        get_logger().critical("FATAL ERROR", error=str(e), error_type=type(e).__name__)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
