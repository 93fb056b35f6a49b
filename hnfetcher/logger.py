"""
Process-wide logger for fetch runs.

Messages go to stdout and, optionally, to a dated file under the log
directory. Keyword context is appended to the message as JSON. The logger
also counts API calls and per-story outcomes so a run can end with a
metrics summary.
"""

import logging
import sys
from pathlib import Path
from typing import Optional
from datetime import datetime
import json

CONSOLE_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s'
FILE_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def _new_metrics() -> dict:
    return {
        "api_calls": 0,
        "stories_attempted": 0,
        "stories_fetched": 0,
        "stories_failed": 0,
        "errors_by_type": {},
    }


class StructuredLogger:
    """
    Wraps a stdlib logger and keeps run metrics alongside it.

    The file handler always records DEBUG; `level` only governs the console.
    """

    def __init__(
        self,
        name: str = "hnfetcher",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = True,
        enable_console: bool = True,
    ):
        console_level = getattr(logging, level.upper())
        self.logger = logging.getLogger(name)
        self.logger.setLevel(console_level)
        self.logger.handlers.clear()
        self.logger.propagate = False
        self.metrics = _new_metrics()

        if enable_console:
            handler = logging.StreamHandler(sys.stdout)
            handler.setLevel(console_level)
            handler.setFormatter(logging.Formatter(fmt=CONSOLE_FORMAT, datefmt=DATE_FORMAT))
            self.logger.addHandler(handler)

        if enable_file:
            log_dir = Path(log_dir or "logs")
            log_dir.mkdir(parents=True, exist_ok=True)
            log_file = log_dir / f"hnfetcher_{datetime.now().strftime('%Y%m%d')}.log"

            handler = logging.FileHandler(log_file, encoding='utf-8')
            handler.setLevel(logging.DEBUG)
            handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt=DATE_FORMAT))
            self.logger.addHandler(handler)
            self.logger.setLevel(logging.DEBUG)

    def debug(self, message: str, **kwargs):
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs):
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs):
        self._log(logging.ERROR, message, kwargs)

    def critical(self, message: str, **kwargs):
        self._log(logging.CRITICAL, message, kwargs)

    def _log(self, level: int, message: str, context: dict):
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message)

    # Run metrics

    def record_api_call(self):
        self.metrics["api_calls"] += 1

    def record_story_attempt(self):
        self.metrics["stories_attempted"] += 1

    def record_story_success(self):
        self.metrics["stories_fetched"] += 1

    def record_story_failure(self, error_type: str):
        """Count a story that ended as None, keyed by the final error's class name."""
        self.metrics["stories_failed"] += 1
        errors = self.metrics["errors_by_type"]
        errors[error_type] = errors.get(error_type, 0) + 1

    def get_metrics(self) -> dict:
        """Snapshot of the counters plus success_rate (fetched / attempted)."""
        metrics_copy = dict(self.metrics)
        metrics_copy["errors_by_type"] = dict(self.metrics["errors_by_type"])
        attempts = metrics_copy["stories_attempted"]
        metrics_copy["success_rate"] = (
            round(metrics_copy["stories_fetched"] / attempts, 3) if attempts else 0
        )
        return metrics_copy

    def log_metrics_summary(self):
        metrics = self.get_metrics()
        overall_rate = round(metrics["success_rate"] * 100, 1)

        self.info("=== Fetch Session Metrics ===")
        self.info(f"API Calls: {metrics['api_calls']}")
        self.info(
            f"Stories: {metrics['stories_fetched']}/{metrics['stories_attempted']} "
            f"({overall_rate}% success)"
        )

        if metrics["errors_by_type"]:
            self.info("Error Types:")
            for error_type, count in metrics["errors_by_type"].items():
                self.info(f"  {error_type}: {count}")


_global_logger: Optional[StructuredLogger] = None


def get_logger(name: str = "hnfetcher", level: str = "INFO", **kwargs) -> StructuredLogger:
    """
    Return the shared logger, creating it on first use.

    Arguments only take effect on that first call; the CLI makes it from
    Settings before anything else asks for a logger.
    """
    global _global_logger

    if _global_logger is None:
        _global_logger = StructuredLogger(name=name, level=level, **kwargs)

    return _global_logger


def reset_logger():
    """Drop the shared logger so the next get_logger() builds a fresh one."""
    global _global_logger
    _global_logger = None
