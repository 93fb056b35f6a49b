"""Runtime configuration read from the environment."""

import os
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigError
from .retry import RetryPolicy


def _to_bool(v: Optional[str], default: bool = False) -> bool:
    if v is None or not v.strip():
        return default
    return v.strip().lower() in {"1", "true", "yes", "y", "on"}


def _to_int(v: Optional[str], default: int) -> int:
    if v is None or not v.strip():
        return default
    return int(v.strip())


def _to_float(v: Optional[str], default: float) -> float:
    if v is None or not v.strip():
        return default
    return float(v.strip())


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    database_url: str = Field(default="sqlite:///data/hackernews.db", min_length=1)
    api_url: str = Field(default="https://hacker-news.firebaseio.com/v0", pattern=r"^https?://")
    max_stories: int = Field(default=100, gt=0)
    request_timeout: float = Field(default=10.0, gt=0)
    item_delay: float = Field(default=0.1, ge=0)

    retry_max_attempts: int = Field(default=3, ge=1, le=10)
    retry_initial_delay: float = Field(default=1.0, gt=0)
    retry_max_delay: float = Field(default=30.0, gt=0)
    retry_backoff_multiplier: float = Field(default=2.0, ge=1)

    log_level: str = Field(default="INFO", pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    log_dir: str = Field(default="logs")
    log_to_file: bool = Field(default=True)

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.retry_max_attempts,
            initial_delay=self.retry_initial_delay,
            max_delay=self.retry_max_delay,
            backoff_multiplier=self.retry_backoff_multiplier,
        )

    @property
    def log_path(self) -> Path:
        return Path(self.log_dir)


def load_settings(environ: Optional[Mapping[str, str]] = None, **overrides) -> Settings:
    """
    Build Settings from environment variables.

    Args:
        environ: Mapping to read from (default: os.environ)
        **overrides: Values that win over the environment (e.g. CLI flags)

    Raises:
        ConfigError: On unparseable or out-of-range values
    """
    env = os.environ if environ is None else environ
    try:
        values = dict(
            database_url=env.get("DATABASE_URL", "sqlite:///data/hackernews.db"),
            api_url=env.get("HACKERNEWS_API_URL", "https://hacker-news.firebaseio.com/v0").rstrip("/"),
            max_stories=_to_int(env.get("MAX_STORIES"), 100),
            request_timeout=_to_float(env.get("REQUEST_TIMEOUT"), 10.0),
            item_delay=_to_float(env.get("ITEM_DELAY"), 0.1),
            retry_max_attempts=_to_int(env.get("RETRY_MAX_ATTEMPTS"), 3),
            retry_initial_delay=_to_float(env.get("RETRY_INITIAL_DELAY"), 1.0),
            retry_max_delay=_to_float(env.get("RETRY_MAX_DELAY"), 30.0),
            retry_backoff_multiplier=_to_float(env.get("RETRY_BACKOFF_MULTIPLIER"), 2.0),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
            log_dir=env.get("LOG_DIR", "logs"),
            log_to_file=_to_bool(env.get("LOG_TO_FILE"), True),
        )
        values.update({k: v for k, v in overrides.items() if v is not None})
        return Settings(**values)
    except (ValueError, ValidationError) as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
