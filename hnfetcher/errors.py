"""
Exception hierarchy for hnfetcher.

Transport and validation failures are raised inside retried operations and
absorbed per story by the client; persistence failures are absorbed per story
by the pipeline. Fatal startup errors abort the process before a fetch log
row exists.
"""

from typing import List, Optional


class HNFetcherError(Exception):
    """Base class for all hnfetcher errors."""
    pass


class TransportError(HNFetcherError):
    """Network, timeout or HTTP status failure while talking to the API."""

    def __init__(self, message: str, status_code: Optional[int] = None, url: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class ItemValidationError(HNFetcherError):
    """Payload from the API did not match the expected shape."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "invalid payload")


class PersistenceError(HNFetcherError):
    """Storage write or read failed."""
    pass


class FatalStartupError(HNFetcherError):
    """Source or storage unusable at startup; the run never begins."""
    pass


class ConfigError(FatalStartupError):
    """Configuration could not be parsed or failed validation."""
    pass


class RunCancelledError(HNFetcherError):
    """Raised inside a run when its cancel event is set."""
    pass
