from dataclasses import dataclass
from typing import Any, Dict, List, NamedTuple, Optional
from urllib.parse import urlparse

from .errors import ItemValidationError

OPTIONAL_STR_FIELDS = ["title", "url", "text", "by", "type"]
NON_NEGATIVE_INT_FIELDS = ["score", "descendants"]
BOOL_FIELDS = ["dead", "deleted"]


@dataclass(frozen=True)
class Item:
    """Normalized Hacker News item."""

    id: int
    title: Optional[str] = None
    url: Optional[str] = None
    text: Optional[str] = None
    score: int = 0
    by: Optional[str] = None
    time: int = 0
    descendants: int = 0
    type: Optional[str] = None
    dead: bool = False
    deleted: bool = False


class ParseResult(NamedTuple):
    """Outcome of parsing a payload: either value or error is set."""

    value: Any
    error: Optional[ItemValidationError]

    @property
    def ok(self) -> bool:
        return self.error is None


def _is_int(v: Any) -> bool:
    # bool is an int subclass; JSON true/false are not ids or counts
    return isinstance(v, int) and not isinstance(v, bool)


def _is_positive_int(v: Any) -> bool:
    return _is_int(v) and v > 0


def _valid_url(v: str) -> bool:
    try:
        p = urlparse(v)
        return bool(p.scheme and p.netloc)
    except ValueError:
        return False


def validate_item(data: Any) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.
    Explicit nulls are treated as absent fields.
    """
    if not isinstance(data, dict):
        return [f"Item payload must be an object, got {type(data).__name__}"]

    errors: List[str] = []

    if data.get("id") is None:
        errors.append("Missing required field: id")
    elif not _is_positive_int(data["id"]):
        errors.append("Field 'id' must be a positive integer")

    for f in OPTIONAL_STR_FIELDS:
        if data.get(f) is not None and not isinstance(data[f], str):
            errors.append(f"Field '{f}' must be a string if provided")

    if isinstance(data.get("url"), str) and not _valid_url(data["url"]):
        errors.append("Field 'url' must be a valid absolute URL (scheme + host)")

    for f in NON_NEGATIVE_INT_FIELDS:
        v = data.get(f)
        if v is not None and not (_is_int(v) and v >= 0):
            errors.append(f"Field '{f}' must be a non-negative integer if provided")

    if data.get("time") is not None and not _is_int(data["time"]):
        errors.append("Field 'time' must be an integer if provided")

    for f in BOOL_FIELDS:
        if data.get(f) is not None and not isinstance(data[f], bool):
            errors.append(f"Field '{f}' must be a boolean if provided")

    return errors


def parse_item(data: Any) -> ParseResult:
    """Validate a raw item payload and normalize it into an Item."""
    errors = validate_item(data)
    if errors:
        return ParseResult(None, ItemValidationError(errors))

    def _get(field: str, default: Any = None) -> Any:
        v = data.get(field)
        return default if v is None else v

    item = Item(
        id=data["id"],
        title=_get("title"),
        url=_get("url"),
        text=_get("text"),
        score=_get("score", 0),
        by=_get("by"),
        time=_get("time", 0),
        descendants=_get("descendants", 0),
        type=_get("type"),
        dead=_get("dead", False),
        deleted=_get("deleted", False),
    )
    return ParseResult(item, None)


def parse_id_list(data: Any) -> ParseResult:
    """
    Validate an id-list response. A single bad entry rejects the whole list.
    """
    if not isinstance(data, list):
        return ParseResult(None, ItemValidationError(
            [f"Id list must be an array, got {type(data).__name__}"]
        ))

    bad = [i for i, v in enumerate(data) if not _is_positive_int(v)]
    if bad:
        return ParseResult(None, ItemValidationError(
            [f"Id list entry {i} is not a positive integer: {data[i]!r}" for i in bad[:5]]
        ))

    return ParseResult(list(data), None)
