"""
Response envelope: sheet pagination and bounded output size.

A finished analysis result leaves through one of two sinks:

    InlineSink    - the result is returned as-is
    ResourceSink  - the full result is parked in a result store and a
                    minimal envelope carrying its resourceUri is returned

select_sink() picks one with a staged size check:

    1. cheap linear estimate; above the estimate limit the result is
       never serialized
    2. exact UTF-8 size of the JSON serialization against max_bytes
    3. serialization blowing up (OverflowError/MemoryError)
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Protocol, Sequence, TypeVar

import config
from lib.errors import InvalidArgumentError
from lib.result_store import result_uri

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CURSOR_RE = re.compile(r"^sheet:(\d+)$")

# Keys kept in the minimal envelope when the full result is spilled.
MINIMAL_ENVELOPE_KEYS = (
    "success",
    "action",
    "spreadsheet",
    "aggregate",
    "summary",
    "topInsights",
    "executionPath",
    "duration",
    "apiCalls",
    "dataRetrieved",
    "nextCursor",
    "hasMore",
)


# === Pagination ===

def parse_cursor(cursor: str | None) -> int:
    """
    "sheet:<N>" -> N. None or "" -> 0.

    Raises:
        InvalidArgumentError: malformed cursor
    """
    if cursor is None or cursor == "":
        return 0
    match = _CURSOR_RE.match(str(cursor).strip())
    if not match:
        raise InvalidArgumentError(f"invalid cursor: {cursor!r} (expected 'sheet:<N>')")
    return int(match.group(1))


def make_cursor(index: int) -> str:
    return f"sheet:{index}"


def resolve_page_size(page_size: int | None, default: int = config.DEFAULT_PAGE_SIZE,
                      maximum: int = config.MAX_PAGE_SIZE) -> int:
    """Default when omitted, clamp to the maximum; non-positive is rejected."""
    if page_size is None:
        return min(default, maximum)
    if page_size <= 0:
        raise InvalidArgumentError(f"page_size must be positive, got {page_size}")
    return min(page_size, maximum)


def paginate(
    items: Sequence[T],
    cursor: str | None = None,
    page_size: int | None = None,
    max_page_size: int = config.MAX_PAGE_SIZE,
) -> tuple[list[T], bool, str | None]:
    """
    Slice one page of items.

    Returns:
        (page, has_more, next_cursor); next_cursor is None on the last page

    Raises:
        InvalidArgumentError: malformed cursor, cursor past the end,
            non-positive page size
    """
    start = parse_cursor(cursor)
    size = resolve_page_size(page_size, maximum=max_page_size)
    if items and start >= len(items):
        raise InvalidArgumentError(f"cursor {cursor!r} is past the last sheet ({len(items)} sheets)")

    end = min(start + size, len(items))
    has_more = end < len(items)
    return list(items[start:end]), has_more, make_cursor(end) if has_more else None


# === Size guards ===

def estimate_size(result: dict[str, Any]) -> int:
    """
    Linear size estimate in bytes from element counts.
    Never serializes the result.
    """
    sheets = result.get("sheets", [])
    rows = sum(s.get("dataRowCount", 0) for s in sheets)
    columns = sum(len(s.get("columns", [])) for s in sheets)
    issues = sum(len(s.get("issues", [])) for s in sheets)
    trends = sum(len(s.get("trends", [])) for s in sheets)
    anomalies = sum(len(s.get("anomalies", [])) for s in sheets)
    return (
        rows * 50
        + columns * 300
        + issues * 200
        + trends * 150
        + anomalies * 150
        + len(sheets) * 2000
        + 100_000
    )


def measure_size(result: dict[str, Any]) -> int:
    """Exact UTF-8 byte length of the JSON serialization."""
    return len(json.dumps(result, ensure_ascii=False, default=str).encode("utf-8"))


# === Sinks ===

class ResultSink(Protocol):
    """Where a finished result goes."""

    def emit(self, result: dict[str, Any]) -> dict[str, Any]:
        ...


class InlineSink:
    """Return the result unchanged."""

    def emit(self, result: dict[str, Any]) -> dict[str, Any]:
        return result


class ResultStoreProtocol(Protocol):
    def store(self, seed: str, result: dict[str, Any]) -> str:
        ...


class ResourceSink:
    """
    Park the full result in a store and return a minimal envelope.

    The envelope keeps spreadsheet summary, aggregate totals, top
    insights, execution metadata and pagination; per-sheet detail is
    replaced by an empty list and a resourceUri pointer.
    """

    def __init__(self, store: ResultStoreProtocol, reason: str) -> None:
        self.store = store
        self.reason = reason

    def emit(self, result: dict[str, Any]) -> dict[str, Any]:
        seed = str(result.get("spreadsheet", {}).get("id", "result"))
        uri = result_uri(self.store.store(seed, result))

        envelope = {key: result[key] for key in MINIMAL_ENVELOPE_KEYS if key in result}
        envelope["sheets"] = []
        envelope["summary"] = f"{result.get('summary', '')} - Full results ({self.reason}) stored at {uri}"
        envelope["resourceUri"] = uri
        logger.info("Result stored as resource: %s (%s)", uri, self.reason)
        return envelope


def _mb(size: int) -> str:
    return f"{size / 1024 / 1024:.1f}MB"


def select_sink(
    result: dict[str, Any],
    store: ResultStoreProtocol,
    max_bytes: int = config.MAX_RESPONSE_SIZE_BYTES,
    estimate_limit: int = config.ESTIMATE_SIZE_LIMIT_BYTES,
) -> ResultSink:
    """Pick inline or resource delivery for a result."""
    estimated = estimate_size(result)
    if estimated > estimate_limit:
        logger.info("Result estimated at %d bytes, skipping serialization", estimated)
        return ResourceSink(store, f"estimated {_mb(estimated)}")

    try:
        actual = measure_size(result)
    except (OverflowError, MemoryError) as e:
        logger.error("Result could not be serialized (%s), storing as resource", type(e).__name__)
        return ResourceSink(store, "very large")

    if actual > max_bytes:
        logger.info("Result is %d bytes (limit %d), storing as resource", actual, max_bytes)
        return ResourceSink(store, _mb(actual))
    return InlineSink()


def deliver(
    result: dict[str, Any],
    store: ResultStoreProtocol,
    max_bytes: int = config.MAX_RESPONSE_SIZE_BYTES,
    estimate_limit: int = config.ESTIMATE_SIZE_LIMIT_BYTES,
) -> dict[str, Any]:
    """Route a result through the sink select_sink() chooses."""
    return select_sink(result, store, max_bytes, estimate_limit).emit(result)
