"""
Result store for oversized analysis results.

Full results that do not fit in a tool response are parked here
and served back through the analyze://results/{id} resource.
"""
import uuid
from collections import OrderedDict
from typing import Any

import config


def result_uri(result_id: str) -> str:
    """Resource URI for a stored result."""
    return f"{config.RESULT_URI_SCHEME}://results/{result_id}"


class AnalysisResultStore:
    """
    In-memory store keyed by opaque ids.

    Usage:
        store = AnalysisResultStore()
        result_id = store.store("1AbC...", full_result)
        store.get(result_id)
    """

    def __init__(self, max_entries: int = 50) -> None:
        """
        Initialize store.

        Args:
            max_entries: Oldest results are dropped beyond this count
        """
        self._results: OrderedDict[str, dict[str, Any]] = OrderedDict()
        self._max_entries = max_entries

    @property
    def size(self) -> int:
        """Get current number of stored results."""
        return len(self._results)

    def store(self, seed: str, result: dict[str, Any]) -> str:
        """
        Store a result and return its id.

        Args:
            seed: Spreadsheet id the result belongs to (prefixes the id)
            result: Full analysis result

        Returns:
            Opaque id for later retrieval
        """
        result_id = f"{seed}-{uuid.uuid4().hex[:12]}"
        self._results[result_id] = result
        while len(self._results) > self._max_entries:
            self._results.popitem(last=False)
        return result_id

    def get(self, result_id: str) -> dict[str, Any] | None:
        """Get a stored result, or None if unknown or evicted."""
        return self._results.get(result_id)

    def list_ids(self) -> list[str]:
        """Ids of stored results, oldest first."""
        return list(self._results)


_result_store: AnalysisResultStore | None = None


def get_result_store() -> AnalysisResultStore:
    """Get the process-wide result store."""
    global _result_store
    if _result_store is None:
        _result_store = AnalysisResultStore()
    return _result_store


def reset_result_store() -> None:
    """Drop the process-wide store (useful for testing)."""
    global _result_store
    _result_store = None
