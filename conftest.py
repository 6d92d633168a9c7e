"""
Pytest configuration and fixtures for MCP server tests.

The Sheets API is never contacted: tests drive the retrieval core
through a MagicMock data source configured per test.
"""
import os
import pytest
from typing import Any
from unittest.mock import MagicMock

# Set test environment variables before importing anything
os.environ.setdefault("GOOGLE_CREDENTIALS_JSON", '{"type": "service_account", "project_id": "test"}')

from lib.result_store import AnalysisResultStore
from lib.tier_cache import TierCache


# ========== Response Assertion Helpers ==========

class ResponseAssertions:
    """Helper class for asserting API response structures."""

    @staticmethod
    def assert_success(response: dict, op: str | None = None) -> dict:
        """Assert response is successful and return data.

        Args:
            response: The response dict to check
            op: Optional operation name to verify

        Returns:
            The data dict from the response
        """
        assert response.get("ok") is True, f"Expected success, got: {response}"
        if op:
            assert response.get("op") == op, f"Expected op={op}, got {response.get('op')}"
        return response.get("data", {})

    @staticmethod
    def assert_error(response: dict, code: str, op: str | None = None) -> dict:
        """Assert response is an error with given code.

        Args:
            response: The response dict to check
            code: Expected error code
            op: Optional operation name to verify

        Returns:
            The error dict from the response
        """
        assert response.get("ok") is False, f"Expected error, got success: {response}"
        assert response.get("error", {}).get("code") == code, \
            f"Expected error code {code}, got {response.get('error', {}).get('code')}"
        if op:
            assert response.get("op") == op, f"Expected op={op}, got {response.get('op')}"
        return response.get("error", {})


@pytest.fixture
def assertions():
    """Fixture providing response assertion helpers."""
    return ResponseAssertions()


# ========== Clock / cache / store ==========

class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    """Tier cache driven by the fake clock."""
    return TierCache(clock=clock)


@pytest.fixture
def result_store():
    return AnalysisResultStore()


# ========== Fake Sheets data source ==========

def metadata_response(sheets: list[tuple[int, str, int, int]], title: str = "Test Book") -> dict[str, Any]:
    """spreadsheets.get payload for (sheetId, title, rowCount, columnCount) tuples."""
    return {
        "spreadsheetId": "sheet-123",
        "properties": {"title": title, "locale": "en_US", "timeZone": "Asia/Tokyo"},
        "sheets": [
            {
                "properties": {
                    "sheetId": sheet_id,
                    "title": sheet_title,
                    "index": index,
                    "gridProperties": {"rowCount": rows, "columnCount": cols},
                }
            }
            for index, (sheet_id, sheet_title, rows, cols) in enumerate(sheets)
        ],
    }


def title_of(range_notation: str) -> str:
    """'Sheet 1'!A1:C10 -> Sheet 1"""
    return range_notation.rsplit("!", 1)[0].strip("'").replace("''", "'")


def make_source(
    sheets: list[tuple[int, str, int, int]],
    values: dict[str, list[list[Any]]] | None = None,
    formulas: dict[str, list[list[Any]]] | None = None,
    structure: dict[str, Any] | None = None,
    title: str = "Test Book",
) -> MagicMock:
    """
    MagicMock data source.

    get_values returns the grid registered for the range's sheet title,
    picking the formula grid for FORMULA render requests.
    """
    source = MagicMock()
    meta = metadata_response(sheets, title)
    source.fetch_metadata.return_value = meta
    source.fetch_structure.return_value = structure if structure is not None else {
        "spreadsheetId": "sheet-123",
        "properties": {"title": title},
        "sheets": meta["sheets"],
    }

    def get_values(spreadsheet_id, range_notation, render="UNFORMATTED_VALUE"):
        table = (formulas if render == "FORMULA" else values) or {}
        return table.get(title_of(range_notation), [])

    source.get_values.side_effect = get_values
    return source


@pytest.fixture
def source_factory():
    """Factory fixture: source_factory(sheets, values=..., formulas=..., structure=...)."""
    return make_source


@pytest.fixture
def sales_grid():
    """Small sheet with a trend, a correlated pair and a category column."""
    header = ["Month", "Revenue", "Cost", "Region"]
    rows = [
        [f"2024-{m:02d}-01", 100 * m, 50 * m + 10, "East" if m % 2 else "West"]
        for m in range(1, 13)
    ]
    return [header] + rows
