"""
Sheet utility functions for A1 notation.
"""
import re
from typing import Any

_COLUMN_RE = re.compile(r"^[A-Za-z]+$")


def col_letter_to_index(letter: str) -> int:
    """
    Convert column letter(s) to 0-based index.
    A -> 0, B -> 1, ..., Z -> 25, AA -> 26, etc.
    """
    if not letter or not _COLUMN_RE.match(letter):
        raise ValueError(f"invalid column letter: {letter!r}")
    result = 0
    for char in letter.upper():
        result = result * 26 + (ord(char) - ord("A") + 1)
    return result - 1


def index_to_col_letter(index: int) -> str:
    """
    Convert 0-based index to column letter(s).
    0 -> A, 1 -> B, ..., 25 -> Z, 26 -> AA, etc.

    Bijective base-26: there is no zero digit, so AA follows Z.
    """
    if index < 0:
        raise ValueError(f"column index must be >= 0, got {index}")
    result = ""
    index += 1
    while index > 0:
        index, remainder = divmod(index - 1, 26)
        result = chr(ord("A") + remainder) + result
    return result


def cell_ref(row_index: int, col_index: int) -> str:
    """0-based (row, col) -> A1 cell reference, e.g. (0, 0) -> A1."""
    return f"{index_to_col_letter(col_index)}{row_index + 1}"


def quote_sheet_title(title: str) -> str:
    """Quote a sheet title for use in A1 notation ('My Sheet'!A1)."""
    return "'" + str(title).replace("'", "''") + "'"


def a1_range(title: str, column_count: int, row_count: int) -> str:
    """
    Build the top-left anchored range covering row_count rows
    and column_count columns of a sheet.
    """
    last_col = index_to_col_letter(max(column_count, 1) - 1)
    return f"{quote_sheet_title(title)}!A1:{last_col}{max(row_count, 1)}"


def format_grid_range(grid: dict[str, Any] | None, sheet_titles: dict[int, str] | None = None) -> str:
    """
    Format a Sheets API GridRange as A1 notation.
    Missing bounds default to the first row/column.
    """
    if not grid:
        return "Unknown"
    start_col = grid.get("startColumnIndex", 0)
    end_col = grid.get("endColumnIndex", start_col + 1)
    start_row = grid.get("startRowIndex", 0) + 1
    end_row = grid.get("endRowIndex", start_row)
    a1 = f"{index_to_col_letter(start_col)}{start_row}:{index_to_col_letter(end_col - 1)}{end_row}"
    if sheet_titles is not None:
        title = sheet_titles.get(grid.get("sheetId", 0))
        if title:
            return f"{quote_sheet_title(title)}!{a1}"
    return a1
