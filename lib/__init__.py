"""
Utility libraries for the MCP server.
Pure helpers shared by the retrieval core and the analysis handlers.
"""
from .common import is_blank, is_number, round_half_up, ok, ng
from .errors import ErrorCode, SheetsInsightError, NotFoundError, InvalidArgumentError
from .sheet_utils import col_letter_to_index, index_to_col_letter, cell_ref, a1_range
from .types import (
    SuccessResponse,
    ErrorResponse,
    ErrorDetail,
    SheetRow,
    SheetValues,
)

__all__ = [
    # Response types
    "SuccessResponse",
    "ErrorResponse",
    "ErrorDetail",
    "SheetRow",
    "SheetValues",
    # Errors
    "ErrorCode",
    "SheetsInsightError",
    "NotFoundError",
    "InvalidArgumentError",
    # Functions
    "is_blank",
    "is_number",
    "round_half_up",
    "ok",
    "ng",
    "col_letter_to_index",
    "index_to_col_letter",
    "cell_ref",
    "a1_range",
]
