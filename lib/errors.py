"""
Standardized error handling for the MCP server.
Provides error codes, the core exception types, and response helpers.
"""
from enum import Enum

from lib.common import ng
from lib.types import ErrorResponse


class ErrorCode(str, Enum):
    """Standardized error codes used across the MCP server."""
    BAD_REQUEST = "BAD_REQUEST"
    NOT_FOUND = "NOT_FOUND"
    SHEET_ERROR = "SHEET_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class SheetsInsightError(Exception):
    """Base class for errors raised by the retrieval and analysis core."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(SheetsInsightError):
    """Spreadsheet or requested sheet does not exist."""

    code = ErrorCode.NOT_FOUND


class InvalidArgumentError(SheetsInsightError):
    """Request rejected before any remote fetch."""

    code = ErrorCode.BAD_REQUEST


def bad_request(op: str, message: str) -> ErrorResponse:
    """Create a BAD_REQUEST error response."""
    return ng(op, ErrorCode.BAD_REQUEST, message)


def sheet_error(op: str, message: str) -> ErrorResponse:
    """Create a SHEET_ERROR error response."""
    return ng(op, ErrorCode.SHEET_ERROR, message)


def error_response(op: str, exc: Exception) -> ErrorResponse:
    """
    Map an exception raised by the core into an error response.

    Core errors keep their own code; anything else came from the
    Sheets transport and is reported as SHEET_ERROR with its message.
    """
    if isinstance(exc, SheetsInsightError):
        return ng(op, exc.code, exc.message)
    return sheet_error(op, f"{type(exc).__name__}: {exc}")
