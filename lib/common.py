"""
Common utility functions.
"""
import math
from typing import Any

from lib.types import ErrorResponse, SuccessResponse


def is_blank(val: Any) -> bool:
    """True for cells that carry no value (None or empty string)."""
    return val is None or val == ""


def is_number(val: Any) -> bool:
    """
    True for finite int/float cell values.
    bool is excluded even though it subclasses int.
    """
    if isinstance(val, bool):
        return False
    if isinstance(val, int):
        return True
    return isinstance(val, float) and math.isfinite(val)


def round_half_up(x: float, digits: int = 0) -> float:
    """Round half away from zero (spreadsheet-style), unlike round()."""
    factor = 10 ** digits
    scaled = abs(x) * factor
    result = math.floor(scaled + 0.5) / factor
    return math.copysign(result, x) if x != 0 else 0.0


def ok(op: str, data: dict[str, Any] | None = None) -> SuccessResponse:
    """Create a successful response."""
    return {"ok": True, "op": op, "data": data or {}}


def ng(op: str, code: str, message: str, extra: dict[str, Any] | None = None) -> ErrorResponse:
    """Create an error response."""
    error: dict[str, Any] = {"code": code, "message": message}
    if extra:
        error.update(extra)
    return {"ok": False, "op": op, "error": error}
