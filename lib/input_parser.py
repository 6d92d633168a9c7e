"""
Input parsing and validation utilities.

Functions for normalizing MCP tool inputs, which may arrive as bare
values, quoted strings, or dicts wrapping the value.
"""
from typing import Any


def strip_quotes(s: str) -> str:
    """
    Strip outer quotes from a string.

    Args:
        s: Input string

    Returns:
        String with leading/trailing quotes removed
    """
    s = s.strip()
    if len(s) >= 2 and ((s.startswith('"') and s.endswith('"')) or (s.startswith("'") and s.endswith("'"))):
        return s[1:-1]
    return s


def coerce_str(x: Any, keys: tuple[str, ...] = ()) -> str | None:
    """
    Extract a string from various input formats.

    Handles:
    - Direct string input
    - Dict with specified keys

    Args:
        x: Input value (string, dict, or other)
        keys: Tuple of keys to try in dict order

    Returns:
        Extracted string or None if not found
    """
    if isinstance(x, str):
        return strip_quotes(x)
    if isinstance(x, dict):
        for k in keys:
            v = x.get(k)
            if isinstance(v, str):
                return strip_quotes(v)
    return None


def coerce_int(x: Any, keys: tuple[str, ...] = ()) -> int | None:
    """
    Extract an integer from various input formats.

    Args:
        x: Input value
        keys: Tuple of keys to try in dict order

    Returns:
        Extracted integer or None if not found/invalid
    """
    if isinstance(x, bool):
        return None
    if isinstance(x, int):
        return x
    if isinstance(x, float) and x.is_integer():
        return int(x)
    if isinstance(x, str):
        try:
            return int(strip_quotes(x))
        except ValueError:
            return None
    if isinstance(x, dict):
        for k in keys:
            result = coerce_int(x.get(k), ())
            if result is not None:
                return result
    return None


def coerce_bool(x: Any, keys: tuple[str, ...] = ()) -> bool | None:
    """
    Extract a boolean from various input formats.

    Args:
        x: Input value
        keys: Tuple of keys to try in dict order

    Returns:
        Extracted boolean or None if not found/invalid
    """
    if isinstance(x, bool):
        return x
    if isinstance(x, str):
        lower = x.lower().strip()
        if lower in ("true", "1", "yes"):
            return True
        if lower in ("false", "0", "no"):
            return False
        return None
    if isinstance(x, dict):
        for k in keys:
            result = coerce_bool(x.get(k), ())
            if result is not None:
                return result
    return None


def coerce_formula_pairs(x: Any) -> list[tuple[str, str]]:
    """
    Normalize formula input to (cell, formula) pairs.

    Accepts:
    - [{"cell": "B2", "formula": "=SUM(A:A)"}, ...]
    - [["B2", "=SUM(A:A)"], ...]
    - {"B2": "=SUM(A:A)", ...}

    Entries without both parts are dropped.
    """
    if isinstance(x, dict):
        return [(str(k), v) for k, v in x.items() if isinstance(v, str) and v]
    if not isinstance(x, (list, tuple)):
        return []

    pairs: list[tuple[str, str]] = []
    for item in x:
        if isinstance(item, dict):
            cell = coerce_str(item, ("cell", "a1"))
            formula = item.get("formula")
        elif isinstance(item, (list, tuple)) and len(item) == 2:
            cell, formula = item
        else:
            continue
        if cell and isinstance(formula, str) and formula:
            pairs.append((str(cell), formula))
    return pairs
