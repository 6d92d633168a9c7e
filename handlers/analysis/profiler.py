"""
Column profiler.

Infers each column's data type from raw cell values and computes
descriptive statistics for it.
"""
import math
import re
from typing import Any

import config
from lib.common import is_blank, is_number
from lib.types import ColumnStats

# ISO-style dates (2024-01-31, 2024-01-31T09:00) and US-style M/D/YY(YY)
_DATE_PATTERNS = (
    re.compile(r"^\d{4}-\d{2}-\d{2}"),
    re.compile(r"^\d{1,2}/\d{1,2}/\d{2,4}$"),
)

# Tie-break order for the dominant class
_TYPE_PRIORITY = ("number", "boolean", "date", "text")


def classify_value(value: Any) -> str | None:
    """
    Classify one cell value.

    Returns:
        "number", "boolean", "date", "text", or None for blank cells
    """
    if is_blank(value):
        return None
    if isinstance(value, bool):
        return "boolean"
    if is_number(value):
        return "number"
    if isinstance(value, str):
        text = value.strip()
        if any(p.match(text) for p in _DATE_PATTERNS):
            return "date"
    return "text"


def infer_data_type(values: list[Any]) -> str:
    """Dominant class of the non-blank values, or mixed/empty."""
    counts = {t: 0 for t in _TYPE_PRIORITY}
    for value in values:
        kind = classify_value(value)
        if kind is not None:
            counts[kind] += 1

    typed = sum(counts.values())
    if typed == 0:
        return "empty"
    dominant = max(_TYPE_PRIORITY, key=lambda t: (counts[t], -_TYPE_PRIORITY.index(t)))
    if counts[dominant] / typed < config.MIXED_TYPE_RATIO:
        return "mixed"
    return dominant


def column_name(header: Any, index: int) -> str:
    """Header text, or "Column N" (1-based) when blank."""
    if is_blank(header) or not str(header).strip():
        return f"Column {index + 1}"
    return str(header)


def column_values(rows: list[list[Any]], index: int) -> list[Any]:
    """Cell values of one column; missing trailing cells read as None."""
    return [row[index] if index < len(row) else None for row in rows]


def _numeric_stats(values: list[float]) -> dict[str, float]:
    ordered = sorted(values)
    total = sum(values)
    mean = total / len(values)
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    return {
        "sum": total,
        "mean": mean,
        "median": ordered[len(ordered) // 2],
        "stdDev": math.sqrt(variance),
        "min": ordered[0],
        "max": ordered[-1],
    }


def profile_column(header: Any, index: int, values: list[Any]) -> ColumnStats:
    """Profile a single column."""
    present = [v for v in values if not is_blank(v)]
    count = len(values)
    data_type = infer_data_type(values)

    unique: list[str] = []
    seen: set[str] = set()
    for value in present:
        key = str(value)
        if key not in seen:
            seen.add(key)
            unique.append(key)

    stats: ColumnStats = {
        "name": column_name(header, index),
        "index": index,
        "dataType": data_type,
        "count": count,
        "nullCount": count - len(present),
        "nullRatio": (count - len(present)) / count if count else 0.0,
        "uniqueCount": len(unique),
        "sampleValues": unique[: config.SAMPLE_VALUES_LIMIT],
        "completeness": len(present) / count * 100 if count else 0.0,
    }

    if data_type == "number":
        numbers = [float(v) for v in present if is_number(v)]
        if numbers:
            stats.update(_numeric_stats(numbers))
    elif data_type == "text":
        lengths = [len(str(v)) for v in present]
        stats["minLength"] = min(lengths)
        stats["maxLength"] = max(lengths)
        stats["avgLength"] = sum(lengths) / len(lengths)

    return stats


def profile_columns(headers: list[Any], rows: list[list[Any]]) -> list[ColumnStats]:
    """
    Profile every column of a sheet.

    The column count is the wider of the header row and the widest
    data row, so unlabelled trailing columns still get a profile.

    Args:
        headers: Header row (blank entries are synthesized)
        rows: Data rows, header excluded

    Returns:
        One ColumnStats per column, in column order
    """
    width = max([len(headers)] + [len(r) for r in rows])
    padded = list(headers) + [None] * (width - len(headers))
    return [profile_column(h, i, column_values(rows, i)) for i, h in enumerate(padded)]
