"""
Data quality checks over a profiled sheet.
"""
import json
from collections import Counter
from typing import Any

from lib.common import is_blank
from lib.types import ColumnStats, QualityIssue

HIGH_NULL_RATE = 0.5
VERY_HIGH_NULL_RATE = 0.8
CATEGORICAL_MAX_UNIQUE = 20
CATEGORICAL_MIN_ROWS = 100
MANY_DUPLICATE_ROWS = 10


def _issue(type_: str, severity: str, location: str, description: str,
           auto_fixable: bool, fix: str) -> QualityIssue:
    return {
        "type": type_,
        "severity": severity,
        "location": location,
        "description": description,
        "autoFixable": auto_fixable,
        "fixSuggestion": fix,
    }


def header_issues(headers: list[Any]) -> list[QualityIssue]:
    issues: list[QualityIssue] = []
    names = ["" if is_blank(h) else str(h).strip() for h in headers]

    for index, name in enumerate(names):
        if not name:
            issues.append(_issue(
                "EMPTY_HEADER", "high", f"Column {index + 1}",
                f"Column {index + 1} has no header",
                True, f'Add header "Column{index + 1}"',
            ))

    for name, count in Counter(n for n in names if n).items():
        if count > 1:
            issues.append(_issue(
                "DUPLICATE_HEADER", "medium", f"Header: {name}",
                f'Header "{name}" appears {count} times',
                True, "Rename duplicate headers to unique names",
            ))
    return issues


def column_issues(columns: list[ColumnStats]) -> list[QualityIssue]:
    issues: list[QualityIssue] = []
    for col in columns:
        null_rate = col["nullCount"] / col["count"] if col["count"] else 0.0
        if null_rate > HIGH_NULL_RATE:
            issues.append(_issue(
                "HIGH_NULL_RATE",
                "high" if null_rate > VERY_HIGH_NULL_RATE else "medium",
                col["name"],
                f"{null_rate * 100:.1f}% of values are empty",
                False, "Consider removing column or filling missing values",
            ))

        if col["dataType"] == "mixed":
            issues.append(_issue(
                "MIXED_DATA_TYPES", "medium", col["name"],
                "Column contains mixed data types",
                False, "Standardize column to single data type",
            ))

        if (col["dataType"] == "text"
                and col["uniqueCount"] < CATEGORICAL_MAX_UNIQUE
                and col["count"] > CATEGORICAL_MIN_ROWS):
            issues.append(_issue(
                "POTENTIAL_CATEGORICAL", "low", col["name"],
                f"Only {col['uniqueCount']} unique values - consider using data validation",
                True, "Add dropdown data validation for consistency",
            ))
    return issues


def duplicate_row_issues(rows: list[list[Any]]) -> list[QualityIssue]:
    keys = [json.dumps(row, default=str) for row in rows]
    duplicates = len(keys) - len(set(keys))
    if duplicates <= 0:
        return []
    return [_issue(
        "DUPLICATE_ROWS",
        "high" if duplicates > MANY_DUPLICATE_ROWS else "medium",
        "Multiple rows",
        f"{duplicates} duplicate rows found",
        True, "Remove duplicate rows",
    )]


def assess_quality(headers: list[Any], rows: list[list[Any]], columns: list[ColumnStats]) -> dict[str, Any]:
    """
    Run all quality checks and score the sheet.

    Returns:
        {"qualityScore", "completeness", "consistency", "issues"};
        scores are percentages in [0, 100]
    """
    issues = header_issues(headers) + column_issues(columns) + duplicate_row_issues(rows)

    completeness = sum(c["completeness"] for c in columns) / len(columns) if columns else 0.0
    high = sum(1 for i in issues if i["severity"] == "high")
    medium = sum(1 for i in issues if i["severity"] == "medium")
    consistency = max(0, 100 - (high * 15 + medium * 5))
    quality_score = max(0.0, min(100.0, completeness * 0.5 + consistency * 0.5))

    return {
        "qualityScore": quality_score,
        "completeness": completeness,
        "consistency": consistency,
        "issues": issues,
    }
