"""
Pattern detection over profiled columns.

Three independent passes, each pure and order-insensitive:

    detect_trends        - least-squares fit against the row index
    detect_anomalies     - z-score outliers
    detect_correlations  - Pearson coefficient per numeric column pair

All passes read raw rows (header excluded) alongside the column
profiles; only columns profiled as "number" take part.
"""
import math
from itertools import combinations
from typing import Any, Sequence

import config
from lib.common import is_number, round_half_up
from lib.types import AnomalyResult, ColumnStats, CorrelationResult, TrendResult


def linear_regression(xs: Sequence[float], ys: Sequence[float]) -> tuple[float, float, float] | None:
    """
    Ordinary least squares fit y = intercept + slope * x.

    Returns:
        (slope, intercept, r_squared), or None when x has no variance.
        r_squared is 0.0 when y has no variance.
    """
    n = len(xs)
    if n < 2 or n != len(ys):
        return None
    x_mean = sum(xs) / n
    y_mean = sum(ys) / n
    sxx = sum((x - x_mean) ** 2 for x in xs)
    if sxx == 0:
        return None
    sxy = sum((x - x_mean) * (y - y_mean) for x, y in zip(xs, ys))
    slope = sxy / sxx
    intercept = y_mean - slope * x_mean

    ss_total = sum((y - y_mean) ** 2 for y in ys)
    if ss_total == 0:
        return slope, intercept, 0.0
    ss_residual = sum((y - (intercept + slope * x)) ** 2 for x, y in zip(xs, ys))
    return slope, intercept, max(0.0, 1 - ss_residual / ss_total)


def pearson(xs: Sequence[float], ys: Sequence[float]) -> float | None:
    """
    Pearson correlation coefficient of two equal-length series.

    Symmetric in its arguments. None when either series is constant.
    """
    n = len(xs)
    if n < 2 or n != len(ys):
        return None
    x_mean = sum(xs) / n
    y_mean = sum(ys) / n
    sxx = sum((x - x_mean) ** 2 for x in xs)
    syy = sum((y - y_mean) ** 2 for y in ys)
    if sxx == 0 or syy == 0:
        return None
    sxy = sum((x - x_mean) * (y - y_mean) for x, y in zip(xs, ys))
    return max(-1.0, min(1.0, sxy / math.sqrt(sxx * syy)))


def _cell(row: list[Any], index: int) -> Any:
    return row[index] if index < len(row) else None


def numeric_series(rows: list[list[Any]], index: int) -> tuple[list[int], list[float]]:
    """(row indices, values) of the numeric cells in one column."""
    xs: list[int] = []
    ys: list[float] = []
    for i, row in enumerate(rows):
        value = _cell(row, index)
        if is_number(value):
            xs.append(i)
            ys.append(float(value))
    return xs, ys


def _numeric_columns(columns: list[ColumnStats]) -> list[ColumnStats]:
    return [c for c in columns if c["dataType"] == "number"]


# === Trends ===

def _direction(slope: float) -> str:
    if slope > config.TREND_SLOPE_DEADBAND:
        return "increasing"
    if slope < -config.TREND_SLOPE_DEADBAND:
        return "decreasing"
    return "stable"


def detect_trends(rows: list[list[Any]], columns: list[ColumnStats]) -> list[TrendResult]:
    """
    Linear trends of numeric columns against the 0-based data row index.

    A trend is reported only when R^2 exceeds the threshold and the
    rounded confidence is above it as well.
    """
    threshold = config.TREND_R2_THRESHOLD
    trends: list[TrendResult] = []

    for col in _numeric_columns(columns):
        xs, ys = numeric_series(rows, col["index"])
        if len(ys) < config.MIN_TREND_VALUES:
            continue
        fit = linear_regression(xs, ys)
        if fit is None:
            continue
        slope, _intercept, r_squared = fit
        confidence = int(round_half_up(r_squared * 100))
        if r_squared <= threshold or confidence <= round(threshold * 100):
            continue

        direction = _direction(slope)
        trends.append({
            "column": col["name"],
            "direction": direction,
            "confidence": confidence,
            "slope": round(slope, 4),
            "rSquared": round(r_squared, 4),
            "changeRate": f"{slope * 100:.2f}% per row",
            "description": f"{col['name']} shows {direction} trend with {confidence}% confidence",
        })
    return trends


# === Anomalies ===

def _anomaly_severity(abs_z: float) -> str:
    if abs_z > config.ANOMALY_Z_HIGH:
        return "high"
    if abs_z > config.ANOMALY_Z_MEDIUM:
        return "medium"
    return "low"


def detect_anomalies(rows: list[list[Any]], columns: list[ColumnStats]) -> list[AnomalyResult]:
    """
    Values more than 2 standard deviations from their column mean.

    Returns at most MAX_ANOMALIES results, largest |z| first.
    Rows are reported as 1-based sheet rows (header is row 1).
    """
    found: list[tuple[float, AnomalyResult]] = []

    for col in _numeric_columns(columns):
        mean = col.get("mean")
        std_dev = col.get("stdDev")
        if mean is None or not std_dev:
            continue
        lower = mean - config.ANOMALY_Z_THRESHOLD * std_dev
        upper = mean + config.ANOMALY_Z_THRESHOLD * std_dev

        xs, ys = numeric_series(rows, col["index"])
        for row_index, value in zip(xs, ys):
            z = (value - mean) / std_dev
            if abs(z) <= config.ANOMALY_Z_THRESHOLD:
                continue
            sheet_row = row_index + 2
            found.append((abs(z), {
                "column": col["name"],
                "row": sheet_row,
                "location": f"{col['name']}:Row {sheet_row}",
                "value": value,
                "expectedRange": f"{lower:.2f} - {upper:.2f}",
                "severity": _anomaly_severity(abs(z)),
                "zScore": round_half_up(z, 2),
            }))

    found.sort(key=lambda item: item[0], reverse=True)
    return [anomaly for _, anomaly in found[: config.MAX_ANOMALIES]]


# === Correlations ===

def _strength(abs_r: float) -> str:
    for bound, label in config.CORRELATION_BANDS:
        if abs_r > bound:
            return label
    return "weak"


def paired_series(rows: list[list[Any]], a: int, b: int) -> tuple[list[float], list[float]]:
    """Values of two columns over the rows where both cells are numeric."""
    xs: list[float] = []
    ys: list[float] = []
    for row in rows:
        x, y = _cell(row, a), _cell(row, b)
        if is_number(x) and is_number(y):
            xs.append(float(x))
            ys.append(float(y))
    return xs, ys


def detect_correlations(rows: list[list[Any]], columns: list[ColumnStats]) -> list[CorrelationResult]:
    """Pearson correlations between numeric column pairs, strongest first."""
    results: list[CorrelationResult] = []

    for col_a, col_b in combinations(_numeric_columns(columns), 2):
        xs, ys = paired_series(rows, col_a["index"], col_b["index"])
        if len(xs) < config.MIN_CORRELATION_VALUES:
            continue
        r = pearson(xs, ys)
        if r is None or abs(r) <= config.CORRELATION_THRESHOLD:
            continue
        results.append({
            "columns": [col_a["name"], col_b["name"]],
            "coefficient": round_half_up(r, 2),
            "strength": _strength(abs(r)),
            "direction": "positive" if r > 0 else "negative",
        })

    results.sort(key=lambda c: abs(c["coefficient"]), reverse=True)
    return results
