"""
Workbook-level insights: aggregate totals, chart suggestions,
performance recommendations, and the human-readable summary.
"""
from typing import Any

import config
from core.snapshots import SheetMetadata
from lib.sheet_utils import a1_range
from lib.types import SheetAnalysis

LARGE_WORKBOOK_CELLS = 5_000_000
MANY_SHEETS = 20
MANY_VOLATILE_FORMULAS = 10
MANY_COMPLEX_FORMULAS = 50
LOW_PERFORMANCE_SCORE = 70


def calculate_aggregates(sheets: list[SheetAnalysis]) -> dict[str, Any]:
    """Totals and averages across analyzed sheets."""
    count = len(sheets)
    return {
        "totalDataRows": sum(s["dataRowCount"] for s in sheets),
        "totalFormulas": sum(s.get("formulas", {}).get("total", 0) for s in sheets),
        "overallQualityScore": sum(s["qualityScore"] for s in sheets) / count if count else 0.0,
        "overallCompleteness": sum(s["completeness"] for s in sheets) / count if count else 0.0,
        "totalIssues": sum(len(s["issues"]) for s in sheets),
        "totalAnomalies": sum(len(s["anomalies"]) for s in sheets),
        "totalTrends": sum(len(s["trends"]) for s in sheets),
        "totalCorrelations": sum(len(s["correlations"]) for s in sheets),
    }


# === Visualizations ===

def _chart(chart_type: str, score: int, reasoning: str, config_: dict[str, str],
           analysis: SheetAnalysis) -> dict[str, Any]:
    data_range = a1_range(
        analysis["sheetName"], analysis["columnCount"], analysis["dataRowCount"] + 1
    )
    return {
        "chartType": chart_type,
        "suitabilityScore": score,
        "reasoning": reasoning,
        "suggestedConfig": config_,
        "dataRange": data_range,
    }


def recommend_visualizations(analysis: SheetAnalysis) -> list[dict[str, Any]]:
    """Chart suggestions for one sheet, most suitable first."""
    numeric = [c for c in analysis["columns"] if c["dataType"] == "number"]
    text = [c for c in analysis["columns"] if c["dataType"] == "text"]
    charts: list[dict[str, Any]] = []

    if analysis["trends"] and numeric:
        col = numeric[0]
        charts.append(_chart(
            "LINE", 90,
            f"Trends detected in {len(analysis['trends'])} columns - line chart shows progression",
            {"title": f"{col['name']} Trend", "xAxis": "Row Index", "yAxis": col["name"]},
            analysis,
        ))

    if text and numeric:
        category = next((c for c in text if c["uniqueCount"] < 20), text[0])
        value = numeric[0]
        charts.append(_chart(
            "COLUMN", 85,
            f"Categorical data ({category['name']}) with numeric values ({value['name']}) "
            "- column chart compares categories",
            {"title": f"{value['name']} by {category['name']}",
             "xAxis": category["name"], "yAxis": value["name"]},
            analysis,
        ))

    if analysis["correlations"]:
        top = analysis["correlations"][0]
        a, b = top["columns"]
        charts.append(_chart(
            "SCATTER", 80,
            f"Strong correlation ({top['coefficient']}) between {a} and {b}",
            {"title": f"{a} vs {b}", "xAxis": a, "yAxis": b},
            analysis,
        ))

    pie = next((c for c in text if 1 < c["uniqueCount"] <= 10), None)
    if pie is not None:
        charts.append(_chart(
            "PIE", 75,
            f"{pie['name']} has {pie['uniqueCount']} categories - pie chart shows distribution",
            {"title": f"{pie['name']} Distribution"},
            analysis,
        ))

    charts.sort(key=lambda c: c["suitabilityScore"], reverse=True)
    return charts


# === Performance ===

def analyze_performance(metadata: SheetMetadata, sheets: list[SheetAnalysis]) -> dict[str, Any]:
    """Score out of 100 with one recommendation per triggered penalty."""
    recommendations: list[dict[str, str]] = []
    penalties = 0

    total_cells = sum(s.row_count * s.column_count for s in metadata.sheets)
    if total_cells > LARGE_WORKBOOK_CELLS:
        recommendations.append({
            "type": "LARGE_SPREADSHEET",
            "severity": "high",
            "description": f"Spreadsheet has {total_cells / 1_000_000:.1f}M cells",
            "impact": "Slow load times and calculation",
            "recommendation": "Consider splitting into multiple spreadsheets",
        })
        penalties += 20

    if len(metadata.sheets) > MANY_SHEETS:
        recommendations.append({
            "type": "TOO_MANY_SHEETS",
            "severity": "medium",
            "description": f"{len(metadata.sheets)} sheets in spreadsheet",
            "impact": "Navigation and loading complexity",
            "recommendation": "Consider consolidating or archiving unused sheets",
        })
        penalties += 10

    volatile = sum(s.get("formulas", {}).get("volatile", 0) for s in sheets)
    if volatile > MANY_VOLATILE_FORMULAS:
        recommendations.append({
            "type": "VOLATILE_FORMULAS",
            "severity": "high",
            "description": f"{volatile} volatile formulas (NOW, TODAY, RAND, etc.)",
            "impact": "Recalculates on every change",
            "recommendation": "Replace with static values or trigger-based updates",
        })
        penalties += 15

    complex_count = sum(s.get("formulas", {}).get("complex", 0) for s in sheets)
    if complex_count > MANY_COMPLEX_FORMULAS:
        recommendations.append({
            "type": "COMPLEX_FORMULAS",
            "severity": "medium",
            "description": f"{complex_count} complex/very complex formulas",
            "impact": "Slow calculation times",
            "recommendation": "Simplify formulas or use helper columns",
        })
        penalties += 10

    return {"score": max(0, 100 - penalties), "recommendations": recommendations}


# === Summary ===

def generate_summary(
    metadata: SheetMetadata,
    sheets: list[SheetAnalysis],
    aggregate: dict[str, Any],
    performance: dict[str, Any] | None = None,
) -> tuple[str, list[str]]:
    """
    One-paragraph summary and up to MAX_TOP_INSIGHTS insight lines.
    """
    insights: list[str] = []
    score = aggregate["overallQualityScore"]

    if score >= 80:
        insights.append(f"High data quality ({score:.0f}%) - data is clean and consistent")
    elif score >= 60:
        insights.append(f"Moderate data quality ({score:.0f}%) - {aggregate['totalIssues']} issues found")
    else:
        insights.append(f"Low data quality ({score:.0f}%) - {aggregate['totalIssues']} issues need attention")

    if aggregate["totalTrends"]:
        trending = [t["column"] for s in sheets for t in s["trends"]][:3]
        insights.append(f"{aggregate['totalTrends']} trend(s) detected in: {', '.join(trending)}")

    if aggregate["totalAnomalies"]:
        insights.append(f"{aggregate['totalAnomalies']} anomalies detected - review for data entry errors")

    strong = [
        c for s in sheets for c in s["correlations"]
        if c["strength"] in ("strong", "very_strong")
    ]
    if strong:
        insights.append(f"{len(strong)} strong correlation(s) found - {' <-> '.join(strong[0]['columns'])}")

    if performance and performance["score"] < LOW_PERFORMANCE_SCORE:
        insights.append(
            f"Performance score: {performance['score']}% - "
            f"{len(performance['recommendations'])} optimization(s) recommended"
        )

    flagged = sum(len(s.get("formulas", {}).get("issues", [])) for s in sheets)
    if aggregate["totalFormulas"] and flagged:
        insights.append(f"{aggregate['totalFormulas']} formulas, {flagged} need optimization")

    summary = (
        f'Analyzed "{metadata.title}" with {len(metadata.sheets)} sheet(s), '
        f"{aggregate['totalDataRows']:,} data rows. "
        f"Quality score: {score:.0f}%. "
        f"Found {aggregate['totalTrends']} trends, {aggregate['totalAnomalies']} anomalies, "
        f"{aggregate['totalCorrelations']} correlations, and {aggregate['totalIssues']} issues."
    )
    return summary, insights[: config.MAX_TOP_INSIGHTS]
