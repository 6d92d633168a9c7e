"""
Spreadsheet analysis: column profiling, quality checks, pattern
detection, formula intelligence, and the comprehensive pipeline.
"""
from .handler import AnalysisRequest, ComprehensiveAnalyzer, analyze_sheet
from .formulas import analyze_formula, summarize_formulas
from .patterns import detect_trends, detect_anomalies, detect_correlations
from .profiler import profile_columns

__all__ = [
    "AnalysisRequest",
    "ComprehensiveAnalyzer",
    "analyze_sheet",
    "analyze_formula",
    "summarize_formulas",
    "detect_trends",
    "detect_anomalies",
    "detect_correlations",
    "profile_columns",
]
