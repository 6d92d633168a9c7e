"""
Type definitions for the MCP server.
Provides type safety for responses, sheet data, and analysis records.
"""
from typing import Any, Literal, TypedDict


class ErrorDetail(TypedDict):
    """Error detail structure."""
    code: str
    message: str


class SuccessResponse(TypedDict):
    """Successful API response."""
    ok: bool
    op: str
    data: dict[str, Any]


class ErrorResponse(TypedDict):
    """Error API response."""
    ok: bool
    op: str
    error: ErrorDetail

# Sheet data types
SheetRow = list[Any]
SheetValues = list[SheetRow]

DataType = Literal["number", "text", "date", "boolean", "mixed", "empty"]
Severity = Literal["low", "medium", "high"]
Complexity = Literal["simple", "moderate", "complex", "very_complex"]


class ColumnStats(TypedDict, total=False):
    """Per-column profile. Numeric and text stats are type-conditional."""
    name: str
    index: int
    dataType: DataType
    count: int
    nullCount: int
    nullRatio: float
    uniqueCount: int
    sampleValues: list[str]
    completeness: float
    sum: float
    mean: float
    median: float
    stdDev: float
    min: float
    max: float
    minLength: int
    maxLength: int
    avgLength: float


class QualityIssue(TypedDict, total=False):
    type: str
    severity: Severity
    location: str
    description: str
    autoFixable: bool
    fixSuggestion: str


class TrendResult(TypedDict):
    column: str
    direction: Literal["increasing", "decreasing", "stable"]
    confidence: int
    slope: float
    rSquared: float
    changeRate: str
    description: str


class AnomalyResult(TypedDict):
    column: str
    row: int
    location: str
    value: float
    expectedRange: str
    severity: Severity
    zScore: float


class CorrelationResult(TypedDict):
    columns: list[str]
    coefficient: float
    strength: Literal["weak", "moderate", "strong", "very_strong"]
    direction: Literal["positive", "negative"]


class FormulaInfo(TypedDict, total=False):
    cell: str
    formula: str
    complexity: Complexity
    volatileFunctions: list[str]
    dependencies: list[str]
    issues: list[str]
    optimization: str


class FormulaSummary(TypedDict):
    total: int
    unique: int
    volatile: int
    complex: int
    issues: list[FormulaInfo]


class SheetAnalysis(TypedDict, total=False):
    sheetId: int
    sheetName: str
    rowCount: int
    columnCount: int
    dataRowCount: int
    sampled: bool
    columns: list[ColumnStats]
    qualityScore: float
    completeness: float
    consistency: float
    issues: list[QualityIssue]
    trends: list[TrendResult]
    anomalies: list[AnomalyResult]
    correlations: list[CorrelationResult]
    formulas: FormulaSummary
