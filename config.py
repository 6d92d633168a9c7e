"""
Configuration constants for the MCP server.
Centralizes tier TTLs, retrieval limits, and analysis thresholds.
"""
from typing import Final

# Tier cache TTLs in seconds (tier number -> ttl).
# Cheaper, more stable tiers live longer.
TIER_TTL_SECONDS: Final[dict[int, float]] = {
    1: 5 * 60,  # metadata
    2: 3 * 60,  # structure
    3: 60,      # sample
    4: 30,      # full
}

# Sampling
DEFAULT_SAMPLE_SIZE: Final[int] = 100
MAX_SAMPLE_SIZE: Final[int] = 500
ANALYSIS_SAMPLE_SIZE: Final[int] = 500
ANALYSIS_MAX_SAMPLE_SIZE: Final[int] = 1000
DEFAULT_SAMPLING_THRESHOLD: Final[int] = 10_000
SAMPLING_METHOD: Final[str] = "top"

# Full tier hard caps (rows include the header row)
MAX_FULL_ROWS: Final[int] = 5000
MAX_FULL_COLUMNS: Final[int] = 100

# Workbooks above this sheet count skip row/column metadata in the structure tier
LARGE_WORKBOOK_SHEETS: Final[int] = 10

# Conditional format rule details kept per sheet
MAX_CONDITIONAL_FORMAT_DETAILS: Final[int] = 20

# Pagination (sheets per page)
DEFAULT_PAGE_SIZE: Final[int] = 5
MAX_PAGE_SIZE: Final[int] = 20

# Response size guards
MAX_RESPONSE_SIZE_BYTES: Final[int] = 1024 * 1024
ESTIMATE_SIZE_LIMIT_BYTES: Final[int] = 100 * 1024 * 1024
RESULT_URI_SCHEME: Final[str] = "analyze"

# Column profiler
MIXED_TYPE_RATIO: Final[float] = 0.8
SAMPLE_VALUES_LIMIT: Final[int] = 5

# Pattern detection
MIN_TREND_VALUES: Final[int] = 5
TREND_R2_THRESHOLD: Final[float] = 0.3
TREND_SLOPE_DEADBAND: Final[float] = 0.01
ANOMALY_Z_THRESHOLD: Final[float] = 2.0
ANOMALY_Z_MEDIUM: Final[float] = 2.5
ANOMALY_Z_HIGH: Final[float] = 3.0
MAX_ANOMALIES: Final[int] = 20
MIN_CORRELATION_VALUES: Final[int] = 5
CORRELATION_THRESHOLD: Final[float] = 0.3

# Correlation strength bands, checked in order (|r| strictly above bound)
CORRELATION_BANDS: Final[list[tuple[float, str]]] = [
    (0.8, "very_strong"),
    (0.6, "strong"),
    (0.4, "moderate"),
]

# Formula intelligence
VOLATILE_FUNCTIONS: Final[list[str]] = [
    "NOW",
    "TODAY",
    "RAND",
    "RANDBETWEEN",
    "INDIRECT",
    "OFFSET",
    "INFO",
]
LOOKUP_BY_COLUMN_FUNCTIONS: Final[list[str]] = ["VLOOKUP", "HLOOKUP"]
MAX_FORMULA_ISSUES: Final[int] = 20

# Complexity thresholds: (function calls, nesting depth, length), exceeded -> class
COMPLEXITY_THRESHOLDS: Final[list[tuple[str, int, int, int]]] = [
    ("very_complex", 10, 4, 200),
    ("complex", 5, 2, 100),
    ("moderate", 2, 1, 50),
]

# Summary
MAX_TOP_INSIGHTS: Final[int] = 6
