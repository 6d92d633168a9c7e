"""
Formula intelligence.

Static analysis of (cell, formula) pairs: volatile functions,
complexity class, cell dependencies, known slow patterns, and a
per-sheet summary of the formulas worth looking at.
"""
import re
from typing import Iterable

import config
from lib.sheet_utils import cell_ref
from lib.types import FormulaInfo, FormulaSummary, SheetValues

_VOLATILE_RES = {
    name: re.compile(rf"(?<![A-Z0-9_.]){name}\(", re.IGNORECASE)
    for name in config.VOLATILE_FUNCTIONS
}
_LOOKUP_RES = {
    name: re.compile(rf"(?<![A-Z0-9_.]){name}\(", re.IGNORECASE)
    for name in config.LOOKUP_BY_COLUMN_FUNCTIONS
}
_FUNCTION_CALL_RE = re.compile(r"[A-Z][A-Z0-9.]*\(", re.IGNORECASE)
_FULL_COLUMN_RE = re.compile(
    r"(?<![A-Z0-9$])\$?[A-Z]{1,3}:\$?[A-Z]{1,3}(?![A-Z0-9])", re.IGNORECASE
)
_LONG_NUMBER_RE = re.compile(r"(?<![A-Z$\d.])\d{4,}", re.IGNORECASE)
_CELL_REF = r"\$?[A-Z]+\$?[0-9]+"
_RANGE_RE = re.compile(rf"{_CELL_REF}:{_CELL_REF}(?![0-9(!])", re.IGNORECASE)
_CELL_RE = re.compile(rf"{_CELL_REF}(?![0-9(!])", re.IGNORECASE)

_COMPLEXITY_ORDER = {"very_complex": 0, "complex": 1, "moderate": 2, "simple": 3}

FULL_COLUMN_ISSUE = "Uses full column reference - may slow calculation"
HARDCODED_NUMBER_ISSUE = "Contains hardcoded numbers - consider using named ranges"


def detect_volatile_functions(formula: str) -> list[str]:
    """Volatile functions called in the formula, in VOLATILE_FUNCTIONS order."""
    return [name for name, pattern in _VOLATILE_RES.items() if pattern.search(formula)]


def detect_lookup_functions(formula: str) -> list[str]:
    return [name for name, pattern in _LOOKUP_RES.items() if pattern.search(formula)]


def count_function_calls(formula: str) -> int:
    return len(_FUNCTION_CALL_RE.findall(formula))


def nesting_depth(formula: str) -> int:
    """Maximum parenthesis depth, from a running counter over the text."""
    depth = max_depth = 0
    for char in formula:
        if char == "(":
            depth += 1
            max_depth = max(max_depth, depth)
        elif char == ")":
            depth -= 1
    return max_depth


def classify_complexity(formula: str) -> str:
    """
    simple / moderate / complex / very_complex.

    A class applies when any of function calls, nesting depth or
    length exceeds its threshold; the highest matching class wins.
    """
    calls = count_function_calls(formula)
    depth = nesting_depth(formula)
    length = len(formula)
    for name, max_calls, max_depth, max_length in config.COMPLEXITY_THRESHOLDS:
        if calls > max_calls or depth > max_depth or length > max_length:
            return name
    return "simple"


def has_full_column_reference(formula: str) -> bool:
    return _FULL_COLUMN_RE.search(formula) is not None


def extract_dependencies(formula: str) -> list[str]:
    """Cell references, then range references, deduplicated in order."""
    refs = _CELL_RE.findall(formula) + _RANGE_RE.findall(formula)
    return list(dict.fromkeys(refs))


def detect_issues(formula: str) -> list[str]:
    issues: list[str] = []
    if has_full_column_reference(formula):
        issues.append(FULL_COLUMN_ISSUE)
    for name in detect_lookup_functions(formula):
        issues.append(f"{name} is slower than INDEX/MATCH")
    if _LONG_NUMBER_RE.search(formula):
        issues.append(HARDCODED_NUMBER_ISSUE)
    return issues


def suggest_optimization(formula: str) -> str | None:
    if detect_lookup_functions(formula):
        return "Consider using INDEX/MATCH for better performance"
    if has_full_column_reference(formula):
        return "Use specific range instead of full column reference"
    return None


def analyze_formula(cell: str, formula: str) -> FormulaInfo:
    """Full analysis of one formula."""
    info: FormulaInfo = {
        "cell": cell,
        "formula": formula,
        "complexity": classify_complexity(formula),
        "volatileFunctions": detect_volatile_functions(formula),
        "dependencies": extract_dependencies(formula),
        "issues": detect_issues(formula),
    }
    optimization = suggest_optimization(formula)
    if optimization:
        info["optimization"] = optimization
    return info


def formula_pairs(values: SheetValues) -> list[tuple[str, str]]:
    """
    (A1 cell, formula) pairs from a FORMULA-rendered grid.
    Row 0 of the grid is sheet row 1.
    """
    pairs: list[tuple[str, str]] = []
    for r, row in enumerate(values):
        for c, value in enumerate(row):
            if isinstance(value, str) and value.startswith("="):
                pairs.append((cell_ref(r, c), value))
    return pairs


def summarize_formulas(pairs: Iterable[tuple[str, str]]) -> FormulaSummary:
    """
    Per-sheet formula summary.

    Flagged formulas (any issue or volatile function) are ordered
    most complex first, stable within a class, and capped at
    MAX_FORMULA_ISSUES.
    """
    total = volatile = complex_count = 0
    unique: set[str] = set()
    flagged: list[FormulaInfo] = []

    for cell, formula in pairs:
        total += 1
        unique.add(formula)
        info = analyze_formula(cell, formula)
        if info["volatileFunctions"]:
            volatile += 1
        if info["complexity"] in ("complex", "very_complex"):
            complex_count += 1
        if info["issues"] or info["volatileFunctions"]:
            flagged.append(info)

    flagged.sort(key=lambda f: _COMPLEXITY_ORDER[f["complexity"]])
    return {
        "total": total,
        "unique": len(unique),
        "volatile": volatile,
        "complex": complex_count,
        "issues": flagged[: config.MAX_FORMULA_ISSUES],
    }
