"""
Sheets Insight MCP Server

Connects Claude to Google Sheets for read-only, tiered retrieval and
comprehensive analysis (profiling, quality, patterns, formulas).
"""
import json
import logging
import sys
from typing import Any

from mcp.server.fastmcp import FastMCP
from mcp.server.transport_security import TransportSecuritySettings

import config
from env_loader import (
    get_default_page_size,
    get_log_level,
    get_max_page_size,
    get_max_response_bytes,
    get_port,
)
from sheets_client import get_sheets_client
from core.snapshots import Tier
from core.tiered_retrieval import TieredRetrieval
from handlers.analysis import AnalysisRequest, ComprehensiveAnalyzer
from handlers.analysis.formulas import analyze_formula, summarize_formulas
from lib.common import ok
from lib.errors import NotFoundError, SheetsInsightError, bad_request, error_response
from lib.input_parser import coerce_bool, coerce_formula_pairs, coerce_int, coerce_str
from lib.result_store import get_result_store
from lib.tier_cache import get_tier_cache

logging.basicConfig(
    stream=sys.stderr,
    level=get_log_level(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

transport_security = TransportSecuritySettings(
    enable_dns_rebinding_protection=True,
    allowed_hosts=[
        "localhost:8080",
        "127.0.0.1:8080",
    ],
)

mcp = FastMCP("sheets-insight", transport_security=transport_security)


def log(*a):
    print(*a, file=sys.stderr, flush=True)


def _optional_int(value: Any, name: str, keys: tuple[str, ...] = ()) -> int | None:
    """None stays None; anything else must parse as an integer."""
    if value is None:
        return None
    result = coerce_int(value, keys)
    if result is None:
        raise ValueError(f"{name} must be an integer")
    return result


def _failure(op: str, exc: Exception) -> dict:
    if not isinstance(exc, SheetsInsightError):
        logger.exception("%s failed", op)
    return error_response(op, exc)


# ===== Analysis Tools =====

@mcp.tool()
async def sheets_analyze(
    spreadsheet_id: Any,
    sheet_id: Any = None,
    sample_size: Any = None,
    sampling_threshold: Any = None,
    force_full_data: Any = None,
    include_formulas: Any = None,
    include_visualizations: Any = None,
    include_performance: Any = None,
    cursor: str | None = None,
    page_size: Any = None,
) -> dict:
    """Run a comprehensive analysis of a spreadsheet.

    Args:
    - spreadsheet_id: Spreadsheet ID (required)
    - sheet_id: Analyze only this sheet (numeric sheetId)
    - sample_size: Rows sampled from large sheets (default 500)
    - sampling_threshold: Sheets above this many rows are sampled (default 10000)
    - force_full_data: Read full data even above the sampling threshold
    - include_formulas / include_visualizations / include_performance: default true
    - cursor: "sheet:<N>" from a previous response's nextCursor
    - page_size: Sheets per page (default 5, max 20)

    Returns (example):
    {
      "ok": true,
      "op": "sheets.analyze",
      "data": {
        "spreadsheet": {"id": "...", "title": "Budget", "sheetCount": 3, ...},
        "sheets": [{"sheetName": "Q1", "columns": [...], "trends": [...], ...}],
        "aggregate": {"overallQualityScore": 91.5, ...},
        "summary": "Analyzed \\"Budget\\" with 3 sheet(s), ...",
        "topInsights": ["High data quality (92%) - ..."],
        "hasMore": false
      }
    }
    Oversized results come back with "sheets": [] and a "resourceUri"
    (analyze://results/{id}) to read the full result from.
    """
    op = "sheets.analyze"
    sid = coerce_str(spreadsheet_id, ("spreadsheet_id", "id"))
    if not sid:
        return bad_request(op, "spreadsheet_id is required")

    try:
        threshold = _optional_int(sampling_threshold, "sampling_threshold")
        request = AnalysisRequest(
            spreadsheet_id=sid,
            sheet_id=_optional_int(sheet_id, "sheet_id", ("sheet_id", "id")),
            sample_size=_optional_int(sample_size, "sample_size"),
            sampling_threshold=threshold if threshold is not None else config.DEFAULT_SAMPLING_THRESHOLD,
            force_full_data=bool(coerce_bool(force_full_data)),
            include_formulas=coerce_bool(include_formulas) is not False,
            include_visualizations=coerce_bool(include_visualizations) is not False,
            include_performance=coerce_bool(include_performance) is not False,
            cursor=cursor or None,
            page_size=_optional_int(page_size, "page_size"),
        )
    except ValueError as e:
        return bad_request(op, str(e))

    analyzer = ComprehensiveAnalyzer(
        get_sheets_client(),
        get_tier_cache(),
        get_result_store(),
        max_response_bytes=get_max_response_bytes(),
        default_page_size=get_default_page_size(),
        max_page_size=get_max_page_size(),
    )
    try:
        return ok(op, await analyzer.analyze(request))
    except Exception as e:
        return _failure(op, e)


@mcp.tool()
async def sheets_tier_get(
    spreadsheet_id: Any,
    tier: Any = 1,
    sheet_id: Any = None,
    sample_size: Any = None,
) -> dict:
    """Fetch one retrieval tier of a spreadsheet (cached per tier).

    Args:
    - spreadsheet_id: Spreadsheet ID (required)
    - tier: 1 metadata, 2 structure, 3 sample, 4 full (default 1)
    - sheet_id: Sheet for tiers 3-4 (default: first sheet)
    - sample_size: Tier 3 only; rows after the header (default 100, max 500)

    Returns (example):
    - tier 1: { ok:true, data: { tier:1, title, sheets:[{sheet_id,title,row_count,column_count,index}] } }
    - tier 3: { ok:true, data: { tier:3, ..., sample:{headers, rows, sample_size, total_rows} } }
    """
    op = "sheets.tier_get"
    sid = coerce_str(spreadsheet_id, ("spreadsheet_id", "id"))
    if not sid:
        return bad_request(op, "spreadsheet_id is required")

    try:
        tier_number = _optional_int(tier, "tier", ("tier",))
        if tier_number not in {t.value for t in Tier}:
            return bad_request(op, "tier must be 1, 2, 3 or 4")
        sheet = _optional_int(sheet_id, "sheet_id", ("sheet_id", "id"))
        size = _optional_int(sample_size, "sample_size")
    except ValueError as e:
        return bad_request(op, str(e))

    retrieval = TieredRetrieval(get_sheets_client(), get_tier_cache())
    try:
        snapshot = await retrieval.get(Tier(tier_number), sid, sheet, size)
    except Exception as e:
        return _failure(op, e)
    return ok(op, snapshot.to_dict())


@mcp.tool()
async def sheets_formula_analyze(formulas: Any) -> dict:
    """Analyze formulas for complexity, volatile functions and slow patterns.

    Args:
    - formulas: list of {"cell": "B2", "formula": "=..."} (or [cell, formula] pairs)

    Returns (example):
    {
      "ok": true,
      "op": "sheets.formula_analyze",
      "data": {
        "formulas": [{"cell":"B2","complexity":"simple","issues":["Uses full column reference - ..."], ...}],
        "summary": {"total": 1, "unique": 1, "volatile": 0, "complex": 0, "issues": [...]}
      }
    }
    """
    op = "sheets.formula_analyze"
    pairs = coerce_formula_pairs(formulas)
    if not pairs:
        return bad_request(op, "formulas must be a non-empty list of {cell, formula}")
    return ok(op, {
        "formulas": [analyze_formula(cell, formula) for cell, formula in pairs],
        "summary": summarize_formulas(pairs),
    })


# ===== Resources =====

@mcp.resource("analyze://results/{result_id}", mime_type="application/json")
def analysis_result(result_id: str) -> str:
    """Full analysis result spilled by sheets_analyze."""
    result = get_result_store().get(result_id)
    if result is None:
        raise NotFoundError(f"analysis result not found or expired: {result_id}")
    return json.dumps(result, ensure_ascii=False, default=str)


# ===== Utility Tools =====

@mcp.tool()
async def tools_help() -> dict:
    """List the tools this server exposes and how to call them."""
    tools = [
        {
            "name": "sheets_analyze",
            "desc": "Comprehensive analysis (profile, quality, trends, anomalies, correlations, formulas)",
            "args": {
                "spreadsheet_id": "string",
                "sheet_id": "int",
                "sample_size": "int",
                "sampling_threshold": "int",
                "force_full_data": "bool",
                "include_formulas": "bool",
                "include_visualizations": "bool",
                "include_performance": "bool",
                "cursor": "string",
                "page_size": "int",
            },
        },
        {
            "name": "sheets_tier_get",
            "desc": "One retrieval tier (1 metadata, 2 structure, 3 sample, 4 full)",
            "args": {"spreadsheet_id": "string", "tier": "int", "sheet_id": "int", "sample_size": "int"},
        },
        {
            "name": "sheets_formula_analyze",
            "desc": "Formula complexity, dependencies and issues",
            "args": {"formulas": "list[{cell, formula}]"},
        },
        {"name": "tools_help", "desc": "This list", "args": {}},
    ]
    resources = [{"uri": "analyze://results/{id}", "desc": "Full result of an oversized analysis"}]
    return ok("tools.help", {"tools": tools, "resources": resources})


# ===== Server Entry Point =====

if __name__ == "__main__":
    import uvicorn
    from contextlib import asynccontextmanager
    from starlette.applications import Starlette
    from starlette.routing import Route
    from starlette.responses import JSONResponse

    async def healthz(request):
        return JSONResponse({"status": "ok"})

    async def root(request):
        return JSONResponse(
            {"error": "Use /mcp for the MCP endpoint or /healthz for health check"},
            status_code=406,
        )

    mcp_app = mcp.streamable_http_app()

    @asynccontextmanager
    async def lifespan(app):
        async with mcp.session_manager.run():
            yield

    starlette_app = Starlette(
        routes=[
            Route("/", root),
            Route("/healthz", healthz),
        ],
        lifespan=lifespan,
    )

    # MCP app handles /mcp internally
    async def combined_app(scope, receive, send):
        path = scope.get("path", "/")
        if path.startswith("/mcp"):
            await mcp_app(scope, receive, send)
        else:
            await starlette_app(scope, receive, send)

    port = get_port()
    log(f"Starting server on port {port}")
    uvicorn.run(combined_app, host="0.0.0.0", port=port, lifespan="on")
