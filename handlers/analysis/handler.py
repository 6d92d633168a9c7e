"""
Comprehensive spreadsheet analysis.

Pipeline per request:

    metadata -> page of sheets -> (sample | full) per sheet
        -> profile -> quality -> trends / anomalies / correlations
        -> formulas (best effort)
    -> aggregates, charts, performance, summary -> result sink

Sheets are analyzed strictly in page order, one at a time. Any tier
failure aborts the whole request; only formula enrichment is allowed
to fail quietly.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

import config
from core.result_sink import ResultStoreProtocol, deliver, paginate, parse_cursor, resolve_page_size
from core.snapshots import SheetInfo, SheetMetadata
from core.tiered_retrieval import SheetsDataSource, TierCacheProtocol, TieredRetrieval
from handlers.analysis.formulas import formula_pairs, summarize_formulas
from handlers.analysis.insights import (
    analyze_performance,
    calculate_aggregates,
    generate_summary,
    recommend_visualizations,
)
from handlers.analysis.patterns import detect_anomalies, detect_correlations, detect_trends
from handlers.analysis.profiler import profile_columns
from handlers.analysis.quality import assess_quality
from lib.errors import InvalidArgumentError, NotFoundError
from lib.sheet_utils import a1_range
from lib.types import SheetAnalysis, SheetValues

logger = logging.getLogger(__name__)

FORMULA = "FORMULA"


@dataclass
class AnalysisRequest:
    """Caller-facing analysis request."""
    spreadsheet_id: str
    sheet_id: int | None = None
    sample_size: int | None = None
    sampling_threshold: int = config.DEFAULT_SAMPLING_THRESHOLD
    force_full_data: bool = False
    include_formulas: bool = True
    include_visualizations: bool = True
    include_performance: bool = True
    cursor: str | None = None
    page_size: int | None = None

    def validate(self, max_page_size: int = config.MAX_PAGE_SIZE) -> None:
        """
        Reject malformed requests before anything is fetched.

        Raises:
            InvalidArgumentError: on the first invalid field
        """
        if not self.spreadsheet_id or not str(self.spreadsheet_id).strip():
            raise InvalidArgumentError("spreadsheet_id is required")
        if self.sample_size is not None and self.sample_size <= 0:
            raise InvalidArgumentError(f"sample_size must be positive, got {self.sample_size}")
        if self.sampling_threshold <= 0:
            raise InvalidArgumentError(
                f"sampling_threshold must be positive, got {self.sampling_threshold}"
            )
        parse_cursor(self.cursor)
        resolve_page_size(self.page_size, maximum=max_page_size)


def _empty_analysis(sheet: SheetInfo) -> SheetAnalysis:
    return {
        "sheetId": sheet.sheet_id,
        "sheetName": sheet.title,
        "rowCount": sheet.row_count,
        "columnCount": sheet.column_count,
        "dataRowCount": 0,
        "sampled": False,
        "columns": [],
        "qualityScore": 0.0,
        "completeness": 0.0,
        "consistency": 0,
        "issues": [],
        "trends": [],
        "anomalies": [],
        "correlations": [],
    }


def analyze_sheet(sheet: SheetInfo, data: SheetValues, data_row_count: int,
                  sampled: bool = False) -> SheetAnalysis:
    """
    Profile and scan one sheet's grid (row 0 is the header row).

    Args:
        sheet: Sheet the grid came from
        data: Header row followed by data rows
        data_row_count: Data rows the sheet holds (may exceed the grid when sampled)
        sampled: Whether the grid is a sample
    """
    if not data:
        return _empty_analysis(sheet)

    headers = list(data[0])
    rows = data[1:]
    columns = profile_columns(headers, rows)
    quality = assess_quality(headers, rows, columns)

    analysis: SheetAnalysis = {
        "sheetId": sheet.sheet_id,
        "sheetName": sheet.title,
        "rowCount": sheet.row_count,
        "columnCount": sheet.column_count,
        "dataRowCount": data_row_count,
        "sampled": sampled,
        "columns": columns,
        **quality,
        "trends": detect_trends(rows, columns),
        "anomalies": detect_anomalies(rows, columns),
        "correlations": detect_correlations(rows, columns),
    }
    return analysis


class ComprehensiveAnalyzer:
    """
    Runs the full analysis for one request.

    Usage:
        analyzer = ComprehensiveAnalyzer(source, cache, store)
        result = await analyzer.analyze(AnalysisRequest("1AbC..."))
    """

    def __init__(
        self,
        source: SheetsDataSource,
        cache: TierCacheProtocol,
        result_store: ResultStoreProtocol,
        max_response_bytes: int = config.MAX_RESPONSE_SIZE_BYTES,
        estimate_limit: int = config.ESTIMATE_SIZE_LIMIT_BYTES,
        default_page_size: int = config.DEFAULT_PAGE_SIZE,
        max_page_size: int = config.MAX_PAGE_SIZE,
        max_rows: int = config.MAX_FULL_ROWS,
        max_columns: int = config.MAX_FULL_COLUMNS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.source = source
        self.cache = cache
        self.result_store = result_store
        self.max_response_bytes = max_response_bytes
        self.estimate_limit = estimate_limit
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size
        self.max_rows = max_rows
        self.max_columns = max_columns
        self._clock = clock
        self._formula_calls = 0

    def _retrieval(self, request: AnalysisRequest) -> TieredRetrieval:
        return TieredRetrieval(
            self.source,
            self.cache,
            default_sample_size=request.sample_size or config.ANALYSIS_SAMPLE_SIZE,
            max_sample_size=config.ANALYSIS_MAX_SAMPLE_SIZE,
            max_full_rows=self.max_rows,
            max_full_columns=self.max_columns,
        )

    def _select_sheets(self, metadata: SheetMetadata, sheet_id: int | None) -> list[SheetInfo]:
        if sheet_id is None:
            return list(metadata.sheets)
        selected = [s for s in metadata.sheets if s.sheet_id == sheet_id]
        if not selected:
            raise NotFoundError(
                f"sheet not found: {sheet_id} in spreadsheet {metadata.spreadsheet_id}"
            )
        return selected

    def _needs_sampling(self, sheet: SheetInfo, request: AnalysisRequest) -> bool:
        if sheet.row_count > self.max_rows:
            return True
        return sheet.row_count > request.sampling_threshold and not request.force_full_data

    def _cap(self, sheet: SheetInfo, data: SheetValues) -> SheetValues:
        if any(len(row) > self.max_columns for row in data):
            logger.warning(
                "Truncated columns of %r to %d to bound the response",
                sheet.title, self.max_columns,
            )
            data = [row[: self.max_columns] for row in data]
        if len(data) > self.max_rows:
            logger.warning(
                "Truncated rows of %r from %d to %d to bound the response",
                sheet.title, len(data), self.max_rows,
            )
            data = data[: self.max_rows]
        return data

    async def _load_sheet(self, retrieval: TieredRetrieval, spreadsheet_id: str,
                          sheet: SheetInfo, request: AnalysisRequest) -> tuple[list[list[Any]], bool]:
        """Header row plus data rows, and whether they are a sample."""
        if self._needs_sampling(sheet, request):
            sample_size = min(request.sample_size or config.ANALYSIS_SAMPLE_SIZE, self.max_rows)
            snapshot = await retrieval.get_sample(spreadsheet_id, sheet.sheet_id, sample_size)
            logger.info(
                "Using sampling for %r (%d rows, sample of %d)",
                sheet.title, sheet.row_count, snapshot.sample.sample_size,
            )
            sample = snapshot.sample
            data = [list(sample.headers)] + sample.rows if sample.headers or sample.rows else []
            return data, True

        snapshot = await retrieval.get_full(spreadsheet_id, sheet.sheet_id)
        return snapshot.full.values, False

    async def _formula_summary(self, spreadsheet_id: str, sheet: SheetInfo) -> dict[str, Any] | None:
        """Formula summary for one sheet; None when it has none or the fetch failed."""
        range_notation = a1_range(
            sheet.title,
            min(sheet.column_count, self.max_columns),
            min(sheet.row_count, self.max_rows),
        )
        try:
            self._formula_calls += 1
            values = await asyncio.to_thread(
                self.source.get_values, spreadsheet_id, range_notation, FORMULA
            )
            summary = summarize_formulas(formula_pairs(values or []))
        except Exception as e:
            logger.warning("Failed to analyze formulas for %r: %s", sheet.title, e)
            return None
        return summary if summary["total"] else None

    async def analyze(self, request: AnalysisRequest) -> dict[str, Any]:
        """
        Run the comprehensive analysis.

        Raises:
            InvalidArgumentError: malformed request (before any fetch)
            NotFoundError: spreadsheet or requested sheet absent
        """
        request.validate(self.max_page_size)
        started = self._clock()
        spreadsheet_id = str(request.spreadsheet_id).strip()
        retrieval = self._retrieval(request)
        self._formula_calls = 0
        logger.info("Starting comprehensive analysis of %s", spreadsheet_id)

        metadata = await retrieval.get_metadata(spreadsheet_id)
        candidates = self._select_sheets(metadata, request.sheet_id)
        page, has_more, next_cursor = paginate(
            candidates,
            request.cursor,
            request.page_size or self.default_page_size,
            self.max_page_size,
        )
        structure = await retrieval.get_structure(spreadsheet_id)

        analyses: list[SheetAnalysis] = []
        rows_analyzed = 0
        sampling_used = False
        for sheet in page:
            data, sampled = await self._load_sheet(retrieval, spreadsheet_id, sheet, request)
            data = self._cap(sheet, data)
            sampling_used = sampling_used or sampled
            rows_analyzed += len(data)

            data_rows = max(sheet.row_count - 1, 0) if sampled else max(len(data) - 1, 0)
            analysis = analyze_sheet(sheet, data, data_rows, sampled)
            if request.include_formulas:
                formulas = await self._formula_summary(spreadsheet_id, sheet)
                if formulas is not None:
                    analysis["formulas"] = formulas
            analyses.append(analysis)

        aggregate = calculate_aggregates(analyses)
        visualizations = None
        if request.include_visualizations and analyses:
            visualizations = recommend_visualizations(analyses[0])
        performance = analyze_performance(metadata, analyses) if request.include_performance else None
        summary, top_insights = generate_summary(metadata, analyses, aggregate, performance)

        duration = int((self._clock() - started) * 1000)
        api_calls = retrieval.fetch_count + self._formula_calls
        logger.info(
            "Comprehensive analysis of %s complete: %d sheets, %d rows, %d API calls, %dms",
            spreadsheet_id, len(analyses), rows_analyzed, api_calls, duration,
        )

        result: dict[str, Any] = {
            "success": True,
            "action": "comprehensive",
            "spreadsheet": {
                "id": spreadsheet_id,
                "title": metadata.title,
                "locale": metadata.locale,
                "timeZone": metadata.time_zone,
                "sheetCount": len(metadata.sheets),
                "totalRows": sum(s.row_count for s in metadata.sheets),
                "totalColumns": sum(s.column_count for s in metadata.sheets),
                "totalCells": sum(s.row_count * s.column_count for s in metadata.sheets),
                "namedRanges": [
                    {"name": nr.name, "range": nr.range}
                    for nr in structure.structure.named_ranges
                ],
            },
            "sheets": analyses,
            "aggregate": aggregate,
            "summary": summary,
            "topInsights": top_insights,
            "executionPath": "sample" if sampling_used else "full",
            "duration": duration,
            "apiCalls": api_calls,
            "dataRetrieved": {
                "tier": 3 if sampling_used else 4,
                "rowsAnalyzed": rows_analyzed,
                "samplingUsed": sampling_used,
            },
            "hasMore": has_more,
        }
        if visualizations is not None:
            result["visualizations"] = visualizations
        if performance is not None:
            result["performance"] = performance
        if next_cursor is not None:
            result["nextCursor"] = next_cursor

        return deliver(result, self.result_store, self.max_response_bytes, self.estimate_limit)
