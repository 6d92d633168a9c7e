"""
Tiered retrieval of spreadsheet data.

Four fidelity levels, each cached independently with its own TTL:

    1. metadata   - title and sheet dimensions
    2. structure  - merges, formats, protections, charts, named ranges
    3. sample     - headers plus the top N rows of one sheet
    4. full       - all values of one sheet, capped to rows x columns

Every tier is built on top of the one below it. A miss on tier N
ensures tier N-1 (which may itself be a hit), performs exactly one
remote call for the new fields, and caches the merged snapshot.

Remote calls run in a worker thread so the event loop only yields
while waiting on the network.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Protocol

import config
from core.snapshots import (
    ConditionalFormatSummary,
    FullData,
    NamedRange,
    SampleData,
    SheetFull,
    SheetInfo,
    SheetMetadata,
    SheetSample,
    SheetStructure,
    StructureSummary,
    TIER_TYPES,
    Tier,
)
from lib.errors import InvalidArgumentError, NotFoundError
from lib.sheet_utils import a1_range, format_grid_range
from lib.types import SheetValues

logger = logging.getLogger(__name__)

UNFORMATTED_VALUE = "UNFORMATTED_VALUE"

METADATA_FIELDS = (
    "spreadsheetId,properties(title,locale,timeZone),"
    "sheets(properties(sheetId,title,index,gridProperties(rowCount,columnCount)))"
)
_STRUCTURE_SHEET_FIELDS = (
    "properties,merges,conditionalFormats(ranges,booleanRule,gradientRule),"
    "protectedRanges,basicFilter,charts,filterViews,developerMetadata"
)
# Large workbooks: no per-row/column metadata.
STRUCTURE_FIELDS_LARGE = (
    f"spreadsheetId,properties.title,sheets({_STRUCTURE_SHEET_FIELDS}),"
    "namedRanges,developerMetadata"
)
STRUCTURE_FIELDS = (
    f"spreadsheetId,properties.title,sheets({_STRUCTURE_SHEET_FIELDS},"
    "data(rowMetadata(hiddenByUser),columnMetadata(hiddenByUser))),"
    "namedRanges,developerMetadata"
)


class SheetsDataSource(Protocol):
    """Read-only remote spreadsheet API."""

    def fetch_metadata(self, spreadsheet_id: str, fields: str) -> dict[str, Any]:
        ...

    def fetch_structure(self, spreadsheet_id: str, fields: str) -> dict[str, Any]:
        ...

    def get_values(self, spreadsheet_id: str, range_notation: str, render: str = ...) -> SheetValues:
        ...


class TierCacheProtocol(Protocol):
    """Protocol for the tier cache interface."""

    def get(self, key: str) -> Any | None:
        ...

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        ...


@dataclass(frozen=True)
class TierRequest:
    """Identity of a tier lookup."""
    spreadsheet_id: str
    sheet_id: int | None = None
    sample_size: int | None = None


def _summarize_conditional_format(rule: dict[str, Any]) -> ConditionalFormatSummary:
    ranges = ", ".join(format_grid_range(r) for r in rule.get("ranges", []))
    if "booleanRule" in rule:
        condition = rule["booleanRule"].get("condition", {})
        rule_type = condition.get("type", "CUSTOM_FORMULA")
        values = ", ".join(
            str(v.get("userEnteredValue") or v.get("relativeDate") or "")
            for v in condition.get("values", [])
        )
        description = f"{rule_type}: {values}" if values else rule_type
    elif "gradientRule" in rule:
        rule_type, description = "GRADIENT", "Color scale gradient"
    else:
        rule_type, description = "unknown", ""
    return ConditionalFormatSummary(range=ranges, type=rule_type, description=description)


def _count_hidden(dimension_metadata: list[dict[str, Any]]) -> int:
    return sum(1 for m in dimension_metadata if m.get("hiddenByUser"))


def summarize_structure(response: dict[str, Any]) -> StructureSummary:
    """
    Count structural elements in a spreadsheets.get response.

    Counts are summed across sheets; frozen rows/columns are the
    maximum over sheets.
    """
    sheets = response.get("sheets", [])
    titles = {
        s.get("properties", {}).get("sheetId", 0): s.get("properties", {}).get("title", "")
        for s in sheets
    }

    counts = {
        "merges": 0,
        "conditional_formats": 0,
        "protected_ranges": 0,
        "charts": 0,
        "filters": 0,
        "filter_views": 0,
        "developer_metadata": 0,
        "hidden_rows": 0,
        "hidden_columns": 0,
    }
    frozen_rows = frozen_columns = 0
    details: list[ConditionalFormatSummary] = []

    for sheet in sheets:
        grid = sheet.get("properties", {}).get("gridProperties", {})
        rules = sheet.get("conditionalFormats", [])
        counts["merges"] += len(sheet.get("merges", []))
        counts["conditional_formats"] += len(rules)
        counts["protected_ranges"] += len(sheet.get("protectedRanges", []))
        counts["charts"] += len(sheet.get("charts", []))
        counts["filter_views"] += len(sheet.get("filterViews", []))
        counts["developer_metadata"] += len(sheet.get("developerMetadata", []))
        if sheet.get("basicFilter"):
            counts["filters"] += 1
        for block in sheet.get("data", []):
            counts["hidden_rows"] += _count_hidden(block.get("rowMetadata", []))
            counts["hidden_columns"] += _count_hidden(block.get("columnMetadata", []))
        frozen_rows = max(frozen_rows, grid.get("frozenRowCount", 0))
        frozen_columns = max(frozen_columns, grid.get("frozenColumnCount", 0))
        details.extend(
            _summarize_conditional_format(rule)
            for rule in rules[: config.MAX_CONDITIONAL_FORMAT_DETAILS]
        )

    counts["developer_metadata"] += len(response.get("developerMetadata", []))
    named_ranges = [
        NamedRange(name=nr.get("name", "Unnamed"), range=format_grid_range(nr.get("range"), titles))
        for nr in response.get("namedRanges", [])
    ]

    # Pivot tables live in cell data, which this tier never requests.
    return StructureSummary(
        pivots=0,
        named_ranges=named_ranges,
        frozen_rows=frozen_rows,
        frozen_columns=frozen_columns,
        conditional_format_details=details,
        has_basic_filter=counts["filters"] > 0,
        **counts,
    )


class TieredRetrieval:
    """
    Progressive fetch-or-cache of spreadsheet tiers.

    The cache is injected so several requests (and tests) can share or
    fake it; entries are only ever replaced whole.
    """

    def __init__(
        self,
        source: SheetsDataSource,
        cache: TierCacheProtocol,
        default_sample_size: int = config.DEFAULT_SAMPLE_SIZE,
        max_sample_size: int = config.MAX_SAMPLE_SIZE,
        max_full_rows: int = config.MAX_FULL_ROWS,
        max_full_columns: int = config.MAX_FULL_COLUMNS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.source = source
        self.cache = cache
        self.default_sample_size = default_sample_size
        self.max_sample_size = max_sample_size
        self.max_full_rows = max_full_rows
        self.max_full_columns = max_full_columns
        self._clock = clock
        self.fetch_count = 0

        self._builders: dict[Tier, Callable[[TierRequest, Any], Awaitable[SheetMetadata]]] = {
            Tier.METADATA: self._build_metadata,
            Tier.STRUCTURE: self._build_structure,
            Tier.SAMPLE: self._build_sample,
            Tier.FULL: self._build_full,
        }

    # === Public API ===

    @staticmethod
    def cache_key(tier: Tier, spreadsheet_id: str, sheet_id: int | None = None) -> str:
        """tier:<n>:<id> for workbook tiers, tier:<n>:<id>:<sheet> for sheet tiers."""
        if tier <= Tier.STRUCTURE:
            return f"tier:{int(tier)}:{spreadsheet_id}"
        sheet_part = "first" if sheet_id is None else str(sheet_id)
        return f"tier:{int(tier)}:{spreadsheet_id}:{sheet_part}"

    async def get_metadata(self, spreadsheet_id: str) -> SheetMetadata:
        """Tier 1: title and sheet dimensions."""
        return await self.get(Tier.METADATA, spreadsheet_id)

    async def get_structure(self, spreadsheet_id: str) -> SheetStructure:
        """Tier 2: metadata plus structural elements."""
        return await self.get(Tier.STRUCTURE, spreadsheet_id)

    async def get_sample(
        self,
        spreadsheet_id: str,
        sheet_id: int | None = None,
        sample_size: int | None = None,
    ) -> SheetSample:
        """Tier 3: the first N data rows of one sheet (first sheet by default)."""
        return await self.get(Tier.SAMPLE, spreadsheet_id, sheet_id, sample_size)

    async def get_full(self, spreadsheet_id: str, sheet_id: int | None = None) -> SheetFull:
        """Tier 4: all values of one sheet, capped to the configured rows x columns."""
        return await self.get(Tier.FULL, spreadsheet_id, sheet_id)

    async def get(
        self,
        tier: Tier,
        spreadsheet_id: str,
        sheet_id: int | None = None,
        sample_size: int | None = None,
    ) -> Any:
        """Validate a request and ensure the tier is available."""
        if not spreadsheet_id or not str(spreadsheet_id).strip():
            raise InvalidArgumentError("spreadsheet_id is required")
        if sample_size is not None and sample_size <= 0:
            raise InvalidArgumentError(f"sample_size must be positive, got {sample_size}")
        request = TierRequest(str(spreadsheet_id).strip(), sheet_id, sample_size)
        return await self._ensure(Tier(tier), request)

    # === Warm-through ===

    async def _ensure(self, tier: Tier, request: TierRequest) -> Any:
        key = self.cache_key(tier, request.spreadsheet_id, request.sheet_id)
        cached = self.cache.get(key)
        if cached is not None and self._usable(tier, cached, request):
            logger.debug("Tier %d cache hit: %s", tier, key)
            return cached

        lower = None
        if tier > Tier.METADATA:
            lower_request = replace(request, sample_size=None) if tier == Tier.FULL else request
            lower = await self._ensure(Tier(tier - 1), lower_request)

        value = await self._builders[tier](request, lower)
        self.cache.set(key, value, config.TIER_TTL_SECONDS[int(tier)])
        return value

    def _usable(self, tier: Tier, cached: Any, request: TierRequest) -> bool:
        if not isinstance(cached, TIER_TYPES[tier]):
            return False
        if tier == Tier.SAMPLE:
            target = cached.find_sheet(request.sheet_id)
            if target is None:
                return False
            return cached.sample.sample_size == self._effective_size(request, target)
        return True

    def _requested_size(self, request: TierRequest) -> int:
        if request.sample_size is None:
            return self.default_sample_size
        return request.sample_size

    def _effective_size(self, request: TierRequest, target: SheetInfo) -> int:
        return min(self._requested_size(request), self.max_sample_size, target.row_count)

    async def _fetch(self, fn: Callable[..., Any], *args: Any) -> Any:
        self.fetch_count += 1
        return await asyncio.to_thread(fn, *args)

    @staticmethod
    def _target_sheet(snapshot: SheetMetadata, request: TierRequest) -> SheetInfo:
        sheet = snapshot.find_sheet(request.sheet_id)
        if sheet is None:
            raise NotFoundError(
                f"sheet not found: {request.sheet_id} in spreadsheet {request.spreadsheet_id}"
            )
        return sheet

    # === Tier builders ===

    async def _build_metadata(self, request: TierRequest, _lower: None) -> SheetMetadata:
        sid = request.spreadsheet_id
        response = await self._fetch(self.source.fetch_metadata, sid, METADATA_FIELDS)
        raw_sheets = response.get("sheets") or []
        if not raw_sheets:
            raise NotFoundError(f"no sheets found in spreadsheet: {sid}")

        sheets = []
        for raw in raw_sheets:
            props = raw.get("properties", {})
            grid = props.get("gridProperties", {})
            sheets.append(SheetInfo(
                sheet_id=props.get("sheetId", 0),
                title=props.get("title", "Sheet1"),
                row_count=grid.get("rowCount", 1000),
                column_count=grid.get("columnCount", 26),
                index=props.get("index", 0),
            ))
        sheets.sort(key=lambda s: s.index)

        properties = response.get("properties", {})
        metadata = SheetMetadata(
            spreadsheet_id=sid,
            title=properties.get("title", "Untitled"),
            locale=properties.get("locale"),
            time_zone=properties.get("timeZone"),
            sheets=sheets,
            retrieved_at=self._clock(),
        )
        logger.info("Tier 1 metadata retrieved: %s (%d sheets)", sid, len(sheets))
        return metadata

    async def _build_structure(self, request: TierRequest, metadata: SheetMetadata) -> SheetStructure:
        sid = request.spreadsheet_id
        large = len(metadata.sheets) > config.LARGE_WORKBOOK_SHEETS
        fields = STRUCTURE_FIELDS_LARGE if large else STRUCTURE_FIELDS
        response = await self._fetch(self.source.fetch_structure, sid, fields)
        if not response.get("sheets"):
            raise NotFoundError(f"no sheets found in spreadsheet: {sid}")

        summary = summarize_structure(response)
        logger.info(
            "Tier 2 structure retrieved: %s (merges=%d, charts=%d, named_ranges=%d, large=%s)",
            sid, summary.merges, summary.charts, len(summary.named_ranges), large,
        )
        return SheetStructure(**metadata.lower_fields(), structure=summary)

    async def _build_sample(self, request: TierRequest, structure: SheetStructure) -> SheetSample:
        sid = request.spreadsheet_id
        target = self._target_sheet(structure, request)
        requested = self._requested_size(request)
        effective = self._effective_size(request, target)

        range_notation = a1_range(target.title, target.column_count, effective + 1)
        values = await self._fetch(self.source.get_values, sid, range_notation, UNFORMATTED_VALUE)
        values = values or []

        sample = SampleData(
            sheet_id=target.sheet_id,
            headers=list(values[0]) if values else [],
            rows=[list(row) for row in values[1:effective + 1]],
            sample_size=effective,
            requested_sample_size=requested,
            total_rows=max(target.row_count - 1, 0),
            sampling_method=config.SAMPLING_METHOD,
        )
        logger.info(
            "Tier 3 sample retrieved: %s sheet=%s rows=%d/%d",
            sid, target.sheet_id, len(sample.rows), sample.total_rows,
        )
        return SheetSample(**structure.lower_fields(), sample=sample)

    async def _build_full(self, request: TierRequest, sample: SheetSample) -> SheetFull:
        sid = request.spreadsheet_id
        target = self._target_sheet(sample, request)
        logger.warning(
            "Fetching full data for %s sheet %r (%d x %d); this is the most expensive tier",
            sid, target.title, target.row_count, target.column_count,
        )

        rows_cap = min(target.row_count, self.max_full_rows)
        cols_cap = min(target.column_count, self.max_full_columns)
        range_notation = a1_range(target.title, cols_cap, rows_cap)
        values = await self._fetch(self.source.get_values, sid, range_notation, UNFORMATTED_VALUE)
        values = values or []

        truncated = target.row_count > self.max_full_rows or target.column_count > self.max_full_columns
        if len(values) > self.max_full_rows or any(len(r) > self.max_full_columns for r in values):
            truncated = True
        values = [list(row[: self.max_full_columns]) for row in values[: self.max_full_rows]]

        reason = None
        if truncated:
            reason = (
                f"Data limited to {rows_cap} rows x {cols_cap} columns "
                f"(original: {target.row_count} x {target.column_count})"
            )
            logger.warning("Truncated full tier for %s sheet %r: %s", sid, target.title, reason)

        full = FullData(
            sheet_id=target.sheet_id,
            values=values,
            row_count=len(values),
            column_count=max((len(r) for r in values), default=0),
            truncated=truncated,
            truncation_reason=reason,
        )
        logger.info("Tier 4 full data retrieved: %s sheet=%s rows=%d", sid, target.sheet_id, full.row_count)
        return SheetFull(**sample.lower_fields(), full=full)
