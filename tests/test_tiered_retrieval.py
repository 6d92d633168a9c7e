"""
Tests for TieredRetrieval.
Drives the orchestrator through a mocked data source and a
fake-clock TierCache.
"""
import asyncio
import logging
from dataclasses import fields

import pytest

from core.snapshots import SheetFull, SheetMetadata, SheetSample, SheetStructure, Tier
from core.tiered_retrieval import (
    METADATA_FIELDS,
    STRUCTURE_FIELDS,
    STRUCTURE_FIELDS_LARGE,
    TieredRetrieval,
    summarize_structure,
)
from lib.errors import InvalidArgumentError, NotFoundError

SID = "sheet-123"


def _grid(rows: int, cols: int = 3) -> list[list]:
    header = [f"H{c}" for c in range(cols)]
    return [header] + [[r * cols + c for c in range(cols)] for r in range(rows - 1)]


@pytest.fixture
def small_source(source_factory):
    return source_factory(
        [(0, "Data", 201, 3), (42, "Other", 11, 2)],
        values={"Data": _grid(201), "Other": _grid(11, 2)},
    )


class TestCacheKeys:
    """Tests for cache key layout"""

    def test_workbook_tiers(self):
        assert TieredRetrieval.cache_key(Tier.METADATA, SID) == "tier:1:sheet-123"
        assert TieredRetrieval.cache_key(Tier.STRUCTURE, SID, 42) == "tier:2:sheet-123"

    def test_sheet_tiers(self):
        assert TieredRetrieval.cache_key(Tier.SAMPLE, SID) == "tier:3:sheet-123:first"
        assert TieredRetrieval.cache_key(Tier.FULL, SID, 0) == "tier:4:sheet-123:0"


class TestMetadataTier:
    """Tests for tier 1"""

    @pytest.mark.asyncio
    async def test_fetches_with_field_mask(self, small_source, cache):
        retrieval = TieredRetrieval(small_source, cache, clock=lambda: 123.0)
        meta = await retrieval.get_metadata(SID)

        small_source.fetch_metadata.assert_called_once_with(SID, METADATA_FIELDS)
        assert meta.tier == Tier.METADATA
        assert meta.title == "Test Book"
        assert meta.time_zone == "Asia/Tokyo"
        assert meta.retrieved_at == 123.0
        assert [s.sheet_id for s in meta.sheets] == [0, 42]
        assert meta.sheets[0].row_count == 201

    @pytest.mark.asyncio
    async def test_second_call_within_ttl_is_cached(self, small_source, cache):
        retrieval = TieredRetrieval(small_source, cache)
        first = await retrieval.get_metadata(SID)
        second = await retrieval.get_metadata(SID)

        assert first is second
        assert small_source.fetch_metadata.call_count == 1
        assert retrieval.fetch_count == 1

    @pytest.mark.asyncio
    async def test_refetches_after_ttl(self, small_source, cache, clock):
        retrieval = TieredRetrieval(small_source, cache)
        await retrieval.get_metadata(SID)
        clock.advance(301)
        await retrieval.get_metadata(SID)
        assert small_source.fetch_metadata.call_count == 2

    @pytest.mark.asyncio
    async def test_no_sheets_is_not_found(self, source_factory, cache):
        source = source_factory([])
        retrieval = TieredRetrieval(source, cache)
        with pytest.raises(NotFoundError):
            await retrieval.get_metadata(SID)

    @pytest.mark.asyncio
    async def test_upstream_error_propagates_unchanged(self, small_source, cache):
        boom = ConnectionError("socket closed")
        small_source.fetch_metadata.side_effect = boom
        retrieval = TieredRetrieval(small_source, cache)
        with pytest.raises(ConnectionError) as exc_info:
            await retrieval.get_metadata(SID)
        assert exc_info.value is boom
        assert cache.size == 0

    @pytest.mark.asyncio
    async def test_blank_spreadsheet_id_rejected(self, small_source, cache):
        retrieval = TieredRetrieval(small_source, cache)
        with pytest.raises(InvalidArgumentError):
            await retrieval.get_metadata("  ")
        small_source.fetch_metadata.assert_not_called()


class TestStructureTier:
    """Tests for tier 2"""

    @pytest.mark.asyncio
    async def test_builds_on_metadata(self, small_source, cache):
        retrieval = TieredRetrieval(small_source, cache)
        structure = await retrieval.get_structure(SID)

        assert isinstance(structure, SheetStructure)
        assert structure.tier == Tier.STRUCTURE
        small_source.fetch_structure.assert_called_once_with(SID, STRUCTURE_FIELDS)
        assert retrieval.fetch_count == 2

    @pytest.mark.asyncio
    async def test_reuses_cached_metadata(self, small_source, cache):
        retrieval = TieredRetrieval(small_source, cache)
        await retrieval.get_metadata(SID)
        await retrieval.get_structure(SID)
        assert small_source.fetch_metadata.call_count == 1
        assert retrieval.fetch_count == 2

    @pytest.mark.asyncio
    async def test_large_workbook_uses_lighter_mask(self, source_factory, cache):
        sheets = [(i, f"S{i}", 10, 2) for i in range(11)]
        source = source_factory(sheets)
        retrieval = TieredRetrieval(source, cache)
        await retrieval.get_structure(SID)
        source.fetch_structure.assert_called_once_with(SID, STRUCTURE_FIELDS_LARGE)

    def test_summarize_structure_counts(self):
        response = {
            "sheets": [
                {
                    "properties": {"sheetId": 0, "title": "A",
                                   "gridProperties": {"frozenRowCount": 1, "frozenColumnCount": 0}},
                    "merges": [{}, {}],
                    "conditionalFormats": [
                        {"ranges": [{"startRowIndex": 1, "endRowIndex": 5, "startColumnIndex": 0, "endColumnIndex": 1}],
                         "booleanRule": {"condition": {"type": "NUMBER_GREATER",
                                                       "values": [{"userEnteredValue": "10"}]}}},
                        {"ranges": [], "gradientRule": {}},
                    ],
                    "protectedRanges": [{}],
                    "basicFilter": {"range": {}},
                    "charts": [{}],
                },
                {
                    "properties": {"sheetId": 1, "title": "B",
                                   "gridProperties": {"frozenRowCount": 2, "frozenColumnCount": 1}},
                    "merges": [{}],
                    "filterViews": [{}, {}],
                },
            ],
            "namedRanges": [
                {"name": "Totals", "range": {"sheetId": 1, "startRowIndex": 0, "endRowIndex": 3,
                                              "startColumnIndex": 0, "endColumnIndex": 2}},
            ],
        }
        summary = summarize_structure(response)

        assert summary.merges == 3
        assert summary.conditional_formats == 2
        assert summary.protected_ranges == 1
        assert summary.charts == 1
        assert summary.filters == 1
        assert summary.has_basic_filter is True
        assert summary.filter_views == 2
        assert summary.frozen_rows == 2
        assert summary.frozen_columns == 1
        assert summary.pivots == 0
        assert summary.named_ranges[0].name == "Totals"
        assert summary.named_ranges[0].range == "'B'!A1:B3"
        assert summary.conditional_format_details[0].type == "NUMBER_GREATER"
        assert summary.conditional_format_details[0].description == "NUMBER_GREATER: 10"
        assert summary.conditional_format_details[0].range == "A2:A5"
        assert summary.conditional_format_details[1].type == "GRADIENT"
        assert summary.hidden_rows == 0

    def test_summarize_structure_hidden_dimensions(self):
        response = {
            "sheets": [{
                "properties": {"sheetId": 0, "title": "A"},
                "data": [{
                    "rowMetadata": [{"hiddenByUser": True}, {}, {"hiddenByUser": True}],
                    "columnMetadata": [{}, {"hiddenByUser": True}, {"hiddenByUser": False}],
                }],
            }],
        }
        summary = summarize_structure(response)

        assert summary.hidden_rows == 2
        assert summary.hidden_columns == 1


class TestSampleTier:
    """Tests for tier 3"""

    @pytest.mark.asyncio
    async def test_cold_sample_warms_lower_tiers(self, small_source, cache):
        retrieval = TieredRetrieval(small_source, cache)
        sample = await retrieval.get_sample(SID)

        assert isinstance(sample, SheetSample)
        assert retrieval.fetch_count == 3
        assert cache.get(TieredRetrieval.cache_key(Tier.METADATA, SID)) is not None
        assert cache.get(TieredRetrieval.cache_key(Tier.STRUCTURE, SID)) is not None

    @pytest.mark.asyncio
    async def test_headers_and_top_rows(self, small_source, cache):
        retrieval = TieredRetrieval(small_source, cache)
        snapshot = await retrieval.get_sample(SID, sample_size=5)

        assert snapshot.sample.headers == ["H0", "H1", "H2"]
        assert snapshot.sample.rows == _grid(201)[1:6]
        assert snapshot.sample.total_rows == 200
        assert snapshot.sample.sampling_method == "top"
        small_source.get_values.assert_called_once_with(SID, "'Data'!A1:C6", "UNFORMATTED_VALUE")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("requested,expected", [
        (None, 100),   # default
        (50, 50),
        (900, 201),    # sheet row count below the max
        (250, 201),    # sheet row count
    ])
    async def test_effective_sample_size(self, small_source, cache, requested, expected):
        retrieval = TieredRetrieval(small_source, cache)
        snapshot = await retrieval.get_sample(SID, sample_size=requested)
        assert snapshot.sample.sample_size == expected
        assert snapshot.sample.sample_size == min(requested or 100, 500, 201)

    @pytest.mark.asyncio
    async def test_sample_size_capped_at_max(self, source_factory, cache):
        source = source_factory([(0, "Big", 20000, 3)], values={"Big": _grid(1200)})
        snapshot = await TieredRetrieval(source, cache).get_sample(SID, sample_size=900)

        assert snapshot.sample.sample_size == 500
        assert len(snapshot.sample.rows) == 500
        assert snapshot.sample.requested_sample_size == 900

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad", [0, -5])
    async def test_non_positive_sample_size_rejected(self, small_source, cache, bad):
        retrieval = TieredRetrieval(small_source, cache)
        with pytest.raises(InvalidArgumentError):
            await retrieval.get_sample(SID, sample_size=bad)
        small_source.fetch_metadata.assert_not_called()
        small_source.get_values.assert_not_called()

    @pytest.mark.asyncio
    async def test_same_size_is_cached(self, small_source, cache):
        retrieval = TieredRetrieval(small_source, cache)
        await retrieval.get_sample(SID, sample_size=20)
        await retrieval.get_sample(SID, sample_size=20)
        assert small_source.get_values.call_count == 1

    @pytest.mark.asyncio
    async def test_different_size_refetches_only_sample(self, small_source, cache):
        retrieval = TieredRetrieval(small_source, cache)
        await retrieval.get_sample(SID, sample_size=20)
        snapshot = await retrieval.get_sample(SID, sample_size=30)

        assert snapshot.sample.sample_size == 30
        assert small_source.get_values.call_count == 2
        assert small_source.fetch_metadata.call_count == 1
        assert small_source.fetch_structure.call_count == 1

    @pytest.mark.asyncio
    async def test_shared_cache_respects_each_max_sample_size(self, source_factory, cache):
        source = source_factory([(0, "Big", 20000, 3)], values={"Big": _grid(1200)})
        wide = TieredRetrieval(source, cache, max_sample_size=1000)
        narrow = TieredRetrieval(source, cache)

        large = await wide.get_sample(SID, 0, 800)
        assert large.sample.sample_size == 800

        small = await narrow.get_sample(SID, 0, 800)
        assert small.sample.sample_size == 500
        assert len(small.sample.rows) == 500

        again = await wide.get_sample(SID, 0, 800)
        assert again.sample.sample_size == 800
        assert len(again.sample.rows) == 800

    @pytest.mark.asyncio
    async def test_requests_with_same_effective_size_share_entry(self, small_source, cache):
        retrieval = TieredRetrieval(small_source, cache)
        await retrieval.get_sample(SID, sample_size=600)
        snapshot = await retrieval.get_sample(SID, sample_size=900)

        assert snapshot.sample.sample_size == 201
        assert small_source.get_values.call_count == 1

    @pytest.mark.asyncio
    async def test_sheet_id_zero_is_a_real_sheet(self, source_factory, cache):
        source = source_factory(
            [(7, "First", 11, 2), (0, "Zero", 11, 2)],
            values={"First": _grid(11, 2), "Zero": [["Z0", "Z1"], [1, 2]]},
        )
        retrieval = TieredRetrieval(source, cache)
        snapshot = await retrieval.get_sample(SID, sheet_id=0)
        assert snapshot.sample.sheet_id == 0
        assert snapshot.sample.headers == ["Z0", "Z1"]

    @pytest.mark.asyncio
    async def test_unknown_sheet_is_not_found(self, small_source, cache):
        retrieval = TieredRetrieval(small_source, cache)
        with pytest.raises(NotFoundError):
            await retrieval.get_sample(SID, sheet_id=999)
        small_source.get_values.assert_not_called()


class TestConcurrentMisses:
    """Concurrent identical misses: no single-flight, whole-value writes"""

    @pytest.mark.asyncio
    async def test_concurrent_sample_misses_both_fetch(self, small_source, cache):
        retrieval = TieredRetrieval(small_source, cache)
        await retrieval.get_structure(SID)
        before = retrieval.fetch_count

        first, second = await asyncio.gather(
            retrieval.get_sample(SID, sample_size=10),
            retrieval.get_sample(SID, sample_size=10),
        )

        assert retrieval.fetch_count - before == 2
        assert small_source.get_values.call_count == 2
        cached = cache.get(TieredRetrieval.cache_key(Tier.SAMPLE, SID))
        assert cached is first or cached is second
        assert isinstance(cached, SheetSample)
        assert cached.sample.sample_size == 10
        assert cached.sample.rows == _grid(201)[1:11]

    @pytest.mark.asyncio
    async def test_concurrent_full_misses_both_fetch(self, small_source, cache):
        retrieval = TieredRetrieval(small_source, cache)
        await retrieval.get_sample(SID)
        before = retrieval.fetch_count

        first, second = await asyncio.gather(
            retrieval.get_full(SID),
            retrieval.get_full(SID),
        )

        assert retrieval.fetch_count - before == 2
        cached = cache.get(TieredRetrieval.cache_key(Tier.FULL, SID))
        assert cached is first or cached is second
        assert isinstance(cached, SheetFull)
        assert cached.full.values == _grid(201)
        assert cached.sample.sample_size == 100


class TestFullTier:
    """Tests for tier 4"""

    @pytest.mark.asyncio
    async def test_full_builds_on_sample(self, small_source, cache):
        retrieval = TieredRetrieval(small_source, cache)
        snapshot = await retrieval.get_full(SID, sheet_id=42)

        assert isinstance(snapshot, SheetFull)
        assert snapshot.full.values == _grid(11, 2)
        assert snapshot.full.row_count == 11
        assert snapshot.full.truncated is False
        assert snapshot.sample.sheet_id == 42
        assert retrieval.fetch_count == 4

    @pytest.mark.asyncio
    async def test_full_after_sample_costs_one_fetch(self, small_source, cache):
        retrieval = TieredRetrieval(small_source, cache)
        await retrieval.get_sample(SID)
        before = retrieval.fetch_count
        await retrieval.get_full(SID)
        assert retrieval.fetch_count == before + 1

    @pytest.mark.asyncio
    async def test_logs_cost_warning(self, small_source, cache, caplog):
        retrieval = TieredRetrieval(small_source, cache)
        with caplog.at_level(logging.WARNING, logger="core.tiered_retrieval"):
            await retrieval.get_full(SID)
        assert any("most expensive tier" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_large_sheet_is_truncated(self, source_factory, cache, caplog):
        big = [["id", "value", "label"]] + [[i, i * 2, "x"] for i in range(100_000)]
        source = source_factory([(0, "Big", 100_001, 3)], values={"Big": big})
        retrieval = TieredRetrieval(source, cache)

        with caplog.at_level(logging.WARNING, logger="core.tiered_retrieval"):
            snapshot = await retrieval.get_full(SID)

        assert len(snapshot.full.values) == 5000
        assert snapshot.full.row_count == 5000
        assert snapshot.full.truncated is True
        assert "5000 rows" in snapshot.full.truncation_reason
        assert source.get_values.call_args_list[-1].args[1] == "'Big'!A1:C5000"
        assert any("Truncated full tier" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_wide_sheet_is_truncated(self, source_factory, cache):
        wide = [[f"c{i}" for i in range(150)], list(range(150))]
        source = source_factory([(0, "Wide", 2, 150)], values={"Wide": wide})
        retrieval = TieredRetrieval(source, cache)
        snapshot = await retrieval.get_full(SID)

        assert snapshot.full.column_count == 100
        assert all(len(row) == 100 for row in snapshot.full.values)
        assert snapshot.full.truncated is True


class TestContainment:
    """Each tier carries every field of the tier below"""

    def test_field_sets_are_strict_supersets(self):
        chain = [SheetMetadata, SheetStructure, SheetSample, SheetFull]
        for lower, upper in zip(chain, chain[1:]):
            assert {f.name for f in fields(lower)} < {f.name for f in fields(upper)}

    @pytest.mark.asyncio
    async def test_values_carried_through(self, small_source, cache):
        retrieval = TieredRetrieval(small_source, cache)
        full = await retrieval.get_full(SID)
        meta = await retrieval.get_metadata(SID)
        structure = await retrieval.get_structure(SID)
        sample = await retrieval.get_sample(SID)

        for lower, upper in [(meta, structure), (structure, sample), (sample, full)]:
            for f in fields(lower):
                if f.name != "tier":
                    assert getattr(upper, f.name) == getattr(lower, f.name)
        assert [full.tier, sample.tier, structure.tier, meta.tier] == [4, 3, 2, 1]

    @pytest.mark.asyncio
    async def test_to_dict_exposes_tier_number(self, small_source, cache):
        retrieval = TieredRetrieval(small_source, cache)
        data = (await retrieval.get_sample(SID)).to_dict()
        assert data["tier"] == 3
        assert data["sample"]["headers"] == ["H0", "H1", "H2"]
        assert data["structure"]["merges"] == 0
