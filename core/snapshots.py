"""
Tiered snapshot types.

Each tier embeds the one below it by inheritance and carries an
explicit ``tier`` discriminator, so a SheetFull is always usable
wherever a SheetSample, SheetStructure or SheetMetadata is expected.
Instances are frozen; a refresh builds a new object.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from enum import IntEnum
from typing import Any


class Tier(IntEnum):
    """Fidelity levels, cheapest first."""
    METADATA = 1
    STRUCTURE = 2
    SAMPLE = 3
    FULL = 4


@dataclass(frozen=True)
class SheetInfo:
    """One sheet as listed in spreadsheet metadata."""
    sheet_id: int
    title: str
    row_count: int
    column_count: int
    index: int


@dataclass(frozen=True)
class NamedRange:
    name: str
    range: str


@dataclass(frozen=True)
class ConditionalFormatSummary:
    range: str
    type: str
    description: str


@dataclass(frozen=True, kw_only=True)
class StructureSummary:
    """Structural element counts across the workbook (no cell data)."""
    merges: int = 0
    conditional_formats: int = 0
    protected_ranges: int = 0
    charts: int = 0
    pivots: int = 0
    filters: int = 0
    named_ranges: list[NamedRange] = field(default_factory=list)
    frozen_rows: int = 0
    frozen_columns: int = 0
    conditional_format_details: list[ConditionalFormatSummary] = field(default_factory=list)
    filter_views: int = 0
    developer_metadata: int = 0
    has_basic_filter: bool = False
    hidden_rows: int = 0
    hidden_columns: int = 0


@dataclass(frozen=True, kw_only=True)
class SampleData:
    sheet_id: int
    headers: list[Any]
    rows: list[list[Any]]
    sample_size: int
    requested_sample_size: int
    total_rows: int
    sampling_method: str = "top"


@dataclass(frozen=True, kw_only=True)
class FullData:
    sheet_id: int
    values: list[list[Any]]
    row_count: int
    column_count: int
    truncated: bool = False
    truncation_reason: str | None = None


@dataclass(frozen=True, kw_only=True)
class SheetMetadata:
    """Tier 1: spreadsheet title and sheet dimensions."""
    spreadsheet_id: str
    title: str
    sheets: list[SheetInfo]
    retrieved_at: float
    locale: str | None = None
    time_zone: str | None = None
    tier: Tier = Tier.METADATA

    def find_sheet(self, sheet_id: int | None) -> SheetInfo | None:
        """First sheet in metadata order when sheet_id is None."""
        if sheet_id is None:
            return self.sheets[0] if self.sheets else None
        for sheet in self.sheets:
            if sheet.sheet_id == sheet_id:
                return sheet
        return None

    def lower_fields(self) -> dict[str, Any]:
        """Field values to embed into the next tier (tier tag excluded)."""
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name != "tier"}

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["tier"] = int(self.tier)
        return data


@dataclass(frozen=True, kw_only=True)
class SheetStructure(SheetMetadata):
    """Tier 2: metadata plus structural elements."""
    structure: StructureSummary
    tier: Tier = Tier.STRUCTURE


@dataclass(frozen=True, kw_only=True)
class SheetSample(SheetStructure):
    """Tier 3: structure plus the top-N rows of one sheet."""
    sample: SampleData
    tier: Tier = Tier.SAMPLE


@dataclass(frozen=True, kw_only=True)
class SheetFull(SheetSample):
    """Tier 4: sample plus the (capped) full values of one sheet."""
    full: FullData
    tier: Tier = Tier.FULL


TIER_TYPES: dict[Tier, type[SheetMetadata]] = {
    Tier.METADATA: SheetMetadata,
    Tier.STRUCTURE: SheetStructure,
    Tier.SAMPLE: SheetSample,
    Tier.FULL: SheetFull,
}
