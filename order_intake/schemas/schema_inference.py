"""Schema inference models.

These describe how a spreadsheet's columns were mapped onto canonical order
fields, and how confident the parser is about that mapping.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ColumnType(str, Enum):
    """Detected type of a spreadsheet column."""

    INTEGER = "integer"
    DECIMAL = "decimal"
    NUMBER = "number"
    CURRENCY = "currency"
    DATE = "date"
    TEXT = "text"
    MIXED = "mixed"
    EMPTY = "empty"


class MatchMethod(str, Enum):
    """How a header was matched to a canonical field."""

    EXACT = "exact"
    SYNONYM = "synonym"
    FUZZY = "fuzzy"
    MANUAL = "manual"


class ConfidenceBand(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class RawHeader(BaseModel):
    """One header cell of the detected header row."""

    text: str
    column: str = Field(..., description="Column letter, e.g. 'B'")
    column_index: int = Field(..., ge=1, description="1-based column index")


class ColumnStats(BaseModel):
    numeric: int = 0
    text: int = 0
    empty: int = 0
    total: int = 0


class ColumnTypeProfile(BaseModel):
    """Inferred type of a column."""

    detected_type: ColumnType
    confidence: float = Field(..., ge=0.0, le=1.0)
    samples: List[Any] = Field(default_factory=list, max_length=5)
    stats: ColumnStats = Field(default_factory=ColumnStats)


class MappingCandidate(BaseModel):
    header: str
    column: str
    column_index: int
    score: float = Field(..., ge=0.0, le=1.0)
    method: MatchMethod


class FieldMapping(BaseModel):
    """Source of one canonical field."""

    canonical_field: str
    source_header: str
    source_column: str
    column_index: int = Field(..., ge=1)
    confidence: float = Field(..., ge=0.0, le=1.0)
    method: MatchMethod
    alternates: List[MappingCandidate] = Field(default_factory=list, max_length=5)


class StageConfidences(BaseModel):
    sheet_selection: float = Field(0.0, ge=0.0, le=1.0)
    header_detection: float = Field(0.0, ge=0.0, le=1.0)
    column_mapping: float = Field(0.0, ge=0.0, le=1.0)


class SchemaInferenceResult(BaseModel):
    """Mapping of one candidate table."""

    selected_sheet: str
    table_region: str = Field(..., description="A1-style range, e.g. 'A1:E20'")
    header_row: int = Field(..., ge=1)
    headers: List[RawHeader] = Field(default_factory=list)
    column_profiles: Dict[str, ColumnTypeProfile] = Field(
        default_factory=dict, description="Column letter -> type profile"
    )
    field_mappings: List[FieldMapping] = Field(default_factory=list)
    mapping_confidence: float = Field(0.0, ge=0.0, le=1.0)
    overall_confidence: float = Field(0.0, ge=0.0, le=1.0)
    band: ConfidenceBand = ConfidenceBand.LOW
    stage_confidences: StageConfidences = Field(default_factory=StageConfidences)

    def mapping_for(self, field: str) -> Optional[FieldMapping]:
        for mapping in self.field_mappings:
            if mapping.canonical_field == field:
                return mapping
        return None

    def column_map(self) -> Dict[str, str]:
        """Canonical field -> source column letter."""
        return {m.canonical_field: m.source_column for m in self.field_mappings}
