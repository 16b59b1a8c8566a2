"""Canonical order models.

A :class:`CanonicalOrder` is the structured form of one spreadsheet's order,
annotated with the cell-level evidence every value was read from. Each
revision (corrections, selections, resolution results) bumps ``version``.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from order_intake.schemas.schema_inference import SchemaInferenceResult


class IssueSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    BLOCKER = "blocker"


class ResolutionStatus(str, Enum):
    UNRESOLVED = "unresolved"
    RESOLVED = "resolved"
    AMBIGUOUS = "ambiguous"
    NOT_FOUND = "not_found"


class EvidenceCell(BaseModel):
    """Where a value came from in the workbook."""

    sheet: str
    cell: str
    raw_value: Any = None
    display_value: Optional[str] = None
    number_format: Optional[str] = None


class Issue(BaseModel):
    code: str
    severity: IssueSeverity
    message: str
    fields: List[str] = Field(default_factory=list)
    evidence: List[EvidenceCell] = Field(default_factory=list)
    line_number: Optional[int] = None
    suggested_user_action: Optional[str] = None
    requires_confirmation: bool = False


class LedgerCandidate(BaseModel):
    """A possible match in the ledger catalog."""

    external_id: str
    name: str
    score: float = Field(0.0, ge=0.0, le=1.0)
    sku: Optional[str] = None
    gtin: Optional[str] = None


class CustomerInfo(BaseModel):
    input_name: Optional[str] = None
    resolution_status: ResolutionStatus = ResolutionStatus.UNRESOLVED
    ledger_customer_id: Optional[str] = None
    ledger_customer_name: Optional[str] = None
    candidates: List[LedgerCandidate] = Field(default_factory=list)
    evidence: List[EvidenceCell] = Field(default_factory=list)


class LineItem(BaseModel):
    """One order line. Quantity can never be negative."""

    line_number: int = Field(..., ge=1)
    description: Optional[str] = None
    quantity: float = Field(..., ge=0)
    unit_price: Optional[float] = None
    line_total: Optional[float] = None
    sku: Optional[str] = None
    gtin: Optional[str] = None
    currency: Optional[str] = None
    source_row: Optional[int] = None
    ledger_item_id: Optional[str] = None
    resolution_status: ResolutionStatus = ResolutionStatus.UNRESOLVED
    candidates: List[LedgerCandidate] = Field(default_factory=list)
    quantity_confirmed: bool = False
    evidence: Dict[str, EvidenceCell] = Field(default_factory=dict)
    flags: List[str] = Field(default_factory=list)


class Totals(BaseModel):
    subtotal: Optional[float] = None
    tax: Optional[float] = None
    total: Optional[float] = None
    currency: Optional[str] = None
    evidence: Dict[str, EvidenceCell] = Field(default_factory=dict)


class OrderMetadata(BaseModel):
    case_id: str
    tenant_id: Optional[str] = None
    received_at: datetime
    source_filename: Optional[str] = None
    file_sha256: str
    language_hint: Optional[str] = None
    parser_version: str
    contains_formulas: bool = False
    sheets_processed: List[str] = Field(default_factory=list)


class Correction(BaseModel):
    """One user edit. ``field_path`` is ``mapping.<field>``,
    ``customer.name`` or ``line_items.<n>.<field>``."""

    field_path: str
    original_value: Any = None
    corrected_value: Any = None
    actor: str
    timestamp: datetime
    notes: Optional[str] = None


class Selection(BaseModel):
    """A disambiguation choice made by a user."""

    customer_external_id: Optional[str] = None
    items: Dict[int, str] = Field(default_factory=dict, description="Line number -> ledger item id")
    actor: str
    timestamp: datetime


class CanonicalOrder(BaseModel):
    metadata: OrderMetadata
    customer: CustomerInfo = Field(default_factory=CustomerInfo)
    line_items: List[LineItem] = Field(default_factory=list)
    totals: Optional[Totals] = None
    issues: List[Issue] = Field(default_factory=list)
    schema_inference: Optional[SchemaInferenceResult] = None
    corrections: List[Correction] = Field(default_factory=list)
    selections: List[Selection] = Field(default_factory=list)
    version: int = Field(1, ge=1)

    def issues_with(self, *severities: IssueSeverity) -> List[Issue]:
        return [issue for issue in self.issues if issue.severity in severities]

    @property
    def has_blockers(self) -> bool:
        return bool(self.issues_with(IssueSeverity.BLOCKER))

    @property
    def pending_confirmations(self) -> List[Issue]:
        return [issue for issue in self.issues if issue.requires_confirmation]

    def line(self, line_number: int) -> Optional[LineItem]:
        for item in self.line_items:
            if item.line_number == line_number:
                return item
        return None
