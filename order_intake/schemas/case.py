"""Order case models and the case status graph."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, Field

from order_intake.schemas.order import CanonicalOrder


class CaseStatus(str, Enum):
    """Lifecycle of an order case."""

    STORING_FILE = "storing_file"
    PARSING = "parsing"
    RUNNING_COMMITTEE = "running_committee"
    AWAITING_CORRECTIONS = "awaiting_corrections"
    RESOLVING_CUSTOMER = "resolving_customer"
    AWAITING_CUSTOMER_SELECTION = "awaiting_customer_selection"
    RESOLVING_ITEMS = "resolving_items"
    AWAITING_ITEM_SELECTION = "awaiting_item_selection"
    AWAITING_APPROVAL = "awaiting_approval"
    CREATING_ZOHO_DRAFT = "creating_zoho_draft"
    QUEUED_FOR_ZOHO = "queued_for_zoho"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL

    @property
    def is_human_wait(self) -> bool:
        return self in _HUMAN_WAITS

    def can_transition_to(self, target: "CaseStatus") -> bool:
        if self.is_terminal:
            return False
        if target is CaseStatus.FAILED:
            return True
        return target in _TRANSITIONS.get(self, frozenset())


_TERMINAL: FrozenSet[CaseStatus] = frozenset(
    {CaseStatus.COMPLETED, CaseStatus.CANCELLED, CaseStatus.FAILED}
)

_HUMAN_WAITS: FrozenSet[CaseStatus] = frozenset(
    {
        CaseStatus.AWAITING_CORRECTIONS,
        CaseStatus.AWAITING_CUSTOMER_SELECTION,
        CaseStatus.AWAITING_ITEM_SELECTION,
        CaseStatus.AWAITING_APPROVAL,
    }
)

# Failure is reachable from every non-terminal state and is not listed here.
_TRANSITIONS: Dict[CaseStatus, FrozenSet[CaseStatus]] = {
    CaseStatus.STORING_FILE: frozenset({CaseStatus.PARSING}),
    # Blocked files loop back on re-upload, or cancel if nobody re-uploads
    CaseStatus.PARSING: frozenset(
        {CaseStatus.RUNNING_COMMITTEE, CaseStatus.STORING_FILE, CaseStatus.CANCELLED}
    ),
    CaseStatus.RUNNING_COMMITTEE: frozenset(
        {CaseStatus.AWAITING_CORRECTIONS, CaseStatus.RESOLVING_CUSTOMER}
    ),
    CaseStatus.AWAITING_CORRECTIONS: frozenset(
        {CaseStatus.RESOLVING_CUSTOMER, CaseStatus.CANCELLED}
    ),
    CaseStatus.RESOLVING_CUSTOMER: frozenset(
        {CaseStatus.AWAITING_CUSTOMER_SELECTION, CaseStatus.RESOLVING_ITEMS}
    ),
    CaseStatus.AWAITING_CUSTOMER_SELECTION: frozenset(
        {CaseStatus.RESOLVING_ITEMS, CaseStatus.CANCELLED}
    ),
    CaseStatus.RESOLVING_ITEMS: frozenset(
        {CaseStatus.AWAITING_ITEM_SELECTION, CaseStatus.AWAITING_APPROVAL}
    ),
    CaseStatus.AWAITING_ITEM_SELECTION: frozenset(
        {CaseStatus.AWAITING_APPROVAL, CaseStatus.CANCELLED}
    ),
    CaseStatus.AWAITING_APPROVAL: frozenset(
        {CaseStatus.CREATING_ZOHO_DRAFT, CaseStatus.CANCELLED}
    ),
    CaseStatus.CREATING_ZOHO_DRAFT: frozenset(
        {CaseStatus.COMPLETED, CaseStatus.QUEUED_FOR_ZOHO}
    ),
    CaseStatus.QUEUED_FOR_ZOHO: frozenset({CaseStatus.COMPLETED}),
}


class CaseEvent(BaseModel):
    """Append-only audit entry."""

    sequence: int = Field(..., ge=1)
    event_type: str
    status: CaseStatus
    actor: Optional[str] = None
    correlation_id: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime


class OrderCase(BaseModel):
    """One unit of work: an uploaded spreadsheet on its way to a draft order."""

    case_id: str
    tenant_id: str
    correlation_id: str
    user_id: str
    status: CaseStatus = CaseStatus.STORING_FILE
    current_step: Optional[str] = None
    revision: int = 0
    file_blob_reference: Optional[str] = None
    file_sha256: Optional[str] = None
    order: Optional[CanonicalOrder] = None
    zoho_order_id: Optional[str] = None
    zoho_order_number: Optional[str] = None
    last_error: Optional[str] = None
    history: List[CaseEvent] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
