"""Request and response models for the cases API."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CaseStartRequest(BaseModel):
    case_id: str = Field(..., min_length=1)
    file_blob_reference: str = Field(..., min_length=1)
    tenant_id: str
    user_id: str
    correlation_id: Optional[str] = None
    conversation_context: Dict[str, Any] = Field(default_factory=dict)


class CaseStartedResponse(BaseModel):
    case_id: str
    workflow_id: str
    correlation_id: str


class FileReuploadedRequest(BaseModel):
    blob_url: str = Field(..., min_length=1)
    submitted_by: str
    submitted_at: Optional[datetime] = None
    correlation_id: Optional[str] = None


class CorrectionValue(BaseModel):
    original_value: Any = None
    corrected_value: Any = None
    notes: Optional[str] = None


class CorrectionsSubmittedRequest(BaseModel):
    corrections: Dict[str, CorrectionValue] = Field(..., description="Field path -> correction")
    submitted_by: str
    submitted_at: Optional[datetime] = None


class SelectionChoice(BaseModel):
    id: str


class SelectionsPayload(BaseModel):
    customer: Optional[SelectionChoice] = None
    items: Dict[int, SelectionChoice] = Field(default_factory=dict, description="Line number -> item")


class SelectionsSubmittedRequest(BaseModel):
    selections: SelectionsPayload
    submitted_by: str
    submitted_at: Optional[datetime] = None


class ApprovalReceivedRequest(BaseModel):
    approved: bool
    approved_by: str
    approved_at: Optional[datetime] = None
    comments: Optional[str] = None


class CaseStateResponse(BaseModel):
    """Live state reported by the case's workflow."""

    model_config = ConfigDict(populate_by_name=True)

    case_id: str
    current_step: Optional[str] = Field(None, alias="currentStep")
    status: str
    last_updated: Optional[str] = Field(None, alias="lastUpdated")
    errors: List[str] = Field(default_factory=list)


class CaseSummary(BaseModel):
    case_id: str
    tenant_id: str
    user_id: str
    status: str
    current_step: Optional[str] = None
    revision: int
    zoho_order_number: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
