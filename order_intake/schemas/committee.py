"""Reviewer committee models."""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class ConsensusLevel(str, Enum):
    UNANIMOUS = "unanimous"
    MAJORITY = "majority"
    SPLIT = "split"
    NO_CONSENSUS = "no_consensus"


class CandidateColumn(BaseModel):
    """A column the reviewers are allowed to choose from."""

    column: str
    header: str
    table_id: str = Field(..., description="Identifier of the table the column belongs to")


class CandidateSet(BaseModel):
    """Deterministic candidate set handed to every reviewer."""

    fields: List[str]
    columns: Dict[str, CandidateColumn] = Field(
        default_factory=dict, description="Column letter -> candidate column"
    )

    def table_of(self, column: str) -> Optional[str]:
        candidate = self.columns.get(column)
        return candidate.table_id if candidate else None


class ReviewerIssue(BaseModel):
    code: str = Field(..., pattern=r"^[A-Z][A-Z0-9_]*$")
    message: str = ""


class ProposedMapping(BaseModel):
    field: str
    selected_column: Optional[str] = None
    confidence: float = Field(..., ge=0.0, le=1.0)
    reasoning: str = ""


class ReviewerProposal(BaseModel):
    """One reviewer's opinion on the mapping task."""

    reviewer_id: str
    mappings: List[ProposedMapping] = Field(default_factory=list)
    red_flags: List[ReviewerIssue] = Field(default_factory=list)
    overall_confidence: float = Field(0.0, ge=0.0, le=1.0)
    weight: float = Field(1.0, gt=0.0)
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def choice_for(self, field: str) -> Optional[ProposedMapping]:
        for mapping in self.mappings:
            if mapping.field == field:
                return mapping
        return None


class FieldVote(BaseModel):
    reviewer_id: str
    column: Optional[str] = None
    confidence: float = 0.0


class Disagreement(BaseModel):
    """An AMBIGUOUS field, ready to be asked as a multiple-choice question."""

    field: str
    reason: str
    votes: List[FieldVote] = Field(default_factory=list)
    choices: List[CandidateColumn] = Field(default_factory=list)
    deterministic_top: Optional[str] = None


class RejectedProposal(BaseModel):
    reviewer_id: str
    reason: str


class CommitteeVerdict(BaseModel):
    consensus: ConsensusLevel
    accepted_mapping: Dict[str, str] = Field(default_factory=dict)
    ambiguous_fields: List[str] = Field(default_factory=list)
    disagreements: List[Disagreement] = Field(default_factory=list)
    rejected_proposals: List[RejectedProposal] = Field(default_factory=list)
    successful_reviewers: int = 0
    needs_human: bool = False


class EvidenceColumn(BaseModel):
    """Bounded view of one column shown to reviewers."""

    column: str
    header: str = Field(..., max_length=100)
    detected_type: str
    samples: List[str] = Field(default_factory=list, max_length=5)
    numeric: int = 0
    text: int = 0
    empty: int = 0


class EvidencePack(BaseModel):
    """Everything a reviewer may see about a mapping task."""

    case_id: str
    table_id: str
    language: Optional[str] = None
    expected_fields: List[str]
    columns: List[EvidenceColumn] = Field(default_factory=list)
    constraints: List[str] = Field(default_factory=list)
