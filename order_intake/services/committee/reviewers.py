"""Independent reviewers for the schema mapping task.

A reviewer sees the evidence pack and the candidate set and answers with a
:class:`ReviewerProposal`. Reviewers are advisory; the adjudicator decides.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Dict, List

from pydantic import ValidationError as PydanticValidationError

from order_intake.core.exceptions import APIClientError, InvalidProposalError
from order_intake.core.llm_client import ChatCompletionClient
from order_intake.schemas.committee import CandidateSet, EvidencePack, ReviewerProposal
from order_intake.utils.json_parser import parse_json_safely
from order_intake.utils.logging import get_logger

LOGGER = get_logger(__name__)

SYSTEM_PROMPT = """You are a schema mapping reviewer for an order intake system.

Map spreadsheet columns to canonical order fields.

Rules:
1. Only choose from the column letters listed in the evidence. Never invent columns.
2. If no column fits a field, use null for selected_column and a low confidence.
3. Justify each decision with header text and sample values.
4. Confidence guide: 0.90-1.00 exact header and type match, 0.75-0.89 good match,
   0.60-0.74 some ambiguity, below 0.60 weak.
5. Headers may be English, Farsi or mixed. Apply the same logic to both.

Respond with JSON only:
{
  "mappings": [
    {"field": "quantity", "selected_column": "B", "confidence": 0.9, "reasoning": "..."}
  ],
  "red_flags": [{"code": "AMBIGUOUS_MAPPING", "message": "..."}],
  "overall_confidence": 0.85
}"""


class BaseReviewer(ABC):
    """A committee member."""

    def __init__(self, reviewer_id: str, weight: float = 1.0):
        self.reviewer_id = reviewer_id
        self.weight = weight

    @abstractmethod
    async def review(self, pack: EvidencePack, candidates: CandidateSet) -> ReviewerProposal:
        """Return this reviewer's proposal for the mapping task."""

    def to_proposal(self, payload: Dict[str, Any]) -> ReviewerProposal:
        """Validate a raw reviewer answer against the proposal schema."""
        try:
            return ReviewerProposal(
                reviewer_id=self.reviewer_id,
                weight=self.weight,
                mappings=payload.get("mappings") or [],
                red_flags=payload.get("red_flags") or [],
                overall_confidence=payload.get("overall_confidence", 0.0),
            )
        except PydanticValidationError as e:
            raise InvalidProposalError(
                f"Reviewer {self.reviewer_id} returned a malformed proposal", original_error=e
            )


class OpenRouterReviewer(BaseReviewer):
    """Reviewer backed by a chat model on an OpenAI-compatible endpoint."""

    def __init__(
        self,
        model: str,
        api_key: str,
        base_url: str,
        timeout: int = 30,
        weight: float = 1.0,
    ):
        super().__init__(reviewer_id=model, weight=weight)
        self.client = ChatCompletionClient(api_key=api_key, model=model, url=base_url, timeout=timeout)

    async def review(self, pack: EvidencePack, candidates: CandidateSet) -> ReviewerProposal:
        response = await self.client.complete(self.build_prompt(pack, candidates), system_prompt=SYSTEM_PROMPT)

        payload = parse_json_safely(response)
        if not isinstance(payload, dict):
            LOGGER.warning(
                "Reviewer returned non-JSON output",
                extra={"reviewer_id": self.reviewer_id, "case_id": pack.case_id},
            )
            raise APIClientError(f"Reviewer {self.reviewer_id} returned no parseable JSON")

        return self.to_proposal(payload)

    @staticmethod
    def build_prompt(pack: EvidencePack, candidates: CandidateSet) -> str:
        columns: List[Dict[str, Any]] = [
            {
                "column": column.column,
                "header": column.header,
                "type": column.detected_type,
                "samples": column.samples,
                "stats": {"numeric": column.numeric, "text": column.text, "empty": column.empty},
            }
            for column in pack.columns
            if column.column in candidates.columns
        ]
        task = {
            "fields": candidates.fields,
            "columns": columns,
            "language": pack.language or "unknown",
            "constraints": pack.constraints,
        }
        return "Map these columns to the fields.\n\n" + json.dumps(task, ensure_ascii=False, indent=2)
