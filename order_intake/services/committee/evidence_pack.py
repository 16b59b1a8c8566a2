"""Bounded evidence packs for the reviewer committee.

Reviewers only see header text, a handful of truncated sample values and
column statistics, never the full sheet.
"""

from typing import List, Optional, Sequence

from order_intake.schemas.committee import EvidenceColumn, EvidencePack
from order_intake.schemas.schema_inference import SchemaInferenceResult

# Line-level fields the committee reviews; document totals come from totals rows
COMMITTEE_FIELDS = ("customer", "sku", "gtin", "product_name", "quantity", "unit_price", "line_total")

DEFAULT_CONSTRAINTS = [
    "Only choose column letters listed in the evidence",
    "Return null when no column fits a field",
    "A column may serve more than one field only if the data supports it",
    "Quantities are non-negative numbers",
]


class EvidencePackBuilder:
    def __init__(self, max_samples: int = 5, max_header_length: int = 100, max_sample_length: int = 200):
        self.max_samples = max_samples
        self.max_header_length = max_header_length
        self.max_sample_length = max_sample_length

    def build(
        self,
        case_id: str,
        inference: SchemaInferenceResult,
        expected_fields: Sequence[str] = COMMITTEE_FIELDS,
        language: Optional[str] = None,
        constraints: Optional[List[str]] = None,
    ) -> EvidencePack:
        columns: List[EvidenceColumn] = []
        for header in inference.headers:
            profile = inference.column_profiles.get(header.column)
            samples = profile.samples if profile else []
            columns.append(
                EvidenceColumn(
                    column=header.column,
                    header=self._truncate(header.text, self.max_header_length),
                    detected_type=profile.detected_type.value if profile else "empty",
                    samples=[self._truncate(str(value), self.max_sample_length) for value in samples[: self.max_samples]],
                    numeric=profile.stats.numeric if profile else 0,
                    text=profile.stats.text if profile else 0,
                    empty=profile.stats.empty if profile else 0,
                )
            )

        return EvidencePack(
            case_id=case_id,
            table_id=f"{inference.selected_sheet}!{inference.table_region}",
            language=language,
            expected_fields=list(expected_fields),
            columns=columns,
            constraints=list(constraints or DEFAULT_CONSTRAINTS),
        )

    @staticmethod
    def _truncate(text: str, limit: int) -> str:
        return text if len(text) <= limit else text[: limit - 1] + "…"
