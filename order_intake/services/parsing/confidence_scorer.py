"""Mapping confidence and banding."""

from typing import Dict, Optional, Sequence

from order_intake.schemas.schema_inference import ConfidenceBand, FieldMapping, StageConfidences

REQUIRED_FIELDS = ("quantity",)
IMPORTANT_FIELDS = ("sku", "gtin", "product_name", "customer")
OPTIONAL_FIELDS = ("unit_price", "line_total")

REQUIRED_WEIGHT = 0.40
IMPORTANT_WEIGHT = 0.15
OPTIONAL_WEIGHT = 0.075

MISSING_REQUIRED_PENALTY = 0.5
IMPORTANT_BONUS = 1.1
IMPORTANT_BONUS_MIN_FIELDS = 3

# Weights of the per-stage confidences in the overall score
STAGE_WEIGHTS = {"sheet_selection": 0.2, "header_detection": 0.3, "column_mapping": 0.5}


class ConfidenceScorer:
    """Weighted confidence over the mapped fields.

    ``quantity`` carries 0.40; sku, gtin, product_name and customer 0.15 each;
    unit_price and line_total 0.075 each. A missing required field halves the
    score and three or more important fields earn a 1.1 bonus, capped at 1.0.
    """

    def __init__(self, high_threshold: float = 0.80, medium_threshold: float = 0.60):
        self.high_threshold = high_threshold
        self.medium_threshold = medium_threshold

    def score(self, mappings: Sequence[FieldMapping]) -> float:
        if not mappings:
            return 0.0

        by_field: Dict[str, FieldMapping] = {m.canonical_field: m for m in mappings}
        total = 0.0
        required_found = 0
        important_found = 0

        for field in REQUIRED_FIELDS:
            if field in by_field:
                required_found += 1
                total += by_field[field].confidence * REQUIRED_WEIGHT

        for field in IMPORTANT_FIELDS:
            if field in by_field:
                important_found += 1
                total += by_field[field].confidence * IMPORTANT_WEIGHT

        for field in OPTIONAL_FIELDS:
            if field in by_field:
                total += by_field[field].confidence * OPTIONAL_WEIGHT

        if required_found < len(REQUIRED_FIELDS):
            total *= MISSING_REQUIRED_PENALTY
        if important_found >= IMPORTANT_BONUS_MIN_FIELDS:
            total *= IMPORTANT_BONUS

        return max(0.0, min(round(total, 4), 1.0))

    def band(self, value: float) -> ConfidenceBand:
        if value >= self.high_threshold:
            return ConfidenceBand.HIGH
        if value >= self.medium_threshold:
            return ConfidenceBand.MEDIUM
        return ConfidenceBand.LOW

    def overall(self, stages: StageConfidences, mapping_confidence: Optional[float] = None) -> float:
        """Weighted blend of the stage confidences."""
        column_mapping = stages.column_mapping if mapping_confidence is None else mapping_confidence
        value = (
            stages.sheet_selection * STAGE_WEIGHTS["sheet_selection"]
            + stages.header_detection * STAGE_WEIGHTS["header_detection"]
            + column_mapping * STAGE_WEIGHTS["column_mapping"]
        )
        return max(0.0, min(round(value, 4), 1.0))
