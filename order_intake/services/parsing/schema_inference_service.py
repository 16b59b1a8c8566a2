"""Schema inference coordinator.

Given the selected sheet and header row, profiles the columns, runs the
header matcher, applies any user-supplied column overrides and scores the
result. It also derives the deterministic candidate set that the reviewer
committee is allowed to choose from.
"""

from typing import Dict, List, Optional, Sequence

from openpyxl.utils import column_index_from_string, get_column_letter

from order_intake.schemas.committee import CandidateColumn, CandidateSet
from order_intake.schemas.schema_inference import (
    ColumnTypeProfile,
    FieldMapping,
    MatchMethod,
    RawHeader,
    SchemaInferenceResult,
    StageConfidences,
)
from order_intake.services.parsing.confidence_scorer import ConfidenceScorer
from order_intake.services.parsing.header_detector import HeaderDetector
from order_intake.services.parsing.header_matcher import HeaderMatcher
from order_intake.services.parsing.synonyms import SynonymConfig
from order_intake.services.parsing.type_detector import TypeDetector
from order_intake.services.parsing.workbook_loader import SheetGrid
from order_intake.utils.logging import get_logger

LOGGER = get_logger(__name__)


class SchemaInferenceCoordinator:
    """Produces a :class:`SchemaInferenceResult` for one table."""

    def __init__(
        self,
        synonyms: SynonymConfig,
        matcher: Optional[HeaderMatcher] = None,
        type_detector: Optional[TypeDetector] = None,
        scorer: Optional[ConfidenceScorer] = None,
    ):
        self.synonyms = synonyms
        self.matcher = matcher or HeaderMatcher(synonyms)
        self.type_detector = type_detector or TypeDetector()
        self.scorer = scorer or ConfidenceScorer()

    def infer(
        self,
        sheet: SheetGrid,
        header_row: int,
        sheet_confidence: float,
        header_confidence: float,
        overrides: Optional[Dict[str, str]] = None,
        canonical_fields: Optional[Sequence[str]] = None,
    ) -> SchemaInferenceResult:
        """Map the table whose header sits at ``header_row``.

        Args:
            sheet: Selected sheet
            header_row: 1-based header row
            sheet_confidence: Score of the sheet selection stage
            header_confidence: Score of the header detection stage
            overrides: Canonical field -> column letter chosen by a person
            canonical_fields: Fields to map (all known fields by default)

        Returns:
            SchemaInferenceResult with mappings, confidences and band
        """
        headers = HeaderDetector.extract_headers(sheet, header_row)
        profiles = self.profile_columns(sheet, headers, header_row)
        fields = list(canonical_fields or self.synonyms.canonical_fields)

        mappings = self.matcher.match_headers(headers, fields, profiles)
        if overrides:
            mappings = self.apply_overrides(mappings, overrides, headers, profiles, fields)

        mapping_confidence = self.scorer.score(mappings)
        stages = StageConfidences(
            sheet_selection=sheet_confidence,
            header_detection=header_confidence,
            column_mapping=mapping_confidence,
        )

        result = SchemaInferenceResult(
            selected_sheet=sheet.name,
            table_region=self.table_region(sheet, headers, header_row),
            header_row=header_row,
            headers=headers,
            column_profiles=profiles,
            field_mappings=mappings,
            mapping_confidence=mapping_confidence,
            overall_confidence=self.scorer.overall(stages),
            band=self.scorer.band(mapping_confidence),
            stage_confidences=stages,
        )

        LOGGER.info(
            "Schema inferred",
            extra={
                "sheet": sheet.name,
                "header_row": header_row,
                "mapped_fields": [m.canonical_field for m in mappings],
                "mapping_confidence": mapping_confidence,
                "band": result.band.value,
            },
        )
        return result

    def profile_columns(
        self, sheet: SheetGrid, headers: Sequence[RawHeader], header_row: int
    ) -> Dict[str, ColumnTypeProfile]:
        last_row = min(sheet.max_row, header_row + self.type_detector.sample_size)
        return {
            header.column: self.type_detector.detect_column(sheet, header.column_index, header_row + 1, last_row)
            for header in headers
        }

    def apply_overrides(
        self,
        mappings: List[FieldMapping],
        overrides: Dict[str, str],
        headers: Sequence[RawHeader],
        profiles: Dict[str, ColumnTypeProfile],
        fields: Sequence[str],
    ) -> List[FieldMapping]:
        """Replace or remove mappings a person chose explicitly.

        An override to ``None`` (or an empty string) removes the field. The
        overridden mapping keeps the matcher's own score for that column.
        """
        by_field = {m.canonical_field: m for m in mappings}
        header_by_column = {h.column: h for h in headers}

        for field, column in overrides.items():
            if not column:
                by_field.pop(field, None)
                continue

            column = column.upper()
            header = header_by_column.get(column)
            if header is None:
                index = column_index_from_string(column)
                header = RawHeader(text=column, column=get_column_letter(index), column_index=index)

            scored = {c.column: c for c in self.matcher.find_candidates(field, [header], profiles)}
            candidate = scored.get(column)
            if candidate is not None:
                confidence = candidate.score
            else:
                profile = profiles.get(column)
                confidence = round(0.3 * self.matcher.type_score(profile.detected_type if profile else None, field), 4)

            previous = by_field.get(field)
            by_field[field] = FieldMapping(
                canonical_field=field,
                source_header=header.text,
                source_column=column,
                column_index=header.column_index,
                confidence=confidence,
                method=MatchMethod.MANUAL,
                alternates=previous.alternates if previous else [],
            )

        ordered = [f for f in fields if f in by_field]
        return [by_field[f] for f in ordered] + [m for f, m in by_field.items() if f not in ordered]

    @staticmethod
    def table_region(sheet: SheetGrid, headers: Sequence[RawHeader], header_row: int) -> str:
        if not headers:
            return f"A{header_row}:A{max(header_row, sheet.max_row)}"
        first = min(h.column_index for h in headers)
        last = max(h.column_index for h in headers)
        return f"{get_column_letter(first)}{header_row}:{get_column_letter(last)}{max(header_row, sheet.max_row)}"

    @staticmethod
    def table_id(result: SchemaInferenceResult) -> str:
        return f"{result.selected_sheet}!{result.table_region}"

    @classmethod
    def candidate_set(cls, result: SchemaInferenceResult, fields: Sequence[str]) -> CandidateSet:
        """Fields the committee must decide, and every header column of the table."""
        table_id = cls.table_id(result)
        return CandidateSet(
            fields=list(fields),
            columns={
                header.column: CandidateColumn(column=header.column, header=header.text, table_id=table_id)
                for header in result.headers
            },
        )

    @staticmethod
    def deterministic_top(result: SchemaInferenceResult, fields: Sequence[str]) -> Dict[str, str]:
        """Matcher's top column per field, restricted to ``fields``."""
        return {m.canonical_field: m.source_column for m in result.field_mappings if m.canonical_field in fields}
