"""Match header cells to canonical order fields.

Matching is tiered, strongest first:

1. exact normalized match against a synonym (text score 1.0)
2. substring overlap with a synonym (shorter/longer length ratio, > 0.6)
3. Levenshtein similarity ``1 - distance / max_len`` (> 0.6)

The text score is blended with a type-compatibility score
(``0.7 * text + 0.3 * type``) to rank the candidates for each field.
"""

from typing import Dict, List, Optional, Sequence, Tuple

from rapidfuzz.distance import Levenshtein

from order_intake.schemas.schema_inference import (
    ColumnType,
    ColumnTypeProfile,
    FieldMapping,
    MappingCandidate,
    MatchMethod,
    RawHeader,
)
from order_intake.services.parsing.synonyms import SynonymConfig, normalize_header
from order_intake.utils.logging import get_logger

LOGGER = get_logger(__name__)

TEXT_WEIGHT = 0.7
TYPE_WEIGHT = 0.3
MIN_TEXT_SCORE = 0.6
MAX_ALTERNATES = 5


class HeaderMatcher:
    """Ranks header columns for each canonical field."""

    def __init__(self, synonyms: SynonymConfig):
        self.synonyms = synonyms

    def match_headers(
        self,
        headers: Sequence[RawHeader],
        canonical_fields: Sequence[str],
        columns: Dict[str, ColumnTypeProfile],
    ) -> List[FieldMapping]:
        """Best column per field; fields without any candidate are left out.

        Args:
            headers: Header cells of the detected header row
            canonical_fields: Fields to look for, in reporting order
            columns: Column letter -> detected type profile

        Returns:
            One FieldMapping per matched field, alternates ranked best first
        """
        mappings: List[FieldMapping] = []

        for field in canonical_fields:
            candidates = self.find_candidates(field, headers, columns)
            if not candidates:
                continue

            best = candidates[0]
            mappings.append(
                FieldMapping(
                    canonical_field=field,
                    source_header=best.header,
                    source_column=best.column,
                    column_index=best.column_index,
                    confidence=best.score,
                    method=best.method,
                    alternates=candidates[:MAX_ALTERNATES],
                )
            )

        LOGGER.debug(
            "Headers matched",
            extra={"fields": [m.canonical_field for m in mappings], "headers": len(headers)},
        )
        return mappings

    def find_candidates(
        self,
        field: str,
        headers: Sequence[RawHeader],
        columns: Dict[str, ColumnTypeProfile],
    ) -> List[MappingCandidate]:
        synonyms = self.synonyms.synonyms_for(field)
        if not synonyms:
            return []

        raw: List[Tuple[RawHeader, float, MatchMethod]] = []
        for header in headers:
            normalized = normalize_header(header.text)
            if not normalized:
                continue

            if normalized in synonyms:
                raw.append((header, 1.0, MatchMethod.EXACT))

            overlap = self.substring_score(normalized, synonyms)
            if overlap > MIN_TEXT_SCORE:
                raw.append((header, overlap, MatchMethod.SYNONYM))

            similarity = self.fuzzy_score(normalized, synonyms)
            if similarity > MIN_TEXT_SCORE:
                raw.append((header, similarity, MatchMethod.FUZZY))

        # One candidate per column, the first one wins ties
        best_per_column: Dict[int, Tuple[RawHeader, float, MatchMethod]] = {}
        for entry in raw:
            existing = best_per_column.get(entry[0].column_index)
            if existing is None or entry[1] > existing[1]:
                best_per_column[entry[0].column_index] = entry

        candidates: List[MappingCandidate] = []
        for header, text_score, method in best_per_column.values():
            profile = columns.get(header.column)
            type_score = self.type_score(profile.detected_type if profile else None, field)
            score = min(1.0, round(TEXT_WEIGHT * text_score + TYPE_WEIGHT * type_score, 4))
            candidates.append(
                MappingCandidate(
                    header=header.text,
                    column=header.column,
                    column_index=header.column_index,
                    score=score,
                    method=method,
                )
            )

        candidates.sort(key=lambda candidate: candidate.score, reverse=True)
        return candidates

    def text_score(self, header: str, field: str) -> Tuple[float, Optional[MatchMethod]]:
        """Best tiered text score of one header for one field."""
        normalized = normalize_header(header)
        synonyms = self.synonyms.synonyms_for(field)
        if not normalized or not synonyms:
            return 0.0, None
        if normalized in synonyms:
            return 1.0, MatchMethod.EXACT

        overlap = self.substring_score(normalized, synonyms)
        similarity = self.fuzzy_score(normalized, synonyms)
        if overlap > MIN_TEXT_SCORE and overlap >= similarity:
            return overlap, MatchMethod.SYNONYM
        if similarity > MIN_TEXT_SCORE:
            return similarity, MatchMethod.FUZZY
        return 0.0, None

    @staticmethod
    def substring_score(normalized: str, synonyms: Sequence[str]) -> float:
        best = 0.0
        for synonym in synonyms:
            if normalized == synonym:
                return 1.0
            if synonym in normalized:
                best = max(best, len(synonym) / len(normalized))
            elif normalized in synonym:
                best = max(best, len(normalized) / len(synonym))
        return best

    @staticmethod
    def fuzzy_score(normalized: str, synonyms: Sequence[str]) -> float:
        best = 0.0
        for synonym in synonyms:
            max_len = max(len(normalized), len(synonym))
            if max_len == 0:
                continue
            best = max(best, 1 - Levenshtein.distance(normalized, synonym) / max_len)
        return best

    def type_score(self, detected_type: Optional[ColumnType], field: str) -> float:
        """1.0 when the type is allowed, 0.6 for mixed columns, 0.5 for unknown fields."""
        allowed = self.synonyms.allowed_types(field)
        if not allowed:
            return 0.5
        value = detected_type.value if isinstance(detected_type, ColumnType) else detected_type
        if value in allowed:
            return 1.0
        if value == ColumnType.MIXED.value:
            return 0.6
        return 0.0
