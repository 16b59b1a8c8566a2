"""Header row detection within the first rows of a sheet."""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from order_intake.schemas.schema_inference import RawHeader
from order_intake.services.parsing.type_detector import is_number
from order_intake.services.parsing.workbook_loader import SheetGrid

MIN_HEADER_SCORE = 0.3


@dataclass
class HeaderCandidate:
    row_number: int
    score: float
    headers: List[str] = field(default_factory=list)
    reasons: List[str] = field(default_factory=list)


@dataclass
class HeaderDetection:
    header_row: Optional[int]
    confidence: float
    candidates: List[HeaderCandidate] = field(default_factory=list)


class HeaderDetector:
    """Scores each of the first ``max_rows`` rows as a potential header.

    Signals: position, variety of labels, number of text cells, a numeric
    row right below and known header keywords.
    """

    def __init__(self, keywords: Sequence[str] = (), max_rows: int = 10):
        self.keywords = tuple(k.lower() for k in keywords)
        self.max_rows = max_rows

    def detect(self, sheet: SheetGrid) -> HeaderDetection:
        candidates: List[HeaderCandidate] = []
        for row_number in range(1, self.max_rows + 1):
            if sheet.is_row_empty(row_number):
                continue
            candidate = self.score_row(sheet, row_number)
            if candidate.score > MIN_HEADER_SCORE:
                candidates.append(candidate)

        # Stable sort keeps the earliest row on ties
        candidates.sort(key=lambda candidate: candidate.score, reverse=True)
        if not candidates:
            return HeaderDetection(header_row=None, confidence=0.0)
        return HeaderDetection(
            header_row=candidates[0].row_number,
            confidence=candidates[0].score,
            candidates=candidates,
        )

    def score_row(self, sheet: SheetGrid, row_number: int) -> HeaderCandidate:
        cells = sheet.row_cells(row_number)
        headers = [cell.value.strip() for cell in cells if isinstance(cell.value, str) and cell.value.strip()]
        text_count = sum(1 for cell in cells if isinstance(cell.value, str))

        if text_count < 2:
            return HeaderCandidate(row_number=row_number, score=0.0, reasons=["too few text cells"])

        score = 0.0
        reasons: List[str] = []

        if row_number == 1:
            score += 0.3
            reasons.append("first row")
        elif row_number <= 3:
            score += 0.2
            reasons.append("early row")
        elif row_number <= 5:
            score += 0.1

        variety = len({header.lower() for header in headers}) / text_count
        if variety > 0.8:
            score += 0.3
            reasons.append("high variety")
        elif variety > 0.6:
            score += 0.2

        if text_count >= 3:
            score += 0.2
            reasons.append(f"{text_count} text cells")

        if row_number < sheet.max_row:
            if self._has_numeric(sheet, row_number + 1) and not self._has_numeric(sheet, row_number):
                score += 0.2
                reasons.append("data follows")

        keyword_matches = sum(
            1 for header in headers if any(keyword in header.lower() for keyword in self.keywords)
        )
        if keyword_matches >= 2:
            score += 0.2
            reasons.append(f"{keyword_matches} keyword matches")
        elif keyword_matches == 1:
            score += 0.1

        return HeaderCandidate(
            row_number=row_number,
            score=round(min(score, 1.0), 4),
            headers=headers,
            reasons=reasons,
        )

    @staticmethod
    def extract_headers(sheet: SheetGrid, header_row: int) -> List[RawHeader]:
        return [
            RawHeader(text=cell.value.strip(), column=cell.column_letter, column_index=cell.column)
            for cell in sheet.row_cells(header_row)
            if isinstance(cell.value, str) and cell.value.strip()
        ]

    @staticmethod
    def _has_numeric(sheet: SheetGrid, row_number: int) -> bool:
        return any(is_number(cell.value) for cell in sheet.row_cells(row_number))
