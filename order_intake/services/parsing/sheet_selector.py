"""Pick the worksheet that looks most like an order table."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from order_intake.services.parsing.type_detector import is_number
from order_intake.services.parsing.workbook_loader import SheetGrid, WorkbookGrid
from order_intake.utils.logging import get_logger

LOGGER = get_logger(__name__)


class SelectionStatus(str, Enum):
    SELECTED = "selected"
    AMBIGUOUS = "ambiguous"
    NONE = "none"


@dataclass
class SheetStats:
    row_count: int = 0
    column_count: int = 0
    density: float = 0.0
    has_numeric_columns: bool = False
    has_text_columns: bool = False


@dataclass
class SheetCandidate:
    name: str
    score: float
    reasons: List[str] = field(default_factory=list)
    stats: SheetStats = field(default_factory=SheetStats)


@dataclass
class SheetSelection:
    selected_sheet: Optional[str]
    confidence: float
    status: SelectionStatus
    candidates: List[SheetCandidate] = field(default_factory=list)

    @property
    def requires_user_choice(self) -> bool:
        return self.status == SelectionStatus.AMBIGUOUS


class SheetSelector:
    """Scores visible sheets on density, size and column composition.

    A sheet needs ``threshold`` to be selected. When two or more sheets clear
    the threshold within ``min_gap`` of each other the top one is still
    suggested but the selection is marked ambiguous.
    """

    def __init__(self, threshold: float = 0.5, min_gap: float = 0.15):
        self.threshold = threshold
        self.min_gap = min_gap

    def select(self, workbook: WorkbookGrid) -> SheetSelection:
        candidates = [
            candidate
            for candidate in (self.score_sheet(sheet) for sheet in workbook.sheets if sheet.visible)
            if candidate.score > 0
        ]
        candidates.sort(key=lambda candidate: candidate.score, reverse=True)

        if not candidates:
            return SheetSelection(selected_sheet=None, confidence=0.0, status=SelectionStatus.NONE)

        top = candidates[0]
        viable = [candidate for candidate in candidates if candidate.score >= self.threshold]

        if len(viable) > 1 and top.score - candidates[1].score < self.min_gap:
            LOGGER.info(
                "Several sheets look like orders",
                extra={"sheets": [c.name for c in viable], "top_score": top.score},
            )
            return SheetSelection(
                selected_sheet=top.name,
                confidence=top.score,
                status=SelectionStatus.AMBIGUOUS,
                candidates=viable,
            )

        status = SelectionStatus.SELECTED if top.score >= self.threshold else SelectionStatus.NONE
        return SheetSelection(
            selected_sheet=top.name if status == SelectionStatus.SELECTED else None,
            confidence=top.score,
            status=status,
            candidates=candidates,
        )

    def score_sheet(self, sheet: SheetGrid) -> SheetCandidate:
        stats = self.analyze(sheet)
        score = 0.0
        reasons: List[str] = []

        if stats.row_count > 0 and stats.column_count > 0:
            score += 0.1

        if stats.density > 0.5:
            score += stats.density * 0.3
            reasons.append(f"good density ({stats.density:.0%})")

        if 5 <= stats.row_count <= 1000:
            score += 0.2
            reasons.append(f"suitable row count ({stats.row_count})")
        elif stats.row_count > 1000:
            score += 0.1

        if 3 <= stats.column_count <= 20:
            score += 0.1
            reasons.append(f"suitable column count ({stats.column_count})")

        if stats.has_numeric_columns:
            score += 0.2
            reasons.append("has numeric columns")

        if stats.has_text_columns:
            score += 0.1
            reasons.append("has text columns")

        return SheetCandidate(name=sheet.name, score=round(min(score, 1.0), 4), reasons=reasons, stats=stats)

    @staticmethod
    def analyze(sheet: SheetGrid) -> SheetStats:
        filled = 0
        row_count = 0
        column_count = 0
        column_types: Dict[int, Dict[str, int]] = {}

        for cell in sheet.iter_cells():
            if cell.is_empty:
                continue
            filled += 1
            row_count = max(row_count, cell.row)
            column_count = max(column_count, cell.column)
            counts = column_types.setdefault(cell.column, {"numeric": 0, "text": 0})
            if is_number(cell.value):
                counts["numeric"] += 1
            elif isinstance(cell.value, str):
                counts["text"] += 1

        total_cells = row_count * column_count
        numeric_columns = sum(
            1 for c in column_types.values() if c["numeric"] > c["text"] and c["numeric"] > 3
        )
        text_columns = sum(1 for c in column_types.values() if c["text"] > c["numeric"] and c["text"] > 3)

        return SheetStats(
            row_count=row_count,
            column_count=column_count,
            density=filled / total_cells if total_cells else 0.0,
            has_numeric_columns=numeric_columns >= 1,
            has_text_columns=text_columns >= 1,
        )
