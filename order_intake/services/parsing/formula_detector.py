"""Formula detection.

Under the default ``strict`` policy any formula blocks the file: the user is
asked to export values only. ``warn`` keeps going with a warning and
``allow`` skips the scan.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List

from order_intake.schemas.order import EvidenceCell, Issue, IssueSeverity
from order_intake.services.parsing.workbook_loader import WorkbookGrid

MAX_REPORTED_CELLS = 10


class FormulaPolicy(str, Enum):
    STRICT = "strict"
    WARN = "warn"
    ALLOW = "allow"


@dataclass
class FormulaCell:
    sheet: str
    cell: str
    formula: str


@dataclass
class FormulaReport:
    formula_cells: List[FormulaCell] = field(default_factory=list)
    severity: IssueSeverity = IssueSeverity.INFO

    @property
    def has_formulas(self) -> bool:
        return bool(self.formula_cells)

    @property
    def blocks(self) -> bool:
        return self.has_formulas and self.severity == IssueSeverity.BLOCKER

    def to_issue(self) -> Issue:
        evidence = [
            EvidenceCell(sheet=fc.sheet, cell=fc.cell, raw_value=fc.formula)
            for fc in self.formula_cells[:MAX_REPORTED_CELLS]
        ]
        count = len(self.formula_cells)
        if self.blocks:
            return Issue(
                code="FORMULAS_BLOCKED",
                severity=IssueSeverity.BLOCKER,
                message=f"Found {count} formula(s) in spreadsheet. Please export as values only.",
                evidence=evidence,
                suggested_user_action="Export the spreadsheet with values only (no formulas) and upload again",
            )
        return Issue(
            code="FORMULAS_WARNING",
            severity=IssueSeverity.WARNING,
            message=f"Found {count} formula(s) in spreadsheet. Cached values were used.",
            evidence=evidence,
            suggested_user_action="For best results, export the spreadsheet with values only",
        )


class FormulaDetector:
    def __init__(self, policy: FormulaPolicy = FormulaPolicy.STRICT):
        self.policy = FormulaPolicy(policy)

    def detect(self, workbook: WorkbookGrid) -> FormulaReport:
        if self.policy == FormulaPolicy.ALLOW:
            return FormulaReport()

        cells: List[FormulaCell] = []
        for sheet in workbook.sheets:
            for cell in sheet.iter_cells():
                if cell.formula:
                    cells.append(FormulaCell(sheet=sheet.name, cell=cell.address, formula=cell.formula))

        if not cells:
            return FormulaReport()

        severity = IssueSeverity.BLOCKER if self.policy == FormulaPolicy.STRICT else IssueSeverity.WARNING
        return FormulaReport(formula_cells=cells, severity=severity)
