"""Read .xlsx bytes into plain grids.

Parsing never touches openpyxl objects directly; everything downstream works
on :class:`SheetGrid`, which keeps the cell values (formula results where the
file carries cached values), number formats, formulas, merged ranges and the
sheet's visibility.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from io import BytesIO
from typing import Any, Dict, Iterator, List, Optional, Tuple
from zipfile import BadZipFile

from openpyxl import load_workbook
from openpyxl.utils import get_column_letter
from openpyxl.utils.exceptions import InvalidFileException

from order_intake.core.exceptions import BlockedFileError
from order_intake.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass
class GridCell:
    row: int
    column: int
    value: Any = None
    number_format: Optional[str] = None
    formula: Optional[str] = None

    @property
    def address(self) -> str:
        return f"{get_column_letter(self.column)}{self.row}"

    @property
    def column_letter(self) -> str:
        return get_column_letter(self.column)

    @property
    def is_empty(self) -> bool:
        return is_blank(self.value)

    @property
    def display_value(self) -> Optional[str]:
        if self.value is None:
            return None
        if isinstance(self.value, datetime):
            return self.value.date().isoformat() if self.value.time() == datetime.min.time() else self.value.isoformat()
        if isinstance(self.value, date):
            return self.value.isoformat()
        if isinstance(self.value, float) and self.value.is_integer():
            return str(int(self.value))
        return str(self.value)


@dataclass
class MergedRange:
    min_row: int
    min_col: int
    max_row: int
    max_col: int

    @property
    def master_address(self) -> str:
        return f"{get_column_letter(self.min_col)}{self.min_row}"

    @property
    def spans_rows(self) -> bool:
        return self.max_row > self.min_row

    def contains(self, row: int, column: int) -> bool:
        return self.min_row <= row <= self.max_row and self.min_col <= column <= self.max_col


@dataclass
class SheetGrid:
    name: str
    visible: bool = True
    cells: Dict[Tuple[int, int], GridCell] = field(default_factory=dict)
    merged_ranges: List[MergedRange] = field(default_factory=list)

    @property
    def max_row(self) -> int:
        return max((row for row, _ in self.cells), default=0)

    @property
    def max_column(self) -> int:
        return max((column for _, column in self.cells), default=0)

    def cell(self, row: int, column: int) -> Optional[GridCell]:
        return self.cells.get((row, column))

    def value(self, row: int, column: int) -> Any:
        cell = self.cells.get((row, column))
        return cell.value if cell else None

    def row_cells(self, row: int) -> List[GridCell]:
        """Non-empty cells of a row, left to right."""
        return sorted(
            (cell for (r, _), cell in self.cells.items() if r == row and not cell.is_empty),
            key=lambda cell: cell.column,
        )

    def is_row_empty(self, row: int) -> bool:
        return not self.row_cells(row)

    def iter_cells(self) -> Iterator[GridCell]:
        for key in sorted(self.cells):
            yield self.cells[key]

    def merged_range_at(self, row: int, column: int) -> Optional[MergedRange]:
        for merged in self.merged_ranges:
            if merged.contains(row, column):
                return merged
        return None


@dataclass
class WorkbookGrid:
    sheets: List[SheetGrid] = field(default_factory=list)

    def sheet(self, name: str) -> Optional[SheetGrid]:
        for sheet in self.sheets:
            if sheet.name == name:
                return sheet
        return None

    @property
    def sheet_names(self) -> List[str]:
        return [sheet.name for sheet in self.sheets]


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


class WorkbookLoader:
    """Loads workbook bytes with openpyxl.

    The file is opened twice: once for formulas, once for the values Excel
    cached for them.
    """

    def load(self, content: bytes) -> WorkbookGrid:
        try:
            formulas_book = load_workbook(BytesIO(content), data_only=False)
            values_book = load_workbook(BytesIO(content), data_only=True)
        except (InvalidFileException, BadZipFile, KeyError, ValueError, OSError) as e:
            LOGGER.warning("Workbook could not be opened", extra={"error": str(e)})
            raise BlockedFileError(
                "The uploaded file is not a readable .xlsx workbook",
                code="UNREADABLE_FILE",
                original_error=e,
            )

        grid = WorkbookGrid()
        for worksheet in formulas_book.worksheets:
            cached = values_book[worksheet.title]
            sheet = SheetGrid(
                name=worksheet.title,
                visible=worksheet.sheet_state == "visible",
                merged_ranges=[
                    MergedRange(
                        min_row=merged.min_row,
                        min_col=merged.min_col,
                        max_row=merged.max_row,
                        max_col=merged.max_col,
                    )
                    for merged in worksheet.merged_cells.ranges
                ],
            )

            for row in worksheet.iter_rows():
                for cell in row:
                    raw = cell.value
                    if raw is None:
                        continue
                    formula = None
                    value = raw
                    if cell.data_type == "f" or (isinstance(raw, str) and raw.startswith("=")):
                        formula = str(raw)
                        value = cached.cell(row=cell.row, column=cell.column).value
                    sheet.cells[(cell.row, cell.column)] = GridCell(
                        row=cell.row,
                        column=cell.column,
                        value=value,
                        number_format=cell.number_format,
                        formula=formula,
                    )

            grid.sheets.append(sheet)

        LOGGER.info(
            "Workbook loaded",
            extra={"sheets": grid.sheet_names, "cells": sum(len(s.cells) for s in grid.sheets)},
        )
        return grid
