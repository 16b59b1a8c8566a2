"""Data row extraction with cell evidence.

Rows below the header are read through the column map. Empty rows are
skipped, totals rows are marked, and values hidden behind merged ranges are
taken from the range's top-left cell and flagged.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from openpyxl.utils import column_index_from_string

from order_intake.schemas.order import EvidenceCell
from order_intake.services.parsing.workbook_loader import GridCell, SheetGrid, is_blank

IDENTIFIER_FIELDS = ("sku", "gtin", "product_name")

MERGED_CELL_VALUE = "MERGED_CELL_VALUE"
MULTI_ROW_MERGE = "MULTI_ROW_MERGE"


@dataclass
class ExtractedCell:
    value: Any
    evidence: EvidenceCell


@dataclass
class ExtractedRow:
    row_number: int
    cells: Dict[str, ExtractedCell] = field(default_factory=dict)
    is_total: bool = False
    flags: List[str] = field(default_factory=list)
    labels: List[str] = field(default_factory=list)

    def value(self, field_name: str) -> Any:
        cell = self.cells.get(field_name)
        return cell.value if cell else None


def evidence_for(sheet: SheetGrid, cell: GridCell, address: Optional[str] = None) -> EvidenceCell:
    return EvidenceCell(
        sheet=sheet.name,
        cell=address or cell.address,
        raw_value=cell.value,
        display_value=cell.display_value,
        number_format=cell.number_format,
    )


class RowExtractor:
    def __init__(self, total_keywords: Sequence[str] = (), customer_keywords: Sequence[str] = ()):
        self.total_keywords = tuple(k.lower() for k in total_keywords)
        self.customer_keywords = tuple(k.lower() for k in customer_keywords)

    def extract(self, sheet: SheetGrid, header_row: int, column_map: Dict[str, str]) -> List[ExtractedRow]:
        """Rows after ``header_row`` with a value in at least one mapped column."""
        columns = {name: column_index_from_string(letter) for name, letter in column_map.items()}
        rows: List[ExtractedRow] = []

        for row_number in range(header_row + 1, sheet.max_row + 1):
            if sheet.is_row_empty(row_number):
                continue

            extracted = ExtractedRow(row_number=row_number)
            for field_name, column in columns.items():
                cell, address = self._resolve(sheet, row_number, column, header_row, extracted.flags)
                if cell is None or cell.is_empty:
                    continue
                extracted.cells[field_name] = ExtractedCell(
                    value=cell.value, evidence=evidence_for(sheet, cell, address)
                )

            if not extracted.cells:
                continue

            extracted.labels = [
                cell.value.strip() for cell in sheet.row_cells(row_number) if isinstance(cell.value, str)
            ]
            extracted.is_total = self.is_total_row(sheet, row_number, extracted, tuple(column_map))
            rows.append(extracted)

        return rows

    def is_total_row(
        self,
        sheet: SheetGrid,
        row_number: int,
        extracted: ExtractedRow,
        mapped_fields: Sequence[str],
    ) -> bool:
        for cell in sheet.row_cells(row_number):
            if isinstance(cell.value, str) and self._is_total_label(cell.value):
                return True

        # No identifier at all but a line total: a totals row without a label
        mapped_identifiers = [name for name in IDENTIFIER_FIELDS if name in mapped_fields]
        if mapped_identifiers and "line_total" in mapped_fields:
            identifiers_empty = all(is_blank(extracted.value(name)) for name in mapped_identifiers)
            if identifiers_empty and not is_blank(extracted.value("line_total")):
                return True
        return False

    def extract_customer(
        self,
        sheet: SheetGrid,
        header_row: int,
        rows: Sequence[ExtractedRow],
        customer_mapped: bool,
    ) -> Tuple[Optional[str], List[EvidenceCell]]:
        """Customer name from the mapped column, else from a labelled cell above the table."""
        if customer_mapped:
            for row in rows:
                if row.is_total:
                    continue
                cell = row.cells.get("customer")
                if cell and not is_blank(cell.value):
                    return str(cell.value).strip(), [cell.evidence]
            return None, []

        for row_number in range(1, header_row):
            for cell in sheet.row_cells(row_number):
                if not isinstance(cell.value, str):
                    continue
                label = cell.value.strip().lower()
                if not any(keyword in label for keyword in self.customer_keywords):
                    continue

                for neighbour in (sheet.cell(row_number, cell.column + 1), sheet.cell(row_number + 1, cell.column)):
                    if neighbour and isinstance(neighbour.value, str) and neighbour.value.strip():
                        return neighbour.value.strip(), [evidence_for(sheet, neighbour)]

        return None, []

    def _is_total_label(self, text: str) -> bool:
        label = text.strip().lower().rstrip(":").strip()
        if not label:
            return False
        return any(label == keyword or label.startswith(f"{keyword}:") for keyword in self.total_keywords)

    @staticmethod
    def _resolve(
        sheet: SheetGrid, row_number: int, column: int, header_row: int, flags: List[str]
    ) -> Tuple[Optional[GridCell], Optional[str]]:
        merged = sheet.merged_range_at(row_number, column)
        if merged is None:
            return sheet.cell(row_number, column), None

        if (merged.min_row, merged.min_col) != (row_number, column) and MERGED_CELL_VALUE not in flags:
            flags.append(MERGED_CELL_VALUE)
        if merged.spans_rows and merged.min_row > header_row and MULTI_ROW_MERGE not in flags:
            flags.append(MULTI_ROW_MERGE)
        return sheet.cell(merged.min_row, merged.min_col), merged.master_address
