"""Column type detection from sampled cell values."""

import re
from datetime import date, datetime
from typing import Any, List, Optional, Sequence

from order_intake.schemas.schema_inference import ColumnStats, ColumnType, ColumnTypeProfile
from order_intake.services.parsing.workbook_loader import SheetGrid, is_blank

CURRENCY_SYMBOLS = ("$", "€", "£", "¥", "₹", "ریال", "تومان")

CURRENCY_FORMAT_PATTERNS = [
    re.compile(r"\$"),
    re.compile("€"),
    re.compile("£"),
    re.compile("¥"),
    re.compile("₹"),
    re.compile("ریال"),
    re.compile("تومان"),
    re.compile(r"#,##0\.00"),
    re.compile(r"0\.00"),
]

DEFAULT_SAMPLE_SIZE = 50


def is_currency_format(number_format: Optional[str]) -> bool:
    if not number_format:
        return False
    return any(pattern.search(number_format) for pattern in CURRENCY_FORMAT_PATTERNS)


def is_currency_string(value: str) -> bool:
    return any(symbol in value for symbol in CURRENCY_SYMBOLS)


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_integer_value(value: Any) -> bool:
    """Integral numbers, including floats such as ``10.0`` read back from xlsx."""
    if not is_number(value):
        return False
    return isinstance(value, int) or float(value).is_integer()


class TypeDetector:
    """Classifies a column from up to ``sample_size`` non-empty cells.

    Rules are applied in order: currency (> 50% currency formatted), integer
    (> 80%), decimal/number (> 80% numeric), date (> 70%), text (> 70%),
    otherwise mixed.
    """

    def __init__(self, sample_size: int = DEFAULT_SAMPLE_SIZE):
        self.sample_size = sample_size

    def detect(
        self,
        values: Sequence[Any],
        number_formats: Optional[Sequence[Optional[str]]] = None,
    ) -> ColumnTypeProfile:
        samples: List[Any] = []
        numeric = integer = decimal = currency = dates = text = empty = 0

        for index, value in enumerate(values):
            if len(samples) >= self.sample_size:
                break
            if is_blank(value):
                empty += 1
                continue

            samples.append(value)
            number_format = number_formats[index] if number_formats and index < len(number_formats) else None

            if is_number(value):
                numeric += 1
                if is_integer_value(value):
                    integer += 1
                else:
                    decimal += 1
                if is_currency_format(number_format):
                    currency += 1
            elif isinstance(value, str):
                text += 1
                if is_currency_string(value):
                    currency += 1
            elif isinstance(value, (datetime, date)):
                dates += 1

        non_empty = len(samples)
        stats = ColumnStats(numeric=numeric, text=text, empty=empty, total=non_empty + empty)

        if non_empty == 0:
            return ColumnTypeProfile(detected_type=ColumnType.EMPTY, confidence=1.0, stats=stats)

        head = samples[:5]

        if currency > non_empty * 0.5:
            return ColumnTypeProfile(
                detected_type=ColumnType.CURRENCY, confidence=currency / non_empty, samples=head, stats=stats
            )
        if integer > non_empty * 0.8:
            return ColumnTypeProfile(
                detected_type=ColumnType.INTEGER, confidence=integer / non_empty, samples=head, stats=stats
            )
        if numeric > non_empty * 0.8:
            detected = ColumnType.DECIMAL if decimal > integer else ColumnType.NUMBER
            return ColumnTypeProfile(
                detected_type=detected, confidence=numeric / non_empty, samples=head, stats=stats
            )
        if dates > non_empty * 0.7:
            return ColumnTypeProfile(
                detected_type=ColumnType.DATE, confidence=dates / non_empty, samples=head, stats=stats
            )
        if text > non_empty * 0.7:
            return ColumnTypeProfile(
                detected_type=ColumnType.TEXT, confidence=text / non_empty, samples=head, stats=stats
            )

        largest = max(numeric, text, dates)
        return ColumnTypeProfile(
            detected_type=ColumnType.MIXED, confidence=largest / non_empty, samples=head, stats=stats
        )

    def detect_column(self, sheet: SheetGrid, column: int, start_row: int, end_row: int) -> ColumnTypeProfile:
        """Profile one column of a sheet between two rows (inclusive)."""
        values: List[Any] = []
        formats: List[Optional[str]] = []
        for row in range(start_row, end_row + 1):
            cell = sheet.cell(row, column)
            values.append(cell.value if cell else None)
            formats.append(cell.number_format if cell else None)
        return self.detect(values, formats)
