"""Unit tests for the individual parsing stages: sheets, headers, scoring and normalization."""

import hashlib

import pytest

from order_intake.schemas.schema_inference import ConfidenceBand, FieldMapping, MatchMethod, StageConfidences
from order_intake.services.parsing.confidence_scorer import ConfidenceScorer
from order_intake.services.parsing.header_detector import HeaderDetector
from order_intake.services.parsing.normalizer import (
    detect_language,
    normalize_currency,
    normalize_gtin,
    normalize_number,
    normalize_sku,
    validate_gtin_check_digit,
)
from order_intake.services.parsing.sheet_selector import SelectionStatus, SheetSelector
from order_intake.services.parsing.workbook_loader import WorkbookLoader


def _mapping(field: str, confidence: float = 1.0) -> FieldMapping:
    return FieldMapping(
        canonical_field=field,
        source_header=field,
        source_column="A",
        column_index=1,
        confidence=confidence,
        method=MatchMethod.EXACT,
    )


class TestConfidenceScorer:

    @pytest.fixture
    def scorer(self):
        return ConfidenceScorer()

    @pytest.mark.parametrize(
        "value,band",
        [
            (0.80, ConfidenceBand.HIGH),
            (0.95, ConfidenceBand.HIGH),
            (0.79, ConfidenceBand.MEDIUM),
            (0.60, ConfidenceBand.MEDIUM),
            (0.59, ConfidenceBand.LOW),
            (0.0, ConfidenceBand.LOW),
        ],
    )
    def test_bands(self, scorer, value, band):
        assert scorer.band(value) == band

    def test_no_mappings_scores_zero(self, scorer):
        assert scorer.score([]) == 0.0

    def test_weighted_score(self, scorer):
        mappings = [_mapping(f) for f in ("quantity", "sku", "customer", "unit_price", "line_total")]
        assert scorer.score(mappings) == pytest.approx(0.85)

    def test_missing_quantity_halves_the_score(self, scorer):
        mappings = [_mapping(f) for f in ("sku", "customer", "unit_price", "line_total")]
        assert scorer.score(mappings) == pytest.approx(0.225)

    def test_three_important_fields_earn_bonus_capped_at_one(self, scorer):
        mappings = [_mapping(f) for f in ("quantity", "sku", "gtin", "product_name", "customer", "unit_price", "line_total")]
        assert scorer.score(mappings) == 1.0

    def test_overall_blends_stages(self, scorer):
        stages = StageConfidences(sheet_selection=1.0, header_detection=0.5, column_mapping=0.8)
        assert scorer.overall(stages) == pytest.approx(0.2 + 0.15 + 0.4)

    def test_thresholds_are_configurable(self):
        scorer = ConfidenceScorer(high_threshold=0.9, medium_threshold=0.7)
        assert scorer.band(0.85) == ConfidenceBand.MEDIUM
        assert scorer.band(0.65) == ConfidenceBand.LOW


class TestSheetSelection:

    def test_two_similar_sheets_are_ambiguous(self, build_workbook, order_rows):
        content = build_workbook(order_rows, title="March", extra_sheets={"April": order_rows})
        workbook = WorkbookLoader().load(content)

        selection = SheetSelector().select(workbook)

        assert selection.status == SelectionStatus.AMBIGUOUS
        assert selection.requires_user_choice
        assert selection.selected_sheet == "March"
        assert {c.name for c in selection.candidates} == {"March", "April"}

    def test_sparse_sheet_loses_to_order_table(self, build_workbook, order_rows):
        content = build_workbook(order_rows, title="Order", extra_sheets={"Notes": [["Call back on Monday"]]})
        workbook = WorkbookLoader().load(content)

        selection = SheetSelector().select(workbook)

        assert selection.status == SelectionStatus.SELECTED
        assert selection.selected_sheet == "Order"

    def test_ambiguous_selection_adds_warning(self, parser, build_workbook, order_rows, received_at):
        content = build_workbook(order_rows, title="March", extra_sheets={"April": order_rows})

        order = parser.parse(
            content,
            case_id="case-002",
            file_sha256=hashlib.sha256(content).hexdigest(),
            received_at=received_at,
        )

        issue = next(i for i in order.issues if i.code == "MULTIPLE_SHEET_CANDIDATES")
        assert issue.severity.value == "warning"
        assert order.metadata.sheets_processed == ["March"]


class TestHeaderDetector:

    def test_header_below_title_row(self, build_workbook, synonyms):
        content = build_workbook([
            ["Purchase order 2026-118"],
            ["SKU", "Description", "Qty", "Price"],
            ["A-1", "Widget", 5, 1.0],
            ["A-2", "Gadget", 3, 2.0],
        ])
        sheet = WorkbookLoader().load(content).sheets[0]

        detection = HeaderDetector(keywords=synonyms.header_keywords).detect(sheet)

        assert detection.header_row == 2
        assert 0.0 < detection.confidence <= 1.0

    def test_no_text_rows_means_no_header(self, build_workbook):
        content = build_workbook([[1, 2, 3], [4, 5, 6]])
        sheet = WorkbookLoader().load(content).sheets[0]

        assert HeaderDetector().detect(sheet).header_row is None

    def test_extract_headers_skips_blank_cells(self, build_workbook):
        content = build_workbook([["SKU", None, "  ", "Qty"]])
        sheet = WorkbookLoader().load(content).sheets[0]

        headers = HeaderDetector.extract_headers(sheet, 1)

        assert [(h.text, h.column) for h in headers] == [("SKU", "A"), ("Qty", "D")]


class TestNormalizer:

    @pytest.mark.parametrize(
        "raw,expected",
        [
            (12, 12.0),
            ("1,234.56", 1234.56),
            ("1.234,56", 1234.56),
            ("1,234", 1234.0),
            ("12,5", 12.5),
            ("$12.50", 12.5),
            ("۱۲۳", 123.0),
            ("abc", None),
            ("", None),
            (None, None),
            (True, None),
        ],
    )
    def test_normalize_number(self, raw, expected):
        assert normalize_number(raw) == expected

    def test_currency_from_value_then_format(self):
        assert normalize_currency("€5") == (5.0, "EUR")
        assert normalize_currency(7.5, "[$$-409]#,##0.00") == (7.5, "USD")
        assert normalize_currency(7.5, "General") == (7.5, None)

    def test_sku_is_trimmed_and_upper_cased(self):
        assert normalize_sku("  abc-001 ") == "ABC-001"
        assert normalize_sku(1001.0) == "1001"

    @pytest.mark.parametrize("gtin", ["4006381333931", "036000291452", "96385074"])
    def test_valid_check_digits(self, gtin):
        assert validate_gtin_check_digit(gtin)

    @pytest.mark.parametrize("gtin", ["4006381333932", "12345", "abcdefghijklm", ""])
    def test_invalid_check_digits(self, gtin):
        assert not validate_gtin_check_digit(gtin)

    def test_normalize_gtin(self):
        assert normalize_gtin(4006381333931.0) == "4006381333931"
        assert normalize_gtin("4006-3813-3393-1") == "4006381333931"
        assert normalize_gtin("123") is None

    def test_detect_language(self):
        assert detect_language(["شرح کالا", "تعداد", "Qty"]) == "fa"
        assert detect_language(["Description", "Qty", "Price", "تعداد"]) == "en"
        assert detect_language([None, ""]) is None
