"""Deterministic spreadsheet parsing pipeline.

1. formula detection (strict by default)
2. sheet selection
3. header detection
4. schema inference
5. row extraction and customer lookup
6. normalization into line items and totals
7. validation

Files that cannot be parsed raise :class:`BlockedFileError` carrying the
blocking issues; negative quantities raise :class:`ValidationError`.
"""

from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from order_intake.core.config import ParserSettings
from order_intake.core.exceptions import BlockedFileError
from order_intake.schemas.order import (
    CanonicalOrder,
    CustomerInfo,
    EvidenceCell,
    Issue,
    IssueSeverity,
    LineItem,
    OrderMetadata,
    ResolutionStatus,
    Totals,
)
from order_intake.schemas.schema_inference import SchemaInferenceResult
from order_intake.services.parsing.confidence_scorer import ConfidenceScorer
from order_intake.services.parsing.formula_detector import FormulaDetector, FormulaPolicy
from order_intake.services.parsing.header_detector import HeaderDetector
from order_intake.services.parsing.normalizer import (
    detect_language,
    normalize_currency,
    normalize_gtin,
    normalize_number,
    normalize_sku,
    normalize_string,
)
from order_intake.services.parsing.row_extractor import ExtractedRow, RowExtractor
from order_intake.services.parsing.schema_inference_service import SchemaInferenceCoordinator
from order_intake.services.parsing.sheet_selector import SelectionStatus, SheetSelector
from order_intake.services.parsing.synonyms import SynonymConfig, normalize_header
from order_intake.services.parsing.type_detector import TypeDetector
from order_intake.services.parsing.validator import OrderValidator, ensure_non_negative_quantity
from order_intake.services.parsing.workbook_loader import WorkbookLoader
from order_intake.utils.logging import get_logger

LOGGER = get_logger(__name__)

PARSER_VERSION = "1.0.0"


class OrderParser:
    def __init__(
        self,
        synonyms: SynonymConfig,
        formula_policy: FormulaPolicy = FormulaPolicy.STRICT,
        sheet_threshold: float = 0.5,
        sheet_min_gap: float = 0.15,
        max_header_rows: int = 10,
        type_sample_size: int = 50,
        high_threshold: float = 0.80,
        medium_threshold: float = 0.60,
    ):
        self.synonyms = synonyms
        self.loader = WorkbookLoader()
        self.formula_detector = FormulaDetector(formula_policy)
        self.sheet_selector = SheetSelector(threshold=sheet_threshold, min_gap=sheet_min_gap)
        self.header_detector = HeaderDetector(keywords=synonyms.header_keywords, max_rows=max_header_rows)
        self.coordinator = SchemaInferenceCoordinator(
            synonyms,
            type_detector=TypeDetector(sample_size=type_sample_size),
            scorer=ConfidenceScorer(high_threshold=high_threshold, medium_threshold=medium_threshold),
        )
        self.row_extractor = RowExtractor(
            total_keywords=tuple(synonyms.total_keywords) + synonyms.synonyms_for("tax"),
            customer_keywords=synonyms.customer_keywords,
        )
        self.validator = OrderValidator()

    @classmethod
    def from_settings(
        cls, parser_settings: ParserSettings, high_threshold: float = 0.80, medium_threshold: float = 0.60
    ) -> "OrderParser":
        return cls(
            synonyms=SynonymConfig.from_yaml(parser_settings.synonyms_path),
            formula_policy=FormulaPolicy(parser_settings.formula_policy),
            sheet_threshold=parser_settings.sheet_selection_threshold,
            sheet_min_gap=parser_settings.sheet_selection_min_gap,
            max_header_rows=parser_settings.max_header_search_rows,
            type_sample_size=parser_settings.type_sample_size,
            high_threshold=high_threshold,
            medium_threshold=medium_threshold,
        )

    def parse(
        self,
        content: bytes,
        case_id: str,
        file_sha256: str,
        received_at: datetime,
        tenant_id: Optional[str] = None,
        filename: Optional[str] = None,
        mapping_overrides: Optional[Dict[str, str]] = None,
    ) -> CanonicalOrder:
        """Parse workbook bytes into a canonical order.

        Args:
            content: Raw .xlsx bytes
            case_id: Case the file belongs to
            file_sha256: Hash of ``content``
            received_at: When the file was received
            tenant_id: Owning tenant
            filename: Original file name, for display
            mapping_overrides: Canonical field -> column letter chosen by a person

        Returns:
            CanonicalOrder with schema inference and issues attached

        Raises:
            BlockedFileError: The file cannot be parsed deterministically
            ValidationError: A line has a negative quantity
        """
        issues: List[Issue] = []
        workbook = self.loader.load(content)

        formula_report = self.formula_detector.detect(workbook)
        if formula_report.has_formulas:
            issue = formula_report.to_issue()
            if formula_report.blocks:
                self._block(case_id, issue)
            issues.append(issue)

        selection = self.sheet_selector.select(workbook)
        if selection.status == SelectionStatus.NONE or not selection.selected_sheet:
            self._block(
                case_id,
                Issue(
                    code="NO_SUITABLE_SHEET",
                    severity=IssueSeverity.BLOCKER,
                    message="Could not find a suitable sheet with order data",
                    suggested_user_action="Please ensure the spreadsheet contains a sheet with order line items",
                ),
            )
        if selection.requires_user_choice:
            names = ", ".join(c.name for c in selection.candidates)
            issues.append(
                Issue(
                    code="MULTIPLE_SHEET_CANDIDATES",
                    severity=IssueSeverity.WARNING,
                    message=(
                        f'Multiple sheets appear to contain order data. Using "{selection.selected_sheet}" '
                        "but please confirm."
                    ),
                    evidence=[
                        EvidenceCell(sheet=c.name, cell="A1", raw_value=f"Score: {c.score:.0%}")
                        for c in selection.candidates
                    ],
                    suggested_user_action=f"Please confirm which sheet contains the order: {names}",
                )
            )

        sheet = workbook.sheet(selection.selected_sheet)
        detection = self.header_detector.detect(sheet)
        if detection.header_row is None:
            self._block(
                case_id,
                Issue(
                    code="NO_HEADER_ROW",
                    severity=IssueSeverity.BLOCKER,
                    message="Could not detect header row in selected sheet",
                    suggested_user_action="Please ensure the sheet has a header row with column names",
                ),
            )

        inference = self.coordinator.infer(
            sheet,
            detection.header_row,
            sheet_confidence=selection.confidence,
            header_confidence=detection.confidence,
            overrides=mapping_overrides,
        )
        column_map = inference.column_map()

        if "quantity" not in column_map:
            issues.append(
                Issue(
                    code="MISSING_QUANTITY_COLUMN",
                    severity=IssueSeverity.ERROR,
                    message="Could not find a quantity column",
                    fields=["quantity"],
                    suggested_user_action="Please ensure the sheet has a quantity column",
                )
            )

        rows = self.row_extractor.extract(sheet, detection.header_row, column_map)
        customer_name, customer_evidence = self.row_extractor.extract_customer(
            sheet, detection.header_row, rows, customer_mapped="customer" in column_map
        )
        customer = CustomerInfo(
            input_name=customer_name,
            resolution_status=ResolutionStatus.UNRESOLVED if customer_name else ResolutionStatus.NOT_FOUND,
            evidence=customer_evidence,
        )

        line_items = self.build_line_items([row for row in rows if not row.is_total], case_id)
        totals = self.build_totals([row for row in rows if row.is_total])

        texts = [item.description for item in line_items if item.description]
        texts.extend(m.source_header for m in inference.field_mappings)

        order = CanonicalOrder(
            metadata=OrderMetadata(
                case_id=case_id,
                tenant_id=tenant_id,
                received_at=received_at,
                source_filename=filename,
                file_sha256=file_sha256,
                language_hint=detect_language(texts),
                parser_version=PARSER_VERSION,
                contains_formulas=formula_report.has_formulas,
                sheets_processed=[sheet.name],
            ),
            customer=customer,
            line_items=line_items,
            totals=totals,
            schema_inference=inference,
        )
        order.issues = issues + self.validator.validate(order)

        blockers = order.issues_with(IssueSeverity.BLOCKER)
        if blockers:
            self._block(case_id, *blockers)

        LOGGER.info(
            "Workbook parsed",
            extra={
                "case_id": case_id,
                "sheet": sheet.name,
                "line_items": len(line_items),
                "issues": [issue.code for issue in order.issues],
                "band": inference.band.value,
            },
        )
        return order

    def build_line_items(self, rows: Sequence[ExtractedRow], case_id: Optional[str] = None) -> List[LineItem]:
        items: List[LineItem] = []
        for row in rows:
            quantity_cell = row.cells.get("quantity")
            quantity = normalize_number(quantity_cell.value) if quantity_cell else None
            if quantity is None:
                continue

            line_number = len(items) + 1
            ensure_non_negative_quantity(
                quantity, line_number, case_id, quantity_cell.evidence if quantity_cell else None
            )

            unit_price_cell = row.cells.get("unit_price")
            unit_price, currency = (
                normalize_currency(unit_price_cell.value, unit_price_cell.evidence.number_format)
                if unit_price_cell
                else (None, None)
            )

            items.append(
                LineItem(
                    line_number=line_number,
                    description=normalize_string(row.value("product_name")),
                    quantity=quantity,
                    unit_price=unit_price,
                    line_total=normalize_number(row.value("line_total")),
                    sku=normalize_sku(row.value("sku")),
                    gtin=normalize_gtin(row.value("gtin")),
                    currency=currency,
                    source_row=row.row_number,
                    evidence={
                        name: cell.evidence
                        for name, cell in row.cells.items()
                        if name in ("sku", "gtin", "product_name", "quantity", "unit_price", "line_total")
                    },
                    flags=list(row.flags),
                )
            )
        return items

    def build_totals(self, rows: Sequence[ExtractedRow]) -> Optional[Totals]:
        if not rows:
            return None

        values: Dict[str, Tuple[float, EvidenceCell]] = {}
        for row in rows:
            kind = self._total_kind(row)
            cell = row.cells.get(kind) or row.cells.get("line_total")
            if cell is None or kind in values:
                continue
            amount = normalize_number(cell.value)
            if amount is not None:
                values[kind] = (amount, cell.evidence)

        if not values:
            return None
        return Totals(
            subtotal=values["subtotal"][0] if "subtotal" in values else None,
            tax=values["tax"][0] if "tax" in values else None,
            total=values["total"][0] if "total" in values else None,
            evidence={kind: evidence for kind, (_, evidence) in values.items()},
        )

    def _total_kind(self, row: ExtractedRow) -> str:
        labels = [normalize_header(label).rstrip(":").strip() for label in row.labels]
        for kind in ("tax", "subtotal"):
            synonyms = self.synonyms.synonyms_for(kind)
            if any(label in synonyms for label in labels):
                return kind
        return "total"

    @staticmethod
    def _block(case_id: str, *issues: Issue) -> None:
        first = issues[0]
        LOGGER.warning(
            "Workbook blocked",
            extra={"case_id": case_id, "codes": [issue.code for issue in issues]},
        )
        raise BlockedFileError(
            f"Case {case_id}: {first.message}",
            code=first.code,
            issues=[issue.model_dump(mode="json") for issue in issues],
        )
