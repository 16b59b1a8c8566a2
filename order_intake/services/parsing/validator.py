"""Order validation.

Produces the user-facing issue list for a canonical order. Negative
quantities are not an issue but a hard :class:`ValidationError`.
"""

from typing import Any, List, Optional, Sequence

from order_intake.core.exceptions import ValidationError
from order_intake.schemas.order import CanonicalOrder, EvidenceCell, Issue, IssueSeverity, LineItem
from order_intake.services.parsing.normalizer import validate_gtin_check_digit

ABSOLUTE_TOLERANCE = 0.02
RELATIVE_TOLERANCE = 0.01

# Issue codes this module owns; re-validation replaces exactly these.
VALIDATION_CODES = frozenset(
    {
        "MISSING_CUSTOMER",
        "NO_LINE_ITEMS",
        "MISSING_ITEM_IDENTIFIER",
        "ZERO_QUANTITY",
        "INVALID_GTIN",
        "ARITHMETIC_MISMATCH",
        "SUBTOTAL_MISMATCH",
        "TOTAL_MISMATCH",
    }
)


def approx_equal(a: float, b: float) -> bool:
    threshold = max(ABSOLUTE_TOLERANCE, RELATIVE_TOLERANCE * max(abs(a), abs(b)))
    return abs(a - b) <= threshold


def ensure_non_negative_quantity(
    quantity: Optional[float],
    line_number: int,
    case_id: Optional[str] = None,
    evidence: Optional[EvidenceCell] = None,
) -> None:
    """Raise when a quantity is below zero."""
    if quantity is not None and quantity < 0:
        where = f" (cell {evidence.sheet}!{evidence.cell})" if evidence else ""
        prefix = f"Case {case_id}: " if case_id else ""
        raise ValidationError(f"{prefix}line {line_number} has a negative quantity ({quantity:g}){where}")


def _evidence(*cells: Any) -> List[EvidenceCell]:
    return [cell for cell in cells if cell is not None]


class OrderValidator:
    def revalidate(self, order: CanonicalOrder) -> List[Issue]:
        """Replace the validation issues on an edited order, keeping parse-time ones."""
        kept = [issue for issue in order.issues if issue.code not in VALIDATION_CODES]
        return kept + self.validate(order)

    def validate(self, order: CanonicalOrder) -> List[Issue]:
        for item in order.line_items:
            ensure_non_negative_quantity(
                item.quantity, item.line_number, order.metadata.case_id, item.evidence.get("quantity")
            )

        issues: List[Issue] = []
        issues.extend(self.validate_customer(order))
        issues.extend(self.validate_line_items(order.line_items))
        issues.extend(self.validate_arithmetic(order.line_items))
        if order.totals:
            issues.extend(self.validate_totals(order))
        return issues

    def validate_customer(self, order: CanonicalOrder) -> List[Issue]:
        if order.customer.input_name or order.customer.ledger_customer_id:
            return []
        return [
            Issue(
                code="MISSING_CUSTOMER",
                severity=IssueSeverity.ERROR,
                message="Customer name not found in spreadsheet",
                fields=["customer"],
                evidence=order.customer.evidence,
                suggested_user_action="Please provide the customer name",
            )
        ]

    def validate_line_items(self, line_items: Sequence[LineItem]) -> List[Issue]:
        if not line_items:
            return [
                Issue(
                    code="NO_LINE_ITEMS",
                    severity=IssueSeverity.BLOCKER,
                    message="No line items found in spreadsheet",
                    suggested_user_action="Please ensure the spreadsheet contains order lines",
                )
            ]

        issues: List[Issue] = []
        for item in line_items:
            if not item.sku and not item.gtin:
                issues.append(
                    Issue(
                        code="MISSING_ITEM_IDENTIFIER",
                        severity=IssueSeverity.ERROR,
                        message=f"Line {item.line_number}: Neither SKU nor GTIN found",
                        fields=["sku", "gtin"],
                        line_number=item.line_number,
                        evidence=_evidence(item.evidence.get("product_name")),
                        suggested_user_action="Please provide either SKU or GTIN for this item",
                    )
                )

            if item.quantity == 0 and not item.quantity_confirmed:
                issues.append(
                    Issue(
                        code="ZERO_QUANTITY",
                        severity=IssueSeverity.WARNING,
                        message=f"Line {item.line_number}: Quantity is zero",
                        fields=["quantity"],
                        line_number=item.line_number,
                        evidence=_evidence(item.evidence.get("quantity")),
                        suggested_user_action="Confirm the zero quantity or correct it",
                        requires_confirmation=True,
                    )
                )

            if item.gtin and not validate_gtin_check_digit(item.gtin):
                issues.append(
                    Issue(
                        code="INVALID_GTIN",
                        severity=IssueSeverity.WARNING,
                        message=f"Line {item.line_number}: GTIN {item.gtin} has an invalid check digit",
                        fields=["gtin"],
                        line_number=item.line_number,
                        evidence=_evidence(item.evidence.get("gtin")),
                        suggested_user_action="Please verify the barcode",
                    )
                )

        return issues

    def validate_arithmetic(self, line_items: Sequence[LineItem]) -> List[Issue]:
        issues: List[Issue] = []
        for item in line_items:
            if item.unit_price is None or item.line_total is None:
                continue

            calculated = item.quantity * item.unit_price
            if approx_equal(calculated, item.line_total):
                continue

            diff = abs(calculated - item.line_total)
            issues.append(
                Issue(
                    code="ARITHMETIC_MISMATCH",
                    severity=IssueSeverity.WARNING,
                    message=(
                        f"Line {item.line_number}: Calculated total ({calculated:.2f}) differs from "
                        f"spreadsheet total ({item.line_total:.2f}) by {diff:.2f}"
                    ),
                    fields=["quantity", "unit_price", "line_total"],
                    line_number=item.line_number,
                    evidence=_evidence(
                        item.evidence.get("quantity"),
                        item.evidence.get("unit_price"),
                        item.evidence.get("line_total"),
                    ),
                    suggested_user_action="Please verify the quantity, unit price, and line total",
                )
            )
        return issues

    def validate_totals(self, order: CanonicalOrder) -> List[Issue]:
        issues: List[Issue] = []
        totals = order.totals
        calculated = sum(item.line_total for item in order.line_items if item.line_total is not None)

        if totals.subtotal is not None and not approx_equal(calculated, totals.subtotal):
            issues.append(
                Issue(
                    code="SUBTOTAL_MISMATCH",
                    severity=IssueSeverity.WARNING,
                    message=(
                        f"Calculated subtotal ({calculated:.2f}) differs from spreadsheet subtotal "
                        f"({totals.subtotal:.2f}) by {abs(calculated - totals.subtotal):.2f}"
                    ),
                    fields=["subtotal"],
                    evidence=_evidence(totals.evidence.get("subtotal")),
                    suggested_user_action="Please verify the line totals and subtotal",
                )
            )

        if totals.total is not None:
            expected = totals.subtotal if totals.subtotal is not None else calculated
            if totals.tax is not None:
                expected += totals.tax
            if not approx_equal(expected, totals.total):
                issues.append(
                    Issue(
                        code="TOTAL_MISMATCH",
                        severity=IssueSeverity.WARNING,
                        message=(
                            f"Calculated total ({expected:.2f}) differs from spreadsheet total "
                            f"({totals.total:.2f}) by {abs(expected - totals.total):.2f}"
                        ),
                        fields=["total"],
                        evidence=_evidence(totals.evidence.get("total")),
                        suggested_user_action="Please verify the subtotal, tax, and total",
                    )
                )

        return issues
