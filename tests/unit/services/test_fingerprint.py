"""Tests for the draft order idempotency fingerprint."""

from order_intake.schemas.order import LineItem
from order_intake.services.fingerprint import compute_fingerprint, fingerprint_order, line_signature

LINES = [
    LineItem(line_number=1, quantity=10, sku="abc-001"),
    LineItem(line_number=2, quantity=4, gtin="4006381333931"),
]


class TestFingerprint:

    def test_line_order_does_not_matter(self):
        assert line_signature(LINES) == line_signature(list(reversed(LINES)))

    def test_customer_id_is_normalized(self):
        first = compute_fingerprint("a" * 64, "org-1", " CUST-1 ", LINES)
        second = compute_fingerprint("a" * 64, "org-1", "cust-1", LINES)
        assert first == second

    def test_quantity_changes_the_fingerprint(self):
        changed = [LINES[0].model_copy(update={"quantity": 11}), LINES[1]]
        assert compute_fingerprint("a" * 64, "org-1", "c", LINES) != compute_fingerprint("a" * 64, "org-1", "c", changed)

    def test_organization_is_part_of_the_key(self):
        assert compute_fingerprint("a" * 64, "org-1", "c", LINES) != compute_fingerprint("a" * 64, "org-2", "c", LINES)

    def test_fingerprint_order_uses_resolved_customer(self, sample_order):
        sample_order.customer.ledger_customer_id = "cust-9"
        expected = compute_fingerprint("a" * 64, "org-1", "cust-9", sample_order.line_items)
        assert fingerprint_order(sample_order, "org-1") == expected
        assert len(expected) == 64
