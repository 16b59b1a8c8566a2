"""Idempotency fingerprint for draft order creation."""

import hashlib
from typing import Iterable, Optional

from order_intake.schemas.order import CanonicalOrder, LineItem
from order_intake.services.parsing.normalizer import normalize_sku


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def line_signature(line_items: Iterable[LineItem]) -> str:
    """Order-independent hash of the lines' identifiers and quantities."""
    rows = sorted(
        f"{normalize_sku(item.sku) or ''}|{(item.gtin or '').strip()}|{item.quantity:.2f}"
        for item in line_items
    )
    return _sha256("\n".join(rows))


def normalize_customer_id(customer_id: Optional[str]) -> str:
    return (customer_id or "").strip().lower()


def compute_fingerprint(
    file_sha256: str,
    organization_id: str,
    customer_id: Optional[str],
    line_items: Iterable[LineItem],
) -> str:
    parts = [
        file_sha256,
        organization_id,
        normalize_customer_id(customer_id),
        line_signature(line_items),
    ]
    return _sha256("|".join(parts))


def fingerprint_order(order: CanonicalOrder, organization_id: str) -> str:
    return compute_fingerprint(
        order.metadata.file_sha256,
        organization_id,
        order.customer.ledger_customer_id,
        order.line_items,
    )
