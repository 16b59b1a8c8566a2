"""Exactly-once draft order creation guarded by the order fingerprint."""

from typing import Any, Dict

from order_intake.core.exceptions import ValidationError
from order_intake.repositories.fingerprint_repository import FingerprintRepository
from order_intake.schemas.order import CanonicalOrder
from order_intake.services.fingerprint import fingerprint_order
from order_intake.services.ledger.ledger_client import LedgerClient
from order_intake.utils.logging import get_logger

LOGGER = get_logger(__name__)

EXTERNAL_ORDER_KEY_FIELD = "cf_external_order_key"


def build_sales_order_payload(order: CanonicalOrder, fingerprint: str) -> Dict[str, Any]:
    """Ledger payload; prices come from the ledger's item rates, not the spreadsheet.

    The fingerprint is sent as the reference number so an order created by an
    attempt that failed afterwards can be found again.
    """
    case_id = order.metadata.case_id
    if not order.customer.ledger_customer_id:
        raise ValidationError(f"Case {case_id}: customer must be resolved before creating a draft order")

    missing = [item.line_number for item in order.line_items if not item.ledger_item_id]
    if missing:
        raise ValidationError(f"Case {case_id}: lines {missing} have no resolved item")

    return {
        "customer_id": order.customer.ledger_customer_id,
        "reference_number": fingerprint,
        "line_items": [
            {"item_id": item.ledger_item_id, "quantity": item.quantity}
            for item in order.line_items
        ],
        "custom_fields": [{"api_name": EXTERNAL_ORDER_KEY_FIELD, "value": fingerprint}],
        "notes": f"Created from spreadsheet {order.metadata.source_filename or ''} (case {case_id})".strip(),
    }


class DraftOrderService:
    """Creates at most one ledger draft order per fingerprint.

    Claim outcomes:

    - no record: this case owns the fingerprint, create the order
    - ``created``: duplicate, return the stored order
    - held by another case (in flight or queued): duplicate, no ledger call
    - abandoned by another case: take it over, then proceed as the owner
    - held by this case: an earlier attempt may have reached the ledger, so
      look the order up by its external key before creating
    """

    def __init__(self, fingerprints: FingerprintRepository, ledger: LedgerClient, organization_id: str = ""):
        self.fingerprints = fingerprints
        self.ledger = ledger
        self.organization_id = organization_id

    async def create(self, case_id: str, order: CanonicalOrder) -> Dict[str, Any]:
        fingerprint = fingerprint_order(order, self.organization_id)
        payload = build_sales_order_payload(order, fingerprint)

        existing = await self.fingerprints.claim(fingerprint, case_id)
        if existing is not None:
            if existing.status == "created" or (existing.case_id != case_id and existing.status != "abandoned"):
                LOGGER.info(
                    f"Duplicate submission for case {case_id}",
                    extra={"case_id": case_id, "original_case_id": existing.case_id, "status": existing.status},
                )
                return {
                    "is_duplicate": True,
                    "fingerprint": fingerprint,
                    "original_case_id": existing.case_id,
                    "salesorder_id": existing.zoho_order_id,
                    "salesorder_number": existing.zoho_order_number,
                }

            original_case_id = existing.case_id
            if existing.case_id != case_id:
                LOGGER.info(
                    f"Case {case_id} takes over abandoned fingerprint from case {existing.case_id}",
                    extra={"case_id": case_id, "fingerprint": fingerprint},
                )
                await self.fingerprints.take_over(fingerprint, case_id)

            found = await self.ledger.find_by_external_key(fingerprint)
            if found is not None:
                await self.fingerprints.mark_created(fingerprint, found["salesorder_id"], found.get("salesorder_number"))
                LOGGER.info(
                    f"Draft order {found.get('salesorder_number')} already in the ledger for case {case_id}",
                    extra={"case_id": case_id, "salesorder_id": found["salesorder_id"]},
                )
                return {
                    "is_duplicate": True,
                    "fingerprint": fingerprint,
                    "original_case_id": original_case_id,
                    **found,
                }

        created = await self.ledger.create_draft_order(payload)
        await self.fingerprints.mark_created(fingerprint, created["salesorder_id"], created.get("salesorder_number"))

        LOGGER.info(
            f"Draft order {created.get('salesorder_number')} created for case {case_id}",
            extra={"case_id": case_id, "salesorder_id": created["salesorder_id"]},
        )
        return {"is_duplicate": False, "fingerprint": fingerprint, **created}

    async def queue(self, case_id: str, order: CanonicalOrder) -> Dict[str, Any]:
        """Park the fingerprint as queued while the ledger is unreachable."""
        fingerprint = fingerprint_order(order, self.organization_id)
        existing = await self.fingerprints.claim(fingerprint, case_id)
        if existing is None or existing.case_id == case_id:
            await self.fingerprints.mark_queued(fingerprint)

        LOGGER.warning(f"Case {case_id} queued for the ledger", extra={"fingerprint": fingerprint})
        return {"fingerprint": fingerprint, "status": "queued"}

    async def abandon(self, case_id: str, order: CanonicalOrder) -> Dict[str, Any]:
        """Release this case's fingerprint so a later submission of the same order can go through."""
        fingerprint = fingerprint_order(order, self.organization_id)
        record = await self.fingerprints.get_by_id(fingerprint)
        if record is None or record.case_id != case_id or record.status == "created":
            return {"fingerprint": fingerprint, "status": record.status if record else None}

        await self.fingerprints.mark_abandoned(fingerprint)
        LOGGER.warning(f"Case {case_id} abandoned its draft order", extra={"fingerprint": fingerprint})
        return {"fingerprint": fingerprint, "status": "abandoned"}
