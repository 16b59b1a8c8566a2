"""Activities resolving the order's customer and items against the ledger."""

from datetime import datetime, timezone
from typing import Any, Dict

from temporalio import activity

from order_intake.core.config import settings
from order_intake.core.exceptions import ValidationError
from order_intake.schemas.order import CanonicalOrder, ResolutionStatus, Selection
from order_intake.services import case_service
from order_intake.services.ledger.ledger_client import LedgerClient
from order_intake.services.ledger.resolvers import CustomerResolver, ItemResolver
from order_intake.temporal.activities.common import NON_RETRYABLE, to_application_error
from order_intake.temporal.core.activity_registry import ActivityRegistry
from order_intake.utils.logging import get_logger

LOGGER = get_logger(__name__)


@ActivityRegistry.register("orders", "resolve_customer")
@activity.defn
async def resolve_customer(case_id: str, order: Dict[str, Any]) -> Dict[str, Any]:
    canonical = CanonicalOrder.model_validate(order)
    customer = canonical.customer

    if customer.ledger_customer_id:
        return {"order": order, "resolved": True}

    resolution = await CustomerResolver(LedgerClient.from_settings(settings.integrations)).resolve(customer.input_name)
    customer.resolution_status = resolution.status
    customer.candidates = resolution.candidates
    if resolution.status == ResolutionStatus.RESOLVED:
        customer.ledger_customer_id = resolution.external_id
        customer.ledger_customer_name = resolution.name

    LOGGER.info(
        f"Customer resolution for case {case_id}: {resolution.status.value}",
        extra={"case_id": case_id, "method": resolution.method},
    )
    return {
        "order": canonical.model_dump(mode="json"),
        "resolved": customer.ledger_customer_id is not None,
    }


@ActivityRegistry.register("orders", "resolve_items")
@activity.defn
async def resolve_items(case_id: str, order: Dict[str, Any]) -> Dict[str, Any]:
    canonical = CanonicalOrder.model_validate(order)
    resolver = ItemResolver(LedgerClient.from_settings(settings.integrations))

    unresolved = []
    for item in canonical.line_items:
        if item.ledger_item_id:
            continue
        resolution = await resolver.resolve(item)
        item.resolution_status = resolution.status
        item.candidates = resolution.candidates
        if resolution.status == ResolutionStatus.RESOLVED:
            item.ledger_item_id = resolution.external_id
        else:
            unresolved.append(item.line_number)

    LOGGER.info(
        f"Item resolution for case {case_id}: {len(unresolved)} unresolved",
        extra={"case_id": case_id, "unresolved_lines": unresolved},
    )
    return {"order": canonical.model_dump(mode="json"), "unresolved_lines": unresolved}


@ActivityRegistry.register("orders", "apply_selections")
@activity.defn
async def apply_selections(case_id: str, order: Dict[str, Any], submission: Dict[str, Any]) -> Dict[str, Any]:
    """Apply a ``selections_submitted`` payload: ``{selections: {customer: {id}, items: {line: {id}}}}``."""
    canonical = CanonicalOrder.model_validate(order)
    selections = submission.get("selections") or {}

    try:
        items = {}
        for line, choice in (selections.get("items") or {}).items():
            try:
                line_number = int(line)
            except (TypeError, ValueError):
                raise ValidationError(f"Case {case_id}: '{line}' is not a line number")
            item_id = (choice or {}).get("id")
            if item_id:
                items[line_number] = str(item_id)

        customer_id = (selections.get("customer") or {}).get("id")
        selection = Selection(
            customer_external_id=str(customer_id) if customer_id else None,
            items=items,
            actor=submission.get("submitted_by") or "unknown",
            timestamp=submission.get("submitted_at") or datetime.now(timezone.utc),
        )
        updated = case_service.apply_selections(canonical, selection)
    except NON_RETRYABLE as e:
        raise to_application_error(e)

    return {"order": updated.model_dump(mode="json")}
