"""Activities creating the draft order in the ledger, guarded by the idempotency fingerprint."""

from typing import Any, Dict

from sqlalchemy.ext.asyncio import AsyncSession
from temporalio import activity

from order_intake.core.config import settings
from order_intake.core.database import async_session_maker
from order_intake.core.exceptions import ValidationError
from order_intake.repositories.fingerprint_repository import FingerprintRepository
from order_intake.schemas.order import CanonicalOrder
from order_intake.services.ledger.draft_order_service import DraftOrderService
from order_intake.services.ledger.ledger_client import LedgerClient
from order_intake.temporal.activities.common import to_application_error
from order_intake.temporal.core.activity_registry import ActivityRegistry


def _service(session: AsyncSession) -> DraftOrderService:
    return DraftOrderService(
        FingerprintRepository(session),
        LedgerClient.from_settings(settings.integrations),
        settings.integrations.ledger_organization_id,
    )


@ActivityRegistry.register("orders", "create_draft_order")
@activity.defn
async def create_draft_order(case_id: str, order: Dict[str, Any]) -> Dict[str, Any]:
    """Create the draft sales order once per fingerprint.

    A fingerprint already created, held by another case, or whose order an
    earlier attempt already placed in the ledger returns ``is_duplicate=True``
    without a second create call.
    """
    canonical = CanonicalOrder.model_validate(order)
    async with async_session_maker() as session:
        try:
            return await _service(session).create(case_id, canonical)
        except ValidationError as e:
            raise to_application_error(e)


@ActivityRegistry.register("orders", "queue_draft_order")
@activity.defn
async def queue_draft_order(case_id: str, order: Dict[str, Any]) -> Dict[str, Any]:
    """Park the fingerprint as queued after the ledger stayed unreachable."""
    canonical = CanonicalOrder.model_validate(order)
    async with async_session_maker() as session:
        return await _service(session).queue(case_id, canonical)


@ActivityRegistry.register("orders", "abandon_draft_order")
@activity.defn
async def abandon_draft_order(case_id: str, order: Dict[str, Any]) -> Dict[str, Any]:
    """Release the fingerprint of a case that will never create its order."""
    canonical = CanonicalOrder.model_validate(order)
    async with async_session_maker() as session:
        return await _service(session).abandon(case_id, canonical)
