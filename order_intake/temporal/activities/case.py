"""Activities persisting case transitions and notifying the intake channel."""

from typing import Any, Dict, Optional

from temporalio import activity

from order_intake.core.config import settings
from order_intake.core.database import async_session_maker
from order_intake.schemas.case import CaseStatus
from order_intake.schemas.order import CanonicalOrder
from order_intake.services.case_service import CaseService
from order_intake.services.notification_service import NotificationService
from order_intake.temporal.activities.common import NON_RETRYABLE, to_application_error
from order_intake.temporal.core.activity_registry import ActivityRegistry
from order_intake.utils.logging import get_logger

LOGGER = get_logger(__name__)


@ActivityRegistry.register("orders", "update_case")
@activity.defn
async def update_case(
    case_id: str,
    status: str,
    current_step: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> bool:
    """Persist a case transition and append its audit event.

    ``details`` may carry the case identity (creates the case on first
    call), ``order``, ``actor``, ``event_type``, ``payload`` and projection
    fields such as ``zoho_order_id`` or ``last_error``.
    """
    details = dict(details or {})
    order = details.pop("order", None)

    async with async_session_maker() as session:
        service = CaseService(session)
        try:
            if details.get("tenant_id") and details.get("user_id"):
                await service.create_case(
                    case_id=case_id,
                    tenant_id=details["tenant_id"],
                    user_id=details["user_id"],
                    correlation_id=details.get("correlation_id") or case_id,
                    file_blob_reference=details.get("file_blob_reference"),
                )
            await service.transition(
                case_id,
                CaseStatus(status),
                current_step=current_step,
                event_type=details.get("event_type", "status_changed"),
                actor=details.get("actor"),
                correlation_id=details.get("correlation_id"),
                payload=details.get("payload"),
                order=CanonicalOrder.model_validate(order) if order else None,
                **{
                    key: details[key]
                    for key in ("file_blob_reference", "file_sha256", "zoho_order_id", "zoho_order_number", "last_error")
                    if key in details
                },
            )
        except NON_RETRYABLE as e:
            raise to_application_error(e)
    return True


@ActivityRegistry.register("orders", "notify_user")
@activity.defn
async def notify_user(
    case_id: str,
    notification_type: str,
    user_id: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
    recipient_id: Optional[str] = None,
) -> Dict[str, Any]:
    service = NotificationService.from_settings(settings.integrations)
    return await service.notify(case_id, notification_type, user_id, payload, recipient_id)
