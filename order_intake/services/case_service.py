"""Order case aggregate: lifecycle transitions, audit events, corrections and selections.

Case rows live in ``order_cases`` and are mutated only through
:meth:`CaseService.transition`, which validates the status graph and appends
a ``case_events`` entry for every change. Corrections and selections are pure
functions over :class:`CanonicalOrder` so the workflow activities can apply
them without a database round trip.
"""

import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from order_intake.core.exceptions import CaseNotFoundError, InvalidTransitionError, ValidationError
from order_intake.database.models import OrderCaseRecord
from order_intake.repositories.case_repository import CaseEventRepository, CaseRepository
from order_intake.schemas.case import CaseEvent, CaseStatus, OrderCase
from order_intake.schemas.order import CanonicalOrder, Correction, ResolutionStatus, Selection
from order_intake.services.parsing.normalizer import (
    normalize_gtin,
    normalize_number,
    normalize_sku,
    normalize_string,
)
from order_intake.services.parsing.synonyms import CANONICAL_FIELDS
from order_intake.services.parsing.validator import OrderValidator, ensure_non_negative_quantity
from order_intake.utils.logging import get_logger

LOGGER = get_logger(__name__)

MAPPING_PREFIX = "mapping."
COLUMN_PATTERN = re.compile(r"^[A-Z]{1,3}$")
LINE_PATH_PATTERN = re.compile(r"^line_items\.(\d+)\.(\w+)$")
LINE_FIELDS = {"quantity", "unit_price", "line_total", "sku", "gtin", "description", "product_name"}


def split_corrections(corrections: Sequence[Correction]) -> Tuple[Dict[str, Optional[str]], List[Correction]]:
    """Separate column re-mappings from value corrections.

    ``mapping.<field>`` corrections carry a column letter (or null to unmap)
    and require a re-parse; everything else edits the order in place.
    """
    overrides: Dict[str, Optional[str]] = {}
    values: List[Correction] = []
    for correction in corrections:
        if not correction.field_path.startswith(MAPPING_PREFIX):
            values.append(correction)
            continue

        field = correction.field_path[len(MAPPING_PREFIX):]
        if field not in CANONICAL_FIELDS:
            raise ValidationError(f"Unknown field in correction path: {correction.field_path}")

        column = correction.corrected_value
        if column is not None:
            column = str(column).strip().upper()
            if not COLUMN_PATTERN.match(column):
                raise ValidationError(f"Invalid column '{correction.corrected_value}' for {correction.field_path}")
        overrides[field] = column
    return overrides, values


def apply_corrections(
    order: CanonicalOrder,
    corrections: Sequence[Correction],
    validator: Optional[OrderValidator] = None,
) -> CanonicalOrder:
    """Return a new order with value corrections applied and issues re-validated.

    Raises:
        ValidationError: On an unknown path, a missing line or a negative quantity
    """
    validator = validator or OrderValidator()
    updated = order.model_copy(deep=True)
    case_id = updated.metadata.case_id

    for correction in corrections:
        path = correction.field_path
        if path == "customer.name":
            updated.customer.input_name = normalize_string(correction.corrected_value)
            updated.customer.resolution_status = ResolutionStatus.UNRESOLVED
            updated.customer.ledger_customer_id = None
            updated.customer.ledger_customer_name = None
            updated.customer.candidates = []
            continue

        match = LINE_PATH_PATTERN.match(path)
        if not match or match.group(2) not in LINE_FIELDS:
            raise ValidationError(f"Case {case_id}: unsupported correction path '{path}'")

        line_number, field = int(match.group(1)), match.group(2)
        item = updated.line(line_number)
        if item is None:
            raise ValidationError(f"Case {case_id}: correction targets unknown line {line_number}")

        value = correction.corrected_value
        if field == "quantity":
            quantity = normalize_number(value)
            if quantity is None:
                raise ValidationError(f"Case {case_id}: line {line_number} quantity '{value}' is not a number")
            ensure_non_negative_quantity(quantity, line_number, case_id)
            item.quantity = quantity
            item.quantity_confirmed = True
        elif field in ("unit_price", "line_total"):
            setattr(item, field, normalize_number(value))
        elif field == "sku":
            item.sku = normalize_sku(value)
            item.ledger_item_id = None
            item.resolution_status = ResolutionStatus.UNRESOLVED
        elif field == "gtin":
            item.gtin = normalize_gtin(value)
            item.ledger_item_id = None
            item.resolution_status = ResolutionStatus.UNRESOLVED
        else:
            item.description = normalize_string(value)

    updated.corrections.extend(corrections)
    updated.issues = validator.revalidate(updated)
    updated.version += 1
    return updated


def apply_selections(order: CanonicalOrder, selection: Selection) -> CanonicalOrder:
    """Return a new order with the user's customer and item choices applied.

    Raises:
        ValidationError: If a selection names a line that does not exist
    """
    updated = order.model_copy(deep=True)
    case_id = updated.metadata.case_id

    unknown = [n for n in selection.items if updated.line(n) is None]
    if unknown:
        raise ValidationError(f"Case {case_id}: selection targets unknown lines {sorted(unknown)}")

    if selection.customer_external_id:
        customer = updated.customer
        customer.ledger_customer_id = selection.customer_external_id
        customer.ledger_customer_name = next(
            (c.name for c in customer.candidates if c.external_id == selection.customer_external_id),
            customer.ledger_customer_name,
        )
        customer.resolution_status = ResolutionStatus.RESOLVED

    for line_number, item_id in selection.items.items():
        item = updated.line(line_number)
        item.ledger_item_id = item_id
        item.resolution_status = ResolutionStatus.RESOLVED

    updated.selections.append(selection)
    updated.version += 1
    return updated


class CaseService:
    """Database-backed access to order cases."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.cases = CaseRepository(session)
        self.events = CaseEventRepository(session)

    async def create_case(
        self,
        case_id: str,
        tenant_id: str,
        user_id: str,
        correlation_id: str,
        file_blob_reference: Optional[str] = None,
    ) -> OrderCase:
        existing = await self.cases.get_by_id(case_id)
        if existing:
            return await self.get_case(case_id)

        await self.cases.create_case(
            case_id=case_id,
            tenant_id=tenant_id,
            user_id=user_id,
            correlation_id=correlation_id,
            file_blob_reference=file_blob_reference,
        )
        await self.events.append(
            case_id,
            event_type="case_created",
            status=CaseStatus.STORING_FILE.value,
            actor=user_id,
            correlation_id=correlation_id,
            payload={"file_blob_reference": file_blob_reference},
        )
        LOGGER.info("Case created", extra={"case_id": case_id, "tenant_id": tenant_id})
        return await self.get_case(case_id)

    async def get_case(self, case_id: str, include_history: bool = True) -> OrderCase:
        record = await self.cases.get_by_id(case_id)
        if not record:
            raise CaseNotFoundError(f"Case {case_id} not found")
        history = await self.events.list_for_case(case_id) if include_history else []
        return self._to_case(record, history)

    async def list_cases(
        self,
        tenant_id: Optional[str] = None,
        user_id: Optional[str] = None,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> List[OrderCase]:
        records = await self.cases.list_cases(tenant_id, user_id, status, skip, limit)
        return [self._to_case(record, []) for record in records]

    async def transition(
        self,
        case_id: str,
        status: CaseStatus,
        current_step: Optional[str] = None,
        event_type: str = "status_changed",
        actor: Optional[str] = None,
        correlation_id: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
        order: Optional[CanonicalOrder] = None,
        **fields: Any,
    ) -> OrderCase:
        """Move a case to ``status`` and append an audit event.

        Repeating the current status is allowed (activity retries); any other
        move must be an edge of the status graph.

        Raises:
            CaseNotFoundError: If the case does not exist
            InvalidTransitionError: If the move is not allowed
        """
        record = await self.cases.get_by_id(case_id)
        if not record:
            raise CaseNotFoundError(f"Case {case_id} not found")

        current = CaseStatus(record.status)
        if status != current and not current.can_transition_to(status):
            raise InvalidTransitionError(
                f"Case {case_id}: cannot move from {current.value} to {status.value}"
            )

        updates: Dict[str, Any] = {
            "status": status.value,
            "revision": record.revision + 1,
        }
        if current_step is not None:
            updates["current_step"] = current_step
        if correlation_id is not None:
            updates["correlation_id"] = correlation_id
        if order is not None:
            updates["order_snapshot"] = order.model_dump(mode="json")
            updates["file_sha256"] = order.metadata.file_sha256
        for key in ("file_blob_reference", "file_sha256", "zoho_order_id", "zoho_order_number", "last_error"):
            if key in fields:
                updates[key] = fields[key]

        await self.cases.update(case_id, **updates)
        await self.events.append(
            case_id,
            event_type=event_type,
            status=status.value,
            actor=actor,
            correlation_id=correlation_id or record.correlation_id,
            payload={"from": current.value, **(payload or {})},
        )

        LOGGER.info(
            f"Case {case_id}: {current.value} -> {status.value}",
            extra={"case_id": case_id, "step": current_step},
        )
        return await self.get_case(case_id, include_history=False)

    @staticmethod
    def _to_case(record: OrderCaseRecord, history: Sequence[Any]) -> OrderCase:
        return OrderCase(
            case_id=record.case_id,
            tenant_id=record.tenant_id,
            correlation_id=record.correlation_id,
            user_id=record.user_id,
            status=CaseStatus(record.status),
            current_step=record.current_step,
            revision=record.revision,
            file_blob_reference=record.file_blob_reference,
            file_sha256=record.file_sha256,
            order=CanonicalOrder.model_validate(record.order_snapshot) if record.order_snapshot else None,
            zoho_order_id=record.zoho_order_id,
            zoho_order_number=record.zoho_order_number,
            last_error=record.last_error,
            history=[
                CaseEvent(
                    sequence=event.sequence,
                    event_type=event.event_type,
                    status=CaseStatus(event.status),
                    actor=event.actor,
                    correlation_id=event.correlation_id,
                    payload=event.payload or {},
                    occurred_at=event.occurred_at,
                )
                for event in history
            ],
            created_at=record.created_at,
            updated_at=record.updated_at,
        )
