"""Activities for storing and parsing uploaded spreadsheets."""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from temporalio import activity

from order_intake.core.config import settings
from order_intake.core.exceptions import BlockedFileError, ValidationError
from order_intake.schemas.order import CanonicalOrder, Correction
from order_intake.services import case_service
from order_intake.services.parsing.order_parser import OrderParser
from order_intake.services.storage_service import StorageService
from order_intake.temporal.activities.common import NON_RETRYABLE, to_application_error
from order_intake.temporal.core.activity_registry import ActivityRegistry
from order_intake.utils.logging import get_logger

LOGGER = get_logger(__name__)


def _parser() -> OrderParser:
    return OrderParser.from_settings(
        settings.parser,
        high_threshold=settings.policy.high_confidence_threshold,
        medium_threshold=settings.policy.medium_confidence_threshold,
    )


def _parse_stored(stored_path: str, **parse_kwargs: Any) -> CanonicalOrder:
    """Read and parse a stored workbook; blocking, run it in a worker thread."""
    content = StorageService.from_settings(settings.integrations).read(stored_path)
    return _parser().parse(content, **parse_kwargs)


@ActivityRegistry.register("orders", "store_file")
@activity.defn
async def store_file(case_id: str, blob_reference: str) -> Dict[str, Any]:
    """Copy the uploaded file into intake storage and hash it."""
    storage = StorageService.from_settings(settings.integrations)
    try:
        return await storage.store(case_id, blob_reference)
    except NON_RETRYABLE as e:
        raise to_application_error(e)


@ActivityRegistry.register("orders", "parse_workbook")
@activity.defn
async def parse_workbook(
    case_id: str,
    stored_path: str,
    file_sha256: str,
    received_at: str,
    tenant_id: Optional[str] = None,
    filename: Optional[str] = None,
    mapping_overrides: Optional[Dict[str, Optional[str]]] = None,
) -> Dict[str, Any]:
    """Parse a stored workbook into a canonical order.

    Blocked files and negative quantities are raised as non-retryable
    ``BlockedFileError`` / ``ValidationError`` application errors.
    """
    LOGGER.info(f"Parsing workbook for case {case_id}", extra={"stored_path": stored_path})
    try:
        order = await asyncio.to_thread(
            _parse_stored,
            stored_path,
            case_id=case_id,
            file_sha256=file_sha256,
            received_at=datetime.fromisoformat(received_at),
            tenant_id=tenant_id,
            filename=filename,
            mapping_overrides=mapping_overrides,
        )
    except NON_RETRYABLE as e:
        raise to_application_error(e)

    inference = order.schema_inference
    return {
        "order": order.model_dump(mode="json"),
        "band": inference.band.value if inference else "low",
        "mapping_confidence": inference.mapping_confidence if inference else 0.0,
    }


@ActivityRegistry.register("orders", "apply_corrections")
@activity.defn
async def apply_corrections(
    case_id: str,
    order: Dict[str, Any],
    submission: Dict[str, Any],
    stored_path: Optional[str] = None,
) -> Dict[str, Any]:
    """Apply a ``corrections_submitted`` payload to the order.

    Column re-mappings (``mapping.<field>``) re-parse the stored file with
    manual overrides; value corrections are then replayed on the result.
    """
    current = CanonicalOrder.model_validate(order)
    new_corrections = _corrections_from(submission)

    try:
        all_corrections = current.corrections + new_corrections
        new_overrides, _ = case_service.split_corrections(new_corrections)
        if not new_overrides:
            updated = case_service.apply_corrections(current, new_corrections)
        else:
            if not stored_path:
                raise ValidationError(f"Case {case_id}: column corrections need the stored file")
            overrides, values = case_service.split_corrections(all_corrections)
            try:
                reparsed = await asyncio.to_thread(
                    _parse_stored,
                    stored_path,
                    case_id=case_id,
                    file_sha256=current.metadata.file_sha256,
                    received_at=current.metadata.received_at,
                    tenant_id=current.metadata.tenant_id,
                    filename=current.metadata.source_filename,
                    mapping_overrides=overrides,
                )
            except BlockedFileError as e:
                raise ValidationError(f"Case {case_id}: corrected mapping leaves the file unusable: {e}")
            updated = case_service.apply_corrections(reparsed, values)
            updated.corrections = all_corrections
            updated.version = current.version + 1
    except NON_RETRYABLE as e:
        raise to_application_error(e)

    LOGGER.info(
        f"Applied {len(new_corrections)} corrections to case {case_id}",
        extra={"case_id": case_id, "version": updated.version},
    )
    return {"order": updated.model_dump(mode="json")}


def _corrections_from(submission: Dict[str, Any]) -> List[Correction]:
    actor = submission.get("submitted_by") or "unknown"
    timestamp = submission.get("submitted_at") or datetime.now(timezone.utc)
    corrections = []
    for field_path, change in (submission.get("corrections") or {}).items():
        change = change or {}
        corrections.append(
            Correction(
                field_path=field_path,
                original_value=change.get("original_value"),
                corrected_value=change.get("corrected_value"),
                notes=change.get("notes"),
                actor=actor,
                timestamp=timestamp,
            )
        )
    return corrections
