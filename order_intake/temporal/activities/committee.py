"""Activity running the reviewer committee over an inferred mapping."""

from typing import Any, Dict

from temporalio import activity

from order_intake.core.config import settings
from order_intake.schemas.order import CanonicalOrder
from order_intake.services.committee.committee_service import CommitteeService
from order_intake.services.committee.evidence_pack import COMMITTEE_FIELDS, EvidencePackBuilder
from order_intake.services.parsing.schema_inference_service import SchemaInferenceCoordinator
from order_intake.temporal.core.activity_registry import ActivityRegistry
from order_intake.utils.logging import get_logger

LOGGER = get_logger(__name__)


@ActivityRegistry.register("orders", "run_committee")
@activity.defn
async def run_committee(case_id: str, order: Dict[str, Any]) -> Dict[str, Any]:
    """Cross-check the deterministic mapping with the reviewer committee.

    Returns the verdict as JSON. Too few reviewer answers raise
    ``ReviewerUnavailableError``, which the step's retry policy retries.
    """
    canonical = CanonicalOrder.model_validate(order)
    inference = canonical.schema_inference
    if inference is None:
        LOGGER.warning(f"Case {case_id} has no schema inference, skipping committee")
        return {"needs_human": True, "consensus": "no_consensus", "skipped": True}

    pack = EvidencePackBuilder().build(
        case_id,
        inference,
        expected_fields=COMMITTEE_FIELDS,
        language=canonical.metadata.language_hint,
    )
    candidates = SchemaInferenceCoordinator.candidate_set(inference, COMMITTEE_FIELDS)
    deterministic_top = SchemaInferenceCoordinator.deterministic_top(inference, COMMITTEE_FIELDS)

    verdict = await CommitteeService.from_settings(settings.committee).review(pack, candidates, deterministic_top)

    LOGGER.info(
        f"Committee verdict for case {case_id}: {verdict.consensus.value}",
        extra={"case_id": case_id, "ambiguous_fields": verdict.ambiguous_fields},
    )
    return verdict.model_dump(mode="json")
