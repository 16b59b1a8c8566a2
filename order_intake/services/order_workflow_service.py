"""Starts, signals and queries order case workflows."""

from typing import Any, Dict
from uuid import uuid4

from temporalio.client import Client as TemporalClient
from temporalio.service import RPCError

from order_intake.core.config import settings
from order_intake.core.exceptions import CaseNotFoundError
from order_intake.temporal.core.constants import order_workflow_id
from order_intake.utils.logging import get_logger

LOGGER = get_logger(__name__)

SIGNALS = (
    "file_reuploaded",
    "corrections_submitted",
    "selections_submitted",
    "approval_received",
)


class OrderWorkflowService:
    def __init__(self, temporal_client: TemporalClient, task_queue: str = None):
        self.client = temporal_client
        self.task_queue = task_queue or settings.temporal_task_queue

    async def start_case(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Start the workflow for a new case; the workflow id is derived from the case id."""
        case_id = payload["case_id"]
        correlation_id = payload.get("correlation_id") or str(uuid4())
        workflow_id = order_workflow_id(case_id)

        handle = await self.client.start_workflow(
            "OrderProcessingWorkflow",
            {**payload, "correlation_id": correlation_id},
            id=workflow_id,
            task_queue=self.task_queue,
        )
        LOGGER.info(
            f"Started order workflow {handle.id}",
            extra={"case_id": case_id, "correlation_id": correlation_id},
        )
        return {"case_id": case_id, "workflow_id": handle.id, "correlation_id": correlation_id}

    async def send_signal(self, case_id: str, signal: str, payload: Dict[str, Any]) -> None:
        if signal not in SIGNALS:
            raise ValueError(f"Unknown signal: {signal}")
        handle = self.client.get_workflow_handle(order_workflow_id(case_id))
        try:
            await handle.signal(signal, payload)
        except RPCError as e:
            LOGGER.warning(f"Signal {signal} for case {case_id} failed: {e}")
            raise CaseNotFoundError(f"Case {case_id} has no running workflow", original_error=e)
        LOGGER.info(f"Sent {signal} to case {case_id}")

    async def get_state(self, case_id: str) -> Dict[str, Any]:
        handle = self.client.get_workflow_handle(order_workflow_id(case_id))
        try:
            state = await handle.query("get_current_state")
        except RPCError as e:
            raise CaseNotFoundError(f"Case {case_id} not found", original_error=e)
        return {**state, "caseId": case_id}
