"""Order processing workflow: one durable run per order case.

The workflow drives a case from file storage to a draft order in the
ledger. Every step is an activity, so Temporal's event history is the
checkpoint; human input arrives as signals and is collected in a
:class:`SignalMailbox`. A blocked file loops back to storage when the user
re-uploads, keeping the case id and its audit history. A draft order the
ledger cannot take yet is queued and retried on durable timers.
"""

import asyncio
from datetime import timedelta
from typing import Any, Dict, List, Optional

from temporalio import workflow
from temporalio.exceptions import ActivityError, ApplicationError
from temporalio.exceptions import TimeoutError as ActivityTimeoutError

with workflow.unsafe.imports_passed_through():
    from order_intake.schemas.case import CaseStatus
    from order_intake.temporal.configs.order_processing import (
        AGGRESSIVE_RETRY_POLICY,
        CANCEL_AFTER,
        COMMITTEE_TIMEOUT,
        ESCALATION_AFTER,
        ESCALATION_MANAGER_USER_ID,
        FAST_PATH_ENABLED,
        LEDGER_QUEUE_BACKOFF,
        LEDGER_QUEUE_INITIAL_DELAY,
        LEDGER_QUEUE_MAX_DELAY,
        LEDGER_QUEUE_MAX_RETRIES,
        LEDGER_TIMEOUT,
        LEDGER_UNAVAILABLE_ERROR_TYPES,
        QUEUED_DRAFT_RETRY_POLICY,
        REMINDER_AFTER,
        STANDARD_RETRY_POLICY,
        STEP_TIMEOUT,
        TIMEOUT_WARNING_AFTER,
    )
    from order_intake.temporal.core.workflow_registry import WorkflowRegistry, WorkflowType
    from order_intake.temporal.workflows.mailbox import SignalMailbox

BLOCKING_SEVERITIES = ("error", "blocker")


class CaseEnded(Exception):
    """Internal: stop the case procedure with a final result."""

    def __init__(self, result: Dict[str, Any]):
        super().__init__(result.get("status"))
        self.result = result


@WorkflowRegistry.register(category=WorkflowType.ORDERS)
@workflow.defn
class OrderProcessingWorkflow:
    """Durable state machine for one order case."""

    def __init__(self):
        self._mailbox = SignalMailbox()
        self._case_id: Optional[str] = None
        self._status = CaseStatus.STORING_FILE.value
        self._current_step: Optional[str] = None
        self._last_updated: Optional[str] = None
        self._errors: List[str] = []

    # Signals

    @workflow.signal
    def file_reuploaded(self, payload: Dict[str, Any]) -> None:
        self._mailbox.put("file_reuploaded", payload)

    @workflow.signal
    def corrections_submitted(self, payload: Dict[str, Any]) -> None:
        self._mailbox.put("corrections_submitted", payload)

    @workflow.signal
    def selections_submitted(self, payload: Dict[str, Any]) -> None:
        self._mailbox.put("selections_submitted", payload)

    @workflow.signal
    def approval_received(self, payload: Dict[str, Any]) -> None:
        self._mailbox.put("approval_received", payload)

    @workflow.query
    def get_current_state(self) -> Dict[str, Any]:
        return {
            "caseId": self._case_id,
            "currentStep": self._current_step,
            "status": self._status,
            "lastUpdated": self._last_updated,
            "errors": list(self._errors),
        }

    @workflow.run
    async def run(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        case_input = dict(payload)
        self._case_id = case_input["case_id"]

        while True:
            result = await self._process_case(case_input)
            if result.get("status") != "reupload":
                return result

            # a re-upload is a new request; the case id and its history stay
            case_input = {
                **case_input,
                "file_blob_reference": result["blob_url"],
                "correlation_id": result.get("correlation_id") or str(workflow.uuid4()),
                "reuploaded_by": result.get("submitted_by"),
                "reupload_count": case_input.get("reupload_count", 0) + 1,
            }
            workflow.logger.info(
                f"Case {self._case_id}: restarting after re-upload #{case_input['reupload_count']}"
            )
            if workflow.info().is_continue_as_new_suggested():
                workflow.continue_as_new(case_input)

    async def _process_case(self, case_input: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return await self._run_steps(case_input)
        except CaseEnded as ended:
            return ended.result
        except ActivityError as e:
            return await self._fail(case_input, self._error_message(e))

    async def _run_steps(self, case_input: Dict[str, Any]) -> Dict[str, Any]:
        case_id = case_input["case_id"]
        user_id = case_input.get("user_id")

        # storing_file
        reupload = bool(case_input.get("reupload_count"))
        await self._update_case(
            case_input,
            CaseStatus.STORING_FILE,
            "store_file",
            {
                "tenant_id": case_input.get("tenant_id"),
                "user_id": user_id,
                "actor": case_input.get("reuploaded_by") if reupload else user_id,
                "correlation_id": case_input.get("correlation_id"),
                "file_blob_reference": case_input.get("file_blob_reference"),
                "event_type": "file_reuploaded" if reupload else "case_started",
            },
        )
        stored = await self._activity("store_file", case_id, case_input["file_blob_reference"])

        # parsing
        await self._update_case(case_input, CaseStatus.PARSING, "parse_workbook", {"file_sha256": stored["sha256"]})
        try:
            parsed = await self._activity(
                "parse_workbook",
                case_id,
                stored["stored_path"],
                stored["sha256"],
                workflow.now().isoformat(),
                case_input.get("tenant_id"),
                stored.get("filename"),
                None,
            )
        except ActivityError as e:
            if isinstance(e.cause, ApplicationError) and e.cause.type == "BlockedFileError":
                return await self._handle_blocked(case_input, e.cause)
            raise
        order = parsed["order"]

        # running_committee
        await self._update_case(case_input, CaseStatus.RUNNING_COMMITTEE, "run_committee", {"order": order})
        verdict = await self._activity("run_committee", case_id, order, timeout=COMMITTEE_TIMEOUT)

        if self._needs_review(parsed, verdict):
            disagreements = verdict.get("disagreements", [])
            ambiguous_fields = verdict.get("ambiguous_fields", [])
            while True:
                submission = await self._await_human(
                    case_input,
                    "corrections_submitted",
                    CaseStatus.AWAITING_CORRECTIONS,
                    "issues",
                    {
                        "issues": [i for i in order.get("issues", []) if i.get("severity") != "info"],
                        "band": parsed.get("band"),
                        "mapping_confidence": parsed.get("mapping_confidence"),
                        "disagreements": disagreements,
                        "ambiguous_fields": ambiguous_fields,
                    },
                    order=order,
                )
                corrected = await self._activity(
                    "apply_corrections", case_id, order, submission, stored["stored_path"]
                )
                order = corrected["order"]
                if not self._outstanding_issues(order):
                    break
                # reviewer disagreements are settled by the first round of corrections
                disagreements, ambiguous_fields = [], []

        # resolving_customer
        await self._update_case(case_input, CaseStatus.RESOLVING_CUSTOMER, "resolve_customer", {"order": order})
        customer = await self._activity("resolve_customer", case_id, order)
        order = customer["order"]
        while not customer["resolved"]:
            submission = await self._await_human(
                case_input,
                "selections_submitted",
                CaseStatus.AWAITING_CUSTOMER_SELECTION,
                "selection_needed",
                {"kind": "customer", "customer": order.get("customer")},
                order=order,
            )
            selected = await self._activity("apply_selections", case_id, order, submission)
            order = selected["order"]
            customer = {"order": order, "resolved": bool(order["customer"].get("ledger_customer_id"))}

        # resolving_items
        await self._update_case(case_input, CaseStatus.RESOLVING_ITEMS, "resolve_items", {"order": order})
        items = await self._activity("resolve_items", case_id, order)
        order = items["order"]
        unresolved = items["unresolved_lines"]
        while unresolved:
            submission = await self._await_human(
                case_input,
                "selections_submitted",
                CaseStatus.AWAITING_ITEM_SELECTION,
                "selection_needed",
                {
                    "kind": "items",
                    "lines": [li for li in order.get("line_items", []) if li["line_number"] in unresolved],
                },
                order=order,
            )
            selected = await self._activity("apply_selections", case_id, order, submission)
            order = selected["order"]
            unresolved = [li["line_number"] for li in order["line_items"] if not li.get("ledger_item_id")]

        # awaiting_approval
        approval = await self._await_human(
            case_input,
            "approval_received",
            CaseStatus.AWAITING_APPROVAL,
            "ready_for_approval",
            {"order": order},
            order=order,
        )
        if not approval.get("approved"):
            reason = approval.get("comments") or "Rejected by approver"
            await self._update_case(
                case_input,
                CaseStatus.CANCELLED,
                "cancelled",
                {"actor": approval.get("approved_by"), "event_type": "rejected", "payload": {"reason": reason}},
            )
            return {"status": CaseStatus.CANCELLED.value, "case_id": case_id, "reason": reason}

        # creating_zoho_draft
        await self._update_case(
            case_input,
            CaseStatus.CREATING_ZOHO_DRAFT,
            "create_draft_order",
            {"actor": approval.get("approved_by"), "event_type": "approved"},
        )
        try:
            draft = await self._activity(
                "create_draft_order",
                case_id,
                order,
                timeout=LEDGER_TIMEOUT,
                retry_policy=AGGRESSIVE_RETRY_POLICY,
            )
        except ActivityError as e:
            if not self._ledger_unavailable(e):
                await self._abandon_draft(case_input, order, self._error_message(e))
            draft = await self._retry_queued_draft(case_input, order, e)

        return await self._complete(case_input, draft)

    # Branches

    async def _complete(self, case_input: Dict[str, Any], draft: Dict[str, Any]) -> Dict[str, Any]:
        case_id = case_input["case_id"]
        await self._update_case(
            case_input,
            CaseStatus.COMPLETED,
            "completed",
            {
                "zoho_order_id": draft.get("salesorder_id"),
                "zoho_order_number": draft.get("salesorder_number"),
                "payload": {"is_duplicate": draft.get("is_duplicate", False)},
            },
        )
        await self._notify(case_input, "complete", {
            "salesorder_id": draft.get("salesorder_id"),
            "salesorder_number": draft.get("salesorder_number"),
            "is_duplicate": draft.get("is_duplicate", False),
        })
        return {
            "status": CaseStatus.COMPLETED.value,
            "case_id": case_id,
            "is_duplicate": draft.get("is_duplicate", False),
            "salesorder_id": draft.get("salesorder_id"),
            "salesorder_number": draft.get("salesorder_number"),
        }

    async def _handle_blocked(self, case_input: Dict[str, Any], error: ApplicationError) -> Dict[str, Any]:
        detail = error.details[0] if error.details else {}
        self._errors.append(error.message)
        submission = await self._await_human(
            case_input,
            "file_reuploaded",
            None,
            "blocked",
            {"message": error.message, "code": detail.get("code"), "issues": detail.get("issues", [])},
        )
        return {
            "status": "reupload",
            "blob_url": submission.get("blob_url"),
            "correlation_id": submission.get("correlation_id"),
            "submitted_by": submission.get("submitted_by"),
        }

    async def _retry_queued_draft(
        self, case_input: Dict[str, Any], order: Dict[str, Any], error: ActivityError
    ) -> Dict[str, Any]:
        """Park the draft order and retry it on durable timers until the ledger answers.

        Returns the created draft; abandons the fingerprint and fails the case
        when the retries run out or the ledger rejects the order.
        """
        case_id = case_input["case_id"]
        message = self._error_message(error)
        workflow.logger.warning(f"Case {case_id}: ledger unavailable, queueing draft order: {message}")

        await self._activity("queue_draft_order", case_id, order)
        await self._update_case(
            case_input,
            CaseStatus.QUEUED_FOR_ZOHO,
            "queued_for_zoho",
            {"last_error": message, "payload": {"reason": message}},
        )
        await self._notify(case_input, "issues", {
            "issues": [{
                "code": "ZOHO_UNAVAILABLE",
                "severity": "warning",
                "message": f"Case {case_id}: the ledger is unavailable, the draft order is queued",
            }],
        })

        delay = LEDGER_QUEUE_INITIAL_DELAY
        for attempt in range(1, LEDGER_QUEUE_MAX_RETRIES + 1):
            await asyncio.sleep(delay.total_seconds())
            self._current_step = f"retry_queued_draft_{attempt}"
            try:
                return await self._activity(
                    "create_draft_order",
                    case_id,
                    order,
                    timeout=LEDGER_TIMEOUT,
                    retry_policy=QUEUED_DRAFT_RETRY_POLICY,
                )
            except ActivityError as e:
                message = self._error_message(e)
                if not self._ledger_unavailable(e):
                    break
                workflow.logger.warning(
                    f"Case {case_id}: queued draft order retry {attempt}/{LEDGER_QUEUE_MAX_RETRIES} failed: {message}"
                )
                delay = min(delay * LEDGER_QUEUE_BACKOFF, LEDGER_QUEUE_MAX_DELAY)
        else:
            message = f"Ledger still unavailable after {LEDGER_QUEUE_MAX_RETRIES} queued retries: {message}"

        await self._abandon_draft(case_input, order, message)

    async def _abandon_draft(self, case_input: Dict[str, Any], order: Dict[str, Any], message: str) -> None:
        """Release the fingerprint, then end the case as failed."""
        await self._activity("abandon_draft_order", case_input["case_id"], order)
        raise CaseEnded(await self._fail(case_input, message))

    def _ledger_unavailable(self, error: ActivityError) -> bool:
        cause = error.cause
        if isinstance(cause, ActivityTimeoutError):
            return True
        return isinstance(cause, ApplicationError) and cause.type in LEDGER_UNAVAILABLE_ERROR_TYPES

    def _error_message(self, error: ActivityError) -> str:
        return error.cause.message if isinstance(error.cause, ApplicationError) else str(error.cause or error)

    async def _fail(self, case_input: Dict[str, Any], message: str) -> Dict[str, Any]:
        case_id = case_input["case_id"]
        workflow.logger.error(f"Case {case_id} failed: {message}")
        self._errors.append(message)

        await self._update_case(case_input, CaseStatus.FAILED, "failed", {"last_error": message})
        await self._notify(case_input, "failed", {"message": f"Case {case_id}: {message}"})
        return {"status": CaseStatus.FAILED.value, "case_id": case_id, "error": message}

    def _outstanding_issues(self, order: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Issues that keep the case waiting for corrections."""
        return [
            i for i in order.get("issues", [])
            if i.get("severity") in BLOCKING_SEVERITIES or i.get("requires_confirmation")
        ]

    def _needs_review(self, parsed: Dict[str, Any], verdict: Dict[str, Any]) -> bool:
        fast_path = (
            FAST_PATH_ENABLED
            and parsed.get("band") == "high"
            and not verdict.get("needs_human")
            and not self._outstanding_issues(parsed["order"])
        )
        return not fast_path

    # Human waits

    async def _await_human(
        self,
        case_input: Dict[str, Any],
        kind: str,
        status: Optional[CaseStatus],
        prompt_type: str,
        prompt_payload: Dict[str, Any],
        order: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Prompt the user and wait for ``kind`` through the reminder/escalation ladder.

        Raises CaseEnded with a cancelled result when nobody answers.
        """
        self._mailbox.reset(kind)
        if status is not None:
            details = {"order": order} if order is not None else {}
            await self._update_case(case_input, status, f"waiting_for_{kind}", details)
        else:
            self._current_step = f"waiting_for_{kind}"
        await self._notify(case_input, prompt_type, prompt_payload)

        ladder = (
            (REMINDER_AFTER, "reminder"),
            (ESCALATION_AFTER, "escalation"),
            (TIMEOUT_WARNING_AFTER, "timeout_warning"),
            (CANCEL_AFTER, None),
        )
        for wait, notification in ladder:
            if await self._wait_for(kind, wait):
                return self._mailbox.take(kind)
            if notification is None:
                break
            recipient = ESCALATION_MANAGER_USER_ID if notification == "escalation" else None
            await self._notify(case_input, notification, {"waiting_for": kind}, recipient_id=recipient)

        reason = f"No {kind.replace('_', ' ')} signal received within the wait period"
        workflow.logger.warning(f"Case {case_input['case_id']}: {reason}")
        await self._update_case(
            case_input,
            CaseStatus.CANCELLED,
            "cancelled",
            {"event_type": "wait_timed_out", "payload": {"reason": reason, "waiting_for": kind}},
        )
        await self._notify(case_input, "cancelled", {"reason": reason})
        raise CaseEnded({"status": CaseStatus.CANCELLED.value, "case_id": case_input["case_id"], "reason": reason})

    async def _wait_for(self, kind: str, timeout: timedelta) -> bool:
        try:
            await workflow.wait_condition(lambda: self._mailbox.has(kind), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    # Activity helpers

    async def _activity(
        self,
        name: str,
        *args: Any,
        timeout: timedelta = STEP_TIMEOUT,
        retry_policy=STANDARD_RETRY_POLICY,
    ) -> Any:
        return await workflow.execute_activity(
            name,
            args=list(args),
            start_to_close_timeout=timeout,
            retry_policy=retry_policy,
        )

    async def _update_case(
        self,
        case_input: Dict[str, Any],
        status: CaseStatus,
        step: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._status = status.value
        self._current_step = step
        self._last_updated = workflow.now().isoformat()
        details = dict(details or {})
        details.setdefault("correlation_id", case_input.get("correlation_id"))
        await self._activity("update_case", case_input["case_id"], status.value, step, details)

    async def _notify(
        self,
        case_input: Dict[str, Any],
        notification_type: str,
        payload: Dict[str, Any],
        recipient_id: Optional[str] = None,
    ) -> None:
        await self._activity(
            "notify_user",
            case_input["case_id"],
            notification_type,
            case_input.get("user_id"),
            payload,
            recipient_id,
        )
