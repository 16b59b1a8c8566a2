"""Shared constants for Temporal workflows."""

# Workflow ids
ORDER_WORKFLOW_ID_PREFIX = "order-case-"

# Activity start-to-close timeouts
DEFAULT_ACTIVITY_TIMEOUT_SECONDS = 300
COMMITTEE_ACTIVITY_TIMEOUT_SECONDS = 180
LEDGER_ACTIVITY_TIMEOUT_SECONDS = 120


def order_workflow_id(case_id: str) -> str:
    return f"{ORDER_WORKFLOW_ID_PREFIX}{case_id}"
