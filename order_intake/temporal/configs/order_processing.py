"""Configuration for the Order Processing workflow.

Values come from :class:`PolicySettings` so a deployment can tune the
human-wait ladder and retry behaviour through the environment.
"""

from datetime import timedelta

from temporalio.common import RetryPolicy

from order_intake.core.config import settings
from order_intake.core.exceptions import NON_RETRYABLE_ERROR_TYPES
from order_intake.temporal.core.constants import (
    COMMITTEE_ACTIVITY_TIMEOUT_SECONDS,
    DEFAULT_ACTIVITY_TIMEOUT_SECONDS,
    LEDGER_ACTIVITY_TIMEOUT_SECONDS,
)

_policy = settings.policy

# Human wait ladder: reminder -> escalation -> timeout warning -> cancel
REMINDER_AFTER: timedelta = timedelta(hours=_policy.reminder_after_hours)
ESCALATION_AFTER: timedelta = timedelta(hours=_policy.escalation_after_hours)
TIMEOUT_WARNING_AFTER: timedelta = timedelta(hours=_policy.timeout_warning_after_hours)
CANCEL_AFTER: timedelta = timedelta(hours=_policy.cancel_after_hours)

ESCALATION_MANAGER_USER_ID = _policy.escalation_manager_user_id

FAST_PATH_ENABLED: bool = _policy.fast_path_enabled

# Local steps: parse, committee, resolution, case updates
STANDARD_RETRY_POLICY = RetryPolicy(
    maximum_attempts=_policy.standard_max_attempts,
    initial_interval=timedelta(seconds=_policy.standard_initial_interval_seconds),
    maximum_interval=timedelta(seconds=_policy.standard_max_interval_seconds),
    backoff_coefficient=_policy.backoff_coefficient,
    non_retryable_error_types=list(NON_RETRYABLE_ERROR_TYPES),
)

# Draft order creation against the ledger
AGGRESSIVE_RETRY_POLICY = RetryPolicy(
    maximum_attempts=_policy.aggressive_max_attempts,
    initial_interval=timedelta(seconds=_policy.aggressive_initial_interval_seconds),
    maximum_interval=timedelta(seconds=_policy.aggressive_max_interval_seconds),
    backoff_coefficient=_policy.backoff_coefficient,
    non_retryable_error_types=list(NON_RETRYABLE_ERROR_TYPES),
)

STEP_TIMEOUT = timedelta(seconds=DEFAULT_ACTIVITY_TIMEOUT_SECONDS)
COMMITTEE_TIMEOUT = timedelta(seconds=COMMITTEE_ACTIVITY_TIMEOUT_SECONDS)
LEDGER_TIMEOUT = timedelta(seconds=LEDGER_ACTIVITY_TIMEOUT_SECONDS)

# Queued draft orders: one attempt per durable timer, delay doubling up to the cap
LEDGER_QUEUE_MAX_RETRIES: int = _policy.ledger_queue_max_retries
LEDGER_QUEUE_INITIAL_DELAY = timedelta(seconds=_policy.ledger_queue_initial_delay_seconds)
LEDGER_QUEUE_MAX_DELAY = timedelta(seconds=_policy.ledger_queue_max_delay_seconds)
LEDGER_QUEUE_BACKOFF: float = _policy.backoff_coefficient
QUEUED_DRAFT_RETRY_POLICY = RetryPolicy(
    maximum_attempts=1,
    non_retryable_error_types=list(NON_RETRYABLE_ERROR_TYPES),
)

# Ledger failures worth waiting out; anything else fails the case
LEDGER_UNAVAILABLE_ERROR_TYPES = ("LedgerUnavailableError", "APITimeoutError")
