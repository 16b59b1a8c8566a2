"""Error translation shared by the order activities."""

from temporalio.exceptions import ApplicationError

from order_intake.core.exceptions import AppError, BlockedFileError, InvalidTransitionError, ValidationError

NON_RETRYABLE = (ValidationError, BlockedFileError, InvalidTransitionError)


def to_application_error(error: AppError) -> ApplicationError:
    """Wrap a deterministic error so Temporal does not retry it.

    The error type is the exception class name; a blocked file also carries
    its code and issues as the first detail.
    """
    details = []
    if isinstance(error, BlockedFileError):
        details.append({"code": error.code, "issues": error.issues})
    return ApplicationError(str(error), *details, type=type(error).__name__, non_retryable=True)
