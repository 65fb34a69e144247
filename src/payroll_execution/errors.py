"""Domain errors raised by payroll execution services.

Every error rejects a single operation; none of them leaves partial state
behind and none is fatal to the process.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from payroll_execution.calculators.types import ExceptionReport


class PayrollExecutionError(Exception):
    """Base class for all payroll execution errors."""

    code = "PAYROLL_ERROR"


class AuthorizationError(PayrollExecutionError):
    """Raised when the caller's role may not perform the attempted action."""

    code = "FORBIDDEN"

    def __init__(self, action: str, role: str):
        self.action = action
        self.role = role
        super().__init__(f"Role '{role}' is not permitted to perform '{action}'")


class InvalidTransitionError(PayrollExecutionError):
    """Raised when an action is not legal from the current status."""

    code = "INVALID_TRANSITION"

    def __init__(self, from_status: str, action: str, reason: str | None = None):
        self.from_status = from_status
        self.action = action
        self.reason = reason
        msg = f"Cannot perform '{action}' from status '{from_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class ValidationError(PayrollExecutionError):
    """Raised for missing reasons, malformed amounts and duplicates."""

    code = "VALIDATION_ERROR"


class ExceptionBlockedError(PayrollExecutionError):
    """Raised when publishing a run that still has critical exceptions."""

    code = "EXCEPTIONS_BLOCKING"

    def __init__(self, report: ExceptionReport):
        self.report = report
        super().__init__(
            f"Payroll run has {report.critical_count} critical exception(s) "
            "that must be resolved before publishing"
        )


class NotFoundError(PayrollExecutionError):
    """Raised when a run, pay line, benefit or refund does not exist."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, identifier: object):
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} {identifier} not found")


class ConcurrencyError(PayrollExecutionError):
    """Raised when the run changed underneath the caller; refetch and retry."""

    code = "STALE_STATE"


class StorageUnavailableError(PayrollExecutionError):
    """Raised when the ledger cannot be written or read."""

    code = "STORAGE_UNAVAILABLE"
