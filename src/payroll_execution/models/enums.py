"""Closed value sets stored in status columns."""

from __future__ import annotations

from enum import Enum


class PayrollRunStatus(str, Enum):
    """Payroll run status values."""

    DRAFT = "draft"
    UNDER_REVIEW = "under_review"
    PUBLISHED = "published"
    MANAGER_APPROVED = "manager_approved"
    MANAGER_REJECTED = "manager_rejected"
    FINANCE_APPROVED = "finance_approved"
    FINANCE_REJECTED = "finance_rejected"
    LOCKED = "locked"


class RunAction(str, Enum):
    """Actions recorded in the approval ledger."""

    CREATE = "create"
    REVIEW = "review"
    PUBLISH = "publish"
    MANAGER_APPROVE = "manager_approve"
    MANAGER_REJECT = "manager_reject"
    FINANCE_APPROVE = "finance_approve"
    FINANCE_REJECT = "finance_reject"
    LOCK = "lock"
    UNLOCK = "unlock"
    RESUBMIT = "resubmit"
    EDIT_PERIOD = "edit_period"


class BankStatus(str, Enum):
    """Bank-transfer readiness of a pay line."""

    READY = "ready"
    MISSING = "missing"
    INVALID = "invalid"


class BenefitKind(str, Enum):
    """Kinds of one-off payouts posted outside the salary computation."""

    SIGNING_BONUS = "signing_bonus"
    TERMINATION_BENEFIT = "termination_benefit"


class BenefitReviewStatus(str, Enum):
    """Review state of an ancillary benefit instance."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class BenefitReviewAction(str, Enum):
    """Decision submitted when reviewing a benefit."""

    APPROVE = "approve"
    REJECT = "reject"


class RefundStatus(str, Enum):
    """Refund payout status."""

    PENDING = "pending"
    PAID = "paid"


class PaymentStatus(str, Enum):
    """Whether a run has been paid out."""

    PENDING = "pending"
    PAID = "paid"


class RefundSource(str, Enum):
    """Record that produced a refund."""

    DISPUTE = "dispute"
    CLAIM = "claim"


def check_in(column: str, enum: type[Enum]) -> str:
    """Build a CHECK constraint expression limiting a column to enum values."""
    values = ", ".join(f"'{member.value}'" for member in enum)
    return f"{column} IN ({values})"
