"""ORM models for payroll execution."""

from payroll_execution.models.base import Base, TimestampMixin
from payroll_execution.models.benefits import AncillaryBenefit, BenefitApplication
from payroll_execution.models.enums import (
    BankStatus,
    BenefitKind,
    BenefitReviewAction,
    BenefitReviewStatus,
    PaymentStatus,
    PayrollRunStatus,
    RefundSource,
    RefundStatus,
    RunAction,
)
from payroll_execution.models.payroll import (
    ApprovalLedgerEntry,
    EmployeePayrollDetail,
    PayrollRun,
)
from payroll_execution.models.refunds import Refund

__all__ = [
    "Base",
    "TimestampMixin",
    "AncillaryBenefit",
    "BenefitApplication",
    "ApprovalLedgerEntry",
    "EmployeePayrollDetail",
    "PayrollRun",
    "Refund",
    "BankStatus",
    "BenefitKind",
    "BenefitReviewAction",
    "BenefitReviewStatus",
    "PaymentStatus",
    "PayrollRunStatus",
    "RefundSource",
    "RefundStatus",
    "RunAction",
]
