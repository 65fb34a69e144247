"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Payroll run schemas
# ============================================================================


class PayrollRunCreate(BaseModel):
    """Schema for creating a new payroll run."""

    payroll_period: date
    entity: str = Field(min_length=1, max_length=200)


class PayrollRunResponse(BaseModel):
    """Schema for payroll run response."""

    model_config = ConfigDict(from_attributes=True)

    pay_run_id: UUID
    run_code: str
    payroll_period: date
    entity: str
    status: str
    version: int
    employee_count: int
    exception_count: int
    total_net_pay: Decimal
    created_by: str | None = None
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    published_by: str | None = None
    published_at: datetime | None = None
    approved_by_manager: str | None = None
    manager_approved_at: datetime | None = None
    approved_by_finance: str | None = None
    finance_approved_at: datetime | None = None
    locked_by: str | None = None
    locked_at: datetime | None = None
    rejected_by: str | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None
    unlocked_by: str | None = None
    unlocked_at: datetime | None = None
    unlock_reason: str | None = None
    resubmission_count: int = 0
    payment_status: str
    paid_at: datetime | None = None
    created_at: datetime


class PayrollRunListResponse(BaseModel):
    """Schema for listing payroll runs."""

    items: list[PayrollRunResponse]
    total: int


class TransitionRequest(BaseModel):
    """Body for a run transition; reason is required for rejections and unlock."""

    reason: str | None = None
    expected_version: int | None = Field(default=None, ge=1)


class ResubmitRequest(BaseModel):
    """Body for resubmitting a rejected run."""

    payroll_period: date | None = None
    expected_version: int | None = Field(default=None, ge=1)


class PeriodEditRequest(BaseModel):
    """Body for correcting the period of a draft run."""

    payroll_period: date
    expected_version: int | None = Field(default=None, ge=1)


class LedgerEntryResponse(BaseModel):
    """Schema for one approval ledger entry."""

    model_config = ConfigDict(from_attributes=True)

    ledger_entry_id: int
    actor_id: str
    actor_role: str
    action: str
    from_status: str | None = None
    to_status: str
    reason: str | None = None
    occurred_at: datetime


class HistoryResponse(BaseModel):
    pay_run_id: UUID
    entries: list[LedgerEntryResponse]


# ============================================================================
# Exception schemas
# ============================================================================


class IssueResponse(BaseModel):
    """Schema for a single pay line exception."""

    employee_id: UUID
    code: str
    issue: str
    severity: str


class ExceptionReportResponse(BaseModel):
    """Schema for an exception scan of a run."""

    pay_run_id: UUID
    issues: list[IssueResponse]
    critical_count: int
    warning_count: int
    total_employees: int
    total_net_pay: Decimal
    blocking: bool


# ============================================================================
# Pay line schemas
# ============================================================================


class PayLineInput(BaseModel):
    """One employee's computed figures."""

    employee_id: UUID
    net_pay: Decimal
    base_salary: Decimal = Decimal("0")
    allowances: Decimal = Decimal("0")
    deductions: Decimal = Decimal("0")
    bonus: Decimal = Decimal("0")
    benefit: Decimal = Decimal("0")
    bank_account_number: str | None = None
    bank_status: str | None = None


class PayLineBatch(BaseModel):
    lines: list[PayLineInput] = Field(min_length=1)


class PayLineCorrection(BaseModel):
    """Correction of a flagged pay line."""

    bank_account_number: str | None = None
    net_pay: Decimal | None = None


class PayLineResponse(BaseModel):
    """Schema for pay line response."""

    model_config = ConfigDict(from_attributes=True)

    detail_id: UUID
    pay_run_id: UUID
    employee_id: UUID
    base_salary: Decimal
    allowances: Decimal
    deductions: Decimal
    bonus: Decimal
    benefit: Decimal
    net_pay: Decimal
    bank_status: str
    bank_account_number: str | None = None
    exceptions: str | None = None
    updated_at: datetime | None = None


class PayLineListResponse(BaseModel):
    items: list[PayLineResponse]
    total: int


# ============================================================================
# Benefit schemas
# ============================================================================


class BenefitCreate(BaseModel):
    """Schema for registering a signing bonus or termination benefit."""

    employee_id: UUID
    kind: str
    template_id: UUID
    given_amount: Decimal
    template_name: str | None = None
    termination_id: UUID | None = None


class BenefitAmountUpdate(BaseModel):
    given_amount: Decimal


class BenefitReviewRequest(BaseModel):
    action: str
    reason: str | None = None


class BenefitProcessRequest(BaseModel):
    """Schema for posting an approved benefit onto a run."""

    employee_id: UUID
    pay_run_id: UUID
    given_amount: Decimal


class BenefitResponse(BaseModel):
    """Schema for benefit response."""

    model_config = ConfigDict(from_attributes=True)

    benefit_id: UUID
    employee_id: UUID
    kind: str
    template_id: UUID
    template_name: str | None = None
    termination_id: UUID | None = None
    given_amount: Decimal
    review_status: str
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    rejection_reason: str | None = None
    created_by: str | None = None
    disbursed_in_pay_run_id: UUID | None = None
    disbursed_at: datetime | None = None
    created_at: datetime


class BenefitListResponse(BaseModel):
    items: list[BenefitResponse]
    total: int


class BenefitPostingResponse(BaseModel):
    """Schema for the result of posting a benefit."""

    application_id: UUID
    benefit_id: UUID
    pay_run_id: UUID
    amount: Decimal
    applied_by: str
    applied_at: datetime
    pay_line: PayLineResponse


# ============================================================================
# Refund schemas
# ============================================================================


class RefundCreate(BaseModel):
    employee_id: UUID
    source_type: str
    source_id: UUID
    amount: Decimal
    description: str


class RefundPaidRequest(BaseModel):
    pay_run_id: UUID


class RefundResponse(BaseModel):
    """Schema for refund response."""

    model_config = ConfigDict(from_attributes=True)

    refund_id: UUID
    employee_id: UUID
    source_type: str
    source_id: UUID
    description: str
    amount: Decimal
    status: str
    paid_in_pay_run_id: UUID | None = None
    paid_by: str | None = None
    paid_at: datetime | None = None
    created_at: datetime


class RefundListResponse(BaseModel):
    items: list[RefundResponse]
    total: int


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None
