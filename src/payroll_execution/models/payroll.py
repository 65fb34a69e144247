"""Payroll run, pay line, and approval ledger models."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_execution.models.base import Base, Money, TimestampMixin, UTCDateTime, utcnow
from payroll_execution.models.enums import (
    BankStatus,
    PaymentStatus,
    PayrollRunStatus,
    RunAction,
    check_in,
)


class PayrollRun(Base, TimestampMixin):
    """One payroll computation cycle for one entity and period.

    The actor/timestamp/reason columns are a cache of the approval ledger
    and are only ever written from a ledger replay.
    """

    __tablename__ = "payroll_run"

    pay_run_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    run_code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    payroll_period: Mapped[date] = mapped_column(Date, nullable=False)
    entity: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=PayrollRunStatus.DRAFT.value
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Ledger-derived actor cache
    created_by: Mapped[str | None] = mapped_column(String(64))
    reviewed_by: Mapped[str | None] = mapped_column(String(64))
    reviewed_at: Mapped[datetime | None] = mapped_column(UTCDateTime())
    published_by: Mapped[str | None] = mapped_column(String(64))
    published_at: Mapped[datetime | None] = mapped_column(UTCDateTime())
    approved_by_manager: Mapped[str | None] = mapped_column(String(64))
    manager_approved_at: Mapped[datetime | None] = mapped_column(UTCDateTime())
    approved_by_finance: Mapped[str | None] = mapped_column(String(64))
    finance_approved_at: Mapped[datetime | None] = mapped_column(UTCDateTime())
    locked_by: Mapped[str | None] = mapped_column(String(64))
    locked_at: Mapped[datetime | None] = mapped_column(UTCDateTime())
    rejected_by: Mapped[str | None] = mapped_column(String(64))
    rejected_at: Mapped[datetime | None] = mapped_column(UTCDateTime())
    rejection_reason: Mapped[str | None] = mapped_column(Text)
    unlocked_by: Mapped[str | None] = mapped_column(String(64))
    unlocked_at: Mapped[datetime | None] = mapped_column(UTCDateTime())
    unlock_reason: Mapped[str | None] = mapped_column(Text)
    resubmission_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Summary refreshed on every exception scan
    employee_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    exception_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_net_pay: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))

    # Set when finance approves the run
    payment_status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=PaymentStatus.PENDING.value
    )
    paid_at: Mapped[datetime | None] = mapped_column(UTCDateTime())

    __table_args__ = (
        CheckConstraint(check_in("status", PayrollRunStatus), name="payroll_run_status_check"),
        CheckConstraint(
            check_in("payment_status", PaymentStatus), name="payroll_run_payment_status_check"
        ),
        Index("payroll_run_entity_period_idx", "entity", "payroll_period"),
    )

    pay_lines: Mapped[list[EmployeePayrollDetail]] = relationship(
        back_populates="payroll_run",
        order_by="EmployeePayrollDetail.employee_id",
    )


# At most one run per entity and period that has not been rejected
_OPEN_RUN = PayrollRun.status.not_in(
    [PayrollRunStatus.MANAGER_REJECTED.value, PayrollRunStatus.FINANCE_REJECTED.value]
)
Index(
    "payroll_run_open_period_unique",
    func.lower(PayrollRun.entity),
    PayrollRun.payroll_period,
    unique=True,
    postgresql_where=_OPEN_RUN,
    sqlite_where=_OPEN_RUN,
)


class EmployeePayrollDetail(Base, TimestampMixin):
    """One employee's computed compensation figures within a run."""

    __tablename__ = "employee_payroll_detail"

    detail_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    pay_run_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_run.pay_run_id", ondelete="RESTRICT"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(nullable=False)
    base_salary: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    allowances: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    deductions: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    bonus: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    benefit: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    net_pay: Mapped[Decimal] = mapped_column(Money, nullable=False)
    bank_status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=BankStatus.MISSING.value
    )
    bank_account_number: Mapped[str | None] = mapped_column(String(64))
    exceptions: Mapped[str | None] = mapped_column(Text)
    updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime())

    __table_args__ = (
        UniqueConstraint("pay_run_id", "employee_id", name="pay_line_run_employee_unique"),
        CheckConstraint(check_in("bank_status", BankStatus), name="pay_line_bank_status_check"),
        CheckConstraint(
            "base_salary >= 0 AND allowances >= 0 AND deductions >= 0 "
            "AND bonus >= 0 AND benefit >= 0",
            name="pay_line_amounts_non_negative",
        ),
    )

    payroll_run: Mapped[PayrollRun] = relationship(back_populates="pay_lines")


class ApprovalLedgerEntry(Base):
    """Append-only record of one successful transition on a run."""

    __tablename__ = "approval_ledger_entry"

    ledger_entry_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    pay_run_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_run.pay_run_id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    actor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    actor_role: Mapped[str] = mapped_column(String(32), nullable=False)
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    from_status: Mapped[str | None] = mapped_column(String(32))
    to_status: Mapped[str] = mapped_column(String(32), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text)
    occurred_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow
    )

    __table_args__ = (
        CheckConstraint(check_in("action", RunAction), name="ledger_action_check"),
    )
