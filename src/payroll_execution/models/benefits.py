"""Signing bonus and termination benefit models."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from payroll_execution.models.base import Base, Money, TimestampMixin, UTCDateTime, utcnow
from payroll_execution.models.enums import BenefitKind, BenefitReviewStatus, check_in


class AncillaryBenefit(Base, TimestampMixin):
    """A one-off payout for one employee, reviewed before it can be posted."""

    __tablename__ = "ancillary_benefit"

    benefit_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    employee_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    # Reference into payroll configuration (signing bonus / termination benefit template)
    template_id: Mapped[UUID] = mapped_column(nullable=False)
    template_name: Mapped[str | None] = mapped_column(String(200))
    termination_id: Mapped[UUID | None] = mapped_column(nullable=True)
    given_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    review_status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=BenefitReviewStatus.PENDING.value
    )
    reviewed_by: Mapped[str | None] = mapped_column(String(64))
    reviewed_at: Mapped[datetime | None] = mapped_column(UTCDateTime())
    rejection_reason: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[str | None] = mapped_column(String(64))
    # Stamped when finance approves the run the benefit was posted to
    disbursed_in_pay_run_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("payroll_run.pay_run_id", ondelete="RESTRICT")
    )
    disbursed_at: Mapped[datetime | None] = mapped_column(UTCDateTime())

    __table_args__ = (
        CheckConstraint(check_in("kind", BenefitKind), name="benefit_kind_check"),
        CheckConstraint(
            check_in("review_status", BenefitReviewStatus), name="benefit_review_status_check"
        ),
        CheckConstraint("given_amount >= 0", name="benefit_amount_non_negative"),
    )


class BenefitApplication(Base):
    """Marks that a benefit has been posted onto a run's pay line."""

    __tablename__ = "benefit_application"

    application_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    benefit_id: Mapped[UUID] = mapped_column(
        ForeignKey("ancillary_benefit.benefit_id", ondelete="RESTRICT"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(nullable=False)
    pay_run_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_run.pay_run_id", ondelete="RESTRICT"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    applied_by: Mapped[str] = mapped_column(String(64), nullable=False)
    applied_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow
    )

    __table_args__ = (
        UniqueConstraint(
            "employee_id", "benefit_id", "pay_run_id", name="benefit_application_unique"
        ),
    )
