"""Employee refund model."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payroll_execution.models.base import Base, Money, TimestampMixin, UTCDateTime
from payroll_execution.models.enums import RefundSource, RefundStatus, check_in


class Refund(Base, TimestampMixin):
    """Money owed back to an employee after an approved dispute or claim."""

    __tablename__ = "refund"

    refund_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    employee_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    source_type: Mapped[str] = mapped_column(String(16), nullable=False)
    source_id: Mapped[UUID] = mapped_column(nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=RefundStatus.PENDING.value
    )
    paid_in_pay_run_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("payroll_run.pay_run_id", ondelete="RESTRICT"),
        nullable=True,
    )
    paid_by: Mapped[str | None] = mapped_column(String(64))
    paid_at: Mapped[datetime | None] = mapped_column(UTCDateTime())

    __table_args__ = (
        UniqueConstraint("source_type", "source_id", name="refund_source_unique"),
        CheckConstraint(check_in("status", RefundStatus), name="refund_status_check"),
        CheckConstraint(check_in("source_type", RefundSource), name="refund_source_check"),
        CheckConstraint("amount >= 0", name="refund_amount_non_negative"),
    )
