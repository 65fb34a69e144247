"""Employee refunds owed after approved disputes and claims."""

from __future__ import annotations

import logging
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_execution.authorization import Actor, Capability, require
from payroll_execution.errors import InvalidTransitionError, ValidationError
from payroll_execution.models import Refund, RefundSource, RefundStatus
from payroll_execution.models.base import utcnow
from payroll_execution.money import parse_amount
from payroll_execution.services.lookups import fetch_refund, fetch_run

logger = logging.getLogger(__name__)


class RefundService:
    """Tracks refunds from creation until they are paid in a payroll run."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_refund(
        self,
        *,
        employee_id: UUID,
        source_type: RefundSource | str,
        source_id: UUID,
        amount: Decimal | int | str,
        description: str,
    ) -> Refund:
        """Create a pending refund, or return the one already raised for the source."""
        try:
            source_type = RefundSource(source_type)
        except ValueError:
            raise ValidationError(f"Unknown refund source '{source_type}'") from None
        amount = parse_amount(amount, "amount")
        description = (description or "").strip()
        if not description:
            raise ValidationError("Refund description is required")

        result = await self.session.execute(
            select(Refund).where(
                Refund.source_type == source_type.value,
                Refund.source_id == source_id,
            )
        )
        existing = result.scalar_one_or_none()
        if existing is not None:
            return existing

        refund = Refund(
            employee_id=employee_id,
            source_type=source_type.value,
            source_id=source_id,
            description=description,
            amount=amount,
            status=RefundStatus.PENDING.value,
        )
        self.session.add(refund)
        await self.session.flush()
        logger.info(
            "Refund %s created for employee %s from %s %s",
            refund.refund_id, employee_id, source_type.value, source_id,
        )
        return refund

    async def get_refund(self, refund_id: UUID) -> Refund:
        return await fetch_refund(self.session, refund_id)

    async def list_pending_refunds(self, employee_id: UUID | None = None) -> list[Refund]:
        query = select(Refund).where(Refund.status == RefundStatus.PENDING.value)
        if employee_id:
            query = query.where(Refund.employee_id == employee_id)
        result = await self.session.execute(query.order_by(Refund.created_at, Refund.refund_id))
        return list(result.scalars().all())

    async def mark_refund_paid(
        self,
        actor: Actor,
        refund_id: UUID,
        pay_run_id: UUID,
    ) -> Refund:
        require(Capability.MARK_REFUND_PAID, actor)
        refund = await fetch_refund(self.session, refund_id)
        if refund.status != RefundStatus.PENDING.value:
            raise InvalidTransitionError(refund.status, "mark_refund_paid", "refund already paid")
        await fetch_run(self.session, pay_run_id)

        refund.status = RefundStatus.PAID.value
        refund.paid_in_pay_run_id = pay_run_id
        refund.paid_by = actor.user_id
        refund.paid_at = utcnow()
        await self.session.flush()

        logger.info("Refund %s paid in run %s by %s", refund_id, pay_run_id, actor.user_id)
        return refund
