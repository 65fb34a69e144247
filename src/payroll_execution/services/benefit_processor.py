"""Signing bonus and termination benefit review and posting."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_execution.authorization import Actor, Capability, require
from payroll_execution.errors import InvalidTransitionError, ValidationError
from payroll_execution.models import (
    AncillaryBenefit,
    BenefitApplication,
    BenefitKind,
    BenefitReviewAction,
    BenefitReviewStatus,
    EmployeePayrollDetail,
    PayrollRun,
)
from payroll_execution.models.base import utcnow
from payroll_execution.money import parse_amount
from payroll_execution.services.locking_service import RunLockRegistry, run_locks
from payroll_execution.services.lookups import fetch_benefit, fetch_pay_line, fetch_run
from payroll_execution.services.pay_line_service import PayLineService
from payroll_execution.services.state_machine import PayrollRunStateMachine

logger = logging.getLogger(__name__)


@dataclass
class BenefitPosting:
    """Result of posting a benefit onto a pay line."""

    application: BenefitApplication
    pay_line: EmployeePayrollDetail


class BenefitProcessor:
    """Service for ancillary benefits (signing bonuses, termination benefits).

    A benefit is registered as pending, reviewed once, and when approved
    may be posted onto the employee's pay line in a run exactly once.
    """

    def __init__(
        self,
        session: AsyncSession,
        pay_lines: PayLineService | None = None,
        locks: RunLockRegistry | None = None,
    ):
        self.session = session
        self.locks = locks or run_locks
        self.pay_lines = pay_lines or PayLineService(session, locks=self.locks)

    async def get_benefit(self, benefit_id: UUID) -> AncillaryBenefit:
        return await fetch_benefit(self.session, benefit_id)

    async def list_benefits(
        self,
        status: str | None = None,
        employee_id: UUID | None = None,
    ) -> list[AncillaryBenefit]:
        query = select(AncillaryBenefit)
        if status:
            query = query.where(AncillaryBenefit.review_status == status)
        if employee_id:
            query = query.where(AncillaryBenefit.employee_id == employee_id)
        query = query.order_by(AncillaryBenefit.created_at, AncillaryBenefit.benefit_id)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def register_benefit(
        self,
        actor: Actor,
        *,
        employee_id: UUID,
        kind: BenefitKind | str,
        template_id: UUID,
        given_amount: Decimal | int | str,
        template_name: str | None = None,
        termination_id: UUID | None = None,
    ) -> AncillaryBenefit:
        """Register a pending benefit for an employee."""
        require(Capability.REGISTER_BENEFIT, actor)
        try:
            kind = BenefitKind(kind)
        except ValueError:
            raise ValidationError(f"Unknown benefit kind '{kind}'") from None
        amount = parse_amount(given_amount, "given_amount")

        if kind == BenefitKind.TERMINATION_BENEFIT and termination_id is None:
            raise ValidationError("A termination benefit needs a termination reference")

        duplicate = select(AncillaryBenefit.benefit_id).where(
            AncillaryBenefit.template_id == template_id
        )
        if termination_id is not None:
            duplicate = duplicate.where(AncillaryBenefit.termination_id == termination_id)
        else:
            duplicate = duplicate.where(
                AncillaryBenefit.employee_id == employee_id,
                AncillaryBenefit.kind == kind.value,
            )
        if (await self.session.execute(duplicate)).first() is not None:
            raise ValidationError(
                f"A {kind.value.replace('_', ' ')} from this template already exists "
                f"for employee {employee_id}"
            )

        benefit = AncillaryBenefit(
            employee_id=employee_id,
            kind=kind.value,
            template_id=template_id,
            template_name=template_name,
            termination_id=termination_id,
            given_amount=amount,
            review_status=BenefitReviewStatus.PENDING.value,
            created_by=actor.user_id,
        )
        self.session.add(benefit)
        await self.session.flush()

        logger.info(
            "Registered %s %s for employee %s (%s)",
            kind.value, benefit.benefit_id, employee_id, amount,
        )
        return benefit

    async def edit_benefit_amount(
        self,
        actor: Actor,
        benefit_id: UUID,
        new_amount: Decimal | int | str,
    ) -> AncillaryBenefit:
        require(Capability.EDIT_BENEFIT, actor)
        amount = parse_amount(new_amount, "given_amount")

        benefit = await fetch_benefit(self.session, benefit_id)
        if benefit.review_status != BenefitReviewStatus.PENDING.value:
            raise InvalidTransitionError(
                benefit.review_status, "edit_benefit", "only pending benefits can be edited"
            )
        benefit.given_amount = amount
        await self.session.flush()
        return benefit

    async def review_benefit(
        self,
        actor: Actor,
        benefit_id: UUID,
        action: BenefitReviewAction | str,
        reason: str | None = None,
    ) -> AncillaryBenefit:
        """Approve or reject a pending benefit; a rejection needs a reason."""
        require(Capability.REVIEW_BENEFIT, actor)
        try:
            action = BenefitReviewAction(action)
        except ValueError:
            raise ValidationError(f"Unknown review action '{action}'") from None
        reason = reason.strip() if reason and reason.strip() else None

        benefit = await fetch_benefit(self.session, benefit_id)
        if benefit.review_status != BenefitReviewStatus.PENDING.value:
            raise InvalidTransitionError(
                benefit.review_status, action.value, "benefit has already been reviewed"
            )
        if action == BenefitReviewAction.REJECT and reason is None:
            raise ValidationError("A reason is required to reject a benefit")

        if action == BenefitReviewAction.APPROVE:
            benefit.review_status = BenefitReviewStatus.APPROVED.value
        else:
            benefit.review_status = BenefitReviewStatus.REJECTED.value
            benefit.rejection_reason = reason
        benefit.reviewed_by = actor.user_id
        benefit.reviewed_at = utcnow()
        await self.session.flush()

        logger.info(
            "Benefit %s %s by %s", benefit_id, benefit.review_status, actor.user_id
        )
        return benefit

    async def process_approved_benefit(
        self,
        actor: Actor,
        *,
        employee_id: UUID,
        benefit_id: UUID,
        pay_run_id: UUID,
        given_amount: Decimal | int | str,
    ) -> BenefitPosting:
        """Post an approved benefit onto the employee's pay line in a run.

        Signing bonuses land in the bonus column, termination benefits in
        the benefit column; either way the amount is added to net pay and
        the line is re-scanned. A benefit posts at most once per run.
        """
        require(Capability.PROCESS_BENEFIT, actor)
        amount = parse_amount(given_amount, "given_amount", positive=True)

        benefit = await fetch_benefit(self.session, benefit_id)
        if benefit.employee_id != employee_id:
            raise ValidationError(
                f"Benefit {benefit_id} does not belong to employee {employee_id}"
            )
        if benefit.review_status != BenefitReviewStatus.APPROVED.value:
            raise ValidationError(
                f"Benefit {benefit_id} is {benefit.review_status}, not approved"
            )
        if benefit.disbursed_in_pay_run_id is not None:
            raise ValidationError(
                f"Benefit {benefit_id} was already disbursed in payroll run "
                f"{benefit.disbursed_in_pay_run_id}"
            )

        async with self.locks.hold(pay_run_id):
            run = await fetch_run(self.session, pay_run_id)
            if PayrollRunStateMachine.is_locked(run.status):
                raise InvalidTransitionError(
                    run.status, "process_benefit", "payroll run is locked"
                )
            line = await fetch_pay_line(self.session, pay_run_id, employee_id)

            already = await self.session.execute(
                select(BenefitApplication.application_id).where(
                    BenefitApplication.employee_id == employee_id,
                    BenefitApplication.benefit_id == benefit_id,
                    BenefitApplication.pay_run_id == pay_run_id,
                )
            )
            if already.first() is not None:
                raise ValidationError(
                    f"Benefit {benefit_id} already applied to payroll run {pay_run_id}"
                )

            application = BenefitApplication(
                benefit_id=benefit_id,
                employee_id=employee_id,
                pay_run_id=pay_run_id,
                amount=amount,
                applied_by=actor.user_id,
            )
            self.session.add(application)
            try:
                await self.session.flush()
            except IntegrityError:
                # Posted concurrently from another process; the caller rolls back.
                raise ValidationError(
                    f"Benefit {benefit_id} already applied to payroll run {pay_run_id}"
                ) from None

            if benefit.kind == BenefitKind.SIGNING_BONUS.value:
                line.bonus = line.bonus + amount
            else:
                line.benefit = line.benefit + amount
            line.net_pay = line.net_pay + amount
            line.updated_at = utcnow()
            await self.session.flush()
            await self.pay_lines.record_exceptions(run)

        logger.info(
            "Posted %s %s (%s) to employee %s in run %s",
            benefit.kind, benefit_id, amount, employee_id, pay_run_id,
        )
        return BenefitPosting(application=application, pay_line=line)

    async def mark_disbursed(self, run: PayrollRun) -> list[AncillaryBenefit]:
        """Stamp every benefit posted to a run as paid out with it.

        Called once finance approves the run, while its lock is held.
        """
        result = await self.session.execute(
            select(AncillaryBenefit)
            .join(
                BenefitApplication,
                BenefitApplication.benefit_id == AncillaryBenefit.benefit_id,
            )
            .where(
                BenefitApplication.pay_run_id == run.pay_run_id,
                AncillaryBenefit.disbursed_in_pay_run_id.is_(None),
            )
            .order_by(AncillaryBenefit.benefit_id)
        )
        benefits = list(result.scalars().unique().all())

        disbursed_at = utcnow()
        for benefit in benefits:
            benefit.disbursed_in_pay_run_id = run.pay_run_id
            benefit.disbursed_at = disbursed_at
        await self.session.flush()

        if benefits:
            logger.info(
                "Marked %d benefit(s) disbursed in run %s", len(benefits), run.run_code
            )
        return benefits
