"""Payroll run service - orchestrates the run approval lifecycle."""

from __future__ import annotations

import calendar
import logging
from datetime import date
from typing import Awaitable, Callable
from uuid import UUID, uuid4

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from payroll_execution.authorization import Actor, Capability, require
from payroll_execution.calculators import ExceptionEngine, ExceptionReport
from payroll_execution.config import get_settings
from payroll_execution.errors import (
    ConcurrencyError,
    ExceptionBlockedError,
    PayrollExecutionError,
    ValidationError,
)
from payroll_execution.models import (
    ApprovalLedgerEntry,
    PaymentStatus,
    PayrollRun,
    PayrollRunStatus,
    RunAction,
)
from payroll_execution.models.base import utcnow
from payroll_execution.services.approval_ledger import ApprovalLedger
from payroll_execution.services.benefit_processor import BenefitProcessor
from payroll_execution.services.locking_service import RunLockRegistry, run_locks
from payroll_execution.services.lookups import fetch_run
from payroll_execution.services.pay_line_service import PayLineService
from payroll_execution.services.state_machine import PayrollRunStateMachine

logger = logging.getLogger(__name__)

RunHook = Callable[[PayrollRun], Awaitable[object]]


def _period_lock_key(entity: str, period: date) -> str:
    return f"payroll-period:{entity.lower()}:{period.isoformat()}"


def _run_code_lock_key(year: int) -> str:
    return f"payroll-run-code:{year}"


def normalize_period(payroll_period: date) -> date:
    """Normalize a payroll period to the last day of its calendar month."""
    last_day = calendar.monthrange(payroll_period.year, payroll_period.month)[1]
    return payroll_period.replace(day=last_day)


class PayrollRunService:
    """Service for managing the payroll run lifecycle.

    Operations:
    - create_run: new run in draft for an entity and period
    - review_run: draft → under_review, records exceptions on every line
    - publish_run: under_review → published, refused while critical exceptions remain
    - manager_approve / manager_reject: published → manager_approved / manager_rejected
    - finance_approve / finance_reject: manager_approved → finance_approved / finance_rejected;
      approval marks the run and the benefits posted to it as paid
    - lock_run / unlock_run: finance_approved ⇄ locked
    - resubmit_run: rejected → draft, optionally moving the run to another period
    - edit_payroll_period: corrects the period of a draft run

    Each transition is checked for role, status and reason, then applied
    under the run's lock as one compare-and-set status update plus exactly
    one ledger entry. The run's actor fields are rewritten from a ledger
    replay after every transition.
    """

    def __init__(
        self,
        session: AsyncSession,
        engine: ExceptionEngine | None = None,
        locks: RunLockRegistry | None = None,
    ):
        self.session = session
        self.engine = engine or ExceptionEngine(get_settings().minimum_wage)
        self.locks = locks or run_locks
        self.ledger = ApprovalLedger(session)
        self.pay_lines = PayLineService(session, self.engine, self.locks)
        self.benefits = BenefitProcessor(session, self.pay_lines, self.locks)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_run(self, pay_run_id: UUID) -> PayrollRun:
        return await fetch_run(self.session, pay_run_id)

    async def list_runs(
        self,
        status: str | None = None,
        entity: str | None = None,
    ) -> list[PayrollRun]:
        query = select(PayrollRun)
        if status:
            query = query.where(PayrollRun.status == status)
        if entity:
            query = query.where(func.lower(PayrollRun.entity) == entity.strip().lower())
        query = query.order_by(PayrollRun.payroll_period.desc(), PayrollRun.run_code)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_exceptions(self, pay_run_id: UUID) -> ExceptionReport:
        """Fresh exception report for a run."""
        await fetch_run(self.session, pay_run_id)
        return await self.pay_lines.scan(pay_run_id)

    async def get_history(self, pay_run_id: UUID) -> list[ApprovalLedgerEntry]:
        await fetch_run(self.session, pay_run_id)
        return await self.ledger.query_history(pay_run_id)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_run(
        self,
        actor: Actor,
        payroll_period: date,
        entity: str,
    ) -> PayrollRun:
        """Create a draft run; at most one open run per entity and period."""
        require(Capability.CREATE_RUN, actor)
        entity = (entity or "").strip()
        if not entity:
            raise ValidationError("Entity is required")
        if not isinstance(payroll_period, date):
            raise ValidationError("Payroll period must be a date")
        period = normalize_period(payroll_period)

        # Run codes are numbered per year, so creations in one year queue up
        year_lock = self.locks.hold(_run_code_lock_key(period.year))
        period_lock = self.locks.hold(_period_lock_key(entity, period))
        async with year_lock, period_lock:
            await self._ensure_period_available(entity, period)

            run = PayrollRun(
                pay_run_id=uuid4(),
                run_code=await self._next_run_code(period.year),
                payroll_period=period,
                entity=entity,
                status=PayrollRunStatus.DRAFT.value,
                version=1,
            )
            self.session.add(run)
            try:
                await self.session.flush()
            except IntegrityError:
                # Another process took the code or the period first
                raise ConcurrencyError(
                    f"A payroll run for '{entity}' {period.isoformat()} or run code "
                    f"{run.run_code} was created concurrently; retry"
                ) from None

            await self.ledger.append(
                pay_run_id=run.pay_run_id,
                actor=actor,
                action=RunAction.CREATE,
                from_status=None,
                to_status=PayrollRunStatus.DRAFT.value,
            )
            await self._refresh_actor_cache(run)

        logger.info(
            "Payroll run %s created for %s %s by %s",
            run.run_code,
            entity,
            period.isoformat(),
            actor.user_id,
        )
        return run

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def review_run(
        self, pay_run_id: UUID, actor: Actor, expected_version: int | None = None
    ) -> PayrollRun:
        """Submit a draft for specialist review."""

        async def has_pay_lines(run: PayrollRun) -> None:
            if await self.pay_lines.count_lines(run.pay_run_id) == 0:
                raise ValidationError("Payroll run has no pay lines to review")

        return await self._transition(
            pay_run_id, RunAction.REVIEW, actor,
            expected_version=expected_version,
            precondition=has_pay_lines,
            on_applied=self.pay_lines.record_exceptions,
        )

    async def publish_run(
        self, pay_run_id: UUID, actor: Actor, expected_version: int | None = None
    ) -> PayrollRun:
        """Publish for manager approval once no critical exception remains."""

        async def no_critical_exceptions(run: PayrollRun) -> None:
            report = await self.pay_lines.scan(run.pay_run_id)
            if report.has_blocking_issues:
                raise ExceptionBlockedError(report)

        return await self._transition(
            pay_run_id, RunAction.PUBLISH, actor,
            expected_version=expected_version, precondition=no_critical_exceptions,
        )

    async def manager_approve(
        self, pay_run_id: UUID, actor: Actor, expected_version: int | None = None
    ) -> PayrollRun:
        return await self._transition(
            pay_run_id, RunAction.MANAGER_APPROVE, actor, expected_version=expected_version
        )

    async def manager_reject(
        self,
        pay_run_id: UUID,
        actor: Actor,
        reason: str | None,
        expected_version: int | None = None,
    ) -> PayrollRun:
        return await self._transition(
            pay_run_id, RunAction.MANAGER_REJECT, actor,
            reason=reason, expected_version=expected_version,
        )

    async def finance_approve(
        self, pay_run_id: UUID, actor: Actor, expected_version: int | None = None
    ) -> PayrollRun:
        """Approve the run for payment; the run and its posted benefits are paid out."""

        async def disburse(run: PayrollRun) -> None:
            run.payment_status = PaymentStatus.PAID.value
            run.paid_at = utcnow()
            await self.benefits.mark_disbursed(run)

        return await self._transition(
            pay_run_id, RunAction.FINANCE_APPROVE, actor,
            expected_version=expected_version, on_applied=disburse,
        )

    async def finance_reject(
        self,
        pay_run_id: UUID,
        actor: Actor,
        reason: str | None,
        expected_version: int | None = None,
    ) -> PayrollRun:
        return await self._transition(
            pay_run_id, RunAction.FINANCE_REJECT, actor,
            reason=reason, expected_version=expected_version,
        )

    async def lock_run(
        self, pay_run_id: UUID, actor: Actor, expected_version: int | None = None
    ) -> PayrollRun:
        return await self._transition(
            pay_run_id, RunAction.LOCK, actor, expected_version=expected_version
        )

    async def unlock_run(
        self,
        pay_run_id: UUID,
        actor: Actor,
        reason: str | None,
        expected_version: int | None = None,
    ) -> PayrollRun:
        return await self._transition(
            pay_run_id, RunAction.UNLOCK, actor,
            reason=reason, expected_version=expected_version,
        )

    async def resubmit_run(
        self,
        pay_run_id: UUID,
        actor: Actor,
        payroll_period: date | None = None,
        expected_version: int | None = None,
    ) -> PayrollRun:
        """Return a rejected run to draft, optionally for a corrected period."""
        return await self._move_to_period(
            pay_run_id, RunAction.RESUBMIT, actor, payroll_period, expected_version
        )

    async def edit_payroll_period(
        self,
        pay_run_id: UUID,
        actor: Actor,
        payroll_period: date,
        expected_version: int | None = None,
    ) -> PayrollRun:
        """Correct the period of a draft run."""
        if not isinstance(payroll_period, date):
            raise ValidationError("Payroll period must be a date")
        return await self._move_to_period(
            pay_run_id, RunAction.EDIT_PERIOD, actor, payroll_period, expected_version
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _move_to_period(
        self,
        pay_run_id: UUID,
        action: RunAction,
        actor: Actor,
        payroll_period: date | None,
        expected_version: int | None,
    ) -> PayrollRun:
        """Apply a transition that may put the run in another period.

        The target period is re-checked for an open run under its lock.
        """
        current = await fetch_run(self.session, pay_run_id)
        new_period = normalize_period(payroll_period) if payroll_period else None
        target_period = new_period or current.payroll_period
        reason = None
        if action == RunAction.EDIT_PERIOD:
            reason = (
                f"Period {current.payroll_period.isoformat()} -> {target_period.isoformat()}"
            )

        async def period_available(run: PayrollRun) -> None:
            if action == RunAction.EDIT_PERIOD and run.payroll_period == target_period:
                raise ValidationError(
                    f"Payroll run {run.run_code} is already for period {target_period.isoformat()}"
                )
            await self._ensure_period_available(
                run.entity, target_period, exclude=run.pay_run_id
            )

        async with self.locks.hold(_period_lock_key(current.entity, target_period)):
            return await self._transition(
                pay_run_id, action, actor,
                reason=reason,
                expected_version=expected_version,
                precondition=period_available,
                changes={"payroll_period": target_period},
            )

    async def _transition(
        self,
        pay_run_id: UUID,
        action: RunAction,
        actor: Actor,
        *,
        reason: str | None = None,
        expected_version: int | None = None,
        precondition: RunHook | None = None,
        on_applied: RunHook | None = None,
        changes: dict[str, object] | None = None,
    ) -> PayrollRun:
        """Validate and apply one transition.

        `changes` are extra columns written by the same compare-and-set as the
        status.
        """
        reason = reason.strip() if reason and reason.strip() else None

        async with self.locks.hold(pay_run_id):
            run = await fetch_run(self.session, pay_run_id)
            from_status = run.status

            try:
                if expected_version is not None and run.version != expected_version:
                    raise ConcurrencyError(
                        f"Payroll run {pay_run_id} is at version {run.version}, "
                        f"expected {expected_version}; refetch and retry"
                    )
                to_status = PayrollRunStateMachine.validate(from_status, action, actor, reason)
                if precondition is not None:
                    await precondition(run)
            except PayrollExecutionError as exc:
                logger.warning(
                    "Refused %s on run %s (%s) by %s: %s",
                    action.value, pay_run_id, from_status, actor.user_id, exc,
                )
                raise

            await self._compare_and_set_status(run, from_status, to_status.value, changes)
            await self.ledger.append(
                pay_run_id=run.pay_run_id,
                actor=actor,
                action=action,
                from_status=from_status,
                to_status=to_status.value,
                reason=reason,
            )
            await self._refresh_actor_cache(run)
            if on_applied is not None:
                await on_applied(run)

        logger.info(
            "Payroll run %s: %s -> %s (%s by %s)",
            run.run_code, from_status, run.status, action.value, actor.user_id,
        )
        return run

    async def _compare_and_set_status(
        self,
        run: PayrollRun,
        from_status: str,
        to_status: str,
        changes: dict[str, object] | None = None,
    ) -> None:
        """Write the new status only if nobody changed the run since it was read."""
        changes = changes or {}
        try:
            result = await self.session.execute(
                update(PayrollRun)
                .where(
                    PayrollRun.pay_run_id == run.pay_run_id,
                    PayrollRun.status == from_status,
                    PayrollRun.version == run.version,
                )
                .values(status=to_status, version=run.version + 1, **changes)
                .execution_options(synchronize_session=False)
            )
        except IntegrityError:
            raise ConcurrencyError(
                f"Payroll run {run.pay_run_id} conflicts with a run created concurrently; "
                "refetch and retry"
            ) from None
        if result.rowcount == 0:
            raise ConcurrencyError(
                f"Payroll run {run.pay_run_id} changed while transitioning from "
                f"'{from_status}'; refetch and retry"
            )
        run.version = run.version + 1
        for column, value in changes.items():
            set_committed_value(run, column, value)

    async def _refresh_actor_cache(self, run: PayrollRun) -> None:
        """Rewrite the run's actor fields from a full ledger replay."""
        state = await self.ledger.replay_run(run.pay_run_id)
        state.apply_to(run)
        await self.session.flush()

    async def _ensure_period_available(
        self, entity: str, period: date, exclude: UUID | None = None
    ) -> None:
        query = select(PayrollRun.run_code, PayrollRun.status).where(
            func.lower(PayrollRun.entity) == entity.lower(),
            PayrollRun.payroll_period == period,
            PayrollRun.status.not_in([s.value for s in PayrollRunStateMachine.REJECTED]),
        )
        if exclude is not None:
            query = query.where(PayrollRun.pay_run_id != exclude)
        existing = (await self.session.execute(query)).first()
        if existing is not None:
            raise ValidationError(
                f"Payroll run {existing.run_code} ({existing.status}) already exists "
                f"for entity '{entity}' and period {period.isoformat()}"
            )

    async def _next_run_code(self, year: int) -> str:
        """One past the highest code issued for the year.

        A run keeps its code when it moves to another period.
        """
        prefix = f"PR-{year}-"
        result = await self.session.execute(
            select(PayrollRun.run_code).where(PayrollRun.run_code.like(f"{prefix}%"))
        )
        highest = max(
            (int(code.removeprefix(prefix)) for code in result.scalars()),
            default=0,
        )
        return f"{prefix}{highest + 1:04d}"
