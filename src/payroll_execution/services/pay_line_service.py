"""Pay line store and exception recording."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_execution.authorization import Actor, Capability, require
from payroll_execution.calculators import ExceptionEngine, ExceptionReport, PayLineSnapshot
from payroll_execution.config import get_settings
from payroll_execution.errors import InvalidTransitionError, ValidationError
from payroll_execution.models import BankStatus, EmployeePayrollDetail, PayrollRun
from payroll_execution.models.base import utcnow
from payroll_execution.money import parse_amount
from payroll_execution.services.locking_service import RunLockRegistry, run_locks
from payroll_execution.services.lookups import fetch_pay_line, fetch_run
from payroll_execution.services.state_machine import PayrollRunStateMachine

logger = logging.getLogger(__name__)


@dataclass
class PayLineFigures:
    """Computed figures for one employee, as supplied by payroll calculation."""

    employee_id: UUID
    net_pay: Decimal
    base_salary: Decimal = Decimal("0")
    allowances: Decimal = Decimal("0")
    deductions: Decimal = Decimal("0")
    bonus: Decimal = Decimal("0")
    benefit: Decimal = Decimal("0")
    bank_account_number: str | None = None
    bank_status: BankStatus | None = None  # derived from the account number when omitted


def snapshot(line: EmployeePayrollDetail) -> PayLineSnapshot:
    return PayLineSnapshot(
        employee_id=line.employee_id,
        net_pay=line.net_pay,
        bank_status=line.bank_status,
    )


class PayLineService:
    """Service for reading, loading and correcting pay lines.

    Operations:
    - list_pay_lines / get_pay_line: read access
    - upsert_pay_line / load_pay_lines: populate a run (draft or under review only)
    - edit_employee_payroll_detail: correct bank account or net pay on a flagged line
    - scan / record_exceptions / rescan_run: run the exception engine
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

    async def list_pay_lines(self, pay_run_id: UUID) -> list[EmployeePayrollDetail]:
        """All pay lines of a run, ordered by employee id."""
        await fetch_run(self.session, pay_run_id)
        return await self._lines(pay_run_id)

    async def get_pay_line(self, pay_run_id: UUID, employee_id: UUID) -> EmployeePayrollDetail:
        return await fetch_pay_line(self.session, pay_run_id, employee_id)

    async def upsert_pay_line(
        self,
        actor: Actor,
        pay_run_id: UUID,
        figures: PayLineFigures,
    ) -> EmployeePayrollDetail:
        """Insert or replace one employee's pay line."""
        lines = await self.load_pay_lines(actor, pay_run_id, [figures])
        return lines[0]

    async def load_pay_lines(
        self,
        actor: Actor,
        pay_run_id: UUID,
        lines: list[PayLineFigures],
    ) -> list[EmployeePayrollDetail]:
        """Insert or replace pay lines in bulk, then re-scan the run."""
        require(Capability.LOAD_PAY_LINES, actor)
        if not lines:
            raise ValidationError("At least one pay line is required")

        employee_ids = [figures.employee_id for figures in lines]
        if len(set(employee_ids)) != len(employee_ids):
            raise ValidationError("Duplicate employee in pay line batch")

        validated = [self._validate_figures(figures) for figures in lines]

        async with self.locks.hold(pay_run_id):
            run = await fetch_run(self.session, pay_run_id)
            if not PayrollRunStateMachine.pay_lines_mutable(run.status):
                raise InvalidTransitionError(
                    run.status, "load_pay_lines", "pay lines are read-only in this status"
                )

            existing = {line.employee_id: line for line in await self._lines(pay_run_id)}
            stored: list[EmployeePayrollDetail] = []
            for values in validated:
                line = existing.get(values["employee_id"])
                if line is None:
                    line = EmployeePayrollDetail(pay_run_id=pay_run_id, **values)
                    self.session.add(line)
                else:
                    for key, value in values.items():
                        setattr(line, key, value)
                    line.updated_at = utcnow()
                stored.append(line)

            await self.session.flush()
            await self.record_exceptions(run)

        logger.info("Loaded %d pay line(s) into run %s", len(stored), pay_run_id)
        return stored

    async def edit_employee_payroll_detail(
        self,
        actor: Actor,
        pay_run_id: UUID,
        employee_id: UUID,
        *,
        bank_account_number: str | None = None,
        net_pay: Decimal | int | str | None = None,
    ) -> EmployeePayrollDetail:
        """Correct a flagged pay line.

        Only the bank account number and net pay may change, only on a line
        that currently has an exception, and never on a locked run. The run
        is re-scanned afterwards so fixed issues disappear immediately.
        """
        require(Capability.EDIT_PAY_LINE, actor)
        if bank_account_number is None and net_pay is None:
            raise ValidationError("Provide a bank account number or a net pay correction")

        account = None
        if bank_account_number is not None:
            account = bank_account_number.strip()
            if not account:
                raise ValidationError("Bank account number cannot be blank")
        new_net_pay = parse_amount(net_pay, "net_pay") if net_pay is not None else None

        async with self.locks.hold(pay_run_id):
            run = await fetch_run(self.session, pay_run_id)
            if PayrollRunStateMachine.is_locked(run.status):
                raise InvalidTransitionError(run.status, "edit_pay_line", "payroll run is locked")

            line = await fetch_pay_line(self.session, pay_run_id, employee_id)
            if not self.engine.check_line(snapshot(line)):
                raise ValidationError(
                    f"Pay line for employee {employee_id} has no active exception to correct"
                )

            if account is not None:
                line.bank_account_number = account
                line.bank_status = BankStatus.READY.value
            if new_net_pay is not None:
                line.net_pay = new_net_pay
            line.updated_at = utcnow()

            await self.session.flush()
            await self.record_exceptions(run)

        logger.info(
            "Pay line for employee %s in run %s corrected by %s",
            employee_id,
            pay_run_id,
            actor.user_id,
        )
        return line

    async def scan(self, pay_run_id: UUID) -> ExceptionReport:
        """Run the exception engine over a run's current pay lines (read only)."""
        lines = await self._lines(pay_run_id)
        return self.engine.scan(snapshot(line) for line in lines)

    async def record_exceptions(self, run: PayrollRun) -> ExceptionReport:
        """Scan a run and store the notes on each line plus the run summary."""
        lines = await self._lines(run.pay_run_id)
        report = self.engine.scan(snapshot(line) for line in lines)

        for line in lines:
            notes = self.engine.format_notes(report.issues_for(line.employee_id))
            if line.exceptions != notes:
                line.exceptions = notes

        run.employee_count = report.total_employees
        run.exception_count = report.employees_with_issues
        run.total_net_pay = report.total_net_pay
        await self.session.flush()
        return report

    async def rescan_run(self, pay_run_id: UUID) -> ExceptionReport:
        """Re-scan and record exceptions for a run on demand. Locked runs are frozen."""
        async with self.locks.hold(pay_run_id):
            run = await fetch_run(self.session, pay_run_id)
            if PayrollRunStateMachine.is_locked(run.status):
                raise InvalidTransitionError(run.status, "rescan", "payroll run is locked")
            return await self.record_exceptions(run)

    async def count_lines(self, pay_run_id: UUID) -> int:
        return len(await self._lines(pay_run_id))

    async def _lines(self, pay_run_id: UUID) -> list[EmployeePayrollDetail]:
        result = await self.session.execute(
            select(EmployeePayrollDetail)
            .where(EmployeePayrollDetail.pay_run_id == pay_run_id)
            .order_by(EmployeePayrollDetail.employee_id)
        )
        return list(result.scalars().all())

    @staticmethod
    def _validate_figures(figures: PayLineFigures) -> dict:
        account = (figures.bank_account_number or "").strip() or None
        bank_status = figures.bank_status
        if bank_status is None:
            bank_status = BankStatus.READY if account else BankStatus.MISSING
        else:
            try:
                bank_status = BankStatus(bank_status)
            except ValueError:
                raise ValidationError(f"Unknown bank status '{bank_status}'") from None

        return {
            "employee_id": figures.employee_id,
            "base_salary": parse_amount(figures.base_salary, "base_salary"),
            "allowances": parse_amount(figures.allowances, "allowances"),
            "deductions": parse_amount(figures.deductions, "deductions"),
            "bonus": parse_amount(figures.bonus, "bonus"),
            "benefit": parse_amount(figures.benefit, "benefit"),
            "net_pay": parse_amount(figures.net_pay, "net_pay", allow_negative=True),
            "bank_account_number": account,
            "bank_status": bank_status.value,
        }
