"""Loaders shared by the services; each raises NotFoundError on a miss."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_execution.errors import NotFoundError
from payroll_execution.models import (
    AncillaryBenefit,
    EmployeePayrollDetail,
    PayrollRun,
    Refund,
)


async def fetch_run(session: AsyncSession, pay_run_id: UUID) -> PayrollRun:
    """Load a run, refreshing any copy already in the session."""
    run = await session.get(PayrollRun, pay_run_id, populate_existing=True)
    if run is None:
        raise NotFoundError("Payroll run", pay_run_id)
    return run


async def fetch_pay_line(
    session: AsyncSession, pay_run_id: UUID, employee_id: UUID
) -> EmployeePayrollDetail:
    result = await session.execute(
        select(EmployeePayrollDetail).where(
            EmployeePayrollDetail.pay_run_id == pay_run_id,
            EmployeePayrollDetail.employee_id == employee_id,
        )
    )
    line = result.scalar_one_or_none()
    if line is None:
        raise NotFoundError("Pay line for employee", employee_id)
    return line


async def fetch_benefit(session: AsyncSession, benefit_id: UUID) -> AncillaryBenefit:
    benefit = await session.get(AncillaryBenefit, benefit_id, populate_existing=True)
    if benefit is None:
        raise NotFoundError("Benefit", benefit_id)
    return benefit


async def fetch_refund(session: AsyncSession, refund_id: UUID) -> Refund:
    refund = await session.get(Refund, refund_id, populate_existing=True)
    if refund is None:
        raise NotFoundError("Refund", refund_id)
    return refund
