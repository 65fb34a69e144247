"""Pytest fixtures for payroll execution tests."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import AsyncGenerator
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from payroll_execution.authorization import Actor, Role
from payroll_execution.calculators import ExceptionEngine
from payroll_execution.models import Base, PayrollRun
from payroll_execution.services.benefit_processor import BenefitProcessor
from payroll_execution.services.locking_service import RunLockRegistry
from payroll_execution.services.pay_line_service import PayLineFigures, PayLineService
from payroll_execution.services.payroll_run_service import PayrollRunService
from payroll_execution.services.refund_service import RefundService

# In-memory SQLite shared by every connection of one engine
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

MINIMUM_WAGE = Decimal("5000")
PERIOD = date(2025, 1, 31)
ENTITY = "Cairo HQ"

ALICE = UUID("0a000000-0000-4000-8000-000000000001")
BOB = UUID("0b000000-0000-4000-8000-000000000002")
CAROL = UUID("0c000000-0000-4000-8000-000000000003")


@pytest_asyncio.fixture
async def engine():
    """Create a fresh test database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def exception_engine() -> ExceptionEngine:
    return ExceptionEngine(MINIMUM_WAGE)


@pytest.fixture
def locks() -> RunLockRegistry:
    return RunLockRegistry()


@pytest.fixture
def run_service(session, exception_engine, locks) -> PayrollRunService:
    return PayrollRunService(session, exception_engine, locks)


@pytest.fixture
def pay_line_service(run_service) -> PayLineService:
    return run_service.pay_lines


@pytest.fixture
def benefit_processor(session, pay_line_service, locks) -> BenefitProcessor:
    return BenefitProcessor(session, pay_line_service, locks)


@pytest.fixture
def refund_service(session) -> RefundService:
    return RefundService(session)


# ============================================================================
# Actors
# ============================================================================


@pytest.fixture
def specialist() -> Actor:
    return Actor(user_id="spec-1", role=Role.PAYROLL_SPECIALIST)


@pytest.fixture
def manager() -> Actor:
    return Actor(user_id="mgr-1", role=Role.PAYROLL_MANAGER)


@pytest.fixture
def finance() -> Actor:
    return Actor(user_id="fin-1", role=Role.FINANCE_STAFF)


@pytest.fixture
def hr_admin() -> Actor:
    return Actor(user_id="hr-1", role=Role.HR_ADMIN)


# ============================================================================
# Runs
# ============================================================================


def clean_line(employee_id: UUID, net_pay: str = "8000") -> PayLineFigures:
    """A pay line with no exceptions."""
    return PayLineFigures(
        employee_id=employee_id,
        base_salary=Decimal("7000"),
        allowances=Decimal("1500"),
        deductions=Decimal("500"),
        net_pay=Decimal(net_pay),
        bank_account_number=f"EG{employee_id.hex[:12]}",
    )


@pytest_asyncio.fixture
async def draft_run(run_service, specialist) -> PayrollRun:
    """Draft run with two clean lines."""
    run = await run_service.create_run(specialist, PERIOD, ENTITY)
    await run_service.pay_lines.load_pay_lines(
        specialist, run.pay_run_id, [clean_line(ALICE), clean_line(BOB, "9000")]
    )
    return run


@pytest_asyncio.fixture
async def flagged_run(run_service, specialist) -> PayrollRun:
    """Draft run where Bob has no bank details and is below minimum wage."""
    run = await run_service.create_run(specialist, PERIOD, ENTITY)
    await run_service.pay_lines.load_pay_lines(
        specialist,
        run.pay_run_id,
        [
            clean_line(ALICE),
            PayLineFigures(employee_id=BOB, net_pay=Decimal("4000")),
        ],
    )
    return run


@pytest_asyncio.fixture
async def published_run(run_service, draft_run, specialist) -> PayrollRun:
    await run_service.review_run(draft_run.pay_run_id, specialist)
    return await run_service.publish_run(draft_run.pay_run_id, specialist)


@pytest_asyncio.fixture
async def locked_run(run_service, published_run, manager, finance) -> PayrollRun:
    await run_service.manager_approve(published_run.pay_run_id, manager)
    await run_service.finance_approve(published_run.pay_run_id, finance)
    return await run_service.lock_run(published_run.pay_run_id, manager)


@pytest.fixture
def new_id() -> UUID:
    return uuid4()
