"""Tests for employee refunds."""

from decimal import Decimal
from uuid import uuid4

import pytest

from payroll_execution.errors import (
    AuthorizationError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)

from tests.conftest import ALICE, BOB


async def make_refund(refund_service, employee_id=ALICE, source_id=None):
    return await refund_service.create_refund(
        employee_id=employee_id,
        source_type="claim",
        source_id=source_id or uuid4(),
        amount=Decimal("350"),
        description="Travel expense claim",
    )


class TestCreateRefund:
    async def test_create(self, refund_service):
        refund = await make_refund(refund_service)

        assert refund.status == "pending"
        assert refund.amount == Decimal("350")

    async def test_idempotent_per_source(self, refund_service):
        source_id = uuid4()
        first = await make_refund(refund_service, source_id=source_id)
        second = await make_refund(refund_service, source_id=source_id)

        assert first.refund_id == second.refund_id
        assert len(await refund_service.list_pending_refunds()) == 1

    async def test_unknown_source(self, refund_service):
        with pytest.raises(ValidationError):
            await refund_service.create_refund(
                employee_id=ALICE,
                source_type="bonus",
                source_id=uuid4(),
                amount=Decimal("1"),
                description="x",
            )

    async def test_list_pending_by_employee(self, refund_service):
        await make_refund(refund_service, ALICE)
        bob_refund = await make_refund(refund_service, BOB)

        pending = await refund_service.list_pending_refunds(BOB)
        assert [r.refund_id for r in pending] == [bob_refund.refund_id]


class TestMarkRefundPaid:
    async def test_mark_paid(self, refund_service, draft_run, finance):
        refund = await make_refund(refund_service)

        paid = await refund_service.mark_refund_paid(finance, refund.refund_id, draft_run.pay_run_id)

        assert paid.status == "paid"
        assert paid.paid_in_pay_run_id == draft_run.pay_run_id
        assert paid.paid_by == "fin-1"
        assert await refund_service.list_pending_refunds() == []

    async def test_mark_paid_twice(self, refund_service, draft_run, specialist):
        refund = await make_refund(refund_service)
        await refund_service.mark_refund_paid(specialist, refund.refund_id, draft_run.pay_run_id)

        with pytest.raises(InvalidTransitionError):
            await refund_service.mark_refund_paid(
                specialist, refund.refund_id, draft_run.pay_run_id
            )

    async def test_unknown_run(self, refund_service, finance, new_id):
        refund = await make_refund(refund_service)

        with pytest.raises(NotFoundError):
            await refund_service.mark_refund_paid(finance, refund.refund_id, new_id)

        assert (await refund_service.get_refund(refund.refund_id)).status == "pending"

    async def test_manager_cannot_mark_paid(self, refund_service, draft_run, manager):
        refund = await make_refund(refund_service)

        with pytest.raises(AuthorizationError):
            await refund_service.mark_refund_paid(manager, refund.refund_id, draft_run.pay_run_id)
