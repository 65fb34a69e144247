"""Tests for the payroll run lifecycle."""

import asyncio
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from payroll_execution.errors import (
    AuthorizationError,
    ConcurrencyError,
    ExceptionBlockedError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from payroll_execution.models import PayrollRun
from payroll_execution.services.approval_ledger import ApprovalLedger
from payroll_execution.services.payroll_run_service import PayrollRunService, normalize_period

from tests.conftest import ALICE, BOB, ENTITY, PERIOD, clean_line


async def history_actions(run_service, run) -> list[str]:
    return [e.action for e in await run_service.get_history(run.pay_run_id)]


class TestCreateRun:
    """Test run creation."""

    async def test_create_run(self, run_service, specialist):
        run = await run_service.create_run(specialist, date(2025, 1, 15), ENTITY)

        assert run.status == "draft"
        assert run.version == 1
        assert run.payroll_period == date(2025, 1, 31)
        assert run.run_code == "PR-2025-0001"
        assert run.created_by == "spec-1"
        assert await history_actions(run_service, run) == ["create"]

    async def test_run_codes_increment(self, run_service, specialist):
        await run_service.create_run(specialist, PERIOD, ENTITY)
        second = await run_service.create_run(specialist, date(2025, 2, 1), ENTITY)

        assert second.run_code == "PR-2025-0002"

    async def test_duplicate_period_rejected(self, run_service, specialist):
        await run_service.create_run(specialist, PERIOD, ENTITY)

        with pytest.raises(ValidationError):
            await run_service.create_run(specialist, date(2025, 1, 1), ENTITY.upper())

    async def test_other_entity_allowed(self, run_service, specialist):
        await run_service.create_run(specialist, PERIOD, ENTITY)
        other = await run_service.create_run(specialist, PERIOD, "Alexandria Branch")
        assert other.status == "draft"

    async def test_blank_entity(self, run_service, specialist):
        with pytest.raises(ValidationError):
            await run_service.create_run(specialist, PERIOD, "  ")

    async def test_manager_cannot_create(self, run_service, manager):
        with pytest.raises(AuthorizationError):
            await run_service.create_run(manager, PERIOD, ENTITY)

    def test_normalize_period(self):
        assert normalize_period(date(2024, 2, 3)) == date(2024, 2, 29)
        assert normalize_period(date(2025, 12, 31)) == date(2025, 12, 31)


class TestRunCodes:
    """Test run code allocation."""

    async def test_code_not_reused_after_run_leaves_year(
        self, run_service, published_run, manager, specialist
    ):
        february = await run_service.create_run(specialist, date(2025, 2, 1), ENTITY)
        assert february.run_code == "PR-2025-0002"

        await run_service.manager_reject(published_run.pay_run_id, manager, "Wrong year")
        moved = await run_service.resubmit_run(
            published_run.pay_run_id, specialist, payroll_period=date(2026, 1, 15)
        )
        assert moved.payroll_period == date(2026, 1, 31)
        assert moved.run_code == "PR-2025-0001"

        march = await run_service.create_run(specialist, date(2025, 3, 1), ENTITY)
        assert march.run_code == "PR-2025-0003"

        next_year = await run_service.create_run(specialist, date(2026, 2, 1), ENTITY)
        assert next_year.run_code == "PR-2026-0001"

    async def test_concurrent_creates_get_distinct_codes(self, run_service, specialist):
        runs = await asyncio.gather(
            run_service.create_run(specialist, PERIOD, "Cairo HQ"),
            run_service.create_run(specialist, PERIOD, "Giza Plant"),
            run_service.create_run(specialist, PERIOD, "Alexandria Branch"),
        )

        assert sorted(run.run_code for run in runs) == [
            "PR-2025-0001",
            "PR-2025-0002",
            "PR-2025-0003",
        ]

    async def test_open_run_unique_in_database(self, draft_run, session):
        """A second open run for the same entity and period is refused by the table itself."""
        session.add(
            PayrollRun(
                run_code="PR-2025-0999",
                payroll_period=PERIOD,
                entity=ENTITY.upper(),
                status="draft",
            )
        )

        with pytest.raises(IntegrityError):
            await session.flush()
        await session.rollback()

    async def test_rejected_runs_do_not_hold_the_period_in_database(
        self, run_service, published_run, manager, session
    ):
        await run_service.manager_reject(published_run.pay_run_id, manager, "Redo")

        session.add(
            PayrollRun(
                run_code="PR-2025-0999",
                payroll_period=PERIOD,
                entity=ENTITY,
                status="draft",
            )
        )
        await session.flush()


class TestReviewAndPublish:
    """Test review and the exception gate on publish."""

    async def test_review_records_exceptions(self, run_service, flagged_run, specialist):
        run = await run_service.review_run(flagged_run.pay_run_id, specialist)

        assert run.status == "under_review"
        assert run.reviewed_by == "spec-1"
        assert run.employee_count == 2
        assert run.exception_count == 1

        bob = await run_service.pay_lines.get_pay_line(run.pay_run_id, BOB)
        assert bob.exceptions.startswith("Bank details missing")

    async def test_review_requires_pay_lines(self, run_service, specialist):
        run = await run_service.create_run(specialist, PERIOD, ENTITY)

        with pytest.raises(ValidationError):
            await run_service.review_run(run.pay_run_id, specialist)

        run = await run_service.get_run(run.pay_run_id)
        assert run.status == "draft"
        assert await history_actions(run_service, run) == ["create"]

    async def test_publish_blocked_by_critical_exception(
        self, run_service, flagged_run, specialist
    ):
        await run_service.review_run(flagged_run.pay_run_id, specialist)

        with pytest.raises(ExceptionBlockedError) as exc_info:
            await run_service.publish_run(flagged_run.pay_run_id, specialist)

        assert exc_info.value.report.critical_count == 1
        run = await run_service.get_run(flagged_run.pay_run_id)
        assert run.status == "under_review"
        assert "publish" not in await history_actions(run_service, run)

    async def test_fix_then_publish(self, run_service, flagged_run, specialist):
        run_id = flagged_run.pay_run_id
        await run_service.review_run(run_id, specialist)

        await run_service.pay_lines.edit_employee_payroll_detail(
            specialist, run_id, BOB, bank_account_number="EG1234", net_pay=Decimal("6000")
        )
        report = await run_service.get_exceptions(run_id)
        assert report.issues == ()

        run = await run_service.publish_run(run_id, specialist)

        assert run.status == "published"
        assert run.published_by == "spec-1"
        assert (await history_actions(run_service, run)).count("publish") == 1

    async def test_publish_twice(self, run_service, published_run, specialist):
        with pytest.raises(InvalidTransitionError):
            await run_service.publish_run(published_run.pay_run_id, specialist)

        assert (await history_actions(run_service, published_run)).count("publish") == 1

    async def test_warnings_do_not_block(self, run_service, specialist):
        run = await run_service.create_run(specialist, PERIOD, ENTITY)
        await run_service.pay_lines.load_pay_lines(
            specialist, run.pay_run_id, [clean_line(ALICE, "100")]
        )
        await run_service.review_run(run.pay_run_id, specialist)

        run = await run_service.publish_run(run.pay_run_id, specialist)
        assert run.status == "published"


class TestApprovals:
    """Test the manager and finance approval steps."""

    async def test_full_flow(self, run_service, locked_run):
        run = await run_service.get_run(locked_run.pay_run_id)

        assert run.status == "locked"
        assert run.approved_by_manager == "mgr-1"
        assert run.approved_by_finance == "fin-1"
        assert run.locked_by == "mgr-1"
        assert run.version == 6
        assert await history_actions(run_service, run) == [
            "create",
            "review",
            "publish",
            "manager_approve",
            "finance_approve",
            "lock",
        ]

    async def test_manager_reject_requires_reason(self, run_service, published_run, manager):
        with pytest.raises(ValidationError):
            await run_service.manager_reject(published_run.pay_run_id, manager, None)

        run = await run_service.get_run(published_run.pay_run_id)
        assert run.status == "published"
        assert run.rejected_by is None

    async def test_manager_reject(self, run_service, published_run, manager):
        run = await run_service.manager_reject(
            published_run.pay_run_id, manager, "Overtime missing"
        )

        assert run.status == "manager_rejected"
        assert run.rejected_by == "mgr-1"
        assert run.rejection_reason == "Overtime missing"

    async def test_finance_reject(self, run_service, published_run, manager, finance):
        await run_service.manager_approve(published_run.pay_run_id, manager)
        run = await run_service.finance_reject(
            published_run.pay_run_id, finance, "Budget exceeded"
        )

        assert run.status == "finance_rejected"
        assert run.rejected_by == "fin-1"

    async def test_specialist_cannot_approve(self, run_service, published_run, specialist):
        with pytest.raises(AuthorizationError):
            await run_service.manager_approve(published_run.pay_run_id, specialist)

    async def test_finance_before_manager(self, run_service, published_run, finance):
        with pytest.raises(InvalidTransitionError):
            await run_service.finance_approve(published_run.pay_run_id, finance)

    async def test_unknown_run(self, run_service, manager, new_id):
        with pytest.raises(NotFoundError):
            await run_service.manager_approve(new_id, manager)


class TestLocking:
    """Test lock and unlock."""

    async def test_unlock_requires_reason(self, run_service, locked_run, manager):
        with pytest.raises(ValidationError):
            await run_service.unlock_run(locked_run.pay_run_id, manager, "")

        run = await run_service.get_run(locked_run.pay_run_id)
        assert run.status == "locked"

    async def test_unlock_only_from_locked(self, run_service, published_run, manager):
        with pytest.raises(InvalidTransitionError):
            await run_service.unlock_run(published_run.pay_run_id, manager, "Correction")

    async def test_unlock_from_finance_approved(
        self, run_service, published_run, manager, finance
    ):
        await run_service.manager_approve(published_run.pay_run_id, manager)
        await run_service.finance_approve(published_run.pay_run_id, finance)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await run_service.unlock_run(published_run.pay_run_id, manager, "Correction")

        assert exc_info.value.from_status == "finance_approved"
        run = await run_service.get_run(published_run.pay_run_id)
        assert run.status == "finance_approved"
        assert run.unlocked_by is None
        assert await history_actions(run_service, run) == [
            "create",
            "review",
            "publish",
            "manager_approve",
            "finance_approve",
        ]

    async def test_unlock(self, run_service, locked_run, manager):
        run = await run_service.unlock_run(locked_run.pay_run_id, manager, "Bank file rejected")

        assert run.status == "finance_approved"
        assert run.locked_by is None
        assert run.unlocked_by == "mgr-1"
        assert run.unlock_reason == "Bank file rejected"

    async def test_relock_after_unlock(self, run_service, locked_run, manager):
        await run_service.unlock_run(locked_run.pay_run_id, manager, "Fix")
        run = await run_service.lock_run(locked_run.pay_run_id, manager)
        assert run.status == "locked"


class TestResubmit:
    """Test returning rejected runs to draft."""

    async def test_resubmit_resets_chain(self, run_service, published_run, manager, specialist):
        await run_service.manager_reject(published_run.pay_run_id, manager, "Wrong month")

        run = await run_service.resubmit_run(
            published_run.pay_run_id, specialist, payroll_period=date(2025, 2, 10)
        )

        assert run.status == "draft"
        assert run.payroll_period == date(2025, 2, 28)
        assert run.resubmission_count == 1
        assert run.published_by is None
        assert run.rejected_by is None
        assert run.created_by == "spec-1"

    async def test_resubmit_only_when_rejected(self, run_service, published_run, specialist):
        with pytest.raises(InvalidTransitionError):
            await run_service.resubmit_run(published_run.pay_run_id, specialist)

    async def test_rejected_run_frees_period(self, run_service, published_run, manager, specialist):
        await run_service.manager_reject(published_run.pay_run_id, manager, "Redo")

        replacement = await run_service.create_run(specialist, PERIOD, ENTITY)
        assert replacement.status == "draft"

        # The original can no longer come back for the same period
        with pytest.raises(ValidationError):
            await run_service.resubmit_run(published_run.pay_run_id, specialist)

    async def test_resubmit_away_from_replaced_period(
        self, run_service, published_run, manager, specialist, session
    ):
        await run_service.manager_reject(published_run.pay_run_id, manager, "Wrong month")
        await run_service.create_run(specialist, PERIOD, ENTITY)

        run = await run_service.resubmit_run(
            published_run.pay_run_id, specialist, payroll_period=date(2025, 2, 1)
        )
        await session.flush()

        assert run.status == "draft"
        assert run.payroll_period == date(2025, 2, 28)
        await session.refresh(run)
        assert run.payroll_period == date(2025, 2, 28)


class TestEditPeriod:
    """Test correcting the period of a draft run."""

    async def test_edit_period(self, run_service, draft_run, specialist):
        run = await run_service.edit_payroll_period(
            draft_run.pay_run_id, specialist, date(2025, 2, 3)
        )

        assert run.status == "draft"
        assert run.payroll_period == date(2025, 2, 28)
        assert run.version == 2
        history = await run_service.get_history(draft_run.pay_run_id)
        assert [e.action for e in history] == ["create", "edit_period"]
        assert history[-1].reason == "Period 2025-01-31 -> 2025-02-28"
        assert await run_service.ledger.verify(run) == []

    async def test_edit_frees_old_period(self, run_service, draft_run, specialist):
        await run_service.edit_payroll_period(draft_run.pay_run_id, specialist, date(2025, 2, 1))

        replacement = await run_service.create_run(specialist, PERIOD, ENTITY)
        assert replacement.payroll_period == PERIOD

    async def test_edit_into_taken_period(self, run_service, draft_run, specialist):
        await run_service.create_run(specialist, date(2025, 2, 1), ENTITY)

        with pytest.raises(ValidationError):
            await run_service.edit_payroll_period(
                draft_run.pay_run_id, specialist, date(2025, 2, 14)
            )

        run = await run_service.get_run(draft_run.pay_run_id)
        assert run.payroll_period == PERIOD
        assert run.version == 1

    async def test_same_period(self, run_service, draft_run, specialist):
        with pytest.raises(ValidationError):
            await run_service.edit_payroll_period(
                draft_run.pay_run_id, specialist, date(2025, 1, 2)
            )

    async def test_only_drafts(self, run_service, published_run, specialist):
        with pytest.raises(InvalidTransitionError):
            await run_service.edit_payroll_period(
                published_run.pay_run_id, specialist, date(2025, 2, 1)
            )

    async def test_manager_cannot_edit_period(self, run_service, draft_run, manager):
        with pytest.raises(AuthorizationError):
            await run_service.edit_payroll_period(
                draft_run.pay_run_id, manager, date(2025, 2, 1)
            )


class TestConcurrencyAndLedger:
    """Test version checks and ledger consistency."""

    async def test_stale_version(self, run_service, draft_run, specialist):
        with pytest.raises(ConcurrencyError):
            await run_service.review_run(draft_run.pay_run_id, specialist, expected_version=5)

        run = await run_service.get_run(draft_run.pay_run_id)
        assert run.status == "draft"

    async def test_matching_version(self, run_service, draft_run, specialist):
        run = await run_service.review_run(draft_run.pay_run_id, specialist, expected_version=1)
        assert run.version == 2

    async def test_replay_equals_cache(
        self, run_service, locked_run, manager, session, session_factory
    ):
        await run_service.unlock_run(locked_run.pay_run_id, manager, "Recheck")
        await session.commit()

        async with session_factory() as fresh:
            run = await PayrollRunService(fresh).get_run(locked_run.pay_run_id)
            assert await ApprovalLedger(fresh).verify(run) == []
            assert run.unlocked_by == "mgr-1"
            assert run.unlocked_at.tzinfo is not None
