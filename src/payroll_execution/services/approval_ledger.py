"""Approval ledger - append-only audit trail of run transitions.

The ledger is the single source of truth for who did what and when. The
actor columns on PayrollRun are a cache computed by replay(), a pure fold
over the run's entries in order, and are never written any other way.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields, replace
from datetime import datetime
from typing import TYPE_CHECKING, Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_execution.errors import StorageUnavailableError
from payroll_execution.models import ApprovalLedgerEntry, PayrollRun, RunAction
from payroll_execution.models.base import utcnow

if TYPE_CHECKING:
    from payroll_execution.authorization import Actor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunActorState:
    """Denormalized run fields derived from the ledger."""

    status: str | None = None
    created_by: str | None = None
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    published_by: str | None = None
    published_at: datetime | None = None
    approved_by_manager: str | None = None
    manager_approved_at: datetime | None = None
    approved_by_finance: str | None = None
    finance_approved_at: datetime | None = None
    locked_by: str | None = None
    locked_at: datetime | None = None
    rejected_by: str | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None
    unlocked_by: str | None = None
    unlocked_at: datetime | None = None
    unlock_reason: str | None = None
    resubmission_count: int = 0

    def apply_to(self, run: PayrollRun) -> None:
        """Write every derived field onto the run."""
        for f in fields(self):
            setattr(run, f.name, getattr(self, f.name))

    def diff(self, run: PayrollRun) -> list[str]:
        """Names of run fields that disagree with this state."""
        return [
            f.name
            for f in fields(self)
            if getattr(run, f.name) != getattr(self, f.name)
        ]


def apply_entry(state: RunActorState, entry: ApprovalLedgerEntry) -> RunActorState:
    """Fold one ledger entry into the derived state."""
    actor, at = entry.actor_id, entry.occurred_at
    state = replace(state, status=entry.to_status)
    action = entry.action

    if action == RunAction.CREATE:
        return replace(state, created_by=actor)
    if action == RunAction.REVIEW:
        return replace(state, reviewed_by=actor, reviewed_at=at)
    if action == RunAction.PUBLISH:
        return replace(state, published_by=actor, published_at=at)
    if action == RunAction.MANAGER_APPROVE:
        return replace(state, approved_by_manager=actor, manager_approved_at=at)
    if action == RunAction.FINANCE_APPROVE:
        return replace(state, approved_by_finance=actor, finance_approved_at=at)
    if action in (RunAction.MANAGER_REJECT, RunAction.FINANCE_REJECT):
        return replace(
            state, rejected_by=actor, rejected_at=at, rejection_reason=entry.reason
        )
    if action == RunAction.LOCK:
        return replace(state, locked_by=actor, locked_at=at)
    if action == RunAction.UNLOCK:
        return replace(
            state,
            locked_by=None,
            locked_at=None,
            unlocked_by=actor,
            unlocked_at=at,
            unlock_reason=entry.reason,
        )
    if action == RunAction.RESUBMIT:
        # Back to draft: the approval chain starts over
        return RunActorState(
            status=entry.to_status,
            created_by=state.created_by,
            resubmission_count=state.resubmission_count + 1,
        )
    if action == RunAction.EDIT_PERIOD:
        return state
    raise ValueError(f"Unknown ledger action '{action}'")


def replay(entries: Iterable[ApprovalLedgerEntry]) -> RunActorState:
    """Reconstruct the run's derived fields from its entries, oldest first."""
    state = RunActorState()
    for entry in entries:
        state = apply_entry(state, entry)
    return state


class ApprovalLedger:
    """Append-only ledger of successful run transitions."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(
        self,
        *,
        pay_run_id: UUID,
        actor: Actor,
        action: RunAction,
        from_status: str | None,
        to_status: str,
        reason: str | None = None,
        occurred_at: datetime | None = None,
    ) -> ApprovalLedgerEntry:
        """Append an entry. Only storage failures make this fail."""
        entry = ApprovalLedgerEntry(
            pay_run_id=pay_run_id,
            actor_id=actor.user_id,
            actor_role=actor.role.value,
            action=action.value,
            from_status=from_status,
            to_status=to_status,
            reason=reason,
            occurred_at=occurred_at or utcnow(),
        )
        self.session.add(entry)
        try:
            await self.session.flush()
        except OperationalError as exc:
            logger.error("Ledger append failed for run %s: %s", pay_run_id, exc)
            raise StorageUnavailableError("Approval ledger is unavailable") from exc
        return entry

    async def query_history(self, pay_run_id: UUID) -> list[ApprovalLedgerEntry]:
        """All entries for a run, ordered by time ascending."""
        try:
            result = await self.session.execute(
                select(ApprovalLedgerEntry)
                .where(ApprovalLedgerEntry.pay_run_id == pay_run_id)
                .order_by(ApprovalLedgerEntry.occurred_at, ApprovalLedgerEntry.ledger_entry_id)
            )
        except OperationalError as exc:
            raise StorageUnavailableError("Approval ledger is unavailable") from exc
        return list(result.scalars().all())

    async def replay_run(self, pay_run_id: UUID) -> RunActorState:
        """Replay a run's full history."""
        return replay(await self.query_history(pay_run_id))

    async def verify(self, run: PayrollRun) -> list[str]:
        """Return run fields that have drifted from the ledger (empty if none)."""
        state = await self.replay_run(run.pay_run_id)
        drifted = state.diff(run)
        if drifted:
            logger.warning(
                "Run %s actor cache drifted from ledger: %s", run.pay_run_id, drifted
            )
        return drifted
