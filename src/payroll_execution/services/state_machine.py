"""Payroll run state machine with transition validation."""

from __future__ import annotations

from dataclasses import dataclass

from payroll_execution.authorization import Actor, Capability, Role, is_permitted, require
from payroll_execution.errors import InvalidTransitionError, ValidationError
from payroll_execution.models.enums import PayrollRunStatus, RunAction


@dataclass(frozen=True)
class Transition:
    """One row of the transition table."""

    from_statuses: frozenset[PayrollRunStatus]
    to_status: PayrollRunStatus
    capability: Capability
    reason_required: bool = False


class PayrollRunStateMachine:
    """State machine for payroll run status transitions.

    Allowed transitions:
    - draft → under_review (review)
    - under_review → published (publish)
    - published → manager_approved | manager_rejected
    - manager_approved → finance_approved | finance_rejected
    - finance_approved → locked (lock)
    - locked → finance_approved (unlock, reason required)
    - manager_rejected | finance_rejected → draft (resubmit)
    - draft → draft (edit_period, moves the run to another period)
    """

    TRANSITIONS: dict[RunAction, Transition] = {
        RunAction.REVIEW: Transition(
            frozenset({PayrollRunStatus.DRAFT}),
            PayrollRunStatus.UNDER_REVIEW,
            Capability.REVIEW_RUN,
        ),
        RunAction.PUBLISH: Transition(
            frozenset({PayrollRunStatus.UNDER_REVIEW}),
            PayrollRunStatus.PUBLISHED,
            Capability.PUBLISH_RUN,
        ),
        RunAction.MANAGER_APPROVE: Transition(
            frozenset({PayrollRunStatus.PUBLISHED}),
            PayrollRunStatus.MANAGER_APPROVED,
            Capability.MANAGER_APPROVE,
        ),
        RunAction.MANAGER_REJECT: Transition(
            frozenset({PayrollRunStatus.PUBLISHED}),
            PayrollRunStatus.MANAGER_REJECTED,
            Capability.MANAGER_REJECT,
            reason_required=True,
        ),
        RunAction.FINANCE_APPROVE: Transition(
            frozenset({PayrollRunStatus.MANAGER_APPROVED}),
            PayrollRunStatus.FINANCE_APPROVED,
            Capability.FINANCE_APPROVE,
        ),
        RunAction.FINANCE_REJECT: Transition(
            frozenset({PayrollRunStatus.MANAGER_APPROVED}),
            PayrollRunStatus.FINANCE_REJECTED,
            Capability.FINANCE_REJECT,
            reason_required=True,
        ),
        RunAction.LOCK: Transition(
            frozenset({PayrollRunStatus.FINANCE_APPROVED}),
            PayrollRunStatus.LOCKED,
            Capability.LOCK_RUN,
        ),
        RunAction.UNLOCK: Transition(
            frozenset({PayrollRunStatus.LOCKED}),
            PayrollRunStatus.FINANCE_APPROVED,
            Capability.UNLOCK_RUN,
            reason_required=True,
        ),
        RunAction.RESUBMIT: Transition(
            frozenset({PayrollRunStatus.MANAGER_REJECTED, PayrollRunStatus.FINANCE_REJECTED}),
            PayrollRunStatus.DRAFT,
            Capability.RESUBMIT_RUN,
        ),
        RunAction.EDIT_PERIOD: Transition(
            frozenset({PayrollRunStatus.DRAFT}),
            PayrollRunStatus.DRAFT,
            Capability.EDIT_PERIOD,
        ),
    }

    # Statuses where pay lines can be loaded and replaced
    PAY_LINES_MUTABLE = {
        PayrollRunStatus.DRAFT,
        PayrollRunStatus.UNDER_REVIEW,
    }

    # Statuses that do not count against the one-run-per-period rule
    REJECTED = {
        PayrollRunStatus.MANAGER_REJECTED,
        PayrollRunStatus.FINANCE_REJECTED,
    }

    @classmethod
    def get_transition(cls, action: RunAction) -> Transition:
        """Look up the table row for an action."""
        try:
            return cls.TRANSITIONS[action]
        except KeyError:
            raise ValueError(f"'{action}' is not a run transition") from None

    @classmethod
    def can_transition(cls, from_status: str, action: RunAction) -> bool:
        """Check if an action is legal from a status (ignoring role)."""
        return from_status in cls.get_transition(action).from_statuses

    @classmethod
    def target_status(cls, action: RunAction) -> PayrollRunStatus:
        return cls.get_transition(action).to_status

    @classmethod
    def validate(
        cls,
        from_status: str,
        action: RunAction,
        actor: Actor,
        reason: str | None = None,
    ) -> PayrollRunStatus:
        """Validate an attempted transition and return the resulting status.

        Checks run in order: role, current status, required reason.
        """
        transition = cls.get_transition(action)
        require(transition.capability, actor)

        if from_status not in transition.from_statuses:
            raise InvalidTransitionError(from_status, action.value)

        if transition.reason_required and not (reason and reason.strip()):
            raise ValidationError(f"A reason is required to {action.value.replace('_', ' ')}")

        return transition.to_status

    @classmethod
    def get_available_actions(cls, status: str, role: Role) -> list[RunAction]:
        """Actions the given role could take on a run in this status."""
        return [
            action
            for action, transition in cls.TRANSITIONS.items()
            if status in transition.from_statuses
            and is_permitted(transition.capability, role)
        ]

    @classmethod
    def pay_lines_mutable(cls, status: str) -> bool:
        """Check if pay lines can be loaded or replaced in this status."""
        return status in cls.PAY_LINES_MUTABLE

    @classmethod
    def is_rejected(cls, status: str) -> bool:
        return status in cls.REJECTED

    @classmethod
    def is_locked(cls, status: str) -> bool:
        return status == PayrollRunStatus.LOCKED
