"""Role capabilities for payroll execution operations.

Which role may perform which operation is configured as data in
CAPABILITIES and checked through a single predicate, is_permitted().
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from payroll_execution.errors import AuthorizationError, ValidationError


class Role(str, Enum):
    """System roles relevant to payroll execution."""

    PAYROLL_SPECIALIST = "payroll_specialist"
    PAYROLL_MANAGER = "payroll_manager"
    FINANCE_STAFF = "finance_staff"
    HR_ADMIN = "hr_admin"


class Capability(str, Enum):
    """Operations guarded by a role check."""

    CREATE_RUN = "create_run"
    REVIEW_RUN = "review_run"
    PUBLISH_RUN = "publish_run"
    MANAGER_APPROVE = "manager_approve"
    MANAGER_REJECT = "manager_reject"
    FINANCE_APPROVE = "finance_approve"
    FINANCE_REJECT = "finance_reject"
    LOCK_RUN = "lock_run"
    UNLOCK_RUN = "unlock_run"
    RESUBMIT_RUN = "resubmit_run"
    EDIT_PERIOD = "edit_period"
    LOAD_PAY_LINES = "load_pay_lines"
    EDIT_PAY_LINE = "edit_pay_line"
    REGISTER_BENEFIT = "register_benefit"
    EDIT_BENEFIT = "edit_benefit"
    REVIEW_BENEFIT = "review_benefit"
    PROCESS_BENEFIT = "process_benefit"
    MARK_REFUND_PAID = "mark_refund_paid"


_SPECIALIST = frozenset({Role.PAYROLL_SPECIALIST})
_MANAGER = frozenset({Role.PAYROLL_MANAGER})
_FINANCE = frozenset({Role.FINANCE_STAFF})

CAPABILITIES: dict[Capability, frozenset[Role]] = {
    Capability.CREATE_RUN: _SPECIALIST,
    Capability.REVIEW_RUN: _SPECIALIST,
    Capability.PUBLISH_RUN: _SPECIALIST,
    Capability.MANAGER_APPROVE: _MANAGER,
    Capability.MANAGER_REJECT: _MANAGER,
    Capability.FINANCE_APPROVE: _FINANCE,
    Capability.FINANCE_REJECT: _FINANCE,
    Capability.LOCK_RUN: _MANAGER,
    Capability.UNLOCK_RUN: _MANAGER,
    Capability.RESUBMIT_RUN: _SPECIALIST,
    Capability.EDIT_PERIOD: _SPECIALIST,
    Capability.LOAD_PAY_LINES: _SPECIALIST,
    Capability.EDIT_PAY_LINE: _SPECIALIST,
    Capability.REGISTER_BENEFIT: frozenset({Role.PAYROLL_SPECIALIST, Role.HR_ADMIN}),
    Capability.EDIT_BENEFIT: _SPECIALIST,
    Capability.REVIEW_BENEFIT: frozenset({Role.PAYROLL_SPECIALIST, Role.PAYROLL_MANAGER}),
    Capability.PROCESS_BENEFIT: _SPECIALIST,
    Capability.MARK_REFUND_PAID: frozenset({Role.PAYROLL_SPECIALIST, Role.FINANCE_STAFF}),
}


@dataclass(frozen=True)
class Actor:
    """The authenticated caller of an operation."""

    user_id: str
    role: Role

    @classmethod
    def parse(cls, user_id: str, role: str) -> Actor:
        """Build an actor from raw boundary values."""
        if not user_id or not user_id.strip():
            raise ValidationError("Actor id is required")
        try:
            parsed_role = Role(role)
        except ValueError:
            raise ValidationError(f"Unknown role '{role}'") from None
        return cls(user_id=user_id.strip(), role=parsed_role)


def is_permitted(capability: Capability, role: Role | str) -> bool:
    """Check whether a role holds a capability."""
    return role in CAPABILITIES.get(capability, frozenset())


def require(capability: Capability, actor: Actor) -> None:
    """Raise AuthorizationError unless the actor's role holds the capability."""
    if not is_permitted(capability, actor.role):
        raise AuthorizationError(capability.value, actor.role.value)
