"""Type definitions for the exception scan."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class Severity(str, Enum):
    """Exception severity. Critical issues block publishing."""

    CRITICAL = "critical"
    WARNING = "warning"


class IssueCode(str, Enum):
    """Exception rules, in the order they are evaluated per line."""

    BANK_DETAILS_MISSING = "BANK_DETAILS_MISSING"
    BANK_DETAILS_INVALID = "BANK_DETAILS_INVALID"
    NEGATIVE_NET_PAY = "NEGATIVE_NET_PAY"
    BELOW_MINIMUM_WAGE = "BELOW_MINIMUM_WAGE"


@dataclass(frozen=True)
class PayLineSnapshot:
    """The fields of a pay line the exception rules look at."""

    employee_id: UUID
    net_pay: Decimal
    bank_status: str


@dataclass(frozen=True)
class PayLineIssue:
    """A single exception found on one employee's pay line."""

    employee_id: UUID
    code: IssueCode
    issue: str
    severity: Severity

    @property
    def is_critical(self) -> bool:
        return self.severity == Severity.CRITICAL

    def to_canonical_dict(self) -> dict[str, Any]:
        return {
            "employee_id": str(self.employee_id),
            "code": self.code.value,
            "issue": self.issue,
            "severity": self.severity.value,
        }


@dataclass(frozen=True)
class ExceptionReport:
    """Result of scanning a set of pay lines."""

    issues: tuple[PayLineIssue, ...] = field(default_factory=tuple)
    critical_count: int = 0
    warning_count: int = 0
    total_employees: int = 0
    total_net_pay: Decimal = Decimal("0")

    @property
    def has_blocking_issues(self) -> bool:
        return self.critical_count > 0

    @property
    def employees_with_issues(self) -> int:
        return len({issue.employee_id for issue in self.issues})

    def issues_for(self, employee_id: UUID) -> list[PayLineIssue]:
        """Issues reported for one employee, in rule order."""
        return [issue for issue in self.issues if issue.employee_id == employee_id]

    def to_dict(self) -> dict[str, Any]:
        """Return canonical dict (deterministic ordering, decimal strings)."""
        return {
            "issues": [issue.to_canonical_dict() for issue in self.issues],
            "critical_count": self.critical_count,
            "warning_count": self.warning_count,
            "total_employees": self.total_employees,
            "total_net_pay": str(self.total_net_pay),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))
