"""Exception detection over computed pay lines.

The engine is a pure function of its input lines and the configured
minimum wage. It keeps no state between scans, so re-running it after a
correction clears whatever the correction fixed.

Rules, evaluated per line in this order (a line may trip several):
1. bank status not ready      -> critical
2. net pay below zero         -> critical
3. 0 <= net pay < minimum     -> warning
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal

from payroll_execution.calculators.types import (
    ExceptionReport,
    IssueCode,
    PayLineIssue,
    PayLineSnapshot,
    Severity,
)
from payroll_execution.models.enums import BankStatus


def _fmt(amount: Decimal) -> str:
    return f"{amount:.2f}"


class ExceptionEngine:
    """Stateless scanner producing a severity-tagged exception report."""

    def __init__(self, minimum_wage: Decimal):
        if minimum_wage < 0:
            raise ValueError("Minimum wage cannot be negative")
        self.minimum_wage = minimum_wage

    def check_line(self, line: PayLineSnapshot) -> list[PayLineIssue]:
        """Return the issues for a single pay line, in rule order."""
        issues: list[PayLineIssue] = []

        if line.bank_status != BankStatus.READY:
            if line.bank_status == BankStatus.INVALID:
                issues.append(
                    PayLineIssue(
                        employee_id=line.employee_id,
                        code=IssueCode.BANK_DETAILS_INVALID,
                        issue="Bank details invalid",
                        severity=Severity.CRITICAL,
                    )
                )
            else:
                issues.append(
                    PayLineIssue(
                        employee_id=line.employee_id,
                        code=IssueCode.BANK_DETAILS_MISSING,
                        issue="Bank details missing",
                        severity=Severity.CRITICAL,
                    )
                )

        if line.net_pay < 0:
            issues.append(
                PayLineIssue(
                    employee_id=line.employee_id,
                    code=IssueCode.NEGATIVE_NET_PAY,
                    issue=f"Net pay ({_fmt(line.net_pay)}) is negative",
                    severity=Severity.CRITICAL,
                )
            )
        elif line.net_pay < self.minimum_wage:
            issues.append(
                PayLineIssue(
                    employee_id=line.employee_id,
                    code=IssueCode.BELOW_MINIMUM_WAGE,
                    issue=(
                        f"Net pay ({_fmt(line.net_pay)}) is below minimum wage "
                        f"({_fmt(self.minimum_wage)})"
                    ),
                    severity=Severity.WARNING,
                )
            )

        return issues

    def scan(self, lines: Iterable[PayLineSnapshot]) -> ExceptionReport:
        """Scan all lines of a run.

        Lines are visited in employee-id order so the report does not depend
        on the order the caller supplies them in.
        """
        ordered = sorted(lines, key=lambda line: str(line.employee_id))

        issues: list[PayLineIssue] = []
        total_net_pay = Decimal("0")
        for line in ordered:
            issues.extend(self.check_line(line))
            total_net_pay += line.net_pay

        critical = sum(1 for issue in issues if issue.is_critical)
        return ExceptionReport(
            issues=tuple(issues),
            critical_count=critical,
            warning_count=len(issues) - critical,
            total_employees=len(ordered),
            total_net_pay=total_net_pay,
        )

    @staticmethod
    def format_notes(issues: list[PayLineIssue]) -> str | None:
        """Render issues as the free-text notes stored on a pay line."""
        if not issues:
            return None
        return "; ".join(issue.issue for issue in issues)
