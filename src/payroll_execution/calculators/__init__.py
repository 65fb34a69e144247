"""Pure computations over pay lines."""

from payroll_execution.calculators.exception_engine import ExceptionEngine
from payroll_execution.calculators.types import (
    ExceptionReport,
    IssueCode,
    PayLineIssue,
    PayLineSnapshot,
    Severity,
)

__all__ = [
    "ExceptionEngine",
    "ExceptionReport",
    "IssueCode",
    "PayLineIssue",
    "PayLineSnapshot",
    "Severity",
]
