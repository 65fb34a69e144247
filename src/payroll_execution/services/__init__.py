"""Payroll execution services."""

from payroll_execution.services.approval_ledger import ApprovalLedger, RunActorState, replay
from payroll_execution.services.benefit_processor import BenefitPosting, BenefitProcessor
from payroll_execution.services.locking_service import RunLockRegistry, run_locks
from payroll_execution.services.pay_line_service import PayLineFigures, PayLineService
from payroll_execution.services.payroll_run_service import PayrollRunService
from payroll_execution.services.refund_service import RefundService
from payroll_execution.services.state_machine import PayrollRunStateMachine, Transition

__all__ = [
    "ApprovalLedger",
    "RunActorState",
    "replay",
    "BenefitPosting",
    "BenefitProcessor",
    "RunLockRegistry",
    "run_locks",
    "PayLineFigures",
    "PayLineService",
    "PayrollRunService",
    "RefundService",
    "PayrollRunStateMachine",
    "Transition",
]
