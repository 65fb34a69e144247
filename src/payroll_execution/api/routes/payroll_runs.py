"""Payroll run API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from payroll_execution.api.dependencies import CurrentActor, DbSession
from payroll_execution.authorization import Capability, require
from payroll_execution.api.schemas import (
    ErrorResponse,
    ExceptionReportResponse,
    HistoryResponse,
    IssueResponse,
    LedgerEntryResponse,
    PayLineBatch,
    PayLineCorrection,
    PayLineListResponse,
    PayLineResponse,
    PayrollRunCreate,
    PayrollRunListResponse,
    PayrollRunResponse,
    PeriodEditRequest,
    ResubmitRequest,
    TransitionRequest,
)
from payroll_execution.calculators import ExceptionReport
from payroll_execution.services.pay_line_service import PayLineFigures, PayLineService
from payroll_execution.services.payroll_run_service import PayrollRunService

router = APIRouter(prefix="/payroll-runs", tags=["payroll-runs"])

TRANSITION_ERRORS = {
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


def report_response(pay_run_id: UUID, report: ExceptionReport) -> ExceptionReportResponse:
    return ExceptionReportResponse(
        pay_run_id=pay_run_id,
        issues=[IssueResponse(**issue.to_canonical_dict()) for issue in report.issues],
        critical_count=report.critical_count,
        warning_count=report.warning_count,
        total_employees=report.total_employees,
        total_net_pay=report.total_net_pay,
        blocking=report.has_blocking_issues,
    )


# ============================================================================
# Payroll run CRUD
# ============================================================================


@router.post(
    "",
    response_model=PayrollRunResponse,
    status_code=status.HTTP_201_CREATED,
    responses={403: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def create_payroll_run(
    db: DbSession,
    actor: CurrentActor,
    payload: PayrollRunCreate,
) -> PayrollRunResponse:
    """Create a new payroll run in draft status."""
    run = await PayrollRunService(db).create_run(actor, payload.payroll_period, payload.entity)
    await db.commit()
    return PayrollRunResponse.model_validate(run)


@router.get("", response_model=PayrollRunListResponse)
async def list_payroll_runs(
    db: DbSession,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    entity: str | None = None,
) -> PayrollRunListResponse:
    """List payroll runs with optional filters."""
    runs = await PayrollRunService(db).list_runs(status=status_filter, entity=entity)
    return PayrollRunListResponse(
        items=[PayrollRunResponse.model_validate(run) for run in runs],
        total=len(runs),
    )


@router.get(
    "/{pay_run_id}",
    response_model=PayrollRunResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_payroll_run(
    db: DbSession,
    pay_run_id: Annotated[UUID, Path()],
) -> PayrollRunResponse:
    run = await PayrollRunService(db).get_run(pay_run_id)
    return PayrollRunResponse.model_validate(run)


# ============================================================================
# Payroll run state transitions
# ============================================================================


@router.post(
    "/{pay_run_id}/review",
    response_model=PayrollRunResponse,
    responses=TRANSITION_ERRORS,
)
async def review_payroll_run(
    db: DbSession,
    actor: CurrentActor,
    pay_run_id: Annotated[UUID, Path()],
    payload: TransitionRequest | None = None,
) -> PayrollRunResponse:
    """Move a draft run into review and record its exceptions."""
    payload = payload or TransitionRequest()
    run = await PayrollRunService(db).review_run(pay_run_id, actor, payload.expected_version)
    await db.commit()
    return PayrollRunResponse.model_validate(run)


@router.post(
    "/{pay_run_id}/publish",
    response_model=PayrollRunResponse,
    responses=TRANSITION_ERRORS,
)
async def publish_payroll_run(
    db: DbSession,
    actor: CurrentActor,
    pay_run_id: Annotated[UUID, Path()],
    payload: TransitionRequest | None = None,
) -> PayrollRunResponse:
    """Publish a reviewed run for manager approval. Refused while critical exceptions remain."""
    payload = payload or TransitionRequest()
    run = await PayrollRunService(db).publish_run(pay_run_id, actor, payload.expected_version)
    await db.commit()
    return PayrollRunResponse.model_validate(run)


@router.post(
    "/{pay_run_id}/manager-approve",
    response_model=PayrollRunResponse,
    responses=TRANSITION_ERRORS,
)
async def manager_approve_payroll_run(
    db: DbSession,
    actor: CurrentActor,
    pay_run_id: Annotated[UUID, Path()],
    payload: TransitionRequest | None = None,
) -> PayrollRunResponse:
    payload = payload or TransitionRequest()
    run = await PayrollRunService(db).manager_approve(pay_run_id, actor, payload.expected_version)
    await db.commit()
    return PayrollRunResponse.model_validate(run)


@router.post(
    "/{pay_run_id}/manager-reject",
    response_model=PayrollRunResponse,
    responses=TRANSITION_ERRORS,
)
async def manager_reject_payroll_run(
    db: DbSession,
    actor: CurrentActor,
    pay_run_id: Annotated[UUID, Path()],
    payload: TransitionRequest,
) -> PayrollRunResponse:
    run = await PayrollRunService(db).manager_reject(
        pay_run_id, actor, payload.reason, payload.expected_version
    )
    await db.commit()
    return PayrollRunResponse.model_validate(run)


@router.post(
    "/{pay_run_id}/finance-approve",
    response_model=PayrollRunResponse,
    responses=TRANSITION_ERRORS,
)
async def finance_approve_payroll_run(
    db: DbSession,
    actor: CurrentActor,
    pay_run_id: Annotated[UUID, Path()],
    payload: TransitionRequest | None = None,
) -> PayrollRunResponse:
    payload = payload or TransitionRequest()
    run = await PayrollRunService(db).finance_approve(pay_run_id, actor, payload.expected_version)
    await db.commit()
    return PayrollRunResponse.model_validate(run)


@router.post(
    "/{pay_run_id}/finance-reject",
    response_model=PayrollRunResponse,
    responses=TRANSITION_ERRORS,
)
async def finance_reject_payroll_run(
    db: DbSession,
    actor: CurrentActor,
    pay_run_id: Annotated[UUID, Path()],
    payload: TransitionRequest,
) -> PayrollRunResponse:
    run = await PayrollRunService(db).finance_reject(
        pay_run_id, actor, payload.reason, payload.expected_version
    )
    await db.commit()
    return PayrollRunResponse.model_validate(run)


@router.post(
    "/{pay_run_id}/lock",
    response_model=PayrollRunResponse,
    responses=TRANSITION_ERRORS,
)
async def lock_payroll_run(
    db: DbSession,
    actor: CurrentActor,
    pay_run_id: Annotated[UUID, Path()],
    payload: TransitionRequest | None = None,
) -> PayrollRunResponse:
    """Freeze a finance-approved run."""
    payload = payload or TransitionRequest()
    run = await PayrollRunService(db).lock_run(pay_run_id, actor, payload.expected_version)
    await db.commit()
    return PayrollRunResponse.model_validate(run)


@router.post(
    "/{pay_run_id}/unlock",
    response_model=PayrollRunResponse,
    responses=TRANSITION_ERRORS,
)
async def unlock_payroll_run(
    db: DbSession,
    actor: CurrentActor,
    pay_run_id: Annotated[UUID, Path()],
    payload: TransitionRequest,
) -> PayrollRunResponse:
    """Unfreeze a locked run back to finance approved. A reason is mandatory."""
    run = await PayrollRunService(db).unlock_run(
        pay_run_id, actor, payload.reason, payload.expected_version
    )
    await db.commit()
    return PayrollRunResponse.model_validate(run)


@router.post(
    "/{pay_run_id}/resubmit",
    response_model=PayrollRunResponse,
    responses=TRANSITION_ERRORS,
)
async def resubmit_payroll_run(
    db: DbSession,
    actor: CurrentActor,
    pay_run_id: Annotated[UUID, Path()],
    payload: ResubmitRequest | None = None,
) -> PayrollRunResponse:
    """Return a rejected run to draft."""
    payload = payload or ResubmitRequest()
    run = await PayrollRunService(db).resubmit_run(
        pay_run_id, actor, payload.payroll_period, payload.expected_version
    )
    await db.commit()
    return PayrollRunResponse.model_validate(run)


@router.patch(
    "/{pay_run_id}/period",
    response_model=PayrollRunResponse,
    responses=TRANSITION_ERRORS,
)
async def edit_payroll_run_period(
    db: DbSession,
    actor: CurrentActor,
    pay_run_id: Annotated[UUID, Path()],
    payload: PeriodEditRequest,
) -> PayrollRunResponse:
    """Correct the period of a draft run."""
    run = await PayrollRunService(db).edit_payroll_period(
        pay_run_id, actor, payload.payroll_period, payload.expected_version
    )
    await db.commit()
    return PayrollRunResponse.model_validate(run)


# ============================================================================
# Exceptions and history
# ============================================================================


@router.get(
    "/{pay_run_id}/exceptions",
    response_model=ExceptionReportResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_payroll_run_exceptions(
    db: DbSession,
    pay_run_id: Annotated[UUID, Path()],
) -> ExceptionReportResponse:
    """Scan the run's pay lines. Read only and deterministic."""
    report = await PayrollRunService(db).get_exceptions(pay_run_id)
    return report_response(pay_run_id, report)


@router.post(
    "/{pay_run_id}/exceptions/rescan",
    response_model=ExceptionReportResponse,
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def rescan_payroll_run(
    db: DbSession,
    actor: CurrentActor,
    pay_run_id: Annotated[UUID, Path()],
) -> ExceptionReportResponse:
    """Re-scan the run and store the notes on each pay line."""
    require(Capability.EDIT_PAY_LINE, actor)
    report = await PayLineService(db).rescan_run(pay_run_id)
    await db.commit()
    return report_response(pay_run_id, report)


@router.get(
    "/{pay_run_id}/history",
    response_model=HistoryResponse,
    responses={404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def get_payroll_run_history(
    db: DbSession,
    pay_run_id: Annotated[UUID, Path()],
) -> HistoryResponse:
    entries = await PayrollRunService(db).get_history(pay_run_id)
    return HistoryResponse(
        pay_run_id=pay_run_id,
        entries=[LedgerEntryResponse.model_validate(entry) for entry in entries],
    )


# ============================================================================
# Pay lines
# ============================================================================


@router.get(
    "/{pay_run_id}/pay-lines",
    response_model=PayLineListResponse,
    responses={404: {"model": ErrorResponse}},
)
async def list_pay_lines(
    db: DbSession,
    pay_run_id: Annotated[UUID, Path()],
) -> PayLineListResponse:
    lines = await PayLineService(db).list_pay_lines(pay_run_id)
    return PayLineListResponse(
        items=[PayLineResponse.model_validate(line) for line in lines],
        total=len(lines),
    )


@router.put(
    "/{pay_run_id}/pay-lines",
    response_model=PayLineListResponse,
    responses=TRANSITION_ERRORS,
)
async def load_pay_lines(
    db: DbSession,
    actor: CurrentActor,
    pay_run_id: Annotated[UUID, Path()],
    payload: PayLineBatch,
) -> PayLineListResponse:
    """Insert or replace computed pay lines while the run is draft or under review."""
    figures = [PayLineFigures(**line.model_dump()) for line in payload.lines]
    lines = await PayLineService(db).load_pay_lines(actor, pay_run_id, figures)
    await db.commit()
    return PayLineListResponse(
        items=[PayLineResponse.model_validate(line) for line in lines],
        total=len(lines),
    )


@router.patch(
    "/{pay_run_id}/pay-lines/{employee_id}",
    response_model=PayLineResponse,
    responses=TRANSITION_ERRORS,
)
async def edit_pay_line(
    db: DbSession,
    actor: CurrentActor,
    pay_run_id: Annotated[UUID, Path()],
    employee_id: Annotated[UUID, Path()],
    payload: PayLineCorrection,
) -> PayLineResponse:
    """Correct the bank account or net pay of a flagged pay line."""
    line = await PayLineService(db).edit_employee_payroll_detail(
        actor,
        pay_run_id,
        employee_id,
        bank_account_number=payload.bank_account_number,
        net_pay=payload.net_pay,
    )
    await db.commit()
    return PayLineResponse.model_validate(line)
