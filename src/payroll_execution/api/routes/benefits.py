"""Ancillary benefit API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from payroll_execution.api.dependencies import CurrentActor, DbSession
from payroll_execution.api.schemas import (
    BenefitAmountUpdate,
    BenefitCreate,
    BenefitListResponse,
    BenefitPostingResponse,
    BenefitProcessRequest,
    BenefitResponse,
    BenefitReviewRequest,
    ErrorResponse,
    PayLineResponse,
)
from payroll_execution.services.benefit_processor import BenefitProcessor

router = APIRouter(prefix="/benefits", tags=["benefits"])

BENEFIT_ERRORS = {
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


@router.post(
    "",
    response_model=BenefitResponse,
    status_code=status.HTTP_201_CREATED,
    responses=BENEFIT_ERRORS,
)
async def register_benefit(
    db: DbSession,
    actor: CurrentActor,
    payload: BenefitCreate,
) -> BenefitResponse:
    """Register a pending signing bonus or termination benefit."""
    benefit = await BenefitProcessor(db).register_benefit(actor, **payload.model_dump())
    await db.commit()
    return BenefitResponse.model_validate(benefit)


@router.get("", response_model=BenefitListResponse)
async def list_benefits(
    db: DbSession,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    employee_id: UUID | None = None,
) -> BenefitListResponse:
    benefits = await BenefitProcessor(db).list_benefits(status_filter, employee_id)
    return BenefitListResponse(
        items=[BenefitResponse.model_validate(b) for b in benefits],
        total=len(benefits),
    )


@router.get(
    "/{benefit_id}",
    response_model=BenefitResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_benefit(
    db: DbSession,
    benefit_id: Annotated[UUID, Path()],
) -> BenefitResponse:
    benefit = await BenefitProcessor(db).get_benefit(benefit_id)
    return BenefitResponse.model_validate(benefit)


@router.patch(
    "/{benefit_id}",
    response_model=BenefitResponse,
    responses=BENEFIT_ERRORS,
)
async def edit_benefit_amount(
    db: DbSession,
    actor: CurrentActor,
    benefit_id: Annotated[UUID, Path()],
    payload: BenefitAmountUpdate,
) -> BenefitResponse:
    benefit = await BenefitProcessor(db).edit_benefit_amount(
        actor, benefit_id, payload.given_amount
    )
    await db.commit()
    return BenefitResponse.model_validate(benefit)


@router.post(
    "/{benefit_id}/review",
    response_model=BenefitResponse,
    responses=BENEFIT_ERRORS,
)
async def review_benefit(
    db: DbSession,
    actor: CurrentActor,
    benefit_id: Annotated[UUID, Path()],
    payload: BenefitReviewRequest,
) -> BenefitResponse:
    """Approve or reject a pending benefit."""
    benefit = await BenefitProcessor(db).review_benefit(
        actor, benefit_id, payload.action, payload.reason
    )
    await db.commit()
    return BenefitResponse.model_validate(benefit)


@router.post(
    "/{benefit_id}/process",
    response_model=BenefitPostingResponse,
    responses=BENEFIT_ERRORS,
)
async def process_benefit(
    db: DbSession,
    actor: CurrentActor,
    benefit_id: Annotated[UUID, Path()],
    payload: BenefitProcessRequest,
) -> BenefitPostingResponse:
    """Post an approved benefit onto the employee's pay line in a run."""
    posting = await BenefitProcessor(db).process_approved_benefit(
        actor,
        employee_id=payload.employee_id,
        benefit_id=benefit_id,
        pay_run_id=payload.pay_run_id,
        given_amount=payload.given_amount,
    )
    await db.commit()
    application = posting.application
    return BenefitPostingResponse(
        application_id=application.application_id,
        benefit_id=application.benefit_id,
        pay_run_id=application.pay_run_id,
        amount=application.amount,
        applied_by=application.applied_by,
        applied_at=application.applied_at,
        pay_line=PayLineResponse.model_validate(posting.pay_line),
    )
