"""Refund API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, status

from payroll_execution.api.dependencies import CurrentActor, DbSession
from payroll_execution.api.schemas import (
    ErrorResponse,
    RefundCreate,
    RefundListResponse,
    RefundPaidRequest,
    RefundResponse,
)
from payroll_execution.services.refund_service import RefundService

router = APIRouter(prefix="/refunds", tags=["refunds"])


@router.post(
    "",
    response_model=RefundResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": ErrorResponse}},
)
async def create_refund(
    db: DbSession,
    actor: CurrentActor,
    payload: RefundCreate,
) -> RefundResponse:
    """Create a refund for an approved dispute or claim. Idempotent per source."""
    refund = await RefundService(db).create_refund(**payload.model_dump())
    await db.commit()
    return RefundResponse.model_validate(refund)


@router.get("/pending", response_model=RefundListResponse)
async def list_pending_refunds(
    db: DbSession,
    employee_id: UUID | None = None,
) -> RefundListResponse:
    refunds = await RefundService(db).list_pending_refunds(employee_id)
    return RefundListResponse(
        items=[RefundResponse.model_validate(r) for r in refunds],
        total=len(refunds),
    )


@router.post(
    "/{refund_id}/paid",
    response_model=RefundResponse,
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def mark_refund_paid(
    db: DbSession,
    actor: CurrentActor,
    refund_id: Annotated[UUID, Path()],
    payload: RefundPaidRequest,
) -> RefundResponse:
    refund = await RefundService(db).mark_refund_paid(actor, refund_id, payload.pay_run_id)
    await db.commit()
    return RefundResponse.model_validate(refund)
