"""Payroll run endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from erp_workflow.api.dependencies import ActorId, WorkflowDep
from erp_workflow.api.schemas import (
    ErrorResponse,
    PayrollGenerateRequest,
    PayrollItemUpdate,
    PayrollRunResponse,
)

router = APIRouter(prefix="/payroll", tags=["payroll"])


@router.post(
    "",
    response_model=PayrollRunResponse,
    status_code=status.HTTP_201_CREATED,
    responses={403: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def generate_payroll(
    workflow: WorkflowDep,
    actor_id: ActorId,
    payload: PayrollGenerateRequest,
) -> PayrollRunResponse:
    """Generate a draft run for a month."""
    run = await workflow.payroll.generate_payroll(actor_id, payload.month, payload.agency_id)
    return PayrollRunResponse.model_validate(run)


@router.get("", response_model=list[PayrollRunResponse])
async def list_payrolls(
    workflow: WorkflowDep,
    actor_id: ActorId,
    agency_id: UUID | None = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> list[PayrollRunResponse]:
    runs = await workflow.payroll.list_payrolls(agency_id, status_filter)
    return [PayrollRunResponse.model_validate(r) for r in runs]


@router.get(
    "/{run_id}",
    response_model=PayrollRunResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_payroll(
    workflow: WorkflowDep,
    actor_id: ActorId,
    run_id: Annotated[UUID, Path()],
) -> PayrollRunResponse:
    return PayrollRunResponse.model_validate(await workflow.payroll.get_payroll(run_id))


@router.patch(
    "/items/{item_id}",
    response_model=PayrollRunResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def update_payroll_item(
    workflow: WorkflowDep,
    actor_id: ActorId,
    item_id: Annotated[UUID, Path()],
    payload: PayrollItemUpdate,
) -> PayrollRunResponse:
    """Edit an item of a draft run; net salary and run total are recomputed."""
    run = await workflow.payroll.update_payroll_item(
        actor_id, item_id, payload.model_dump(exclude_unset=True)
    )
    return PayrollRunResponse.model_validate(run)
