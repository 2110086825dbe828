"""Employee onboarding endpoints."""

from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Body, Path, status

from erp_workflow.api.dependencies import ActorId, WorkflowDep
from erp_workflow.api.schemas import (
    AssignmentDecision,
    EmployeeAssign,
    EmployeeCreate,
    EmployeeResponse,
    ErrorResponse,
)

router = APIRouter(prefix="/employees", tags=["hr"])


@router.post(
    "",
    response_model=EmployeeResponse,
    status_code=status.HTTP_201_CREATED,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def create_employee(
    workflow: WorkflowDep,
    actor_id: ActorId,
    payload: EmployeeCreate,
) -> EmployeeResponse:
    """Register an employee; onboarding starts at agency validation."""
    employee = await workflow.hr.create_employee(actor_id, **payload.model_dump())
    return EmployeeResponse.model_validate(employee)


@router.patch(
    "/{employee_id}",
    response_model=EmployeeResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def update_employee(
    workflow: WorkflowDep,
    actor_id: ActorId,
    employee_id: Annotated[UUID, Path()],
    changes: Annotated[dict[str, Any], Body()],
) -> EmployeeResponse:
    employee = await workflow.hr.update_employee(actor_id, employee_id, changes)
    return EmployeeResponse.model_validate(employee)


@router.post(
    "/{employee_id}/assign",
    response_model=EmployeeResponse,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def assign_employee(
    workflow: WorkflowDep,
    actor_id: ActorId,
    employee_id: Annotated[UUID, Path()],
    payload: EmployeeAssign,
) -> EmployeeResponse:
    """Request a move to another agency."""
    employee = await workflow.hr.assign_employee(actor_id, employee_id, payload.agency_id)
    return EmployeeResponse.model_validate(employee)


@router.post(
    "/{employee_id}/assign/validate",
    response_model=EmployeeResponse,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def validate_assignment(
    workflow: WorkflowDep,
    actor_id: ActorId,
    employee_id: Annotated[UUID, Path()],
    payload: AssignmentDecision,
) -> EmployeeResponse:
    employee = await workflow.hr.validate_assignment(actor_id, employee_id, payload.approve)
    return EmployeeResponse.model_validate(employee)
