"""Workflow verb endpoints, shared by every workflowed entity type."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query

from erp_workflow.api.dependencies import ActorId, WorkflowDep
from erp_workflow.api.schemas import (
    AuditEventResponse,
    BulkTransitionItem,
    BulkTransitionRequest,
    BulkTransitionResponse,
    ErrorResponse,
    RejectedItemResponse,
    TransitionRequest,
    TransitionResponse,
    WorkItemResponse,
)

router = APIRouter(prefix="/workflow", tags=["workflow"])

ERROR_RESPONSES = {
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


@router.post(
    "/{entity_type}/bulk",
    response_model=BulkTransitionResponse,
    responses={422: {"model": ErrorResponse}},
)
async def bulk_transition(
    workflow: WorkflowDep,
    actor_id: ActorId,
    entity_type: Annotated[str, Path()],
    payload: BulkTransitionRequest,
) -> BulkTransitionResponse:
    """Apply one intent to many records; each succeeds or fails on its own."""
    bulk = await workflow.engine.bulk_transition(
        entity_type, payload.ids, payload.intent, actor_id, payload.reason
    )
    items = []
    for outcome in bulk.outcomes:
        if outcome.result is not None:
            items.append(
                BulkTransitionItem(
                    entity_id=outcome.entity_id, success=True, status=outcome.result.status
                )
            )
        else:
            items.append(
                BulkTransitionItem(
                    entity_id=outcome.entity_id,
                    success=False,
                    code=outcome.error.code,
                    message=outcome.error.message,
                )
            )
    return BulkTransitionResponse(
        success=not bulk.failed,
        succeeded=len(bulk.succeeded),
        failed=len(bulk.failed),
        results=items,
    )


@router.get("/{entity_type}/rejected", response_model=list[RejectedItemResponse])
async def list_rejected(
    workflow: WorkflowDep,
    actor_id: ActorId,
    entity_type: Annotated[str, Path()],
    agency_id: UUID | None = None,
    originator_id: UUID | None = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
) -> list[RejectedItemResponse]:
    """Records sent back and awaiting correction."""
    records = await workflow.queries.list_rejected(entity_type, agency_id, originator_id, limit)
    return [RejectedItemResponse.model_validate(r) for r in records]


@router.get("/{entity_type}/awaiting", response_model=list[WorkItemResponse])
async def list_awaiting(
    workflow: WorkflowDep,
    actor_id: ActorId,
    entity_type: Annotated[str, Path()],
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
) -> list[WorkItemResponse]:
    """Records the acting user can decide on now."""
    items = await workflow.queries.list_awaiting(entity_type, actor_id, limit)
    return [
        WorkItemResponse(
            entity_type=item.entity_type.value,
            entity_id=item.record.id,
            status=item.record.status,
            stage=item.stage,
            actions=list(item.actions),
            agency_id=getattr(item.record, "agency_id", None),
        )
        for item in items
    ]


@router.get("/{entity_type}/{entity_id}/history", response_model=list[AuditEventResponse])
async def history(
    workflow: WorkflowDep,
    actor_id: ActorId,
    entity_type: Annotated[str, Path()],
    entity_id: Annotated[UUID, Path()],
) -> list[AuditEventResponse]:
    events = await workflow.queries.history(entity_type, entity_id)
    return [AuditEventResponse.model_validate(e) for e in events]


@router.post(
    "/{entity_type}/{entity_id}",
    response_model=TransitionResponse,
    responses=ERROR_RESPONSES,
)
async def transition(
    workflow: WorkflowDep,
    actor_id: ActorId,
    entity_type: Annotated[str, Path()],
    entity_id: Annotated[UUID, Path()],
    payload: TransitionRequest,
) -> TransitionResponse:
    """Run one workflow verb (``intent``) on a record."""
    result = await workflow.engine.transition(
        entity_type, entity_id, payload.intent, actor_id, payload.reason
    )
    return TransitionResponse(
        entity_type=result.entity_type.value,
        entity_id=result.entity_id,
        action=result.action.value,
        from_status=result.from_status,
        status=result.status,
        rejection_reason=result.rejection_reason,
        derived_ids=list(result.derived_ids),
    )
