"""Notification feed endpoints for the acting user."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from erp_workflow.api.dependencies import ActorId, WorkflowDep
from erp_workflow.api.schemas import ErrorResponse, NotificationFeedResponse, NotificationResponse

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationFeedResponse)
async def list_notifications(
    workflow: WorkflowDep,
    actor_id: ActorId,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> NotificationFeedResponse:
    items = await workflow.notifications.list_for_user(actor_id, limit)
    return NotificationFeedResponse(
        items=[NotificationResponse.model_validate(n) for n in items],
        unread=await workflow.notifications.unread_count(actor_id),
    )


@router.post(
    "/{notification_id}/read",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}},
)
async def mark_read(
    workflow: WorkflowDep,
    actor_id: ActorId,
    notification_id: Annotated[UUID, Path()],
) -> None:
    await workflow.notifications.mark_read(notification_id, actor_id)


@router.post("/read-all")
async def mark_all_read(workflow: WorkflowDep, actor_id: ActorId) -> dict[str, int]:
    return {"updated": await workflow.notifications.mark_all_read(actor_id)}
