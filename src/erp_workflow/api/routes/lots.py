"""Land development lot endpoints."""

from fastapi import APIRouter

from erp_workflow.api.dependencies import ActorId, WorkflowDep
from erp_workflow.api.schemas import BulkUpdateRequest, BulkUpdateResponse, ErrorResponse

router = APIRouter(prefix="/lots", tags=["lots"])


@router.post(
    "/bulk-update",
    response_model=BulkUpdateResponse,
    responses={403: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def bulk_update_lots(
    workflow: WorkflowDep,
    actor_id: ActorId,
    payload: BulkUpdateRequest,
) -> BulkUpdateResponse:
    """Patch many lots at once; nothing is written unless every lot passes."""
    result = await workflow.bulk.bulk_update("lot", payload.ids, payload.patch, actor_id)
    return BulkUpdateResponse(
        entity_type=result.entity_type,
        updated=result.updated_count,
        ids=result.updated_ids,
    )
