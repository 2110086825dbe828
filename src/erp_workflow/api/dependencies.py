"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from erp_workflow.container import Workflow


def get_workflow(request: Request) -> Workflow:
    """The wired workflow built at application start."""
    return request.app.state.workflow


async def get_db_session(
    workflow: Annotated[Workflow, Depends(get_workflow)],
) -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with workflow.session_factory() as session:
        yield session


async def get_actor_id(
    x_user_id: Annotated[str | None, Header()] = None
) -> UUID:
    """Extract the acting user from the X-User-ID header."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-ID header is required",
        )
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-User-ID format",
        )


# Type aliases for cleaner dependency injection
WorkflowDep = Annotated[Workflow, Depends(get_workflow)]
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
ActorId = Annotated[UUID, Depends(get_actor_id)]
