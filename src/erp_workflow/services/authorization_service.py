"""Authorization backed by the user table."""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from erp_workflow.models import User
from erp_workflow.workflow.permissions import Permission, ResourceScope

logger = logging.getLogger(__name__)


class DatabaseAuthorization:
    """Answers permission checks from ``User.permissions``.

    - Unknown or inactive users hold nothing
    - Admins (role or ``admin.access``) hold everything
    - ``agency.*`` permissions only apply inside the user's own agency
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def can(self, actor_id: UUID | None, permission: str, scope: ResourceScope) -> bool:
        if actor_id is None:
            return False
        async with self.session_factory() as session:
            user = await session.get(User, actor_id)
        if user is None or not user.is_active:
            logger.debug("Unknown or inactive actor %s", actor_id)
            return False
        if not user.has_permission(permission):
            return False
        if user.is_admin:
            return True
        if _is_agency_scoped(permission) and scope.agency_id is not None:
            return user.agency_id == scope.agency_id
        return True


def _is_agency_scoped(permission: str) -> bool:
    try:
        return Permission(permission).is_agency_scoped
    except ValueError:
        return False
