"""Permission vocabulary and the permission gate."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol, runtime_checkable
from uuid import UUID

from erp_workflow.workflow.errors import Unauthorized

logger = logging.getLogger(__name__)


class Permission(str, Enum):
    """Permission strings stored on users."""

    HR_VIEW = "hr.view"
    HR_CREATE = "hr.create"
    HR_EDIT = "hr.edit"
    HR_DELETE = "hr.delete"

    FINANCE_VIEW = "finance.view"
    FINANCE_CREATE = "finance.create"
    FINANCE_EDIT = "finance.edit"
    FINANCE_VALIDATE = "finance.validate"

    PROPERTIES_VIEW = "properties.view"
    PROPERTIES_EDIT = "properties.edit"
    CONSTRUCTION_MANAGE = "construction.manage"

    DIRECTION_VIEW = "direction.view"
    DIRECTION_VALIDATE = "direction.validate"

    AGENCY_VIEW = "agency.view"
    AGENCY_MANAGE = "agency.manage"

    ADMIN = "admin.access"

    @property
    def is_agency_scoped(self) -> bool:
        """Agency permissions only apply to records of the user's own agency."""
        return self.value.startswith("agency.")


@dataclass(frozen=True)
class ResourceScope:
    """The slice of the organization a record belongs to."""

    agency_id: UUID | None = None


GLOBAL_SCOPE = ResourceScope()


@runtime_checkable
class AuthorizationPort(Protocol):
    """Answers whether an actor may exercise a permission on a resource."""

    async def can(self, actor_id: UUID | None, permission: str, scope: ResourceScope) -> bool:
        """Return True when the actor holds the permission for this scope."""
        ...


class PermissionGate:
    """Pure predicate in front of the transition executor.

    The gate never writes; it raises ``Unauthorized`` so the caller stops
    before any write is attempted.
    """

    def __init__(self, authorization: AuthorizationPort):
        self.authorization = authorization

    async def allows(
        self,
        actor_id: UUID | None,
        permission: str,
        scope: ResourceScope = GLOBAL_SCOPE,
    ) -> bool:
        if actor_id is None:
            return False
        return await self.authorization.can(actor_id, _value(permission), scope)

    async def require(
        self,
        actor_id: UUID | None,
        permission: str,
        scope: ResourceScope = GLOBAL_SCOPE,
        stage: str | None = None,
    ) -> None:
        """Raise Unauthorized unless the actor holds the permission."""
        if not await self.allows(actor_id, permission, scope):
            logger.info(
                "Denied %s to actor %s (stage=%s, agency=%s)",
                _value(permission),
                actor_id,
                stage,
                scope.agency_id,
            )
            raise Unauthorized(actor_id, _value(permission), stage)


def _value(permission: str | Enum) -> str:
    return permission.value if isinstance(permission, Enum) else permission
