"""Tests for the permission gate and the database-backed authorization."""

from uuid import uuid4

import pytest

from erp_workflow.services.authorization_service import DatabaseAuthorization
from erp_workflow.workflow.errors import Unauthorized
from erp_workflow.workflow.permissions import (
    GLOBAL_SCOPE,
    AuthorizationPort,
    Permission,
    PermissionGate,
    ResourceScope,
)
from tests.conftest import FakeAuthorization


class TestPermissionGate:
    async def test_require_passes_for_holder(self):
        actor = uuid4()
        auth = FakeAuthorization()
        auth.grant(actor, "finance.validate")
        gate = PermissionGate(auth)

        await gate.require(actor, Permission.FINANCE_VALIDATE)

        assert auth.calls == [(actor, "finance.validate", GLOBAL_SCOPE)]

    async def test_require_raises_unauthorized(self):
        gate = PermissionGate(FakeAuthorization())
        with pytest.raises(Unauthorized) as exc_info:
            await gate.require(uuid4(), Permission.DIRECTION_VALIDATE, stage="direction")

        assert exc_info.value.permission == "direction.validate"
        assert exc_info.value.http_status == 403
        assert "direction" in exc_info.value.message

    async def test_missing_actor_is_denied_without_lookup(self):
        auth = FakeAuthorization()
        gate = PermissionGate(auth)
        assert await gate.allows(None, Permission.HR_EDIT) is False
        assert auth.calls == []

    def test_fake_satisfies_port(self):
        assert isinstance(FakeAuthorization(), AuthorizationPort)


class TestDatabaseAuthorization:
    async def test_plain_permission(self, session_factory, org):
        auth = DatabaseAuthorization(session_factory)
        assert await auth.can(org.finance, "finance.validate", GLOBAL_SCOPE) is True
        assert await auth.can(org.finance, "direction.validate", GLOBAL_SCOPE) is False

    async def test_agency_permission_is_scoped_to_own_agency(self, session_factory, org):
        auth = DatabaseAuthorization(session_factory)
        scope_a = ResourceScope(agency_id=org.agency_a)
        assert await auth.can(org.manager_a, "agency.manage", scope_a) is True
        assert await auth.can(org.manager_b, "agency.manage", scope_a) is False

    async def test_admin_bypass(self, session_factory, org):
        auth = DatabaseAuthorization(session_factory)
        assert await auth.can(org.admin, "direction.validate", GLOBAL_SCOPE) is True
        assert await auth.can(org.admin, "agency.manage", ResourceScope(org.agency_b)) is True

    async def test_unknown_and_inactive_users_hold_nothing(self, session_factory, org):
        auth = DatabaseAuthorization(session_factory)
        assert await auth.can(uuid4(), "finance.validate", GLOBAL_SCOPE) is False
        assert await auth.can(org.inactive, "finance.validate", GLOBAL_SCOPE) is False
