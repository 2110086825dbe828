"""Bulk field updates and bulk transitions."""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import Update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from erp_workflow.models import AuditEvent, DevelopmentLot, Employee, ExpenseReport
from erp_workflow.services.bulk_update_service import BulkUpdateService
from erp_workflow.workflow.errors import BulkUpdateError, Unauthorized, ValidationError
from erp_workflow.workflow.events import WorkflowTransitioned
from tests.conftest import fetch, fetch_all, make_employee, make_expense, make_lot, set_status


class TestBulkUpdate:
    async def test_missing_id_rejects_whole_batch(self, workflow, session_factory, org):
        """Four real lots and one unknown id: nothing is written."""
        lots = [await make_lot(session_factory, f"L-{n}") for n in range(4)]
        missing = uuid4()
        ids = [lot.id for lot in lots[:2]] + [missing] + [lot.id for lot in lots[2:]]

        with pytest.raises(BulkUpdateError) as exc_info:
            await workflow.bulk.bulk_update("lot", ids, {"status": "reserved"}, org.properties)

        assert exc_info.value.errors == {str(missing): "not found"}
        assert exc_info.value.to_dict()["code"] == "BULK_UPDATE_FAILED"
        stored = await fetch_all(session_factory, DevelopmentLot)
        assert {lot.status for lot in stored} == {"available"}
        assert await fetch_all(session_factory, AuditEvent) == []

    async def test_valid_batch_updates_every_lot(self, workflow, session_factory, org):
        lots = [await make_lot(session_factory, f"L-{n}") for n in range(5)]

        result = await workflow.bulk.bulk_update(
            "lot", [str(lot.id) for lot in lots], {"status": "reserved", "price": "8 000 000"}, org.properties
        )

        assert result.updated_count == 5
        stored = await fetch_all(session_factory, DevelopmentLot)
        assert {lot.status for lot in stored} == {"reserved"}
        assert {lot.price for lot in stored} == {Decimal("8000000.00")}
        audits = await fetch_all(session_factory, AuditEvent, AuditEvent.action == "bulk_update")
        assert len(audits) == 5
        assert {a.to_status for a in audits} == {"reserved"}

    async def test_patch_and_id_errors_are_all_reported(self, workflow, session_factory, org):
        lot = await make_lot(session_factory, "L-1")

        with pytest.raises(BulkUpdateError) as exc_info:
            await workflow.bulk.bulk_update(
                "lot", [lot.id, "not-a-uuid"], {"status": "demolished", "owner": "x"}, org.properties
            )

        errors = exc_info.value.errors
        assert set(errors) == {"patch.status", "patch.owner", "not-a-uuid"}
        assert errors["not-a-uuid"] == "invalid id"

    async def test_sold_lot_status_is_locked(self, workflow, session_factory, org):
        sold = await make_lot(session_factory, "L-1", status="sold")
        free = await make_lot(session_factory, "L-2")

        with pytest.raises(BulkUpdateError) as exc_info:
            await workflow.bulk.bulk_update("lot", [sold.id, free.id], {"status": "available"}, org.properties)

        assert list(exc_info.value.errors) == [str(sold.id)]
        assert (await fetch(session_factory, DevelopmentLot, free.id)).status == "available"

    async def test_lot_sold_during_update_is_not_overwritten(self, workflow, engine, session_factory, org):
        """A sale committed between the checks and the write aborts the batch."""
        lots = [await make_lot(session_factory, f"L-{n}") for n in range(3)]
        sold_meanwhile = lots[1]

        class SaleBeforeWriteSession(AsyncSession):
            raced = False

            async def execute(self, statement, *args, **kwargs):
                if isinstance(statement, Update) and not self.raced:
                    type(self).raced = True
                    await set_status(session_factory, DevelopmentLot, sold_meanwhile.id, "sold")
                return await super().execute(statement, *args, **kwargs)

        racing_factory = async_sessionmaker(engine, class_=SaleBeforeWriteSession, expire_on_commit=False)
        service = BulkUpdateService(racing_factory, workflow.authorization)

        with pytest.raises(BulkUpdateError) as exc_info:
            await service.bulk_update("lot", [lot.id for lot in lots], {"status": "reserved"}, org.properties)

        assert exc_info.value.errors == {str(sold_meanwhile.id): "changed concurrently"}
        stored = {lot.id: lot.status for lot in await fetch_all(session_factory, DevelopmentLot)}
        assert stored[sold_meanwhile.id] == "sold"
        assert [stored[lots[0].id], stored[lots[2].id]] == ["available", "available"]
        assert await fetch_all(session_factory, AuditEvent) == []

    async def test_empty_patch(self, workflow, session_factory, org):
        lot = await make_lot(session_factory, "L-1")
        with pytest.raises(BulkUpdateError) as exc_info:
            await workflow.bulk.bulk_update("lot", [lot.id], {}, org.properties)
        assert exc_info.value.errors == {"patch": "empty patch"}

    async def test_requires_permission_and_known_target(self, workflow, org):
        with pytest.raises(Unauthorized):
            await workflow.bulk.bulk_update("lot", [uuid4()], {"status": "sold"}, org.clerk_a)
        with pytest.raises(ValidationError):
            await workflow.bulk.bulk_update("invoice", [uuid4()], {"status": "paid"}, org.admin)

    async def test_workflow_status_is_not_patchable(self, workflow, session_factory, org):
        employee = await make_employee(session_factory, org.hr, org.agency_a)

        with pytest.raises(BulkUpdateError) as exc_info:
            await workflow.bulk.bulk_update("employee", [employee.id], {"status": "active"}, org.hr)

        assert "patch.status" in exc_info.value.errors
        result = await workflow.bulk.bulk_update("employee", [employee.id], {"department": " Sales "}, org.hr)
        assert result.updated_count == 1
        assert (await fetch(session_factory, Employee, employee.id)).department == "Sales"


class TestBulkTransition:
    async def test_each_item_reports_its_own_outcome(self, workflow, session_factory, org):
        own = [await make_expense(session_factory, org.clerk_a, org.agency_a) for _ in range(2)]
        foreign = await make_expense(session_factory, org.clerk_a, org.agency_b)
        missing = uuid4()
        published = []
        workflow.emitter.on_sync(WorkflowTransitioned, published.append)

        bulk = await workflow.engine.bulk_transition(
            "expense", [own[0].id, foreign.id, missing, own[1].id], "approve", org.manager_a
        )

        assert [o.success for o in bulk.outcomes] == [True, False, False, True]
        assert bulk.outcomes[1].error.code == "UNAUTHORIZED"
        assert bulk.outcomes[2].error.code == "NOT_FOUND"
        for report in own:
            assert (await fetch(session_factory, ExpenseReport, report.id)).status == "agency_validated"
        assert (await fetch(session_factory, ExpenseReport, foreign.id)).status == "pending"
        assert [e.entity_id for e in published] == [own[0].id, own[1].id]

        data = bulk.to_dict()
        assert data["success"] is False
        assert (data["succeeded"], data["failed"]) == (2, 2)
        assert data["results"][2]["entity_id"] == str(missing)

    async def test_bulk_reject_requires_reason_per_item(self, workflow, session_factory, org):
        report = await make_expense(session_factory, org.clerk_a, org.agency_a)

        bulk = await workflow.engine.bulk_transition("expense", [report.id], "reject", org.manager_a, " ")

        assert bulk.failed[0].error.code == "VALIDATION_ERROR"
        assert (await fetch(session_factory, ExpenseReport, report.id)).status == "pending"
