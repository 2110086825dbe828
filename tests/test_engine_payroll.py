"""Payroll run transitions through the engine."""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import update

from erp_workflow.models import AuditEvent, PayrollRun, Transaction
from erp_workflow.workflow.errors import (
    DerivedWriteError,
    InvalidTransitionError,
    NotFoundError,
    Unauthorized,
    ValidationError,
)
from erp_workflow.workflow.events import FinancialTransactionRecorded, WorkflowTransitioned
from erp_workflow.workflow.statuses import EntityType
from tests.conftest import audit_trail, fetch, fetch_all, make_invoice, make_payroll


class TestForwardChain:
    async def test_agency_run_from_draft_to_paid(self, workflow, session_factory, org):
        """Each stage is approved by its own role, payment writes one expense."""
        run = await make_payroll(session_factory, org.hr, org.agency_a)
        engine = workflow.engine

        steps = [
            (org.hr, "pending_agency"),
            (org.manager_a, "pending_general"),
            (org.finance, "finance_validated"),
            (org.director, "direction_approved"),
            (org.finance, "paid"),
        ]
        for actor, expected in steps:
            result = await engine.approve(EntityType.PAYROLL, run.id, actor)
            assert result.status == expected

        assert len(result.derived_ids) == 1
        transactions = await fetch_all(session_factory, Transaction, Transaction.source_id == run.id)
        assert len(transactions) == 1
        tx = transactions[0]
        assert tx.id == result.derived_ids[0]
        assert tx.type == "expense"
        assert tx.category == "payroll"
        assert tx.status == "completed"
        assert tx.amount == Decimal("400000.00")
        assert tx.agency_id == org.agency_a
        assert tx.validated_by_id == org.finance

        trail = await audit_trail(session_factory, run.id)
        assert [(a.from_status, a.to_status) for a in trail] == [
            ("draft", "pending_agency"),
            ("pending_agency", "pending_general"),
            ("pending_general", "finance_validated"),
            ("finance_validated", "direction_approved"),
            ("direction_approved", "paid"),
        ]
        assert [a.actor_user_id for a in trail] == [actor for actor, _ in steps]

    async def test_central_run_goes_through_hr_validation(self, workflow, session_factory, org):
        run = await make_payroll(session_factory, org.hr)

        first = await workflow.engine.approve("payroll", run.id, org.hr)
        second = await workflow.engine.approve("payroll", run.id, org.hr)

        assert first.status == "hr_validated"
        assert second.status == "pending_general"

    async def test_payment_uses_recomputed_total(self, workflow, session_factory, org):
        run = await make_payroll(
            session_factory, org.hr, org.agency_a, status="direction_approved", nets=("100.10", "200.20")
        )
        async with session_factory() as session:
            async with session.begin():
                await session.execute(
                    update(PayrollRun).where(PayrollRun.id == run.id).values(total_amount=Decimal("1.00"))
                )

        await workflow.engine.approve("payroll", run.id, org.finance)

        stored = await fetch(session_factory, PayrollRun, run.id)
        tx = (await fetch_all(session_factory, Transaction, Transaction.source_id == run.id))[0]
        assert stored.total_amount == Decimal("300.30")
        assert tx.amount == Decimal("300.30")

    async def test_events_emitted_after_commit(self, workflow, session_factory, org):
        run = await make_payroll(session_factory, org.hr, org.agency_a, status="direction_approved")
        seen = []

        async def record(event):
            stored = await fetch(session_factory, PayrollRun, run.id)
            seen.append((event, stored.status))

        workflow.emitter.on_all(record)
        await workflow.engine.approve("payroll", run.id, org.finance)

        assert [type(e) for e, _ in seen] == [WorkflowTransitioned, FinancialTransactionRecorded]
        # Subscribers only ever see committed state
        assert all(status == "paid" for _, status in seen)
        transitioned = seen[0][0]
        assert transitioned.label == "Payroll 03/2024"
        assert transitioned.originator_id == org.hr
        assert seen[1][0].metadata.correlation_id == transitioned.metadata.correlation_id


class TestRejectionLoop:
    async def test_reject_revert_correct_resubmit(self, workflow, session_factory, org):
        """Finance sends a run back, HR corrects and resubmits it."""
        run = await make_payroll(session_factory, org.hr, org.agency_a, status="pending_general")
        engine = workflow.engine

        result = await engine.reject("payroll", run.id, org.finance, "Missing overtime for two drivers")
        assert result.status == "pending_agency"
        assert result.rejection_reason == "Missing overtime for two drivers"

        result = await engine.reject("payroll", run.id, org.manager_a, "  Overtime not recorded  ")
        assert result.status == "agency_rejected"
        assert result.rejection_reason == "Overtime not recorded"

        result = await engine.revert_to_draft("payroll", run.id, org.hr)
        assert result.status == "draft"
        assert result.rejection_reason == "Overtime not recorded"

        item = run.items[0]
        updated = await workflow.payroll.update_payroll_item(org.hr, item.id, {"bonus": "25 000"})
        assert updated.total_amount == Decimal("425000.00")

        result = await engine.approve("payroll", run.id, org.hr)
        assert result.status == "pending_agency"
        assert result.rejection_reason is None

        trail = await audit_trail(session_factory, run.id)
        assert [a.action for a in trail] == ["reject", "reject", "revert", "approve"]
        assert trail[0].reason == "Missing overtime for two drivers"

    async def test_withdraw_cancels_rejected_run(self, workflow, session_factory, org):
        run = await make_payroll(session_factory, org.hr, org.agency_a, status="agency_rejected")

        result = await workflow.engine.withdraw("payroll", run.id, org.hr)

        assert result.status == "cancelled"
        assert result.rejection_reason is None

    @pytest.mark.parametrize("reason", [None, "", "   "])
    async def test_empty_reason_is_rejected(self, workflow, session_factory, org, reason):
        run = await make_payroll(session_factory, org.hr, org.agency_a, status="pending_agency")

        with pytest.raises(ValidationError) as exc_info:
            await workflow.engine.reject("payroll", run.id, org.manager_a, reason)

        assert exc_info.value.field == "reason"
        stored = await fetch(session_factory, PayrollRun, run.id)
        assert stored.status == "pending_agency"
        assert await audit_trail(session_factory, run.id) == []


class TestFailures:
    async def test_other_agency_manager_is_unauthorized(self, workflow, session_factory, org):
        run = await make_payroll(session_factory, org.hr, org.agency_a, status="pending_agency")

        with pytest.raises(Unauthorized) as exc_info:
            await workflow.engine.approve("payroll", run.id, org.manager_b)

        assert exc_info.value.stage == "agency"
        stored = await fetch(session_factory, PayrollRun, run.id)
        assert stored.status == "pending_agency"
        assert await audit_trail(session_factory, run.id) == []

    async def test_finance_stage_needs_finance_validate(self, workflow, session_factory, org):
        run = await make_payroll(
            session_factory,
            org.hr,
            org.agency_a,
            status="pending_general",
            nets=("300000.00", "300000.00", "300000.00"),
        )

        with pytest.raises(Unauthorized) as exc_info:
            await workflow.engine.approve("payroll", run.id, org.accountant)

        assert exc_info.value.permission == "finance.validate"
        stored = await fetch(session_factory, PayrollRun, run.id)
        assert stored.status == "pending_general"
        assert stored.total_amount == Decimal("900000.00")
        assert await fetch_all(session_factory, Transaction) == []

    async def test_unauthorized_checked_before_reason(self, workflow, session_factory, org):
        run = await make_payroll(session_factory, org.hr, org.agency_a, status="pending_general")
        with pytest.raises(Unauthorized):
            await workflow.engine.reject("payroll", run.id, org.clerk_a, "")

    async def test_stage_cannot_be_skipped(self, workflow, session_factory, org):
        run = await make_payroll(session_factory, org.hr, org.agency_a, status="paid")
        with pytest.raises(InvalidTransitionError):
            await workflow.engine.approve("payroll", run.id, org.admin)

    async def test_missing_record(self, workflow, org):
        with pytest.raises(NotFoundError):
            await workflow.engine.approve("payroll", uuid4(), org.admin)

    async def test_unknown_entity_and_intent(self, workflow, org):
        with pytest.raises(ValidationError):
            await workflow.engine.approve("widget", uuid4(), org.admin)
        with pytest.raises(ValidationError):
            await workflow.engine.transition("payroll", uuid4(), "publish", org.admin)

    async def test_only_payroll_reverts(self, workflow, session_factory, org):
        invoice = await make_invoice(session_factory, org.clerk_a, org.agency_a, status="draft")
        with pytest.raises(InvalidTransitionError):
            await workflow.engine.revert_to_draft("invoice", invoice.id, org.admin)

    async def test_failed_payment_write_rolls_back_status(self, workflow, session_factory, org):
        """Payment is atomic: a failing derived write leaves the run unpaid."""
        run = await make_payroll(session_factory, org.hr, org.agency_a, status="direction_approved")

        async def broken_ledger_write(ctx):
            ctx.session.add(
                Transaction(
                    description="bad",
                    amount=Decimal("-1.00"),
                    type="expense",
                    category="payroll",
                    status="completed",
                )
            )
            await ctx.session.flush()

        workflow.engine.register_effect(EntityType.PAYROLL, "paid", broken_ledger_write)

        with pytest.raises(DerivedWriteError):
            await workflow.engine.approve("payroll", run.id, org.finance)

        stored = await fetch(session_factory, PayrollRun, run.id)
        assert stored.status == "direction_approved"
        assert await fetch_all(session_factory, Transaction) == []
        assert await fetch_all(session_factory, AuditEvent) == []
