"""Tests for the workflow transition table."""

from types import SimpleNamespace
from uuid import uuid4

import pytest

from erp_workflow.workflow.errors import InvalidTransitionError
from erp_workflow.workflow.permissions import Permission
from erp_workflow.workflow.statuses import (
    Action,
    EntityType,
    PayrollStatus,
    Stage,
    TERMINAL_STATUSES,
    status_check_sql,
    status_values,
)
from erp_workflow.workflow.transitions import (
    DEFAULT_RULES,
    DEFAULT_TABLE,
    HAS_AGENCY,
    TransitionRule,
    TransitionTable,
)


def record(status, agency_id=None, rejection_reason=None):
    return SimpleNamespace(status=status, agency_id=agency_id, rejection_reason=rejection_reason)


class TestPayrollChain:
    """Test payroll run transitions."""

    def test_agency_run_forward_chain(self):
        """An agency run passes HR, agency, finance and direction before payment."""
        run = record("draft", agency_id=uuid4())
        expected = [
            ("pending_agency", Stage.HR),
            ("pending_general", Stage.AGENCY),
            ("finance_validated", Stage.FINANCE),
            ("direction_approved", Stage.DIRECTION),
            ("paid", Stage.PAYMENT),
        ]
        for to_status, stage in expected:
            rule = DEFAULT_TABLE.resolve(EntityType.PAYROLL, run, Action.APPROVE)
            assert rule.to_status == to_status
            assert rule.stage == stage
            run.status = to_status

    def test_central_run_skips_agency_stage(self):
        run = record("draft")
        rule = DEFAULT_TABLE.resolve(EntityType.PAYROLL, run, Action.APPROVE)
        assert rule.to_status == "hr_validated"

        run.status = "hr_validated"
        rule = DEFAULT_TABLE.resolve(EntityType.PAYROLL, run, Action.APPROVE)
        assert rule.to_status == "pending_general"
        assert rule.permission == Permission.HR_EDIT

    def test_finance_rejection_returns_agency_run_to_agency(self):
        run = record("pending_general", agency_id=uuid4())
        rule = DEFAULT_TABLE.resolve(EntityType.PAYROLL, run, Action.REJECT)
        assert rule.to_status == "pending_agency"
        assert rule.stores_reason is True

    def test_finance_rejection_of_central_run(self):
        run = record("pending_general")
        rule = DEFAULT_TABLE.resolve(EntityType.PAYROLL, run, Action.REJECT)
        assert rule.to_status == "agency_rejected"

    def test_revert_keeps_reason(self):
        run = record("agency_rejected", rejection_reason="Wrong bonus")
        rule = DEFAULT_TABLE.resolve(EntityType.PAYROLL, run, Action.REVERT)
        assert rule.to_status == "draft"
        assert rule.stores_reason is False
        assert rule.clears_reason is False

    def test_invalid_transitions(self):
        """Stages cannot be skipped and terminal states do not move."""
        assert DEFAULT_TABLE.can_transition(EntityType.PAYROLL, record("paid"), Action.APPROVE) is False
        assert DEFAULT_TABLE.can_transition(EntityType.PAYROLL, record("cancelled"), Action.REVERT) is False
        assert DEFAULT_TABLE.can_transition(EntityType.PAYROLL, record("draft"), Action.REJECT) is False
        assert "paid" not in DEFAULT_TABLE.next_statuses(EntityType.PAYROLL, "pending_general")

    def test_resolve_raises_with_context(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            DEFAULT_TABLE.resolve(EntityType.PAYROLL, record("paid"), Action.APPROVE)

        assert exc_info.value.from_status == "paid"
        assert exc_info.value.action == "approve"
        assert exc_info.value.http_status == 409


class TestOtherChains:
    def test_expense_agency_and_central_paths(self):
        agency = DEFAULT_TABLE.resolve(EntityType.EXPENSE, record("pending", uuid4()), Action.APPROVE)
        central = DEFAULT_TABLE.resolve(EntityType.EXPENSE, record("pending"), Action.APPROVE)
        assert (agency.to_status, agency.permission) == ("agency_validated", Permission.AGENCY_MANAGE)
        assert (central.to_status, central.permission) == ("approved", Permission.FINANCE_VALIDATE)

    def test_invoice_withdraw_only_after_rejection(self):
        assert not DEFAULT_TABLE.can_transition(EntityType.INVOICE, record("draft"), Action.WITHDRAW)
        assert DEFAULT_TABLE.can_transition(
            EntityType.INVOICE, record("draft", rejection_reason="Wrong client"), Action.WITHDRAW
        )

    def test_invoice_rejections_return_to_draft(self):
        for status in ("pending", "agency_validated", "sent"):
            rule = DEFAULT_TABLE.resolve(EntityType.INVOICE, record(status, uuid4()), Action.REJECT)
            assert rule.to_status == "draft"

    def test_employee_resubmit_restarts_at_agency(self):
        rule = DEFAULT_TABLE.resolve(EntityType.EMPLOYEE, record("rejected"), Action.RESUBMIT)
        assert rule.to_status == "pending_agency"
        assert rule.clears_reason is True

    def test_actions_from(self):
        assert DEFAULT_TABLE.actions_from(EntityType.EXPENSE, "rejected") == {
            Action.RESUBMIT,
            Action.WITHDRAW,
        }


class TestTableContract:
    def test_every_status_belongs_to_vocabulary(self):
        for rule in DEFAULT_RULES:
            values = status_values(rule.entity_type)
            assert rule.from_status in values
            assert rule.to_status in values

    def test_guards_are_mutually_exclusive(self):
        """Whatever the record, at most one rule matches a (status, action) pair."""
        for rule in DEFAULT_RULES:
            for agency_id in (None, uuid4()):
                for reason in (None, "x"):
                    rec = record(rule.from_status, agency_id, reason)
                    matching = [
                        r
                        for r in DEFAULT_TABLE.candidates(rule.entity_type, rule.from_status, rule.action)
                        if r.applies_to(rec)
                    ]
                    assert len(matching) <= 1

    def test_terminal_statuses_have_no_forward_edges(self):
        for entity_type, terminals in TERMINAL_STATUSES.items():
            for status in terminals:
                assert Action.APPROVE not in DEFAULT_TABLE.actions_from(entity_type, status)

    def test_unknown_status_rejected_at_construction(self):
        bad = TransitionRule(
            EntityType.PAYROLL, "draft", Action.APPROVE, "archived", Stage.HR, Permission.HR_EDIT
        )
        with pytest.raises(ValueError):
            TransitionTable([bad])

    def test_unguarded_duplicate_edges_rejected(self):
        first = TransitionRule(
            EntityType.PAYROLL, "draft", Action.APPROVE, "pending_agency", Stage.HR, Permission.HR_EDIT, HAS_AGENCY
        )
        second = TransitionRule(
            EntityType.PAYROLL, "draft", Action.APPROVE, "hr_validated", Stage.HR, Permission.HR_EDIT
        )
        with pytest.raises(ValueError):
            TransitionTable([first, second])

    def test_check_constraint_lists_vocabulary(self):
        sql = status_check_sql(PayrollStatus)
        assert sql.startswith("status IN (")
        assert "'direction_approved'" in sql
