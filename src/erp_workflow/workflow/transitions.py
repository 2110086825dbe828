"""Transition table for every workflowed entity.

Each rule is one directed edge: from a status, an action leads to exactly
one target status, fired at a named stage by holders of one permission.
When the same ``(status, action)`` pair has several edges (agency-scoped
records versus central ones), their guards are mutually exclusive so a
given record always resolves to a single rule.

Payroll:
- draft → pending_agency (agency run) | hr_validated (central run)
- hr_validated → pending_general
- pending_agency → pending_general, or rejected → agency_rejected
- pending_general → finance_validated, or returned to pending_agency
- finance_validated → direction_approved, or returned to pending_agency
- direction_approved → paid
- agency_rejected → draft (revert) | cancelled (withdraw)

Expense report, transaction, invoice and employee chains follow the same
shape; see ``DEFAULT_RULES``.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from erp_workflow.workflow.errors import InvalidTransitionError
from erp_workflow.workflow.permissions import Permission
from erp_workflow.workflow.statuses import (
    Action,
    EmployeeStatus,
    EntityType,
    ExpenseStatus,
    InvoiceStatus,
    PayrollStatus,
    Stage,
    TransactionStatus,
    is_valid_status,
)


@dataclass(frozen=True)
class Guard:
    """Named predicate over a record."""

    name: str
    predicate: Callable[[Any], bool]

    def __call__(self, record: Any) -> bool:
        return bool(self.predicate(record))


HAS_AGENCY = Guard("agency-scoped", lambda record: getattr(record, "agency_id", None) is not None)
NO_AGENCY = Guard("central", lambda record: getattr(record, "agency_id", None) is None)
WAS_REJECTED = Guard(
    "rejected", lambda record: getattr(record, "rejection_reason", None) is not None
)


@dataclass(frozen=True)
class TransitionRule:
    """One edge of an entity's approval graph."""

    entity_type: EntityType
    from_status: str
    action: Action
    to_status: str
    stage: Stage
    permission: Permission
    guard: Guard | None = None

    @property
    def is_forward(self) -> bool:
        """Approvals and resubmissions re-enter the forward chain."""
        return self.action in (Action.APPROVE, Action.RESUBMIT)

    @property
    def stores_reason(self) -> bool:
        return self.action is Action.REJECT

    @property
    def clears_reason(self) -> bool:
        return self.is_forward or self.action is Action.WITHDRAW

    @property
    def is_validation(self) -> bool:
        """Forward steps past the originating stage are attributable approvals."""
        return self.action is Action.APPROVE and self.stage not in (Stage.ORIGIN, Stage.HR)

    def applies_to(self, record: Any) -> bool:
        return self.guard is None or self.guard(record)


def _rule(
    entity_type: EntityType,
    from_status: Any,
    action: Action,
    to_status: Any,
    stage: Stage,
    permission: Permission,
    guard: Guard | None = None,
) -> TransitionRule:
    return TransitionRule(
        entity_type=entity_type,
        from_status=from_status.value,
        action=action,
        to_status=to_status.value,
        stage=stage,
        permission=permission,
        guard=guard,
    )


_P, _X, _T, _I, _E = (
    EntityType.PAYROLL,
    EntityType.EXPENSE,
    EntityType.TRANSACTION,
    EntityType.INVOICE,
    EntityType.EMPLOYEE,
)
_A, _R = Action.APPROVE, Action.REJECT

DEFAULT_RULES: tuple[TransitionRule, ...] = (
    # ===== Payroll run =====
    _rule(_P, PayrollStatus.DRAFT, _A, PayrollStatus.PENDING_AGENCY, Stage.HR, Permission.HR_EDIT, HAS_AGENCY),
    _rule(_P, PayrollStatus.DRAFT, _A, PayrollStatus.HR_VALIDATED, Stage.HR, Permission.HR_EDIT, NO_AGENCY),
    _rule(_P, PayrollStatus.HR_VALIDATED, _A, PayrollStatus.PENDING_GENERAL, Stage.HR, Permission.HR_EDIT),
    _rule(_P, PayrollStatus.PENDING_AGENCY, _A, PayrollStatus.PENDING_GENERAL, Stage.AGENCY, Permission.AGENCY_MANAGE),
    _rule(_P, PayrollStatus.PENDING_AGENCY, _R, PayrollStatus.AGENCY_REJECTED, Stage.AGENCY, Permission.AGENCY_MANAGE),
    _rule(_P, PayrollStatus.PENDING_GENERAL, _A, PayrollStatus.FINANCE_VALIDATED, Stage.FINANCE, Permission.FINANCE_VALIDATE),
    _rule(_P, PayrollStatus.PENDING_GENERAL, _R, PayrollStatus.PENDING_AGENCY, Stage.FINANCE, Permission.FINANCE_VALIDATE, HAS_AGENCY),
    _rule(_P, PayrollStatus.PENDING_GENERAL, _R, PayrollStatus.AGENCY_REJECTED, Stage.FINANCE, Permission.FINANCE_VALIDATE, NO_AGENCY),
    _rule(_P, PayrollStatus.FINANCE_VALIDATED, _A, PayrollStatus.DIRECTION_APPROVED, Stage.DIRECTION, Permission.DIRECTION_VALIDATE),
    _rule(_P, PayrollStatus.FINANCE_VALIDATED, _R, PayrollStatus.PENDING_AGENCY, Stage.DIRECTION, Permission.DIRECTION_VALIDATE, HAS_AGENCY),
    _rule(_P, PayrollStatus.FINANCE_VALIDATED, _R, PayrollStatus.AGENCY_REJECTED, Stage.DIRECTION, Permission.DIRECTION_VALIDATE, NO_AGENCY),
    _rule(_P, PayrollStatus.DIRECTION_APPROVED, _A, PayrollStatus.PAID, Stage.PAYMENT, Permission.FINANCE_VALIDATE),
    _rule(_P, PayrollStatus.AGENCY_REJECTED, Action.REVERT, PayrollStatus.DRAFT, Stage.HR, Permission.HR_EDIT),
    _rule(_P, PayrollStatus.AGENCY_REJECTED, Action.WITHDRAW, PayrollStatus.CANCELLED, Stage.HR, Permission.HR_DELETE),
    # ===== Expense report =====
    _rule(_X, ExpenseStatus.PENDING, _A, ExpenseStatus.AGENCY_VALIDATED, Stage.AGENCY, Permission.AGENCY_MANAGE, HAS_AGENCY),
    _rule(_X, ExpenseStatus.PENDING, _A, ExpenseStatus.APPROVED, Stage.FINANCE, Permission.FINANCE_VALIDATE, NO_AGENCY),
    _rule(_X, ExpenseStatus.PENDING, _R, ExpenseStatus.REJECTED, Stage.AGENCY, Permission.AGENCY_MANAGE, HAS_AGENCY),
    _rule(_X, ExpenseStatus.PENDING, _R, ExpenseStatus.REJECTED, Stage.FINANCE, Permission.FINANCE_VALIDATE, NO_AGENCY),
    _rule(_X, ExpenseStatus.AGENCY_VALIDATED, _A, ExpenseStatus.APPROVED, Stage.FINANCE, Permission.FINANCE_VALIDATE),
    _rule(_X, ExpenseStatus.AGENCY_VALIDATED, _R, ExpenseStatus.REJECTED, Stage.FINANCE, Permission.FINANCE_VALIDATE),
    _rule(_X, ExpenseStatus.REJECTED, Action.RESUBMIT, ExpenseStatus.PENDING, Stage.ORIGIN, Permission.FINANCE_CREATE),
    _rule(_X, ExpenseStatus.REJECTED, Action.WITHDRAW, ExpenseStatus.CANCELLED, Stage.ORIGIN, Permission.FINANCE_CREATE),
    # ===== Financial transaction =====
    _rule(_T, TransactionStatus.PENDING, _A, TransactionStatus.COMPLETED, Stage.AGENCY, Permission.AGENCY_MANAGE, HAS_AGENCY),
    _rule(_T, TransactionStatus.PENDING, _A, TransactionStatus.COMPLETED, Stage.FINANCE, Permission.FINANCE_VALIDATE, NO_AGENCY),
    _rule(_T, TransactionStatus.PENDING, _R, TransactionStatus.CANCELLED, Stage.AGENCY, Permission.AGENCY_MANAGE, HAS_AGENCY),
    _rule(_T, TransactionStatus.PENDING, _R, TransactionStatus.CANCELLED, Stage.FINANCE, Permission.FINANCE_VALIDATE, NO_AGENCY),
    # ===== Invoice =====
    _rule(_I, InvoiceStatus.DRAFT, _A, InvoiceStatus.PENDING, Stage.ORIGIN, Permission.FINANCE_CREATE, HAS_AGENCY),
    _rule(_I, InvoiceStatus.DRAFT, _A, InvoiceStatus.SENT, Stage.ORIGIN, Permission.FINANCE_CREATE, NO_AGENCY),
    _rule(_I, InvoiceStatus.PENDING, _A, InvoiceStatus.AGENCY_VALIDATED, Stage.AGENCY, Permission.AGENCY_MANAGE),
    _rule(_I, InvoiceStatus.PENDING, _R, InvoiceStatus.DRAFT, Stage.AGENCY, Permission.AGENCY_MANAGE),
    _rule(_I, InvoiceStatus.AGENCY_VALIDATED, _A, InvoiceStatus.SENT, Stage.FINANCE, Permission.FINANCE_VALIDATE),
    _rule(_I, InvoiceStatus.AGENCY_VALIDATED, _R, InvoiceStatus.DRAFT, Stage.FINANCE, Permission.FINANCE_VALIDATE),
    _rule(_I, InvoiceStatus.SENT, _A, InvoiceStatus.PAID, Stage.SETTLEMENT, Permission.FINANCE_VALIDATE),
    _rule(_I, InvoiceStatus.SENT, _R, InvoiceStatus.DRAFT, Stage.FINANCE, Permission.FINANCE_VALIDATE),
    _rule(_I, InvoiceStatus.DRAFT, Action.WITHDRAW, InvoiceStatus.CANCELLED, Stage.ORIGIN, Permission.FINANCE_CREATE, WAS_REJECTED),
    # ===== Employee onboarding =====
    _rule(_E, EmployeeStatus.PENDING_AGENCY, _A, EmployeeStatus.PENDING_GENERAL, Stage.AGENCY, Permission.AGENCY_MANAGE),
    _rule(_E, EmployeeStatus.PENDING_AGENCY, _R, EmployeeStatus.REJECTED, Stage.AGENCY, Permission.AGENCY_MANAGE),
    _rule(_E, EmployeeStatus.PENDING_GENERAL, _A, EmployeeStatus.ACTIVE, Stage.DIRECTION, Permission.DIRECTION_VALIDATE),
    _rule(_E, EmployeeStatus.PENDING_GENERAL, _R, EmployeeStatus.REJECTED, Stage.DIRECTION, Permission.DIRECTION_VALIDATE),
    _rule(_E, EmployeeStatus.REJECTED, Action.RESUBMIT, EmployeeStatus.PENDING_AGENCY, Stage.HR, Permission.HR_EDIT),
    _rule(_E, EmployeeStatus.REJECTED, Action.WITHDRAW, EmployeeStatus.TERMINATED, Stage.HR, Permission.HR_DELETE),
)


class TransitionTable:
    """Lookup over a set of transition rules.

    The table is validated on construction: every status must belong to the
    entity's vocabulary, and edges sharing a ``(status, action)`` pair must
    all be guarded.
    """

    def __init__(self, rules: Iterable[TransitionRule] = DEFAULT_RULES):
        self._rules: dict[tuple[EntityType, str, Action], list[TransitionRule]] = defaultdict(list)
        for rule in rules:
            self._rules[(rule.entity_type, rule.from_status, rule.action)].append(rule)
        self._validate()

    def _validate(self) -> None:
        for (entity_type, from_status, action), rules in self._rules.items():
            for rule in rules:
                for status in (rule.from_status, rule.to_status):
                    if not is_valid_status(entity_type, status):
                        raise ValueError(f"Unknown {entity_type.value} status '{status}'")
            if len(rules) > 1 and any(rule.guard is None for rule in rules):
                raise ValueError(
                    f"Ambiguous {entity_type.value} edges for {action.value} from '{from_status}'"
                )

    def rules(self, entity_type: EntityType | None = None) -> list[TransitionRule]:
        """All rules, optionally for one entity type."""
        return [
            rule
            for rules in self._rules.values()
            for rule in rules
            if entity_type is None or rule.entity_type == entity_type
        ]

    def candidates(
        self, entity_type: EntityType, from_status: str, action: Action
    ) -> list[TransitionRule]:
        return list(self._rules.get((EntityType(entity_type), from_status, Action(action)), []))

    def resolve(self, entity_type: EntityType, record: Any, action: Action) -> TransitionRule:
        """Return the single rule that applies to this record.

        Raises InvalidTransitionError when no edge leaves the current status.
        """
        status = record.status
        candidates = self.candidates(entity_type, status, action)
        matching = [rule for rule in candidates if rule.applies_to(record)]
        if not matching:
            reason = None
            if candidates:
                guards = ", ".join(rule.guard.name for rule in candidates if rule.guard)
                reason = f"only allowed for {guards} records"
            raise InvalidTransitionError(EntityType(entity_type).value, status, Action(action).value, reason)
        if len(matching) > 1:
            raise InvalidTransitionError(
                EntityType(entity_type).value, status, Action(action).value, "ambiguous transition"
            )
        return matching[0]

    def can_transition(self, entity_type: EntityType, record: Any, action: Action) -> bool:
        try:
            self.resolve(entity_type, record, action)
        except InvalidTransitionError:
            return False
        return True

    def next_statuses(self, entity_type: EntityType, from_status: str) -> set[str]:
        """Every status reachable in one step, whatever the action."""
        return {
            rule.to_status
            for rule in self.rules(entity_type)
            if rule.from_status == from_status
        }

    def actions_from(self, entity_type: EntityType, from_status: str) -> set[Action]:
        return {rule.action for rule in self.rules(entity_type) if rule.from_status == from_status}


DEFAULT_TABLE = TransitionTable()
