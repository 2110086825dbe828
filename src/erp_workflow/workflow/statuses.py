"""Status vocabularies for every workflowed entity."""

from __future__ import annotations

from enum import Enum


class EntityType(str, Enum):
    """Workflowed record types."""

    PAYROLL = "payroll"
    EXPENSE = "expense"
    TRANSACTION = "transaction"
    INVOICE = "invoice"
    EMPLOYEE = "employee"


class Action(str, Enum):
    """Verbs that move a record through its approval chain."""

    APPROVE = "approve"
    REJECT = "reject"
    REVERT = "revert"
    RESUBMIT = "resubmit"
    WITHDRAW = "withdraw"


class Stage(str, Enum):
    """Named steps of an approval chain."""

    ORIGIN = "origin"
    HR = "hr"
    AGENCY = "agency"
    FINANCE = "finance"
    DIRECTION = "direction"
    PAYMENT = "payment"
    SETTLEMENT = "settlement"


class PayrollStatus(str, Enum):
    """Payroll run status values."""

    DRAFT = "draft"
    PENDING_AGENCY = "pending_agency"
    HR_VALIDATED = "hr_validated"
    AGENCY_REJECTED = "agency_rejected"
    PENDING_GENERAL = "pending_general"
    FINANCE_VALIDATED = "finance_validated"
    DIRECTION_APPROVED = "direction_approved"
    PAID = "paid"
    CANCELLED = "cancelled"


class ExpenseStatus(str, Enum):
    """Expense report status values."""

    PENDING = "pending"
    AGENCY_VALIDATED = "agency_validated"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class TransactionStatus(str, Enum):
    """Financial transaction status values."""

    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class InvoiceStatus(str, Enum):
    """Invoice status values (approval stage and document lifecycle)."""

    DRAFT = "draft"
    PENDING = "pending"
    AGENCY_VALIDATED = "agency_validated"
    SENT = "sent"
    PAID = "paid"
    CANCELLED = "cancelled"


class EmployeeStatus(str, Enum):
    """Employee status values (onboarding path and employment)."""

    PENDING_AGENCY = "pending_agency"
    PENDING_GENERAL = "pending_general"
    ACTIVE = "active"
    REJECTED = "rejected"
    TERMINATED = "terminated"


class LotStatus(str, Enum):
    """Development lot sales status values."""

    AVAILABLE = "available"
    RESERVED = "reserved"
    SOLD = "sold"


STATUS_VOCABULARIES: dict[EntityType, type[Enum]] = {
    EntityType.PAYROLL: PayrollStatus,
    EntityType.EXPENSE: ExpenseStatus,
    EntityType.TRANSACTION: TransactionStatus,
    EntityType.INVOICE: InvoiceStatus,
    EntityType.EMPLOYEE: EmployeeStatus,
}

# Statuses that stop the forward chain
TERMINAL_STATUSES: dict[EntityType, frozenset[str]] = {
    EntityType.PAYROLL: frozenset({PayrollStatus.PAID.value, PayrollStatus.CANCELLED.value}),
    EntityType.EXPENSE: frozenset({ExpenseStatus.APPROVED.value, ExpenseStatus.CANCELLED.value}),
    EntityType.TRANSACTION: frozenset({TransactionStatus.COMPLETED.value, TransactionStatus.CANCELLED.value}),
    EntityType.INVOICE: frozenset({InvoiceStatus.PAID.value, InvoiceStatus.CANCELLED.value}),
    EntityType.EMPLOYEE: frozenset({EmployeeStatus.ACTIVE.value, EmployeeStatus.TERMINATED.value}),
}


def status_values(entity_type: EntityType) -> list[str]:
    """Return the ordered vocabulary for an entity type."""
    return [member.value for member in STATUS_VOCABULARIES[entity_type]]


def is_valid_status(entity_type: EntityType, status: str) -> bool:
    """Check that a status string belongs to the entity's vocabulary."""
    return status in status_values(entity_type)


def status_check_sql(values: list[str] | type[Enum]) -> str:
    """Render an ``IN (...)`` list for a status CHECK constraint."""
    if isinstance(values, type):
        values = [member.value for member in values]
    return "status IN (" + ", ".join(f"'{v}'" for v in values) + ")"
