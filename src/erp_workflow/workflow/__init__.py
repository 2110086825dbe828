"""Approval workflow core: vocabularies, transition table, gate and engine.

Import the engine from ``erp_workflow.workflow.engine``; this package root
only re-exports the pure modules so the ORM models can depend on the
status vocabularies without import cycles.
"""

from erp_workflow.workflow.errors import (
    BulkUpdateError,
    ConcurrencyConflict,
    DerivedWriteError,
    InvalidTransitionError,
    NotFoundError,
    Unauthorized,
    ValidationError,
    WorkflowError,
)
from erp_workflow.workflow.statuses import (
    Action,
    EmployeeStatus,
    EntityType,
    ExpenseStatus,
    InvoiceStatus,
    LotStatus,
    PayrollStatus,
    Stage,
    TransactionStatus,
)

__all__ = [
    "Action",
    "EntityType",
    "Stage",
    "PayrollStatus",
    "ExpenseStatus",
    "TransactionStatus",
    "InvoiceStatus",
    "EmployeeStatus",
    "LotStatus",
    "WorkflowError",
    "Unauthorized",
    "InvalidTransitionError",
    "ValidationError",
    "NotFoundError",
    "ConcurrencyConflict",
    "DerivedWriteError",
    "BulkUpdateError",
]
