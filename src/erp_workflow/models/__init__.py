"""ORM models."""

from erp_workflow.models.base import Base, utcnow
from erp_workflow.models.finance import ExpenseReport, Invoice, InvoiceItem, Transaction
from erp_workflow.models.hr import Employee, PayrollItem, PayrollRun
from erp_workflow.models.notification import AuditEvent, Notification
from erp_workflow.models.organization import Agency, User
from erp_workflow.models.property import DevelopmentLot

__all__ = [
    "Base",
    "utcnow",
    "Agency",
    "User",
    "Employee",
    "PayrollRun",
    "PayrollItem",
    "Transaction",
    "ExpenseReport",
    "Invoice",
    "InvoiceItem",
    "DevelopmentLot",
    "Notification",
    "AuditEvent",
]
