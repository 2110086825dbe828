"""Record services and the notification dispatcher."""

from erp_workflow.services.authorization_service import DatabaseAuthorization
from erp_workflow.services.bulk_update_service import BulkUpdateResult, BulkUpdateService
from erp_workflow.services.finance_service import FinanceService, InvoiceLine
from erp_workflow.services.hr_service import HRService
from erp_workflow.services.notification_service import NotificationDispatcher, NotificationService
from erp_workflow.services.payroll_service import PayrollService

__all__ = [
    "DatabaseAuthorization",
    "BulkUpdateResult",
    "BulkUpdateService",
    "FinanceService",
    "InvoiceLine",
    "HRService",
    "NotificationDispatcher",
    "NotificationService",
    "PayrollService",
]
