"""API routes."""

from erp_workflow.api.routes.finance import router as finance_router
from erp_workflow.api.routes.health import router as health_router
from erp_workflow.api.routes.hr import router as hr_router
from erp_workflow.api.routes.lots import router as lots_router
from erp_workflow.api.routes.notifications import router as notifications_router
from erp_workflow.api.routes.payroll import router as payroll_router
from erp_workflow.api.routes.workflow import router as workflow_router

__all__ = [
    "finance_router",
    "health_router",
    "hr_router",
    "lots_router",
    "notifications_router",
    "payroll_router",
    "workflow_router",
]
