"""Wires the workflow engine, its subscribers and the record services together.

Usage:
    _, session_factory = init_db()
    workflow = Workflow.build(session_factory)

    await workflow.engine.approve(EntityType.PAYROLL, run_id, actor_id)
    feed = await workflow.notifications.list_for_user(actor_id)
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from erp_workflow.config import Settings, get_settings
from erp_workflow.services.authorization_service import DatabaseAuthorization
from erp_workflow.services.bulk_update_service import BulkUpdateService
from erp_workflow.services.finance_service import FinanceService
from erp_workflow.services.hr_service import HRService
from erp_workflow.services.notification_service import NotificationDispatcher, NotificationService
from erp_workflow.services.payroll_service import PayrollService
from erp_workflow.workflow.emitter import AsyncEventEmitter
from erp_workflow.workflow.engine import TransitionEngine
from erp_workflow.workflow.permissions import AuthorizationPort
from erp_workflow.workflow.queries import WorkflowQueries


@dataclass
class Workflow:
    session_factory: async_sessionmaker[AsyncSession]
    authorization: AuthorizationPort
    emitter: AsyncEventEmitter
    engine: TransitionEngine
    queries: WorkflowQueries
    notifications: NotificationService
    payroll: PayrollService
    finance: FinanceService
    hr: HRService
    bulk: BulkUpdateService

    @classmethod
    def build(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings | None = None,
        authorization: AuthorizationPort | None = None,
    ) -> Workflow:
        settings = settings or get_settings()
        authorization = authorization or DatabaseAuthorization(session_factory)
        emitter = AsyncEventEmitter()
        notifications = NotificationService(session_factory)
        if settings.notifications_enabled:
            NotificationDispatcher(notifications).subscribe(emitter)

        return cls(
            session_factory=session_factory,
            authorization=authorization,
            emitter=emitter,
            engine=TransitionEngine(
                session_factory,
                authorization,
                emitter,
                max_retries=settings.concurrency_retries,
            ),
            queries=WorkflowQueries(session_factory, authorization),
            notifications=notifications,
            payroll=PayrollService(session_factory, authorization),
            finance=FinanceService(session_factory, authorization),
            hr=HRService(session_factory, authorization),
            bulk=BulkUpdateService(session_factory, authorization),
        )
