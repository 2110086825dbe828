"""Notification feed and the dispatcher that fills it from workflow events.

The dispatcher subscribes to ``WorkflowTransitioned`` and fans each
transition out to the next stage's stakeholders. It writes in its own
session after the transition committed; a failure here is logged by the
emitter and never undoes the transition.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Protocol
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from erp_workflow.models import Notification, User
from erp_workflow.workflow.emitter import AsyncEventEmitter
from erp_workflow.workflow.errors import NotFoundError, ValidationError
from erp_workflow.workflow.events import WorkflowTransitioned
from erp_workflow.workflow.permissions import Permission
from erp_workflow.workflow.statuses import (
    Action,
    EmployeeStatus,
    EntityType,
    ExpenseStatus,
    InvoiceStatus,
    PayrollStatus,
    TransactionStatus,
)

logger = logging.getLogger(__name__)

SEVERITIES = ("info", "success", "warning", "error")


class NotificationService:
    """Writes and reads users' notification feeds."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def send(
        self,
        user_ids: Iterable[UUID],
        title: str,
        message: str,
        severity: str = "info",
        link: str | None = None,
    ) -> int:
        """Create one notification per distinct user. Returns how many were written."""
        if severity not in SEVERITIES:
            raise ValidationError(f"Unknown severity '{severity}'", field="severity")
        recipients = list(dict.fromkeys(user_ids))
        if not recipients:
            return 0
        async with self.session_factory() as session:
            async with session.begin():
                session.add_all(
                    Notification(
                        user_id=user_id,
                        title=title,
                        message=message,
                        severity=severity,
                        link=link,
                    )
                    for user_id in recipients
                )
        return len(recipients)

    async def users_with_permission(
        self, permission: str, agency_id: UUID | None = None
    ) -> list[UUID]:
        """Active users holding ``permission``, optionally within one agency."""
        stmt = select(User).where(User.is_active.is_(True))
        if agency_id is not None:
            stmt = stmt.where(User.agency_id == agency_id)
        async with self.session_factory() as session:
            users = (await session.execute(stmt)).scalars().all()
        return [user.id for user in users if permission in (user.permissions or [])]

    async def broadcast_by_permission(
        self,
        permission: str,
        title: str,
        message: str,
        severity: str = "info",
        link: str | None = None,
    ) -> int:
        user_ids = await self.users_with_permission(permission)
        return await self.send(user_ids, title, message, severity, link)

    async def notify_agency_managers(
        self,
        agency_id: UUID,
        title: str,
        message: str,
        severity: str = "info",
        link: str | None = None,
    ) -> int:
        user_ids = await self.users_with_permission(Permission.AGENCY_MANAGE.value, agency_id)
        return await self.send(user_ids, title, message, severity, link)

    async def list_for_user(self, user_id: UUID, limit: int = 50) -> list[Notification]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Notification)
                .where(Notification.user_id == user_id)
                .order_by(Notification.created_at.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def unread_count(self, user_id: UUID) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                select(func.count())
                .select_from(Notification)
                .where(Notification.user_id == user_id, Notification.read.is_(False))
            )
            return int(result.scalar_one())

    async def mark_read(self, notification_id: UUID, user_id: UUID) -> None:
        """Mark one of the user's notifications read."""
        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(Notification)
                    .where(Notification.id == notification_id, Notification.user_id == user_id)
                    .values(read=True)
                )
                if result.rowcount == 0:
                    raise NotFoundError("notification", notification_id)

    async def mark_all_read(self, user_id: UUID) -> int:
        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(Notification)
                    .where(Notification.user_id == user_id, Notification.read.is_(False))
                    .values(read=True)
                )
                return result.rowcount


# ----------------------------------------------------------------------
# Recipient targets
# ----------------------------------------------------------------------


class Target(Protocol):
    async def resolve(
        self, service: NotificationService, event: WorkflowTransitioned
    ) -> list[UUID]: ...


@dataclass(frozen=True)
class PermissionTarget:
    """Everyone holding a permission."""

    permission: Permission

    async def resolve(self, service: NotificationService, event: WorkflowTransitioned) -> list[UUID]:
        return await service.users_with_permission(self.permission.value)


@dataclass(frozen=True)
class AgencyManagersTarget:
    """Managers of the record's agency; nobody for central records."""

    async def resolve(self, service: NotificationService, event: WorkflowTransitioned) -> list[UUID]:
        if event.agency_id is None:
            return []
        return await service.users_with_permission(Permission.AGENCY_MANAGE.value, event.agency_id)


@dataclass(frozen=True)
class OriginatorTarget:
    """Whoever created or submitted the record."""

    async def resolve(self, service: NotificationService, event: WorkflowTransitioned) -> list[UUID]:
        return [event.originator_id] if event.originator_id else []


@dataclass(frozen=True)
class NotificationRule:
    """Who hears about a record entering ``to_status``."""

    entity_type: EntityType
    to_status: str
    title: str
    message: str
    targets: tuple[Target, ...]
    severity: str = "info"
    action: Action | None = None

    def matches(self, event: WorkflowTransitioned) -> bool:
        if event.entity_type != self.entity_type.value or event.to_status != self.to_status:
            return False
        return self.action is None or event.action == self.action.value

    def render(self, event: WorkflowTransitioned) -> tuple[str, str]:
        values = {
            "label": event.label,
            "reason": event.reason or "",
            "from_status": event.from_status,
            "to_status": event.to_status,
        }
        return self.title.format(**values), self.message.format(**values)


def _link(entity_type: EntityType) -> str:
    return {
        EntityType.PAYROLL: "/hr/payroll",
        EntityType.EXPENSE: "/finance/expenses",
        EntityType.TRANSACTION: "/finance/transactions",
        EntityType.INVOICE: "/finance/invoices",
        EntityType.EMPLOYEE: "/hr/employees",
    }[entity_type]


_MANAGERS = AgencyManagersTarget()
_ORIGINATOR = OriginatorTarget()
_FINANCE = PermissionTarget(Permission.FINANCE_VALIDATE)
_DIRECTION = PermissionTarget(Permission.DIRECTION_VALIDATE)
_HR = PermissionTarget(Permission.HR_EDIT)

DEFAULT_NOTIFICATION_RULES: tuple[NotificationRule, ...] = (
    # Payroll
    NotificationRule(EntityType.PAYROLL, PayrollStatus.PENDING_AGENCY.value,
                     "Payroll awaiting agency validation", "{label} needs your validation.",
                     (_MANAGERS,), action=Action.APPROVE),
    NotificationRule(EntityType.PAYROLL, PayrollStatus.PENDING_AGENCY.value,
                     "Payroll returned", "{label} was returned: {reason}",
                     (_MANAGERS, _ORIGINATOR), severity="warning", action=Action.REJECT),
    NotificationRule(EntityType.PAYROLL, PayrollStatus.PENDING_GENERAL.value,
                     "Payroll awaiting finance validation", "{label} is ready for finance review.",
                     (_FINANCE,)),
    NotificationRule(EntityType.PAYROLL, PayrollStatus.FINANCE_VALIDATED.value,
                     "Payroll awaiting direction approval", "{label} was validated by finance.",
                     (_DIRECTION,)),
    NotificationRule(EntityType.PAYROLL, PayrollStatus.DIRECTION_APPROVED.value,
                     "Payroll ready for payment", "{label} was approved by the direction.",
                     (_FINANCE, _MANAGERS), severity="success"),
    NotificationRule(EntityType.PAYROLL, PayrollStatus.AGENCY_REJECTED.value,
                     "Payroll rejected", "{label} was rejected: {reason}",
                     (_ORIGINATOR, _HR), severity="error"),
    NotificationRule(EntityType.PAYROLL, PayrollStatus.PAID.value,
                     "Payroll paid", "{label} has been paid.",
                     (_ORIGINATOR, _MANAGERS), severity="success"),
    # Expense reports
    NotificationRule(EntityType.EXPENSE, ExpenseStatus.AGENCY_VALIDATED.value,
                     "Expense awaiting finance validation", "{label} was validated by the agency.",
                     (_FINANCE,)),
    NotificationRule(EntityType.EXPENSE, ExpenseStatus.PENDING.value,
                     "Expense resubmitted", "{label} was corrected and resubmitted.",
                     (_MANAGERS, _FINANCE), action=Action.RESUBMIT),
    NotificationRule(EntityType.EXPENSE, ExpenseStatus.APPROVED.value,
                     "Expense approved", "{label} was approved.",
                     (_ORIGINATOR,), severity="success"),
    NotificationRule(EntityType.EXPENSE, ExpenseStatus.REJECTED.value,
                     "Expense rejected", "{label} was rejected: {reason}",
                     (_ORIGINATOR,), severity="error"),
    # Transactions
    NotificationRule(EntityType.TRANSACTION, TransactionStatus.COMPLETED.value,
                     "Transaction validated", "{label} was validated.",
                     (_ORIGINATOR,), severity="success"),
    NotificationRule(EntityType.TRANSACTION, TransactionStatus.CANCELLED.value,
                     "Transaction rejected", "{label} was rejected: {reason}",
                     (_ORIGINATOR,), severity="error", action=Action.REJECT),
    # Invoices
    NotificationRule(EntityType.INVOICE, InvoiceStatus.PENDING.value,
                     "Invoice awaiting agency validation", "{label} needs your validation.",
                     (_MANAGERS,)),
    NotificationRule(EntityType.INVOICE, InvoiceStatus.AGENCY_VALIDATED.value,
                     "Invoice awaiting finance validation", "{label} was validated by the agency.",
                     (_FINANCE,)),
    NotificationRule(EntityType.INVOICE, InvoiceStatus.DRAFT.value,
                     "Invoice returned", "{label} was returned to draft: {reason}",
                     (_ORIGINATOR,), severity="warning", action=Action.REJECT),
    NotificationRule(EntityType.INVOICE, InvoiceStatus.PAID.value,
                     "Invoice paid", "{label} has been settled.",
                     (_ORIGINATOR,), severity="success"),
    # Employees
    NotificationRule(EntityType.EMPLOYEE, EmployeeStatus.PENDING_AGENCY.value,
                     "Employee awaiting agency validation", "{label} needs your validation.",
                     (_MANAGERS,)),
    NotificationRule(EntityType.EMPLOYEE, EmployeeStatus.PENDING_GENERAL.value,
                     "Employee awaiting direction approval", "{label} was validated by the agency.",
                     (_DIRECTION,)),
    NotificationRule(EntityType.EMPLOYEE, EmployeeStatus.ACTIVE.value,
                     "Employee activated", "{label} is now active.",
                     (_ORIGINATOR, _MANAGERS), severity="success"),
    NotificationRule(EntityType.EMPLOYEE, EmployeeStatus.REJECTED.value,
                     "Employee rejected", "{label} was rejected: {reason}",
                     (_ORIGINATOR, _HR), severity="error"),
)


class NotificationDispatcher:
    """Turns ``WorkflowTransitioned`` events into notifications."""

    def __init__(
        self,
        service: NotificationService,
        rules: Iterable[NotificationRule] = DEFAULT_NOTIFICATION_RULES,
    ):
        self.service = service
        self.rules = tuple(rules)

    def subscribe(self, emitter: AsyncEventEmitter) -> None:
        emitter.on(WorkflowTransitioned, self.handle)

    async def handle(self, event: WorkflowTransitioned) -> int:
        """Deliver every matching rule. Returns the number of notifications written."""
        sent = 0
        for rule in self.rules:
            if not rule.matches(event):
                continue
            recipients: list[UUID] = []
            for target in rule.targets:
                recipients.extend(await target.resolve(self.service, event))
            title, message = rule.render(event)
            sent += await self.service.send(
                recipients,
                title,
                message,
                severity=rule.severity,
                link=_link(rule.entity_type),
            )
        if sent:
            logger.debug(
                "Sent %d notification(s) for %s %s -> %s",
                sent,
                event.entity_type,
                event.entity_id,
                event.to_status,
            )
        return sent
