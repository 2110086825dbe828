"""Read-side queries over workflowed records: rejected feed, work queues, history."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from erp_workflow.models import AuditEvent
from erp_workflow.workflow.engine import binding_for
from erp_workflow.workflow.permissions import AuthorizationPort, PermissionGate, ResourceScope
from erp_workflow.workflow.statuses import Action, EntityType
from erp_workflow.workflow.transitions import DEFAULT_TABLE, TransitionTable


@dataclass(frozen=True)
class WorkItem:
    """A record waiting on a decision the actor is allowed to make."""

    entity_type: EntityType
    record: Any
    stage: str
    actions: tuple[str, ...]


class WorkflowQueries:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        authorization: AuthorizationPort,
        table: TransitionTable = DEFAULT_TABLE,
    ):
        self.session_factory = session_factory
        self.gate = PermissionGate(authorization)
        self.table = table

    async def list_rejected(
        self,
        entity_type: EntityType | str,
        agency_id: UUID | None = None,
        originator_id: UUID | None = None,
        limit: int = 100,
    ) -> list[Any]:
        """Records carrying a rejection reason, newest change first.

        A record leaves this feed once it is resubmitted, approved or
        withdrawn, which clears the reason.
        """
        binding = binding_for(entity_type)
        model = binding.model
        stmt = select(model).where(model.rejection_reason.is_not(None))
        if agency_id is not None:
            stmt = stmt.where(model.agency_id == agency_id)
        if originator_id is not None:
            stmt = stmt.where(getattr(model, binding.originator_attr) == originator_id)
        stmt = stmt.order_by(model.status_changed_at.desc()).limit(limit)

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def list_awaiting(
        self,
        entity_type: EntityType | str,
        actor_id: UUID | None,
        limit: int = 100,
    ) -> list[WorkItem]:
        """Records the actor can approve or reject right now."""
        binding = binding_for(entity_type)
        model = binding.model
        rules = [
            rule
            for rule in self.table.rules(binding.entity_type)
            if rule.action in (Action.APPROVE, Action.REJECT)
        ]
        statuses = sorted({rule.from_status for rule in rules})
        if not statuses or actor_id is None:
            return []

        async with self.session_factory() as session:
            result = await session.execute(
                select(model)
                .where(model.status.in_(statuses))
                .order_by(model.created_at)
                .limit(limit)
            )
            records = list(result.scalars().all())

        items: list[WorkItem] = []
        for record in records:
            scope = ResourceScope(agency_id=getattr(record, "agency_id", None))
            allowed: list[str] = []
            stage = None
            for rule in rules:
                if rule.from_status != record.status or not rule.applies_to(record):
                    continue
                if await self.gate.allows(actor_id, rule.permission, scope):
                    allowed.append(rule.action.value)
                    stage = stage or rule.stage.value
            if allowed:
                items.append(
                    WorkItem(
                        entity_type=binding.entity_type,
                        record=record,
                        stage=stage or "",
                        actions=tuple(sorted(set(allowed))),
                    )
                )
        return items

    async def history(self, entity_type: EntityType | str, entity_id: UUID) -> list[AuditEvent]:
        """Audit trail of one record, oldest first."""
        binding = binding_for(entity_type)
        async with self.session_factory() as session:
            result = await session.execute(
                select(AuditEvent)
                .where(
                    AuditEvent.entity_type == binding.entity_type.value,
                    AuditEvent.entity_id == entity_id,
                )
                .order_by(AuditEvent.created_at)
            )
            return list(result.scalars().all())
