"""Transition engine: the single write path for workflow status changes.

Every status change goes through ``TransitionEngine``. One call is one unit
of work:

1. Load the record (NotFoundError)
2. Resolve the rule for ``(status, action)`` (InvalidTransitionError)
3. Check the rule's permission at the record's scope (Unauthorized)
4. Require a reason when rejecting (ValidationError)
5. Guarded UPDATE ``... WHERE id = ? AND status = ?`` (ConcurrencyConflict)
6. Run the side effects registered for the target status
7. Write the audit event, commit
8. Emit domain events to subscribers

A conflict at step 5 is retried once from step 1 so the gate and the guards
are re-evaluated. The retry is pinned to the pre-state of the first attempt:
if the record has moved to another status meanwhile, the retry reports the
conflict instead of applying the next stage's rule.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable
from uuid import UUID, uuid4

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from erp_workflow.models import (
    AuditEvent,
    Employee,
    ExpenseReport,
    Invoice,
    PayrollRun,
    Transaction,
    utcnow,
)
from erp_workflow.workflow.effects import SideEffect, TransitionContext, register_default_effects
from erp_workflow.workflow.emitter import AsyncEventEmitter
from erp_workflow.workflow.errors import (
    ConcurrencyConflict,
    DerivedWriteError,
    NotFoundError,
    ValidationError,
    WorkflowError,
)
from erp_workflow.workflow.events import DomainEvent, EventMetadata, WorkflowTransitioned
from erp_workflow.workflow.permissions import AuthorizationPort, PermissionGate, ResourceScope
from erp_workflow.workflow.statuses import Action, EntityType
from erp_workflow.workflow.transitions import DEFAULT_TABLE, TransitionRule, TransitionTable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EntityBinding:
    """How the engine reads and attributes one workflowed model."""

    entity_type: EntityType
    model: type
    originator_attr: str
    describe: Callable[[Any], str]
    validator_attr: str | None = None

    def originator(self, record: Any) -> UUID | None:
        return getattr(record, self.originator_attr, None)


ENTITY_BINDINGS: dict[EntityType, EntityBinding] = {
    EntityType.PAYROLL: EntityBinding(
        EntityType.PAYROLL,
        PayrollRun,
        "created_by_id",
        lambda run: f"Payroll {run.period_label}",
    ),
    EntityType.EXPENSE: EntityBinding(
        EntityType.EXPENSE,
        ExpenseReport,
        "submitter_id",
        lambda report: f"Expense report '{report.description}'",
        validator_attr="validated_by_id",
    ),
    EntityType.TRANSACTION: EntityBinding(
        EntityType.TRANSACTION,
        Transaction,
        "recorded_by_id",
        lambda tx: f"Transaction '{tx.description}'",
        validator_attr="validated_by_id",
    ),
    EntityType.INVOICE: EntityBinding(
        EntityType.INVOICE,
        Invoice,
        "created_by_id",
        lambda invoice: f"Invoice {invoice.number}",
    ),
    EntityType.EMPLOYEE: EntityBinding(
        EntityType.EMPLOYEE,
        Employee,
        "created_by_id",
        lambda employee: f"Employee {employee.full_name}",
    ),
}


def binding_for(entity_type: EntityType | str) -> EntityBinding:
    try:
        return ENTITY_BINDINGS[EntityType(entity_type)]
    except ValueError:
        raise ValidationError(f"Unknown entity type '{entity_type}'", field="entity_type")


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of a successful transition."""

    entity_type: EntityType
    entity_id: UUID
    action: Action
    from_status: str
    status: str
    rejection_reason: str | None
    derived_ids: tuple[UUID, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "entity_type": self.entity_type.value,
            "entity_id": str(self.entity_id),
            "action": self.action.value,
            "from_status": self.from_status,
            "status": self.status,
            "rejection_reason": self.rejection_reason,
            "derived_ids": [str(i) for i in self.derived_ids],
        }


@dataclass
class BulkItemOutcome:
    """Per-item result of a bulk transition."""

    entity_id: Any
    result: TransitionResult | None = None
    error: WorkflowError | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        if self.result is not None:
            return self.result.to_dict()
        assert self.error is not None
        data = self.error.to_dict()
        data["entity_id"] = str(self.entity_id)
        return data


@dataclass
class BulkTransitionResult:
    outcomes: list[BulkItemOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> list[BulkItemOutcome]:
        return [o for o in self.outcomes if o.success]

    @property
    def failed(self) -> list[BulkItemOutcome]:
        return [o for o in self.outcomes if not o.success]

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": not self.failed,
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "results": [o.to_dict() for o in self.outcomes],
        }


class TransitionEngine:
    """Applies transition rules to stored records.

    Usage:
        engine = TransitionEngine(session_factory, authorization, emitter)
        result = await engine.approve(EntityType.PAYROLL, run_id, actor_id)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        authorization: AuthorizationPort,
        emitter: AsyncEventEmitter | None = None,
        table: TransitionTable = DEFAULT_TABLE,
        max_retries: int = 1,
        default_effects: bool = True,
    ):
        self.session_factory = session_factory
        self.gate = PermissionGate(authorization)
        self.emitter = emitter
        self.table = table
        self.max_retries = max_retries
        self._effects: dict[tuple[EntityType, str], list[SideEffect]] = defaultdict(list)
        if default_effects:
            register_default_effects(self)

    def register_effect(self, entity_type: EntityType, to_status: str, effect: SideEffect) -> None:
        """Run ``effect`` in the same transaction whenever a record enters ``to_status``."""
        self._effects[(EntityType(entity_type), _status_value(to_status))].append(effect)

    # ------------------------------------------------------------------
    # Verbs
    # ------------------------------------------------------------------

    async def approve(
        self, entity_type: EntityType | str, entity_id: UUID, actor_id: UUID | None
    ) -> TransitionResult:
        """Advance the record one stage."""
        return await self.transition(entity_type, entity_id, Action.APPROVE, actor_id)

    async def reject(
        self,
        entity_type: EntityType | str,
        entity_id: UUID,
        actor_id: UUID | None,
        reason: str | None,
    ) -> TransitionResult:
        """Send the record back with a mandatory reason."""
        return await self.transition(entity_type, entity_id, Action.REJECT, actor_id, reason)

    async def revert_to_draft(
        self, entity_type: EntityType | str, entity_id: UUID, actor_id: UUID | None
    ) -> TransitionResult:
        """Reopen a rejected payroll run for correction.

        The rejection reason stays on the record until it is resubmitted.
        Only payroll runs have a revert edge; other entities get
        InvalidTransitionError from the table.
        """
        return await self.transition(entity_type, entity_id, Action.REVERT, actor_id)

    async def resubmit(
        self, entity_type: EntityType | str, entity_id: UUID, actor_id: UUID | None
    ) -> TransitionResult:
        """Re-enter the chain at its first validating stage after a correction."""
        return await self.transition(entity_type, entity_id, Action.RESUBMIT, actor_id)

    async def withdraw(
        self, entity_type: EntityType | str, entity_id: UUID, actor_id: UUID | None
    ) -> TransitionResult:
        """Abandon a rejected record."""
        return await self.transition(entity_type, entity_id, Action.WITHDRAW, actor_id)

    async def transition(
        self,
        entity_type: EntityType | str,
        entity_id: UUID,
        action: Action | str,
        actor_id: UUID | None,
        reason: str | None = None,
    ) -> TransitionResult:
        """Apply ``action`` to one record and publish its events."""
        result, events = await self._execute_with_retry(entity_type, entity_id, action, actor_id, reason)
        await self._publish(events)
        return result

    async def bulk_transition(
        self,
        entity_type: EntityType | str,
        entity_ids: Iterable[UUID],
        action: Action | str,
        actor_id: UUID | None,
        reason: str | None = None,
    ) -> BulkTransitionResult:
        """Apply one action to many records, each in its own unit of work.

        A failing item does not stop the others; its error is reported in
        its outcome. Events of the successful items are published together
        once every item has been attempted.
        """
        bulk = BulkTransitionResult()
        events: list[DomainEvent] = []
        try:
            for entity_id in entity_ids:
                try:
                    result, item_events = await self._execute_with_retry(
                        entity_type, entity_id, action, actor_id, reason
                    )
                except WorkflowError as exc:
                    bulk.outcomes.append(BulkItemOutcome(entity_id=entity_id, error=exc))
                    continue
                events.extend(item_events)
                bulk.outcomes.append(BulkItemOutcome(entity_id=entity_id, result=result))
        finally:
            await self._publish(events)

        logger.info(
            "Bulk %s on %s: %d succeeded, %d failed",
            Action(action).value,
            EntityType(entity_type).value,
            len(bulk.succeeded),
            len(bulk.failed),
        )
        return bulk

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _execute_with_retry(
        self,
        entity_type: EntityType | str,
        entity_id: UUID,
        action: Action | str,
        actor_id: UUID | None,
        reason: str | None,
    ) -> tuple[TransitionResult, list[DomainEvent]]:
        binding = binding_for(entity_type)
        action = _action(action)
        reason = _clean_reason(reason)

        attempt = 0
        expected_status: str | None = None
        while True:
            try:
                return await self._execute(binding, entity_id, action, actor_id, reason, expected_status)
            except ConcurrencyConflict as exc:
                if attempt >= self.max_retries:
                    logger.warning(
                        "Giving up on %s %s %s after %d conflict(s)",
                        action.value,
                        binding.entity_type.value,
                        entity_id,
                        attempt + 1,
                    )
                    raise
                attempt += 1
                expected_status = exc.expected_status
                logger.info(
                    "Status of %s %s changed concurrently; retrying %s",
                    binding.entity_type.value,
                    entity_id,
                    action.value,
                )

    async def _execute(
        self,
        binding: EntityBinding,
        entity_id: UUID,
        action: Action,
        actor_id: UUID | None,
        reason: str | None,
        expected_status: str | None = None,
    ) -> tuple[TransitionResult, list[DomainEvent]]:
        correlation_id = uuid4()
        async with self.session_factory() as session:
            async with session.begin():
                record = await self._load(session, binding, entity_id)
                from_status = record.status
                rule = self.table.resolve(binding.entity_type, record, action)
                if expected_status is not None and rule.from_status != expected_status:
                    raise ConcurrencyConflict(binding.entity_type.value, entity_id, expected_status)

                await self.gate.require(
                    actor_id,
                    rule.permission,
                    ResourceScope(agency_id=getattr(record, "agency_id", None)),
                    stage=rule.stage.value,
                )
                if rule.stores_reason and not reason:
                    raise ValidationError("A rejection reason is required", field="reason")

                await self._guarded_update(session, binding, record, rule, actor_id, reason)

                ctx = TransitionContext(
                    session=session,
                    entity_type=binding.entity_type,
                    record=record,
                    rule=rule,
                    actor_id=actor_id,
                    reason=reason,
                    correlation_id=correlation_id,
                )
                await self._run_effects(ctx)

                session.add(
                    AuditEvent(
                        actor_user_id=actor_id,
                        entity_type=binding.entity_type.value,
                        entity_id=record.id,
                        action=action.value,
                        from_status=from_status,
                        to_status=rule.to_status,
                        reason=reason,
                    )
                )

                transitioned = WorkflowTransitioned(
                    metadata=EventMetadata.create(actor_id=actor_id, correlation_id=correlation_id),
                    entity_type=binding.entity_type.value,
                    entity_id=record.id,
                    action=action.value,
                    stage=rule.stage.value,
                    from_status=from_status,
                    to_status=rule.to_status,
                    agency_id=getattr(record, "agency_id", None),
                    originator_id=binding.originator(record),
                    reason=reason,
                    label=binding.describe(record),
                )
                result = TransitionResult(
                    entity_type=binding.entity_type,
                    entity_id=record.id,
                    action=action,
                    from_status=from_status,
                    status=record.status,
                    rejection_reason=record.rejection_reason,
                    derived_ids=tuple(ctx.derived_ids),
                )

        logger.info(
            "%s %s: %s -> %s (%s by %s)",
            binding.entity_type.value,
            record.id,
            from_status,
            rule.to_status,
            action.value,
            actor_id,
        )
        return result, [transitioned, *ctx.events]

    async def _load(self, session: AsyncSession, binding: EntityBinding, entity_id: UUID) -> Any:
        record = await session.get(binding.model, entity_id, populate_existing=True)
        if record is None:
            raise NotFoundError(binding.entity_type.value, entity_id)
        return record

    async def _guarded_update(
        self,
        session: AsyncSession,
        binding: EntityBinding,
        record: Any,
        rule: TransitionRule,
        actor_id: UUID | None,
        reason: str | None,
    ) -> None:
        """Write the new status only if the stored status is still the one we read."""
        model = binding.model
        values: dict[str, Any] = {"status": rule.to_status, "status_changed_at": utcnow()}
        if rule.stores_reason:
            values["rejection_reason"] = reason
        elif rule.clears_reason:
            values["rejection_reason"] = None
        if rule.is_validation and binding.validator_attr:
            values[binding.validator_attr] = actor_id

        result = await session.execute(
            update(model)
            .where(model.id == record.id, model.status == rule.from_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ConcurrencyConflict(binding.entity_type.value, record.id, rule.from_status)
        await session.refresh(record)

    async def _run_effects(self, ctx: TransitionContext) -> None:
        # A failed flush expires the record; read nothing from it afterwards.
        entity_id = ctx.record.id
        effects = self._effects.get((ctx.entity_type, ctx.rule.to_status), [])
        for effect in effects:
            try:
                await effect(ctx)
            except SQLAlchemyError as exc:
                logger.error(
                    "Derived write %s failed for %s %s: %s",
                    getattr(effect, "__name__", effect),
                    ctx.entity_type.value,
                    entity_id,
                    exc,
                )
                raise DerivedWriteError(
                    f"Derived write failed for {ctx.entity_type.value} {entity_id}; "
                    "nothing was changed"
                ) from exc

    async def _publish(self, events: list[DomainEvent]) -> None:
        if self.emitter is None or not events:
            return
        errors = await self.emitter.emit_all(events)
        if errors:
            logger.warning("%d event handler(s) failed after commit", len(errors))


def _action(action: Action | str) -> Action:
    try:
        return Action(action)
    except ValueError:
        raise ValidationError(f"Unknown action '{action}'", field="action")


def _clean_reason(reason: str | None) -> str | None:
    reason = reason.strip() if reason else None
    return reason or None


def _status_value(status: Any) -> str:
    return status.value if hasattr(status, "value") else str(status)
