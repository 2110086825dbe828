"""Same-transaction side effects registered on the transition engine.

Each effect runs inside the engine's unit of work after the guarded status
write. A database failure here rolls the status change back with it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Awaitable, Callable
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from erp_workflow.calculators.salary import ZERO, quantize
from erp_workflow.models import PayrollItem, PayrollRun, Transaction
from erp_workflow.workflow.events import DomainEvent, EventMetadata, FinancialTransactionRecorded
from erp_workflow.workflow.statuses import (
    EntityType,
    ExpenseStatus,
    InvoiceStatus,
    PayrollStatus,
    TransactionStatus,
)

if TYPE_CHECKING:
    from erp_workflow.workflow.engine import TransitionEngine
    from erp_workflow.workflow.transitions import TransitionRule


@dataclass
class TransitionContext:
    """What a side effect sees of the transition being applied."""

    session: AsyncSession
    entity_type: EntityType
    record: Any
    rule: TransitionRule
    actor_id: UUID | None
    reason: str | None
    correlation_id: UUID
    events: list[DomainEvent] = field(default_factory=list)
    derived_ids: list[UUID] = field(default_factory=list)


SideEffect = Callable[[TransitionContext], Awaitable[None]]


async def payroll_run_total(session: AsyncSession, payroll_run_id: UUID) -> Decimal:
    """Sum of the run's item net salaries."""
    result = await session.execute(
        select(func.coalesce(func.sum(PayrollItem.net_salary), 0)).where(
            PayrollItem.payroll_run_id == payroll_run_id
        )
    )
    return quantize(Decimal(str(result.scalar_one() or ZERO)))


async def record_derived_transaction(ctx: TransitionContext, transaction: Transaction) -> Transaction:
    """Persist a derived transaction and queue its event."""
    ctx.session.add(transaction)
    await ctx.session.flush()
    ctx.derived_ids.append(transaction.id)
    ctx.events.append(
        FinancialTransactionRecorded(
            metadata=EventMetadata.create(actor_id=ctx.actor_id, correlation_id=ctx.correlation_id),
            transaction_id=transaction.id,
            source_type=transaction.source_type or ctx.entity_type.value,
            source_id=ctx.record.id,
            transaction_type=transaction.type,
            transaction_category=transaction.category,
            amount=transaction.amount,
            agency_id=transaction.agency_id,
        )
    )
    return transaction


async def record_payroll_payment(ctx: TransitionContext) -> None:
    """Paying a run writes one expense transaction for its total."""
    run: PayrollRun = ctx.record
    total = await payroll_run_total(ctx.session, run.id)
    if total != run.total_amount:
        await ctx.session.execute(
            update(PayrollRun)
            .where(PayrollRun.id == run.id)
            .values(total_amount=total)
            .execution_options(synchronize_session=False)
        )
        await ctx.session.refresh(run)

    await record_derived_transaction(
        ctx,
        Transaction(
            description=f"Salary payment {run.period_label}",
            amount=total,
            type="expense",
            category="payroll",
            payment_method="transfer",
            status=TransactionStatus.COMPLETED.value,
            agency_id=run.agency_id,
            source_type=EntityType.PAYROLL.value,
            source_id=run.id,
            recorded_by_id=ctx.actor_id,
            validated_by_id=ctx.actor_id,
        ),
    )


async def record_invoice_settlement(ctx: TransitionContext) -> None:
    """A paid invoice writes one income transaction for its total."""
    invoice = ctx.record
    await record_derived_transaction(
        ctx,
        Transaction(
            description=f"Invoice settlement {invoice.number}",
            amount=invoice.total,
            type="income",
            category="sale",
            payment_method="transfer",
            status=TransactionStatus.COMPLETED.value,
            agency_id=invoice.agency_id,
            source_type=EntityType.INVOICE.value,
            source_id=invoice.id,
            recorded_by_id=invoice.created_by_id,
            validated_by_id=ctx.actor_id,
        ),
    )


async def record_expense_disbursement(ctx: TransitionContext) -> None:
    """An approved expense report writes one expense transaction."""
    report = ctx.record
    await record_derived_transaction(
        ctx,
        Transaction(
            description=f"Expense: {report.description}",
            amount=report.amount,
            type="expense",
            category=report.category,
            payment_method="check",
            status=TransactionStatus.COMPLETED.value,
            agency_id=report.agency_id,
            source_type=EntityType.EXPENSE.value,
            source_id=report.id,
            recorded_by_id=report.submitter_id,
            validated_by_id=ctx.actor_id,
        ),
    )


DEFAULT_EFFECTS: tuple[tuple[EntityType, str, SideEffect], ...] = (
    (EntityType.PAYROLL, PayrollStatus.PAID.value, record_payroll_payment),
    (EntityType.INVOICE, InvoiceStatus.PAID.value, record_invoice_settlement),
    (EntityType.EXPENSE, ExpenseStatus.APPROVED.value, record_expense_disbursement),
)


def register_default_effects(engine: TransitionEngine) -> None:
    for entity_type, to_status, effect in DEFAULT_EFFECTS:
        engine.register_effect(entity_type, to_status, effect)
