"""Creation and correction of financial records.

Records created by agency staff start at the agency stage; records created
by central staff skip it (transactions are validated on creation, invoices
go straight to ``sent``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from erp_workflow.calculators.salary import parse_amount, quantize, sum_amounts
from erp_workflow.models import ExpenseReport, Invoice, InvoiceItem, Transaction, User, utcnow
from erp_workflow.services.sequences import next_code
from erp_workflow.workflow.errors import InvalidTransitionError, NotFoundError, ValidationError
from erp_workflow.workflow.permissions import AuthorizationPort, Permission, PermissionGate
from erp_workflow.workflow.statuses import (
    EntityType,
    ExpenseStatus,
    InvoiceStatus,
    TransactionStatus,
)

logger = logging.getLogger(__name__)

TRANSACTION_TYPES = ("income", "expense")
INVOICE_PREFIXES = {"invoice": "FAC", "quote": "DEV"}


@dataclass(frozen=True)
class InvoiceLine:
    """Untrusted invoice line input."""

    description: str
    quantity: Any
    unit_price: Any

    def build(self) -> InvoiceItem:
        if not self.description or not self.description.strip():
            raise ValidationError("Invoice line needs a description", field="description")
        quantity = _parse_quantity(self.quantity)
        unit_price = parse_amount(self.unit_price, field="unit_price")
        return InvoiceItem(
            description=self.description.strip(),
            quantity=quantity,
            unit_price=unit_price,
            total=quantize(quantity * unit_price),
        )


class FinanceService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        authorization: AuthorizationPort,
    ):
        self.session_factory = session_factory
        self.gate = PermissionGate(authorization)

    async def create_transaction(
        self,
        actor_id: UUID | None,
        description: str,
        amount: Any,
        type: str,
        category: str,
        payment_method: str = "transfer",
        occurred_on: date | None = None,
    ) -> Transaction:
        """Record an income or expense.

        Agency staff record pending transactions for their manager; central
        staff record completed ones, validated by themselves.
        """
        await self.gate.require(actor_id, Permission.FINANCE_CREATE)
        if type not in TRANSACTION_TYPES:
            raise ValidationError(f"Unknown transaction type '{type}'", field="type")
        _require_text(description, "description")
        _require_text(category, "category")

        async with self.session_factory() as session:
            async with session.begin():
                actor = await _load_actor(session, actor_id)
                in_agency = actor.agency_id is not None
                transaction = Transaction(
                    description=description.strip(),
                    amount=parse_amount(amount),
                    type=type,
                    category=category,
                    payment_method=payment_method,
                    occurred_on=occurred_on or utcnow().date(),
                    agency_id=actor.agency_id,
                    recorded_by_id=actor.id,
                    validated_by_id=None if in_agency else actor.id,
                    status=(
                        TransactionStatus.PENDING.value
                        if in_agency
                        else TransactionStatus.COMPLETED.value
                    ),
                )
                session.add(transaction)
                await session.flush()

        logger.info("Recorded %s transaction %s (%s)", type, transaction.id, transaction.status)
        return transaction

    async def create_expense_report(
        self,
        actor_id: UUID | None,
        description: str,
        amount: Any,
        category: str = "maintenance",
    ) -> ExpenseReport:
        await self.gate.require(actor_id, Permission.FINANCE_CREATE)
        _require_text(description, "description")
        parsed = parse_amount(amount)
        if parsed == 0:
            raise ValidationError("amount must be greater than zero", field="amount")

        async with self.session_factory() as session:
            async with session.begin():
                actor = await _load_actor(session, actor_id)
                report = ExpenseReport(
                    description=description.strip(),
                    amount=parsed,
                    category=category,
                    agency_id=actor.agency_id,
                    submitter_id=actor.id,
                    status=ExpenseStatus.PENDING.value,
                )
                session.add(report)
                await session.flush()
        return report

    async def update_expense_report(
        self,
        actor_id: UUID | None,
        report_id: UUID,
        description: str | None = None,
        amount: Any = None,
        category: str | None = None,
    ) -> ExpenseReport:
        """Correct a rejected report before resubmitting it."""
        await self.gate.require(actor_id, Permission.FINANCE_CREATE)
        async with self.session_factory() as session:
            async with session.begin():
                report = await session.get(ExpenseReport, report_id)
                if report is None:
                    raise NotFoundError(EntityType.EXPENSE.value, report_id)
                if report.status != ExpenseStatus.REJECTED.value:
                    raise InvalidTransitionError(
                        EntityType.EXPENSE.value, report.status, "edit", "only rejected reports can be corrected"
                    )
                if description is not None:
                    _require_text(description, "description")
                    report.description = description.strip()
                if amount is not None:
                    report.amount = parse_amount(amount)
                if category is not None:
                    report.category = category
                await session.flush()
        return report

    async def create_invoice(
        self,
        actor_id: UUID | None,
        lines: list[InvoiceLine],
        type: str = "invoice",
        client_id: UUID | None = None,
        issue_date: date | None = None,
        due_date: date | None = None,
        tax_rate: Any = None,
    ) -> Invoice:
        """Create an invoice or quote with a sequential number.

        Numbers are ``FAC-YYYY-NNN`` for invoices and ``DEV-YYYY-NNN`` for
        quotes, counted per year and assigned once.
        """
        await self.gate.require(actor_id, Permission.FINANCE_CREATE)
        if type not in INVOICE_PREFIXES:
            raise ValidationError(f"Unknown invoice type '{type}'", field="type")
        if not lines:
            raise ValidationError("An invoice needs at least one line", field="items")
        items = [line.build() for line in lines]
        issue_date = issue_date or utcnow().date()
        if due_date is not None and due_date < issue_date:
            raise ValidationError("due_date is before issue_date", field="due_date")

        subtotal = sum_amounts([item.total for item in items])
        rate = parse_amount(tax_rate, field="tax_rate")
        tax_amount = quantize(subtotal * rate / Decimal(100))

        async with self.session_factory() as session:
            async with session.begin():
                actor = await _load_actor(session, actor_id)
                number = await next_code(
                    session, Invoice.number, f"{INVOICE_PREFIXES[type]}-{issue_date.year}-", 3
                )
                invoice = Invoice(
                    number=number,
                    type=type,
                    issue_date=issue_date,
                    due_date=due_date,
                    subtotal=subtotal,
                    tax_amount=tax_amount,
                    total=quantize(subtotal + tax_amount),
                    client_id=client_id,
                    agency_id=actor.agency_id,
                    created_by_id=actor.id,
                    status=(
                        InvoiceStatus.PENDING.value
                        if actor.agency_id is not None
                        else InvoiceStatus.SENT.value
                    ),
                    items=items,
                )
                session.add(invoice)
                await session.flush()

        logger.info("Created %s %s (%s, total %s)", type, invoice.number, invoice.status, invoice.total)
        return invoice

    async def update_invoice_lines(
        self,
        actor_id: UUID | None,
        invoice_id: UUID,
        lines: list[InvoiceLine],
    ) -> Invoice:
        """Replace the lines of a draft invoice; the number never changes."""
        await self.gate.require(actor_id, Permission.FINANCE_CREATE)
        if not lines:
            raise ValidationError("An invoice needs at least one line", field="items")
        items = [line.build() for line in lines]

        async with self.session_factory() as session:
            async with session.begin():
                invoice = await session.get(Invoice, invoice_id)
                if invoice is None:
                    raise NotFoundError(EntityType.INVOICE.value, invoice_id)
                if invoice.status != InvoiceStatus.DRAFT.value:
                    raise InvalidTransitionError(
                        EntityType.INVOICE.value, invoice.status, "edit", "only draft invoices can be edited"
                    )
                rate = (
                    invoice.tax_amount * Decimal(100) / invoice.subtotal
                    if invoice.subtotal
                    else Decimal(0)
                )
                invoice.items = items
                invoice.subtotal = sum_amounts([item.total for item in items])
                invoice.tax_amount = quantize(invoice.subtotal * rate / Decimal(100))
                invoice.total = quantize(invoice.subtotal + invoice.tax_amount)
                await session.flush()
        return invoice

    async def list_invoices(self, agency_id: UUID | None = None, status: str | None = None) -> list[Invoice]:
        stmt = select(Invoice)
        if agency_id is not None:
            stmt = stmt.where(Invoice.agency_id == agency_id)
        if status is not None:
            stmt = stmt.where(Invoice.status == status)
        async with self.session_factory() as session:
            return list((await session.execute(stmt.order_by(Invoice.number))).scalars().all())


async def _load_actor(session: AsyncSession, actor_id: UUID | None) -> User:
    user = await session.get(User, actor_id) if actor_id is not None else None
    if user is None:
        raise NotFoundError("user", actor_id)
    return user


def _require_text(value: str | None, field: str) -> None:
    if value is None or not value.strip():
        raise ValidationError(f"{field} is required", field=field)


def _parse_quantity(value: Any) -> Decimal:
    quantity = parse_amount(value, field="quantity")
    if quantity <= 0:
        raise ValidationError("quantity must be greater than zero", field="quantity")
    return quantity
