"""Financial transaction, expense report and invoice models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from erp_workflow.models.base import Base, IdMixin, TimestampMixin, WorkflowMixin, utcnow
from erp_workflow.workflow.statuses import (
    ExpenseStatus,
    InvoiceStatus,
    TransactionStatus,
    status_check_sql,
)

MONEY = Numeric(14, 2)


class Transaction(Base, IdMixin, TimestampMixin, WorkflowMixin):
    """Income or expense movement.

    Agency-recorded transactions start pending and are validated by the
    agency manager; derived transactions (payroll payment, invoice
    settlement, expense disbursement) are created completed.
    """

    __tablename__ = "financial_transaction"

    description: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    type: Mapped[str] = mapped_column(String, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False)
    payment_method: Mapped[str] = mapped_column(String, nullable=False, default="transfer")
    occurred_on: Mapped[date] = mapped_column(
        "date", Date, nullable=False, default=lambda: utcnow().date()
    )
    agency_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("agency.id", ondelete="SET NULL"),
        nullable=True,
    )
    recorded_by_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("app_user.id", ondelete="SET NULL"),
        nullable=True,
    )
    validated_by_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("app_user.id", ondelete="SET NULL"),
        nullable=True,
    )
    # Origin of a derived transaction
    source_type: Mapped[str | None] = mapped_column(String, nullable=True)
    source_id: Mapped[UUID | None] = mapped_column(nullable=True)

    __table_args__ = (
        CheckConstraint(status_check_sql(TransactionStatus), name="transaction_status_check"),
        CheckConstraint("type IN ('income', 'expense')", name="transaction_type_check"),
        CheckConstraint("amount >= 0", name="transaction_amount_check"),
    )


class ExpenseReport(Base, IdMixin, TimestampMixin, WorkflowMixin):
    """Field expense submitted for reimbursement."""

    __tablename__ = "expense_report"

    description: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False, default="maintenance")
    agency_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("agency.id", ondelete="SET NULL"),
        nullable=True,
    )
    submitter_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("app_user.id", ondelete="SET NULL"),
        nullable=True,
    )
    validated_by_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("app_user.id", ondelete="SET NULL"),
        nullable=True,
    )

    __table_args__ = (
        CheckConstraint(status_check_sql(ExpenseStatus), name="expense_report_status_check"),
        CheckConstraint("amount >= 0", name="expense_report_amount_check"),
    )


class Invoice(Base, IdMixin, TimestampMixin, WorkflowMixin):
    """Customer invoice or quote."""

    __tablename__ = "invoice"

    number: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    type: Mapped[str] = mapped_column(String, nullable=False, default="invoice")
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    subtotal: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    total: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    client_id: Mapped[UUID | None] = mapped_column(nullable=True)
    agency_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("agency.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_by_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("app_user.id", ondelete="SET NULL"),
        nullable=True,
    )

    __table_args__ = (
        CheckConstraint(status_check_sql(InvoiceStatus), name="invoice_status_check"),
        CheckConstraint("type IN ('invoice', 'quote')", name="invoice_type_check"),
        CheckConstraint("total >= 0", name="invoice_total_check"),
    )

    items: Mapped[list[InvoiceItem]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class InvoiceItem(Base, IdMixin):
    """Invoice line."""

    __tablename__ = "invoice_item"

    invoice_id: Mapped[UUID] = mapped_column(
        ForeignKey("invoice.id", ondelete="CASCADE"),
        nullable=False,
    )
    description: Mapped[str] = mapped_column(String, nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    total: Mapped[Decimal] = mapped_column(MONEY, nullable=False)

    invoice: Mapped[Invoice] = relationship(back_populates="items")
