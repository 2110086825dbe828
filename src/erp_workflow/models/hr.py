"""Employee, payroll run and payroll item models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from erp_workflow.models.base import Base, IdMixin, TimestampMixin, WorkflowMixin
from erp_workflow.workflow.statuses import EmployeeStatus, PayrollStatus, status_check_sql

MONEY = Numeric(14, 2)


class Employee(Base, IdMixin, TimestampMixin, WorkflowMixin):
    """Employee record; onboarding moves it from pending_agency to active."""

    __tablename__ = "employee"

    matricule: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    first_name: Mapped[str] = mapped_column(String, nullable=False)
    last_name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str] = mapped_column(String, nullable=False)
    phone: Mapped[str | None] = mapped_column(String, nullable=True)
    position: Mapped[str | None] = mapped_column(String, nullable=True)
    department: Mapped[str | None] = mapped_column(String, nullable=True)
    salary: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    agency_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("agency.id", ondelete="SET NULL"),
        nullable=True,
    )
    # Reassignment target awaiting direction validation
    pending_agency_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("agency.id", ondelete="SET NULL"),
        nullable=True,
    )
    user_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("app_user.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_by_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("app_user.id", ondelete="SET NULL"),
        nullable=True,
    )

    __table_args__ = (
        CheckConstraint(status_check_sql(EmployeeStatus), name="employee_status_check"),
        CheckConstraint("salary >= 0", name="employee_salary_check"),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class PayrollRun(Base, IdMixin, TimestampMixin, WorkflowMixin):
    """Monthly payroll run, optionally scoped to an agency."""

    __tablename__ = "payroll_run"

    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    agency_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("agency.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_by_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("app_user.id", ondelete="SET NULL"),
        nullable=True,
    )

    __table_args__ = (
        CheckConstraint(status_check_sql(PayrollStatus), name="payroll_run_status_check"),
        CheckConstraint("month BETWEEN 1 AND 12", name="payroll_run_month_check"),
        CheckConstraint("total_amount >= 0", name="payroll_run_total_check"),
    )

    items: Mapped[list[PayrollItem]] = relationship(
        back_populates="payroll_run",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def period_label(self) -> str:
        return f"{self.month:02d}/{self.year}"


class PayrollItem(Base, IdMixin, TimestampMixin):
    """One employee's line in a payroll run."""

    __tablename__ = "payroll_item"

    payroll_run_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_run.id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.id", ondelete="CASCADE"),
        nullable=False,
    )
    base_salary: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    bonus: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    tax: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    social_contribution: Mapped[Decimal] = mapped_column(
        MONEY, nullable=False, default=Decimal("0")
    )
    advance: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    lateness_deduction: Mapped[Decimal] = mapped_column(
        MONEY, nullable=False, default=Decimal("0")
    )
    other_deduction: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    net_salary: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))

    __table_args__ = (
        UniqueConstraint("payroll_run_id", "employee_id", name="payroll_item_run_employee_unique"),
    )

    payroll_run: Mapped[PayrollRun] = relationship(back_populates="items")
