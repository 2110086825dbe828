"""Payroll run generation and item editing."""

from __future__ import annotations

import logging
import re
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from erp_workflow.calculators.salary import (
    SalaryComponents,
    compute_net_salary,
    quantize,
    sum_amounts,
)
from erp_workflow.models import Employee, PayrollItem, PayrollRun
from erp_workflow.workflow.effects import payroll_run_total
from erp_workflow.workflow.errors import InvalidTransitionError, NotFoundError, ValidationError
from erp_workflow.workflow.permissions import AuthorizationPort, Permission, PermissionGate
from erp_workflow.workflow.statuses import EmployeeStatus, EntityType, PayrollStatus

logger = logging.getLogger(__name__)

_PERIOD = re.compile(r"^(\d{4})-(\d{2})$")

# Items can only change while the run has not entered validation
EDITABLE_STATUSES = {PayrollStatus.DRAFT.value}


def parse_period(period: str) -> tuple[int, int]:
    """Parse ``YYYY-MM`` into ``(month, year)``."""
    match = _PERIOD.match(period or "")
    if not match:
        raise ValidationError(f"Invalid payroll period '{period}', expected YYYY-MM", field="month")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValidationError(f"Invalid month in period '{period}'", field="month")
    return month, year


class PayrollService:
    """Creates payroll runs and keeps their totals consistent."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        authorization: AuthorizationPort,
    ):
        self.session_factory = session_factory
        self.gate = PermissionGate(authorization)

    async def generate_payroll(
        self,
        actor_id: UUID | None,
        period: str,
        agency_id: UUID | None = None,
    ) -> PayrollRun:
        """Create a draft run with one item per active employee.

        With ``agency_id`` the run covers that agency's employees and goes
        through agency validation; without it the run is central and covers
        every active employee.
        """
        await self.gate.require(actor_id, Permission.HR_CREATE)
        month, year = parse_period(period)

        async with self.session_factory() as session:
            async with session.begin():
                existing = await session.execute(
                    select(PayrollRun.id).where(
                        PayrollRun.month == month,
                        PayrollRun.year == year,
                        PayrollRun.agency_id.is_(None)
                        if agency_id is None
                        else PayrollRun.agency_id == agency_id,
                        PayrollRun.status != PayrollStatus.CANCELLED.value,
                    )
                )
                if existing.first() is not None:
                    raise ValidationError(
                        f"A payroll run already exists for {month:02d}/{year}", field="month"
                    )

                stmt = select(Employee).where(Employee.status == EmployeeStatus.ACTIVE.value)
                if agency_id is not None:
                    stmt = stmt.where(Employee.agency_id == agency_id)
                employees = (await session.execute(stmt.order_by(Employee.matricule))).scalars().all()
                if not employees:
                    raise ValidationError("No active employees to pay for this period")

                items = []
                for employee in employees:
                    components = SalaryComponents(base_salary=quantize(employee.salary))
                    items.append(
                        PayrollItem(
                            employee_id=employee.id,
                            **components.as_dict(),
                            net_salary=compute_net_salary(components),
                        )
                    )

                run = PayrollRun(
                    month=month,
                    year=year,
                    agency_id=agency_id,
                    created_by_id=actor_id,
                    status=PayrollStatus.DRAFT.value,
                    total_amount=sum_amounts([item.net_salary for item in items]),
                    items=items,
                )
                session.add(run)
                await session.flush()

        logger.info(
            "Generated payroll %s for %s (%d items, total %s)",
            run.id,
            run.period_label,
            len(items),
            run.total_amount,
        )
        return run

    async def update_payroll_item(
        self,
        actor_id: UUID | None,
        item_id: UUID,
        changes: dict[str, Any],
    ) -> PayrollRun:
        """Apply component changes to one item and recompute net and run total.

        The net salary and the run total are always computed here; values
        sent by the client for them are ignored. The base salary comes from
        the employee record and is not editable per item.
        """
        await self.gate.require(actor_id, Permission.HR_EDIT)
        async with self.session_factory() as session:
            async with session.begin():
                item = await session.get(PayrollItem, item_id)
                if item is None:
                    raise NotFoundError("payroll item", item_id)
                run = await session.get(PayrollRun, item.payroll_run_id)
                if run is None:
                    raise NotFoundError(EntityType.PAYROLL.value, item.payroll_run_id)
                if run.status not in EDITABLE_STATUSES:
                    raise InvalidTransitionError(
                        EntityType.PAYROLL.value,
                        run.status,
                        "edit",
                        "only draft runs can be edited",
                    )

                current = {
                    name: getattr(item, name)
                    for name in SalaryComponents.__dataclass_fields__
                }
                merged = {**current, **{k: v for k, v in changes.items() if k in current}}
                components = SalaryComponents.parse(merged, base_salary=item.base_salary)
                for name, value in components.as_dict().items():
                    setattr(item, name, value)
                item.net_salary = compute_net_salary(components)
                await session.flush()

                run.total_amount = await payroll_run_total(session, run.id)
                await session.flush()

        logger.info("Updated payroll item %s; run %s total is now %s", item_id, run.id, run.total_amount)
        return run

    async def get_payroll(self, run_id: UUID) -> PayrollRun:
        async with self.session_factory() as session:
            run = await session.get(PayrollRun, run_id)
        if run is None:
            raise NotFoundError(EntityType.PAYROLL.value, run_id)
        return run

    async def list_payrolls(
        self,
        agency_id: UUID | None = None,
        status: str | None = None,
    ) -> list[PayrollRun]:
        stmt = select(PayrollRun)
        if agency_id is not None:
            stmt = stmt.where(PayrollRun.agency_id == agency_id)
        if status is not None:
            stmt = stmt.where(PayrollRun.status == status)
        stmt = stmt.order_by(PayrollRun.year.desc(), PayrollRun.month.desc())
        async with self.session_factory() as session:
            return list((await session.execute(stmt)).scalars().all())
