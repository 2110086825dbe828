"""Employee onboarding, correction and agency reassignment."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from erp_workflow.calculators.salary import parse_amount
from erp_workflow.models import Agency, AuditEvent, Employee, utcnow
from erp_workflow.services.sequences import next_code
from erp_workflow.workflow.errors import InvalidTransitionError, NotFoundError, ValidationError
from erp_workflow.workflow.permissions import AuthorizationPort, Permission, PermissionGate
from erp_workflow.workflow.statuses import EmployeeStatus, EntityType

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("first_name", "last_name", "email", "phone", "position", "department", "salary", "start_date")

# Onboarding records can be corrected until they are validated
CORRECTABLE_STATUSES = {
    EmployeeStatus.PENDING_AGENCY.value,
    EmployeeStatus.PENDING_GENERAL.value,
    EmployeeStatus.REJECTED.value,
}


class HRService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        authorization: AuthorizationPort,
    ):
        self.session_factory = session_factory
        self.gate = PermissionGate(authorization)

    async def create_employee(
        self,
        actor_id: UUID | None,
        first_name: str,
        last_name: str,
        email: str,
        salary: Any = None,
        agency_id: UUID | None = None,
        position: str | None = None,
        department: str | None = None,
        phone: str | None = None,
        start_date: date | None = None,
    ) -> Employee:
        """Register a new employee, pending agency validation.

        The matricule ``MAT-YY-NNNN`` is assigned here, once.
        """
        await self.gate.require(actor_id, Permission.HR_CREATE)
        for field, value in (("first_name", first_name), ("last_name", last_name), ("email", email)):
            if not value or not value.strip():
                raise ValidationError(f"{field} is required", field=field)

        async with self.session_factory() as session:
            async with session.begin():
                if agency_id is not None and await session.get(Agency, agency_id) is None:
                    raise NotFoundError("agency", agency_id)
                year = (start_date or utcnow().date()).year % 100
                employee = Employee(
                    matricule=await next_code(session, Employee.matricule, f"MAT-{year:02d}-", 4),
                    first_name=first_name.strip(),
                    last_name=last_name.strip(),
                    email=email.strip(),
                    phone=phone,
                    position=position,
                    department=department,
                    salary=parse_amount(salary, field="salary"),
                    start_date=start_date,
                    agency_id=agency_id,
                    created_by_id=actor_id,
                    status=EmployeeStatus.PENDING_AGENCY.value,
                )
                session.add(employee)
                await session.flush()

        logger.info("Registered employee %s (%s)", employee.matricule, employee.id)
        return employee

    async def update_employee(
        self,
        actor_id: UUID | None,
        employee_id: UUID,
        changes: dict[str, Any],
    ) -> Employee:
        """Correct an employee still in onboarding. Status and matricule are not editable."""
        await self.gate.require(actor_id, Permission.HR_EDIT)
        unknown = sorted(set(changes) - set(EDITABLE_FIELDS))
        if unknown:
            raise ValidationError(f"Fields not editable: {', '.join(unknown)}", field=unknown[0])

        async with self.session_factory() as session:
            async with session.begin():
                employee = await _load_employee(session, employee_id)
                if employee.status not in CORRECTABLE_STATUSES:
                    raise InvalidTransitionError(
                        EntityType.EMPLOYEE.value, employee.status, "edit", "employee is no longer in onboarding"
                    )
                for field, value in changes.items():
                    if field == "salary":
                        value = parse_amount(value, field="salary")
                    setattr(employee, field, value)
                await session.flush()
        return employee

    async def assign_employee(
        self,
        actor_id: UUID | None,
        employee_id: UUID,
        agency_id: UUID,
    ) -> Employee:
        """Request a move to another agency; direction validates it."""
        await self.gate.require(actor_id, Permission.HR_EDIT)
        async with self.session_factory() as session:
            async with session.begin():
                employee = await _load_employee(session, employee_id)
                if await session.get(Agency, agency_id) is None:
                    raise NotFoundError("agency", agency_id)
                if employee.agency_id == agency_id:
                    raise ValidationError("Employee already belongs to this agency", field="agency_id")
                employee.pending_agency_id = agency_id
                session.add(
                    AuditEvent(
                        actor_user_id=actor_id,
                        entity_type=EntityType.EMPLOYEE.value,
                        entity_id=employee.id,
                        action="assign",
                        from_status=employee.status,
                        to_status=employee.status,
                        reason=f"agency {employee.agency_id} -> {agency_id}",
                    )
                )
                await session.flush()
        return employee

    async def validate_assignment(
        self,
        actor_id: UUID | None,
        employee_id: UUID,
        approve: bool = True,
    ) -> Employee:
        """Apply or discard a pending agency reassignment."""
        await self.gate.require(actor_id, Permission.DIRECTION_VALIDATE)
        async with self.session_factory() as session:
            async with session.begin():
                employee = await _load_employee(session, employee_id)
                if employee.pending_agency_id is None:
                    raise ValidationError("No pending agency reassignment", field="pending_agency_id")
                previous = employee.agency_id
                if approve:
                    employee.agency_id = employee.pending_agency_id
                employee.pending_agency_id = None
                session.add(
                    AuditEvent(
                        actor_user_id=actor_id,
                        entity_type=EntityType.EMPLOYEE.value,
                        entity_id=employee.id,
                        action="assign_validated" if approve else "assign_declined",
                        from_status=employee.status,
                        to_status=employee.status,
                        reason=f"agency {previous} -> {employee.agency_id}",
                    )
                )
                await session.flush()
        return employee


async def _load_employee(session: AsyncSession, employee_id: UUID) -> Employee:
    employee = await session.get(Employee, employee_id)
    if employee is None:
        raise NotFoundError(EntityType.EMPLOYEE.value, employee_id)
    return employee
