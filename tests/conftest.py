"""Pytest fixtures for workflow engine tests."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import AsyncGenerator
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from erp_workflow.config import Settings
from erp_workflow.container import Workflow
from erp_workflow.database import make_session_factory
from erp_workflow.models import (
    Agency,
    AuditEvent,
    Base,
    DevelopmentLot,
    Employee,
    ExpenseReport,
    Invoice,
    InvoiceItem,
    Notification,
    PayrollItem,
    PayrollRun,
    Transaction,
    User,
)
from erp_workflow.workflow.permissions import ResourceScope

# File-backed SQLite so that every session gets its own connection, like
# the pooled Postgres connections in production.
TEST_SETTINGS = Settings(
    database_url="sqlite+aiosqlite://",
    host="127.0.0.1",
    port=8000,
    debug=False,
    log_level="INFO",
    concurrency_retries=1,
    notifications_enabled=True,
)


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Create test database engine with a fresh schema."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'workflow.db'}",
        echo=False,
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


@dataclass
class Org:
    """Agencies and users seeded for every test."""

    agency_a: UUID
    agency_b: UUID
    hr: UUID
    manager_a: UUID
    manager_b: UUID
    finance: UUID
    director: UUID
    clerk_a: UUID
    accountant: UUID
    properties: UUID
    admin: UUID
    inactive: UUID


@pytest_asyncio.fixture
async def org(session_factory: async_sessionmaker[AsyncSession]) -> Org:
    agency_a = Agency(name="Agence Plateau", city="Abidjan")
    agency_b = Agency(name="Agence Bouake", city="Bouake")
    async with session_factory() as session:
        async with session.begin():
            session.add_all([agency_a, agency_b])
            await session.flush()

            def user(key: str, permissions: list[str], agency: Agency | None = None, **kw) -> User:
                u = User(
                    email=f"{key}@example.com",
                    name=key,
                    permissions=permissions,
                    agency_id=agency.id if agency else None,
                    **kw,
                )
                session.add(u)
                return u

            users = {
                "hr": user("hr", ["hr.view", "hr.create", "hr.edit", "hr.delete"]),
                "manager_a": user("manager_a", ["agency.view", "agency.manage"], agency_a),
                "manager_b": user("manager_b", ["agency.view", "agency.manage"], agency_b),
                "finance": user("finance", ["finance.view", "finance.create", "finance.validate"]),
                "director": user("director", ["direction.view", "direction.validate"]),
                "clerk_a": user("clerk_a", ["finance.create"], agency_a),
                "accountant": user("accountant", ["finance.create", "finance.view"]),
                "properties": user("properties", ["properties.view", "properties.edit"]),
                "admin": user("admin", [], role="admin"),
                "inactive": user("inactive", ["finance.validate"], is_active=False),
            }
            await session.flush()

    return Org(agency_a=agency_a.id, agency_b=agency_b.id, **{k: u.id for k, u in users.items()})


@pytest.fixture
def workflow(session_factory: async_sessionmaker[AsyncSession]) -> Workflow:
    return Workflow.build(session_factory, TEST_SETTINGS)


# ----------------------------------------------------------------------
# Record factories
# ----------------------------------------------------------------------


async def add(session_factory: async_sessionmaker[AsyncSession], record):
    async with session_factory() as session:
        async with session.begin():
            session.add(record)
            await session.flush()
    return record


async def make_payroll(
    session_factory,
    created_by: UUID,
    agency_id: UUID | None = None,
    status: str = "draft",
    nets: tuple[str, ...] = ("150000.00", "250000.00"),
) -> PayrollRun:
    items = [
        PayrollItem(employee_id=uuid4(), base_salary=Decimal(n), net_salary=Decimal(n))
        for n in nets
    ]
    return await add(
        session_factory,
        PayrollRun(
            month=3,
            year=2024,
            agency_id=agency_id,
            created_by_id=created_by,
            status=status,
            total_amount=sum((Decimal(n) for n in nets), Decimal("0")),
            items=items,
        ),
    )


async def make_expense(
    session_factory,
    submitter_id: UUID,
    agency_id: UUID | None = None,
    status: str = "pending",
    amount: str = "45000.00",
) -> ExpenseReport:
    return await add(
        session_factory,
        ExpenseReport(
            description="Generator repair",
            amount=Decimal(amount),
            category="maintenance",
            agency_id=agency_id,
            submitter_id=submitter_id,
            status=status,
        ),
    )


async def make_invoice(
    session_factory,
    created_by: UUID,
    agency_id: UUID | None = None,
    status: str = "pending",
    total: str = "1180000.00",
    number: str | None = None,
    rejection_reason: str | None = None,
) -> Invoice:
    return await add(
        session_factory,
        Invoice(
            number=number or f"FAC-2024-{uuid4().hex[:6]}",
            type="invoice",
            issue_date=date(2024, 3, 1),
            subtotal=Decimal(total),
            total=Decimal(total),
            agency_id=agency_id,
            created_by_id=created_by,
            status=status,
            rejection_reason=rejection_reason,
            items=[
                InvoiceItem(
                    description="Lot 12 deposit",
                    quantity=Decimal("1"),
                    unit_price=Decimal(total),
                    total=Decimal(total),
                )
            ],
        ),
    )


async def make_transaction(
    session_factory,
    recorded_by: UUID,
    agency_id: UUID | None = None,
    status: str = "pending",
) -> Transaction:
    return await add(
        session_factory,
        Transaction(
            description="Office rent",
            amount=Decimal("300000.00"),
            type="expense",
            category="rent",
            agency_id=agency_id,
            recorded_by_id=recorded_by,
            status=status,
        ),
    )


async def make_employee(
    session_factory,
    created_by: UUID,
    agency_id: UUID | None = None,
    status: str = "pending_agency",
    salary: str = "200000.00",
    matricule: str | None = None,
) -> Employee:
    return await add(
        session_factory,
        Employee(
            matricule=matricule or f"MAT-24-{uuid4().hex[:4]}",
            first_name="Awa",
            last_name="Kone",
            email=f"{uuid4().hex[:8]}@example.com",
            salary=Decimal(salary),
            agency_id=agency_id,
            created_by_id=created_by,
            status=status,
        ),
    )


async def make_lot(session_factory, lot_number: str, status: str = "available") -> DevelopmentLot:
    return await add(
        session_factory,
        DevelopmentLot(
            development_name="Cite Les Palmiers",
            lot_number=lot_number,
            area=Decimal("500.00"),
            price=Decimal("7500000.00"),
            type="habitation",
            status=status,
        ),
    )


async def fetch(session_factory, model, record_id):
    async with session_factory() as session:
        return await session.get(model, record_id)


async def fetch_all(session_factory, model, *where):
    async with session_factory() as session:
        return list((await session.execute(select(model).where(*where))).scalars().all())


async def set_status(session_factory, model, record_id, status: str) -> None:
    """Simulate another writer changing a record's status."""
    async with session_factory() as session:
        async with session.begin():
            await session.execute(
                update(model)
                .where(model.id == record_id)
                .values(status=status)
                .execution_options(synchronize_session=False)
            )


async def audit_trail(session_factory, entity_id) -> list[AuditEvent]:
    async with session_factory() as session:
        result = await session.execute(
            select(AuditEvent).where(AuditEvent.entity_id == entity_id).order_by(AuditEvent.created_at)
        )
        return list(result.scalars().all())


async def notifications_for(session_factory, user_id) -> list[Notification]:
    return await fetch_all(session_factory, Notification, Notification.user_id == user_id)


class FakeAuthorization:
    """In-memory grants: ``{actor_id: {(permission, agency_id | None), ...}}``.

    A grant with agency ``None`` applies everywhere.
    """

    def __init__(self, grants: dict[UUID, set[tuple[str, UUID | None]]] | None = None):
        self.grants = grants or {}
        self.calls: list[tuple[UUID | None, str, ResourceScope]] = []

    def grant(self, actor_id: UUID, permission: str, agency_id: UUID | None = None) -> None:
        self.grants.setdefault(actor_id, set()).add((permission, agency_id))

    async def can(self, actor_id, permission, scope) -> bool:
        self.calls.append((actor_id, permission, scope))
        held = self.grants.get(actor_id, set())
        return (permission, None) in held or (permission, scope.agency_id) in held
