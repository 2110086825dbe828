"""All-or-nothing bulk field updates.

Every id and the patch are validated before anything is written. Any
failure raises ``BulkUpdateError`` with one message per failing item (keyed
by id, or by ``patch.<field>`` for patch errors) and leaves the store
untouched. A lot status is a plain field and may be patched; approval
statuses of workflowed records only change through the transition engine.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Iterable
from uuid import UUID

from sqlalchemy import ColumnElement, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from erp_workflow.calculators.salary import parse_amount
from erp_workflow.models import AuditEvent, DevelopmentLot, Employee
from erp_workflow.workflow.errors import BulkUpdateError, ValidationError
from erp_workflow.workflow.permissions import AuthorizationPort, Permission, PermissionGate
from erp_workflow.workflow.statuses import LotStatus

logger = logging.getLogger(__name__)

LOT_TYPES = ("habitation", "commercial", "industrial", "agricultural")


def _lot_status(value: Any) -> str:
    try:
        return LotStatus(value).value
    except ValueError:
        raise ValidationError(f"Unknown lot status '{value}'", field="status")


def _lot_type(value: Any) -> str:
    if value not in LOT_TYPES:
        raise ValidationError(f"Unknown lot type '{value}'", field="type")
    return value


def _positive_area(value: Any) -> Decimal:
    area = parse_amount(value, field="area")
    if area <= 0:
        raise ValidationError("area must be greater than zero", field="area")
    return area


def _text(name: str) -> Callable[[Any], str]:
    def convert(value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f"{name} must be a non-empty string", field=name)
        return value.strip()

    return convert


def _check_lot(lot: DevelopmentLot, patch: dict[str, Any]) -> str | None:
    if "status" in patch and lot.status == LotStatus.SOLD.value and patch["status"] != LotStatus.SOLD.value:
        return f"lot {lot.lot_number} is sold; its status cannot change"
    return None


def _lot_write_guard(patch: dict[str, Any]) -> list[ColumnElement[bool]]:
    if "status" in patch and patch["status"] != LotStatus.SOLD.value:
        return [DevelopmentLot.status != LotStatus.SOLD.value]
    return []


@dataclass(frozen=True)
class BulkTarget:
    """A model whose plain fields can be patched in bulk."""

    model: type
    permission: Permission
    fields: dict[str, Callable[[Any], Any]]
    check: Callable[[Any, dict[str, Any]], str | None] | None = None
    write_guard: Callable[[dict[str, Any]], list[ColumnElement[bool]]] | None = None


BULK_TARGETS: dict[str, BulkTarget] = {
    "lot": BulkTarget(
        model=DevelopmentLot,
        permission=Permission.PROPERTIES_EDIT,
        fields={
            "status": _lot_status,
            "price": lambda value: parse_amount(value, field="price"),
            "type": _lot_type,
            "area": _positive_area,
        },
        check=_check_lot,
        write_guard=_lot_write_guard,
    ),
    "employee": BulkTarget(
        model=Employee,
        permission=Permission.HR_EDIT,
        fields={"department": _text("department"), "position": _text("position")},
    ),
}


@dataclass
class BulkUpdateResult:
    entity_type: str
    updated_ids: list[UUID] = field(default_factory=list)
    patch: dict[str, Any] = field(default_factory=dict)

    @property
    def updated_count(self) -> int:
        return len(self.updated_ids)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "entity_type": self.entity_type,
            "updated": self.updated_count,
            "ids": [str(i) for i in self.updated_ids],
        }


class BulkUpdateService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        authorization: AuthorizationPort,
        targets: dict[str, BulkTarget] = BULK_TARGETS,
    ):
        self.session_factory = session_factory
        self.gate = PermissionGate(authorization)
        self.targets = targets

    async def bulk_update(
        self,
        entity_type: str,
        ids: Iterable[Any],
        patch: dict[str, Any],
        actor_id: UUID | None,
    ) -> BulkUpdateResult:
        target = self.targets.get(entity_type)
        if target is None:
            raise ValidationError(f"Bulk updates are not supported for '{entity_type}'", field="entity_type")
        await self.gate.require(actor_id, target.permission)

        errors: dict[str, str] = {}
        clean_patch = self._validate_patch(target, patch, errors)
        parsed_ids = self._parse_ids(ids, errors)
        if not parsed_ids and not errors:
            raise ValidationError("No ids given", field="ids")

        model = target.model
        async with self.session_factory() as session:
            async with session.begin():
                found = {
                    record.id: record
                    for record in (
                        await session.execute(select(model).where(model.id.in_(parsed_ids)))
                    ).scalars()
                }
                for record_id in parsed_ids:
                    record = found.get(record_id)
                    if record is None:
                        errors[str(record_id)] = "not found"
                    elif target.check is not None and clean_patch:
                        problem = target.check(record, clean_patch)
                        if problem:
                            errors[str(record_id)] = problem

                if errors:
                    logger.info("Bulk update of %d %s rejected: %d error(s)", len(parsed_ids), entity_type, len(errors))
                    raise BulkUpdateError(errors)

                guard = target.write_guard(clean_patch) if target.write_guard else []
                result = await session.execute(
                    update(model)
                    .where(model.id.in_(parsed_ids), *guard)
                    .values(**clean_patch)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != len(parsed_ids):
                    # Another writer changed some rows after they were checked.
                    still_valid = set(
                        (await session.execute(select(model.id).where(model.id.in_(parsed_ids), *guard))).scalars()
                    )
                    raise BulkUpdateError(
                        {str(i): "changed concurrently" for i in parsed_ids if i not in still_valid}
                    )
                session.add_all(
                    AuditEvent(
                        actor_user_id=actor_id,
                        entity_type=entity_type,
                        entity_id=record_id,
                        action="bulk_update",
                        from_status=getattr(found[record_id], "status", None),
                        to_status=clean_patch.get("status", getattr(found[record_id], "status", None)),
                        reason=", ".join(sorted(clean_patch)),
                    )
                    for record_id in parsed_ids
                )

        logger.info("Bulk updated %d %s record(s): %s", len(parsed_ids), entity_type, sorted(clean_patch))
        return BulkUpdateResult(entity_type=entity_type, updated_ids=parsed_ids, patch=clean_patch)

    def _validate_patch(self, target: BulkTarget, patch: dict[str, Any], errors: dict[str, str]) -> dict[str, Any]:
        if not patch:
            errors["patch"] = "empty patch"
            return {}
        clean: dict[str, Any] = {}
        for name, value in patch.items():
            convert = target.fields.get(name)
            if convert is None:
                errors[f"patch.{name}"] = "field cannot be bulk updated"
                continue
            try:
                clean[name] = convert(value)
            except ValidationError as exc:
                errors[f"patch.{name}"] = exc.message
        return clean

    def _parse_ids(self, ids: Iterable[Any], errors: dict[str, str]) -> list[UUID]:
        parsed: list[UUID] = []
        for raw in ids:
            try:
                value = raw if isinstance(raw, UUID) else UUID(str(raw))
            except ValueError:
                errors[str(raw)] = "invalid id"
                continue
            if value not in parsed:
                parsed.append(value)
        return parsed
