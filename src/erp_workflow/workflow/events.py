"""Domain events emitted by the transition engine.

Events are immutable, self-describing and serializable. The engine emits
them only after its unit of work has committed, so subscribers (the
notification dispatcher, audit exporters) never observe a rolled-back
change.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from erp_workflow.models.base import utcnow


class EventCategory(str, Enum):
    """Event categories for routing and filtering."""

    WORKFLOW = "workflow"
    FINANCE = "finance"


@dataclass(frozen=True)
class EventMetadata:
    """Metadata attached to every domain event."""

    event_id: UUID
    timestamp: datetime
    correlation_id: UUID  # Links events of one request
    actor_id: UUID | None
    source_service: str
    version: int = 1

    @classmethod
    def create(
        cls,
        actor_id: UUID | None = None,
        correlation_id: UUID | None = None,
        source_service: str = "workflow",
    ) -> EventMetadata:
        """Create metadata with auto-generated fields."""
        return cls(
            event_id=uuid4(),
            timestamp=utcnow(),
            correlation_id=correlation_id or uuid4(),
            actor_id=actor_id,
            source_service=source_service,
        )


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    metadata: EventMetadata

    @property
    def event_type(self) -> str:
        """Event type name for routing."""
        return self.__class__.__name__

    @property
    def category(self) -> EventCategory:
        """Event category for filtering."""
        raise NotImplementedError("Subclasses must define category")

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to dictionary."""
        data = asdict(self)
        data["event_type"] = self.event_type
        return _serialize_dict(data)

    def to_json(self) -> str:
        """Serialize event to JSON string."""
        return json.dumps(self.to_dict(), default=str)


def _serialize_dict(obj: Any) -> Any:
    """Recursively serialize objects for JSON compatibility."""
    if isinstance(obj, dict):
        return {k: _serialize_dict(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [_serialize_dict(v) for v in obj]
    elif isinstance(obj, UUID):
        return str(obj)
    elif isinstance(obj, (datetime, date)):
        return obj.isoformat()
    elif isinstance(obj, Decimal):
        return str(obj)
    elif isinstance(obj, Enum):
        return obj.value
    return obj


@dataclass(frozen=True)
class WorkflowTransitioned(DomainEvent):
    """A record moved from one status to another."""

    entity_type: str
    entity_id: UUID
    action: str
    stage: str
    from_status: str
    to_status: str
    agency_id: UUID | None
    originator_id: UUID | None
    reason: str | None
    label: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.WORKFLOW

    @property
    def is_rejection(self) -> bool:
        return self.action == "reject"


@dataclass(frozen=True)
class FinancialTransactionRecorded(DomainEvent):
    """A derived financial transaction was written alongside a transition."""

    transaction_id: UUID
    source_type: str
    source_id: UUID
    transaction_type: str
    transaction_category: str
    amount: Decimal
    agency_id: UUID | None

    @property
    def category(self) -> EventCategory:
        return EventCategory.FINANCE
