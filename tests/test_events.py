"""Tests for workflow domain events and the async emitter.

Tests verify:
1. Event types are properly structured and serializable
2. Emitter routes to type, category and catch-all handlers
3. Handler errors are isolated
"""

import asyncio
import json
from decimal import Decimal
from uuid import uuid4

from erp_workflow.workflow.emitter import AsyncEventEmitter
from erp_workflow.workflow.events import (
    EventCategory,
    EventMetadata,
    FinancialTransactionRecorded,
    WorkflowTransitioned,
)


def transitioned(action="approve", to_status="pending_general", reason=None):
    return WorkflowTransitioned(
        metadata=EventMetadata.create(actor_id=uuid4()),
        entity_type="payroll",
        entity_id=uuid4(),
        action=action,
        stage="agency",
        from_status="pending_agency",
        to_status=to_status,
        agency_id=uuid4(),
        originator_id=uuid4(),
        reason=reason,
        label="Payroll 05/2024",
    )


def recorded(amount="900000.00"):
    return FinancialTransactionRecorded(
        metadata=EventMetadata.create(),
        transaction_id=uuid4(),
        source_type="payroll",
        source_id=uuid4(),
        transaction_type="expense",
        transaction_category="payroll",
        amount=Decimal(amount),
        agency_id=None,
    )


class TestEventTypes:
    def test_create_metadata_auto_generates_fields(self):
        """Create generates event_id, timestamp, correlation_id."""
        actor_id = uuid4()
        meta = EventMetadata.create(actor_id=actor_id)

        assert meta.event_id is not None
        assert meta.timestamp is not None
        assert meta.correlation_id is not None
        assert meta.actor_id == actor_id
        assert meta.source_service == "workflow"
        assert meta.version == 1

    def test_event_type_and_category(self):
        event = transitioned(action="reject", to_status="agency_rejected", reason="Wrong bonus")

        assert event.event_type == "WorkflowTransitioned"
        assert event.category == EventCategory.WORKFLOW
        assert event.is_rejection is True
        assert recorded().category == EventCategory.FINANCE

    def test_serialization(self):
        """Decimals and UUIDs serialize as strings to preserve precision."""
        event = recorded("12345.67")

        data = event.to_dict()

        assert data["event_type"] == "FinancialTransactionRecorded"
        assert data["amount"] == "12345.67"
        assert data["transaction_id"] == str(event.transaction_id)
        assert data["metadata"]["timestamp"] == event.metadata.timestamp.isoformat()
        assert json.loads(event.to_json())["source_type"] == "payroll"


class TestAsyncEventEmitter:
    async def test_emit_to_type_handler(self):
        """Emitter routes to type-specific handler only."""
        emitter = AsyncEventEmitter()
        received = []

        async def handler(event):
            received.append(event)

        emitter.on(WorkflowTransitioned, handler)
        event = transitioned()

        await emitter.emit(event)
        await emitter.emit(recorded())

        assert received == [event]

    async def test_emit_to_category_and_all(self):
        emitter = AsyncEventEmitter()
        finance, everything = [], []

        async def on_finance(event):
            finance.append(event)

        async def on_any(event):
            everything.append(event)

        emitter.on_category(EventCategory.FINANCE, on_finance)
        emitter.on_all(on_any)

        await emitter.emit_all([transitioned(), recorded(), recorded()])

        assert len(finance) == 2
        assert len(everything) == 3

    async def test_sync_handler(self):
        emitter = AsyncEventEmitter()
        received = []
        emitter.on_sync([WorkflowTransitioned, FinancialTransactionRecorded], received.append)

        await emitter.emit_all([transitioned(), recorded()])

        assert len(received) == 2

    async def test_handlers_run_concurrently(self):
        """Fast handler finishes before slow one."""
        emitter = AsyncEventEmitter()
        order = []

        async def slow_handler(event):
            order.append("slow_start")
            await asyncio.sleep(0.05)
            order.append("slow_end")

        async def fast_handler(event):
            order.append("fast_start")
            await asyncio.sleep(0.01)
            order.append("fast_end")

        emitter.on_all(slow_handler)
        emitter.on_all(fast_handler)
        await emitter.emit(transitioned())

        assert order.index("fast_end") < order.index("slow_end")

    async def test_handler_error_isolation(self):
        """Handler errors don't stop other handlers; they are returned."""
        emitter = AsyncEventEmitter()
        received = []

        async def failing_handler(event):
            raise ValueError("Handler failed")

        def failing_sync(event):
            raise KeyError("missing")

        async def working_handler(event):
            received.append(event)

        emitter.on_all(failing_handler)
        emitter.on_sync(WorkflowTransitioned, failing_sync)
        emitter.on_all(working_handler)

        errors = await emitter.emit(transitioned())

        assert len(received) == 1
        assert sorted(type(e).__name__ for e in errors) == ["KeyError", "ValueError"]

    async def test_unregister_handler(self):
        emitter = AsyncEventEmitter()
        received = []

        async def handler(event):
            received.append(event)

        emitter.on_all(handler)
        emitter.off(handler)
        await emitter.emit(transitioned())

        assert received == []
