"""Transaction, expense report and invoice endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from erp_workflow.api.dependencies import ActorId, WorkflowDep
from erp_workflow.api.schemas import (
    ErrorResponse,
    ExpenseReportCreate,
    ExpenseReportResponse,
    ExpenseReportUpdate,
    InvoiceCreate,
    InvoiceLineIn,
    InvoiceLinesUpdate,
    InvoiceResponse,
    TransactionCreate,
    TransactionResponse,
)
from erp_workflow.services.finance_service import InvoiceLine

router = APIRouter(tags=["finance"])

CREATE_ERRORS = {403: {"model": ErrorResponse}, 422: {"model": ErrorResponse}}


def _lines(items: list[InvoiceLineIn]) -> list[InvoiceLine]:
    return [InvoiceLine(i.description, i.quantity, i.unit_price) for i in items]


@router.post(
    "/transactions",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    responses=CREATE_ERRORS,
)
async def create_transaction(
    workflow: WorkflowDep,
    actor_id: ActorId,
    payload: TransactionCreate,
) -> TransactionResponse:
    transaction = await workflow.finance.create_transaction(
        actor_id,
        description=payload.description,
        amount=payload.amount,
        type=payload.type,
        category=payload.category,
        payment_method=payload.payment_method,
        occurred_on=payload.occurred_on,
    )
    return TransactionResponse.model_validate(transaction)


@router.post(
    "/expenses",
    response_model=ExpenseReportResponse,
    status_code=status.HTTP_201_CREATED,
    responses=CREATE_ERRORS,
)
async def create_expense_report(
    workflow: WorkflowDep,
    actor_id: ActorId,
    payload: ExpenseReportCreate,
) -> ExpenseReportResponse:
    report = await workflow.finance.create_expense_report(
        actor_id, payload.description, payload.amount, payload.category
    )
    return ExpenseReportResponse.model_validate(report)


@router.patch(
    "/expenses/{report_id}",
    response_model=ExpenseReportResponse,
    responses={**CREATE_ERRORS, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def update_expense_report(
    workflow: WorkflowDep,
    actor_id: ActorId,
    report_id: Annotated[UUID, Path()],
    payload: ExpenseReportUpdate,
) -> ExpenseReportResponse:
    """Correct a rejected report before resubmitting it."""
    report = await workflow.finance.update_expense_report(
        actor_id, report_id, payload.description, payload.amount, payload.category
    )
    return ExpenseReportResponse.model_validate(report)


@router.post(
    "/invoices",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED,
    responses=CREATE_ERRORS,
)
async def create_invoice(
    workflow: WorkflowDep,
    actor_id: ActorId,
    payload: InvoiceCreate,
) -> InvoiceResponse:
    invoice = await workflow.finance.create_invoice(
        actor_id,
        _lines(payload.items),
        type=payload.type,
        client_id=payload.client_id,
        issue_date=payload.issue_date,
        due_date=payload.due_date,
        tax_rate=payload.tax_rate,
    )
    return InvoiceResponse.model_validate(invoice)


@router.get("/invoices", response_model=list[InvoiceResponse])
async def list_invoices(
    workflow: WorkflowDep,
    actor_id: ActorId,
    agency_id: UUID | None = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> list[InvoiceResponse]:
    invoices = await workflow.finance.list_invoices(agency_id, status_filter)
    return [InvoiceResponse.model_validate(i) for i in invoices]


@router.put(
    "/invoices/{invoice_id}/items",
    response_model=InvoiceResponse,
    responses={**CREATE_ERRORS, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def update_invoice_lines(
    workflow: WorkflowDep,
    actor_id: ActorId,
    invoice_id: Annotated[UUID, Path()],
    payload: InvoiceLinesUpdate,
) -> InvoiceResponse:
    """Replace the lines of a returned (draft) invoice."""
    invoice = await workflow.finance.update_invoice_lines(actor_id, invoice_id, _lines(payload.items))
    return InvoiceResponse.model_validate(invoice)
