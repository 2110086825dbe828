"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Common
# ============================================================================


class ErrorResponse(BaseModel):
    """Structured failure returned for every workflow error."""

    success: bool = False
    message: str
    code: str
    errors: dict[str, str] | None = None


# ============================================================================
# Workflow
# ============================================================================


class TransitionRequest(BaseModel):
    """Body of a workflow verb call."""

    intent: str = Field(description="approve, reject, revert, resubmit or withdraw")
    reason: str | None = None


class BulkTransitionRequest(BaseModel):
    ids: list[UUID] = Field(min_length=1)
    intent: str
    reason: str | None = None


class TransitionResponse(BaseModel):
    success: bool = True
    entity_type: str
    entity_id: UUID
    action: str
    from_status: str
    status: str
    rejection_reason: str | None = None
    derived_ids: list[UUID] = []


class BulkTransitionItem(BaseModel):
    entity_id: UUID
    success: bool
    status: str | None = None
    code: str | None = None
    message: str | None = None


class BulkTransitionResponse(BaseModel):
    success: bool
    succeeded: int
    failed: int
    results: list[BulkTransitionItem]


class BulkUpdateRequest(BaseModel):
    ids: list[str] = Field(min_length=1)
    patch: dict[str, Any]


class BulkUpdateResponse(BaseModel):
    success: bool = True
    entity_type: str
    updated: int
    ids: list[UUID]


class WorkItemResponse(BaseModel):
    entity_type: str
    entity_id: UUID
    status: str
    stage: str
    actions: list[str]
    agency_id: UUID | None = None


class RejectedItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    status: str
    rejection_reason: str | None = None
    status_changed_at: datetime | None = None
    agency_id: UUID | None = None


class AuditEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    actor_user_id: UUID | None = None
    action: str
    from_status: str | None = None
    to_status: str | None = None
    reason: str | None = None
    created_at: datetime


# ============================================================================
# Payroll
# ============================================================================


class PayrollGenerateRequest(BaseModel):
    month: str = Field(description="Period as YYYY-MM")
    agency_id: UUID | None = None


class PayrollItemUpdate(BaseModel):
    """Editable item components; amounts may be sent as strings like "150 000"."""

    bonus: Decimal | str | None = None
    tax: Decimal | str | None = None
    social_contribution: Decimal | str | None = None
    advance: Decimal | str | None = None
    lateness_deduction: Decimal | str | None = None
    other_deduction: Decimal | str | None = None


class PayrollItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    employee_id: UUID
    base_salary: Decimal
    bonus: Decimal
    tax: Decimal
    social_contribution: Decimal
    advance: Decimal
    lateness_deduction: Decimal
    other_deduction: Decimal
    net_salary: Decimal


class PayrollRunResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    month: int
    year: int
    status: str
    total_amount: Decimal
    agency_id: UUID | None = None
    rejection_reason: str | None = None
    created_by_id: UUID | None = None
    items: list[PayrollItemResponse] = []


# ============================================================================
# Finance
# ============================================================================


class TransactionCreate(BaseModel):
    description: str
    amount: Decimal | str
    type: str
    category: str
    payment_method: str = "transfer"
    occurred_on: date | None = None


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    description: str
    amount: Decimal
    type: str
    category: str
    payment_method: str
    status: str
    agency_id: UUID | None = None
    recorded_by_id: UUID | None = None
    validated_by_id: UUID | None = None
    source_type: str | None = None
    source_id: UUID | None = None


class ExpenseReportCreate(BaseModel):
    description: str
    amount: Decimal | str
    category: str = "maintenance"


class ExpenseReportUpdate(BaseModel):
    description: str | None = None
    amount: Decimal | str | None = None
    category: str | None = None


class ExpenseReportResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    description: str
    amount: Decimal
    category: str
    status: str
    agency_id: UUID | None = None
    submitter_id: UUID | None = None
    validated_by_id: UUID | None = None
    rejection_reason: str | None = None


class InvoiceLineIn(BaseModel):
    description: str
    quantity: Decimal | str
    unit_price: Decimal | str


class InvoiceCreate(BaseModel):
    type: str = "invoice"
    client_id: UUID | None = None
    issue_date: date | None = None
    due_date: date | None = None
    tax_rate: Decimal | str | None = None
    items: list[InvoiceLineIn] = Field(min_length=1)


class InvoiceLinesUpdate(BaseModel):
    items: list[InvoiceLineIn] = Field(min_length=1)


class InvoiceItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    description: str
    quantity: Decimal
    unit_price: Decimal
    total: Decimal


class InvoiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    number: str
    type: str
    status: str
    issue_date: date
    due_date: date | None = None
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal
    agency_id: UUID | None = None
    rejection_reason: str | None = None
    items: list[InvoiceItemResponse] = []


# ============================================================================
# HR
# ============================================================================


class EmployeeCreate(BaseModel):
    first_name: str
    last_name: str
    email: str
    salary: Decimal | str | None = None
    agency_id: UUID | None = None
    position: str | None = None
    department: str | None = None
    phone: str | None = None
    start_date: date | None = None


class EmployeeAssign(BaseModel):
    agency_id: UUID


class AssignmentDecision(BaseModel):
    approve: bool = True


class EmployeeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    matricule: str
    first_name: str
    last_name: str
    email: str
    position: str | None = None
    department: str | None = None
    salary: Decimal
    status: str
    agency_id: UUID | None = None
    pending_agency_id: UUID | None = None
    rejection_reason: str | None = None


# ============================================================================
# Notifications
# ============================================================================


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    message: str
    severity: str
    link: str | None = None
    read: bool
    created_at: datetime


class NotificationFeedResponse(BaseModel):
    items: list[NotificationResponse]
    unread: int
