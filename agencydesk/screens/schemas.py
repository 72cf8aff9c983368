from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field


TicketStatus = Literal["open", "in_progress", "resolved", "closed"]
TicketPriority = Literal["low", "medium", "high", "urgent"]
ProjectType = Literal["game", "app", "web"]
TimeRange = Literal["1m", "3m", "6m", "1y"]
ProjectStatus = Literal["pending", "in_progress", "completed", "on_hold", "cancelled"]
DomainStatus = Literal["pending", "active", "failed", "expired"]
ProvisionAction = Literal["create", "suspend", "unsuspend"]


class ToastRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    description: str | None
    variant: str
    created_at: datetime


class ScreenResponse(BaseModel):
    state: str
    rows: list[dict[str, Any]]
    total: int
    toasts: list[ToastRead] = Field(default_factory=list)
    data: dict[str, Any] = Field(default_factory=dict)


class BulkResultRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    row_id: str
    ok: bool
    error: str | None


class BulkResponse(BaseModel):
    results: list[BulkResultRead]
    toasts: list[ToastRead] = Field(default_factory=list)


class CustomerCreate(BaseModel):
    first_name: str = Field(min_length=1)
    last_name: str | None = None
    email: EmailStr
    company_name: str | None = None
    phone: str | None = None


class CustomerUpdate(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    email: EmailStr | None = None
    company_name: str | None = None
    phone: str | None = None


class LeadCreate(BaseModel):
    first_name: str = Field(min_length=1)
    last_name: str | None = None
    email: EmailStr
    phone: str | None = None
    company: str | None = None
    source: str | None = None
    deal_value: Decimal | None = Field(default=None, ge=0)
    pipeline_stage_id: UUID | None = None
    notes: str | None = None


class LeadUpdate(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    email: EmailStr | None = None
    phone: str | None = None
    company: str | None = None
    source: str | None = None
    deal_value: Decimal | None = Field(default=None, ge=0)
    lead_score: int | None = Field(default=None, ge=0, le=100)
    notes: str | None = None


class StageMoveRequest(BaseModel):
    stage_id: UUID


class LeadConvertRequest(BaseModel):
    title: str | None = None
    description: str | None = None
    type: ProjectType | None = None
    budget: Decimal | None = Field(default=None, ge=0)


class LeadConvertResponse(BaseModel):
    project_id: str
    toasts: list[ToastRead] = Field(default_factory=list)


class TicketCreate(BaseModel):
    title: str = Field(min_length=1)
    description: str | None = None
    customer_id: UUID
    category_id: UUID | None = None
    priority: TicketPriority = "medium"
    due_date: datetime | None = None
    notify: bool = False


class TicketStatusRequest(BaseModel):
    status: TicketStatus
    notify: bool = False


class TicketBulkStatusRequest(BaseModel):
    ticket_ids: list[UUID] = Field(min_length=1)
    status: TicketStatus


class TicketPriorityRequest(BaseModel):
    priority: TicketPriority


class TicketDueDateRequest(BaseModel):
    due_date: datetime | None = None


class TicketReplyRequest(BaseModel):
    content: str = Field(min_length=1)
    is_internal: bool = False


class ProjectStatusRequest(BaseModel):
    status: ProjectStatus


class ProjectBulkStatusRequest(BaseModel):
    project_ids: list[UUID] = Field(min_length=1)
    status: ProjectStatus


class DomainStatusRequest(BaseModel):
    status: DomainStatus
    notes: str | None = None


class HostingProvisionRequest(BaseModel):
    action: ProvisionAction


class HostingNotesRequest(BaseModel):
    notes: str


class InvoiceCreate(BaseModel):
    customer_id: UUID
    project_id: UUID | None = None
    invoice_number: str = Field(min_length=1)
    amount: Decimal = Field(ge=0)
    due_date: datetime | None = None


class DomainPriceWrite(BaseModel):
    tld: str = Field(min_length=1)
    category: str | None = None
    reg_1y_gbp: Decimal | None = None
    reg_2y_gbp: Decimal | None = None
    reg_5y_gbp: Decimal | None = None
    reg_10y_gbp: Decimal | None = None
    renew_1y_gbp: Decimal | None = None
    transfer_1y_gbp: Decimal | None = None
    is_active: bool = True


class ServicePriceWrite(BaseModel):
    service_name: str = Field(min_length=1)
    category: str | None = None
    default_price: Decimal | None = None
    price_range_min: Decimal | None = None
    price_range_max: Decimal | None = None
    hourly_rate: Decimal | None = None
    is_active: bool = True


class HostingPackageWrite(BaseModel):
    name: str = Field(min_length=1)
    price_monthly: Decimal | None = None
    price_yearly: Decimal | None = None
    is_active: bool = True


class BulkAdjustRequest(BaseModel):
    row_ids: list[UUID] = Field(min_length=1)
    percent: Decimal = Field(ge=-100)


class EmailSendRequest(BaseModel):
    to: str
    template: str
    data: dict[str, Any] = Field(default_factory=dict)
    subject: str | None = None


class IntegrationConnectRequest(BaseModel):
    credentials: dict[str, str] = Field(default_factory=dict)


class ArticleCreate(BaseModel):
    title: str = Field(min_length=1)
    content: str = Field(min_length=1)
    category_id: UUID | None = None
    tags: list[str] = Field(default_factory=list)
    is_published: bool = False


class ArticleUpdate(BaseModel):
    title: str | None = None
    content: str | None = None
    category_id: UUID | None = None
    tags: list[str] | None = None


class ArticleVoteRequest(BaseModel):
    helpful: bool
