import uuid
from dataclasses import dataclass
from typing import Any

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from agencydesk.context import get_correlation_id
from agencydesk.core.auth import SessionContext, get_session_context
from agencydesk.errors import DataError, DependentRecordsError, NotFound, PermissionDenied, ValidationFailed
from agencydesk.notifications.email import EmailDispatcher
from agencydesk.screens.analytics import AnalyticsController
from agencydesk.screens.base import ScreenController, ScreenState, toast_message
from agencydesk.screens.customers import CustomersController
from agencydesk.screens.dashboard import CrmDashboardController
from agencydesk.screens.hosting import DomainsController, HostingAccountsController
from agencydesk.screens.integrations import CredentialField, IntegrationsController
from agencydesk.screens.invoices import InvoicesController
from agencydesk.screens.knowledge_base import KnowledgeBaseController
from agencydesk.screens.pipeline import PipelineController
from agencydesk.screens.pricing import (
    DomainPricingController,
    HostingPackagesController,
    PricingController,
    ServicePricingController,
)
from agencydesk.screens.projects import ProjectsController
from agencydesk.screens.schemas import (
    ArticleCreate,
    ArticleUpdate,
    ArticleVoteRequest,
    BulkAdjustRequest,
    BulkResponse,
    BulkResultRead,
    CustomerCreate,
    CustomerUpdate,
    DomainPriceWrite,
    DomainStatusRequest,
    EmailSendRequest,
    HostingNotesRequest,
    HostingPackageWrite,
    HostingProvisionRequest,
    IntegrationConnectRequest,
    InvoiceCreate,
    LeadConvertRequest,
    LeadConvertResponse,
    LeadCreate,
    LeadUpdate,
    ProjectBulkStatusRequest,
    ProjectStatusRequest,
    ScreenResponse,
    ServicePriceWrite,
    StageMoveRequest,
    TicketBulkStatusRequest,
    TicketCreate,
    TicketDueDateRequest,
    TicketPriorityRequest,
    TicketReplyRequest,
    TicketStatusRequest,
    TimeRange,
    ToastRead,
)
from agencydesk.screens.support_reporting import SupportReportingController
from agencydesk.screens.tickets import TicketsController
from agencydesk.store.client import DataClient, get_data_client

customers_router = APIRouter(prefix="/api/admin", tags=["admin.customers"])
pipeline_router = APIRouter(prefix="/api/admin", tags=["admin.pipeline"])
crm_router = APIRouter(prefix="/api/admin/crm", tags=["admin.crm"])
tickets_router = APIRouter(prefix="/api/admin", tags=["admin.tickets"])
invoices_router = APIRouter(prefix="/api/admin", tags=["admin.invoices"])
projects_router = APIRouter(prefix="/api/admin", tags=["admin.projects"])
hosting_router = APIRouter(prefix="/api/admin", tags=["admin.hosting"])
pricing_router = APIRouter(prefix="/api/admin", tags=["admin.pricing"])
integrations_router = APIRouter(prefix="/api/admin", tags=["admin.integrations"])
emails_router = APIRouter(prefix="/api/admin", tags=["admin.emails"])
knowledge_base_router = APIRouter(prefix="/api/knowledge-base", tags=["knowledge_base"])

SCREEN_ERRORS = (DataError, ValidationFailed, PermissionDenied)


@dataclass
class ErrorEnvelope:
    code: str
    message: str
    details: Any
    correlation_id: str | None


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
) -> JSONResponse:
    correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", None)
    payload = ErrorEnvelope(
        code=code,
        message=message,
        details=details,
        correlation_id=correlation_id,
    )
    return JSONResponse(status_code=status_code, content=payload.__dict__)


def screen_error(request: Request, exc: Exception, code: str) -> JSONResponse:
    if isinstance(exc, ValidationFailed):
        return error_response(
            request,
            status_code=422,
            code=code,
            message="Validation failed",
            details={"field_errors": exc.field_errors},
        )
    if isinstance(exc, PermissionDenied):
        return error_response(request, status_code=status.HTTP_403_FORBIDDEN, code=code, message=str(exc))
    if isinstance(exc, NotFound):
        return error_response(
            request, status_code=status.HTTP_404_NOT_FOUND, code=code, message=exc.message, details=exc.details
        )
    if isinstance(exc, DependentRecordsError):
        return error_response(
            request, status_code=status.HTTP_409_CONFLICT, code=code, message=exc.message, details=exc.details
        )
    if isinstance(exc, DataError):
        return error_response(
            request,
            status_code=status.HTTP_502_BAD_GATEWAY,
            code=code,
            message=toast_message(exc),
            details={"store_code": exc.code},
        )
    raise exc


@dataclass
class ViewParams:
    q: str | None
    filters: list[str]
    sort: str | None
    desc: bool


def view_params(
    q: str | None = Query(default=None),
    filters: list[str] = Query(default=[], alias="filter"),
    sort: str | None = Query(default=None),
    desc: bool = Query(default=False),
) -> ViewParams:
    return ViewParams(q=q, filters=filters, sort=sort, desc=desc)


def _filter_value(raw: str) -> Any:
    lowered = raw.lower()
    if lowered in {"true", "false"}:
        return lowered == "true"
    return raw


def apply_view(screen: ScreenController, view: ViewParams) -> None:
    errors: dict[str, str] = {}
    for item in view.filters:
        field, sep, value = item.partition(":")
        if not sep or not field:
            errors["filter"] = "Filters must look like field:value"
            continue
        screen.set_filter(field, _filter_value(value))
    if errors:
        raise ValidationFailed(errors)
    screen.set_search(view.q or "")
    screen.set_sort(view.sort, view.desc)


def _toasts(screen: ScreenController) -> list[ToastRead]:
    return [ToastRead.model_validate(toast) for toast in screen.toasts.drain()]


def screen_response(
    screen: ScreenController,
    view: ViewParams | None = None,
    data: dict[str, Any] | None = None,
) -> ScreenResponse:
    if view is not None:
        apply_view(screen, view)
    rows = [dict(row) for row in screen.view]
    return ScreenResponse(state=screen.state.value, rows=rows, total=len(screen.rows), toasts=_toasts(screen), data=data or {})


async def load_screen(screen: ScreenController) -> None:
    await screen.load()
    if screen.state == ScreenState.ERROR:
        raise DataError("load_failed", screen.error or f"Failed to load {screen.entity_name}s")


def _payload(dto: BaseModel, *, exclude: set[str] | None = None) -> dict[str, Any]:
    return dto.model_dump(exclude_unset=True, exclude=exclude)


@customers_router.get("/customers", response_model=ScreenResponse)
async def list_customers(
    request: Request,
    view: ViewParams = Depends(view_params),
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    try:
        screen = CustomersController(client, session)
        await load_screen(screen)
        return screen_response(screen, view)
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "customer_list_failed")


@customers_router.post("/customers", response_model=ScreenResponse, status_code=status.HTTP_201_CREATED)
async def create_customer(
    request: Request,
    dto: CustomerCreate,
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    try:
        screen = CustomersController(client, session)
        await screen.create(_payload(dto))
        return screen_response(screen)
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "customer_create_failed")


@customers_router.patch("/customers/{customer_id}", response_model=ScreenResponse)
async def update_customer(
    request: Request,
    customer_id: uuid.UUID,
    dto: CustomerUpdate,
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    try:
        screen = CustomersController(client, session)
        await screen.update(customer_id, _payload(dto))
        return screen_response(screen)
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "customer_update_failed")


@customers_router.get("/customers/{customer_id}/dependencies", response_model=None)
async def customer_dependencies(
    request: Request,
    customer_id: uuid.UUID,
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> dict[str, int] | JSONResponse:
    try:
        screen = CustomersController(client, session)
        return await screen.count_dependencies(customer_id)
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "customer_dependencies_failed")


@customers_router.delete("/customers/{customer_id}", response_model=ScreenResponse)
async def delete_customer(
    request: Request,
    customer_id: uuid.UUID,
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    try:
        screen = CustomersController(client, session)
        await screen.delete(customer_id)
        return screen_response(screen)
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "customer_delete_failed")


def _pipeline_data(screen: PipelineController) -> dict[str, Any]:
    return {
        "columns": [
            {
                "stage": column.stage,
                "count": column.count,
                "total_value": column.total_value,
                "lead_ids": [str(lead["id"]) for lead in column.leads],
            }
            for column in screen.columns
        ],
        "totals": screen.totals(),
    }


@pipeline_router.get("/pipeline", response_model=ScreenResponse)
async def get_pipeline(
    request: Request,
    view: ViewParams = Depends(view_params),
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    try:
        screen = PipelineController(client, session)
        await load_screen(screen)
        apply_view(screen, view)
        return screen_response(screen, data=_pipeline_data(screen))
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "pipeline_list_failed")


@pipeline_router.post("/leads", response_model=ScreenResponse, status_code=status.HTTP_201_CREATED)
async def create_lead(
    request: Request,
    dto: LeadCreate,
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    try:
        screen = PipelineController(client, session)
        await load_screen(screen)
        await screen.create_lead(_payload(dto))
        return screen_response(screen, data=_pipeline_data(screen))
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "lead_create_failed")


@pipeline_router.patch("/leads/{lead_id}", response_model=ScreenResponse)
async def update_lead(
    request: Request,
    lead_id: uuid.UUID,
    dto: LeadUpdate,
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    try:
        screen = PipelineController(client, session)
        await screen.update_lead(lead_id, _payload(dto))
        return screen_response(screen, data=_pipeline_data(screen))
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "lead_update_failed")


@pipeline_router.post("/leads/{lead_id}/move", response_model=ScreenResponse)
async def move_lead(
    request: Request,
    lead_id: uuid.UUID,
    dto: StageMoveRequest,
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    try:
        screen = PipelineController(client, session)
        await load_screen(screen)
        await screen.move_lead(lead_id, dto.stage_id)
        return screen_response(screen, data=_pipeline_data(screen))
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "lead_move_failed")


@pipeline_router.delete("/leads/{lead_id}", response_model=ScreenResponse)
async def delete_lead(
    request: Request,
    lead_id: uuid.UUID,
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    try:
        screen = PipelineController(client, session)
        await load_screen(screen)
        await screen.delete_lead(lead_id)
        return screen_response(screen, data=_pipeline_data(screen))
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "lead_delete_failed")


@pipeline_router.get("/leads/{lead_id}/conversion-defaults", response_model=None)
async def lead_conversion_defaults(
    request: Request,
    lead_id: uuid.UUID,
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> dict[str, Any] | JSONResponse:
    try:
        screen = PipelineController(client, session)
        await load_screen(screen)
        defaults = screen.conversion_defaults(lead_id)
        return {**defaults, "budget": str(defaults["budget"]) if defaults["budget"] is not None else None}
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "lead_conversion_defaults_failed")


@pipeline_router.post("/leads/{lead_id}/convert", response_model=LeadConvertResponse)
async def convert_lead(
    request: Request,
    lead_id: uuid.UUID,
    dto: LeadConvertRequest,
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> LeadConvertResponse | JSONResponse:
    try:
        screen = PipelineController(client, session)
        await load_screen(screen)
        project_id = await screen.convert(
            lead_id,
            title=dto.title,
            description=dto.description,
            type=dto.type,
            budget=dto.budget,
        )
        return LeadConvertResponse(project_id=project_id or "", toasts=_toasts(screen))
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "lead_convert_failed")


@crm_router.get("/dashboard", response_model=ScreenResponse)
async def crm_dashboard(
    request: Request,
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    try:
        screen = CrmDashboardController(client, session)
        await load_screen(screen)
        return screen_response(
            screen,
            data={
                "stats": screen.stats,
                "top_sources": screen.top_sources,
                "recent_activities": screen.recent_activities,
            },
        )
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "crm_dashboard_failed")


@crm_router.get("/analytics", response_model=ScreenResponse)
async def crm_analytics(
    request: Request,
    time_range: TimeRange = Query(default="6m", alias="range"),
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    try:
        screen = AnalyticsController(client, session, time_range=time_range)
        await load_screen(screen)
        response = screen_response(screen, data=screen.series)
        response.rows = []
        return response
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "crm_analytics_failed")


@crm_router.get("/analytics/export", response_model=None)
async def export_crm_analytics(
    request: Request,
    time_range: TimeRange = Query(default="6m", alias="range"),
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> Response:
    try:
        screen = AnalyticsController(client, session, time_range=time_range)
        await load_screen(screen)
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "crm_analytics_export_failed")
    return Response(
        content=screen.export_csv(),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="crm-analytics-{time_range}.csv"'},
    )


@tickets_router.get("/tickets", response_model=ScreenResponse)
async def list_tickets(
    request: Request,
    view: ViewParams = Depends(view_params),
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    try:
        screen = TicketsController(client, session)
        await load_screen(screen)
        return screen_response(screen, view, data={"categories": screen.categories})
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "ticket_list_failed")


@tickets_router.post("/tickets", response_model=ScreenResponse, status_code=status.HTTP_201_CREATED)
async def create_ticket(
    request: Request,
    dto: TicketCreate,
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    try:
        screen = TicketsController(client, session)
        await screen.create_ticket(dto.model_dump(exclude={"notify"}, exclude_none=True), notify=dto.notify)
        return screen_response(screen)
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "ticket_create_failed")


@tickets_router.post("/tickets/bulk-status", response_model=BulkResponse)
async def bulk_ticket_status(
    request: Request,
    dto: TicketBulkStatusRequest,
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> BulkResponse | JSONResponse:
    try:
        screen = TicketsController(client, session)
        results = await screen.bulk_update_status(dto.ticket_ids, dto.status)
        return BulkResponse(
            results=[BulkResultRead.model_validate(item) for item in results],
            toasts=_toasts(screen),
        )
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "ticket_bulk_status_failed")


@tickets_router.post("/tickets/{ticket_id}/status", response_model=ScreenResponse)
async def update_ticket_status(
    request: Request,
    ticket_id: uuid.UUID,
    dto: TicketStatusRequest,
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    try:
        screen = TicketsController(client, session)
        await load_screen(screen)
        await screen.update_status(ticket_id, dto.status, notify=dto.notify)
        return screen_response(screen)
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "ticket_status_failed")


@tickets_router.post("/tickets/{ticket_id}/priority", response_model=ScreenResponse)
async def update_ticket_priority(
    request: Request,
    ticket_id: uuid.UUID,
    dto: TicketPriorityRequest,
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    try:
        screen = TicketsController(client, session)
        await screen.update_priority(ticket_id, dto.priority)
        return screen_response(screen)
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "ticket_priority_failed")


@tickets_router.post("/tickets/{ticket_id}/due-date", response_model=ScreenResponse)
async def update_ticket_due_date(
    request: Request,
    ticket_id: uuid.UUID,
    dto: TicketDueDateRequest,
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    try:
        screen = TicketsController(client, session)
        await screen.set_due_date(ticket_id, dto.due_date)
        return screen_response(screen)
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "ticket_due_date_failed")


@tickets_router.get("/tickets/{ticket_id}/messages", response_model=None)
async def list_ticket_messages(
    request: Request,
    ticket_id: uuid.UUID,
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> list[dict[str, Any]] | JSONResponse:
    try:
        screen = TicketsController(client, session)
        return await screen.messages(ticket_id)
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "ticket_messages_failed")


@tickets_router.post("/tickets/{ticket_id}/replies", response_model=ScreenResponse, status_code=status.HTTP_201_CREATED)
async def reply_to_ticket(
    request: Request,
    ticket_id: uuid.UUID,
    dto: TicketReplyRequest,
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    try:
        screen = TicketsController(client, session)
        await load_screen(screen)
        await screen.reply(ticket_id, dto.content, is_internal=dto.is_internal)
        return screen_response(screen)
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "ticket_reply_failed")


@tickets_router.get("/support/reports", response_model=ScreenResponse)
async def support_report(
    request: Request,
    days: int = Query(default=30),
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    try:
        if days not in (7, 30, 90):
            raise ValidationFailed({"days": "Report range must be 7, 30 or 90 days"})
        screen = SupportReportingController(client, session, days=days)
        await load_screen(screen)
        response = screen_response(screen, data=screen.report)
        response.rows = []
        return response
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "support_report_failed")


@invoices_router.get("/invoices", response_model=ScreenResponse)
async def list_invoices(
    request: Request,
    view: ViewParams = Depends(view_params),
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    try:
        screen = InvoicesController(client, session)
        await load_screen(screen)
        return screen_response(screen, view, data={"totals": screen.totals()})
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "invoice_list_failed")


@invoices_router.post("/invoices", response_model=ScreenResponse, status_code=status.HTTP_201_CREATED)
async def create_invoice(
    request: Request,
    dto: InvoiceCreate,
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    try:
        screen = InvoicesController(client, session)
        await screen.create(dto.model_dump(exclude_none=True))
        return screen_response(screen)
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "invoice_create_failed")


@invoices_router.post("/invoices/{invoice_id}/mark-paid", response_model=ScreenResponse)
async def mark_invoice_paid(
    request: Request,
    invoice_id: uuid.UUID,
    notify: bool = Query(default=True),
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    try:
        screen = InvoicesController(client, session)
        await load_screen(screen)
        await screen.mark_paid(invoice_id, notify=notify)
        return screen_response(screen)
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "invoice_mark_paid_failed")


@invoices_router.delete("/invoices/{invoice_id}", response_model=ScreenResponse)
async def delete_invoice(
    request: Request,
    invoice_id: uuid.UUID,
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    try:
        screen = InvoicesController(client, session)
        await screen.delete(invoice_id)
        return screen_response(screen)
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "invoice_delete_failed")


@projects_router.get("/projects", response_model=ScreenResponse)
async def list_projects(
    request: Request,
    view: ViewParams = Depends(view_params),
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    try:
        screen = ProjectsController(client, session)
        await load_screen(screen)
        return screen_response(screen, view)
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "project_list_failed")


@projects_router.post("/projects/bulk-status", response_model=BulkResponse)
async def bulk_project_status(
    request: Request,
    dto: ProjectBulkStatusRequest,
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> BulkResponse | JSONResponse:
    try:
        screen = ProjectsController(client, session)
        results = await screen.bulk_update_status(dto.project_ids, dto.status)
        return BulkResponse(
            results=[BulkResultRead.model_validate(item) for item in results],
            toasts=_toasts(screen),
        )
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "project_bulk_status_failed")


@projects_router.post("/projects/{project_id}/status", response_model=ScreenResponse)
async def update_project_status(
    request: Request,
    project_id: uuid.UUID,
    dto: ProjectStatusRequest,
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    try:
        screen = ProjectsController(client, session)
        await load_screen(screen)
        await screen.update_status(project_id, dto.status)
        return screen_response(screen)
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "project_status_failed")


@hosting_router.get("/domains", response_model=ScreenResponse)
async def list_domains(
    request: Request,
    view: ViewParams = Depends(view_params),
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    try:
        screen = DomainsController(client, session)
        await load_screen(screen)
        return screen_response(screen, view)
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "domain_list_failed")


@hosting_router.post("/domains/{domain_id}/status", response_model=ScreenResponse)
async def update_domain_status(
    request: Request,
    domain_id: uuid.UUID,
    dto: DomainStatusRequest,
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    try:
        screen = DomainsController(client, session)
        await load_screen(screen)
        await screen.update_status(domain_id, dto.status, dto.notes)
        return screen_response(screen)
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "domain_status_failed")


@hosting_router.get("/hosting", response_model=ScreenResponse)
async def list_hosting_accounts(
    request: Request,
    view: ViewParams = Depends(view_params),
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    try:
        screen = HostingAccountsController(client, session)
        await load_screen(screen)
        return screen_response(screen, view)
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "hosting_list_failed")


@hosting_router.post("/hosting/{account_id}/provision", response_model=ScreenResponse)
async def provision_hosting_account(
    request: Request,
    account_id: uuid.UUID,
    dto: HostingProvisionRequest,
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    try:
        screen = HostingAccountsController(client, session)
        await load_screen(screen)
        await screen.provision(account_id, dto.action)
        return screen_response(screen)
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "hosting_provision_failed")


@hosting_router.patch("/hosting/{account_id}/notes", response_model=ScreenResponse)
async def update_hosting_notes(
    request: Request,
    account_id: uuid.UUID,
    dto: HostingNotesRequest,
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    try:
        screen = HostingAccountsController(client, session)
        await load_screen(screen)
        await screen.update_notes(account_id, dto.notes)
        return screen_response(screen)
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "hosting_notes_failed")


def _register_pricing_routes(
    path: str,
    controller_cls: type[PricingController],
    write_model: type[BaseModel],
    code: str,
) -> None:
    async def list_rows(
        request: Request,
        view: ViewParams = Depends(view_params),
        client: DataClient = Depends(get_data_client),
        session: SessionContext = Depends(get_session_context),
    ) -> ScreenResponse | JSONResponse:
        try:
            screen = controller_cls(client, session)
            await load_screen(screen)
            return screen_response(screen, view)
        except SCREEN_ERRORS as exc:
            return screen_error(request, exc, f"{code}_list_failed")

    async def create_row(
        request: Request,
        dto: write_model,  # type: ignore[valid-type]
        client: DataClient = Depends(get_data_client),
        session: SessionContext = Depends(get_session_context),
    ) -> ScreenResponse | JSONResponse:
        try:
            screen = controller_cls(client, session)
            await screen.save(dto.model_dump())
            return screen_response(screen)
        except SCREEN_ERRORS as exc:
            return screen_error(request, exc, f"{code}_create_failed")

    async def update_row(
        request: Request,
        row_id: uuid.UUID,
        dto: write_model,  # type: ignore[valid-type]
        client: DataClient = Depends(get_data_client),
        session: SessionContext = Depends(get_session_context),
    ) -> ScreenResponse | JSONResponse:
        try:
            screen = controller_cls(client, session)
            await screen.save(dto.model_dump(), row_id=row_id)
            return screen_response(screen)
        except SCREEN_ERRORS as exc:
            return screen_error(request, exc, f"{code}_update_failed")

    async def delete_row(
        request: Request,
        row_id: uuid.UUID,
        client: DataClient = Depends(get_data_client),
        session: SessionContext = Depends(get_session_context),
    ) -> ScreenResponse | JSONResponse:
        try:
            screen = controller_cls(client, session)
            await screen.delete(row_id)
            return screen_response(screen)
        except SCREEN_ERRORS as exc:
            return screen_error(request, exc, f"{code}_delete_failed")

    async def bulk_adjust(
        request: Request,
        dto: BulkAdjustRequest,
        client: DataClient = Depends(get_data_client),
        session: SessionContext = Depends(get_session_context),
    ) -> BulkResponse | JSONResponse:
        try:
            screen = controller_cls(client, session)
            await load_screen(screen)
            results = await screen.bulk_adjust(dto.row_ids, dto.percent)
            return BulkResponse(
                results=[BulkResultRead.model_validate(item) for item in results],
                toasts=_toasts(screen),
            )
        except SCREEN_ERRORS as exc:
            return screen_error(request, exc, f"{code}_bulk_adjust_failed")

    pricing_router.add_api_route(path, list_rows, methods=["GET"], response_model=ScreenResponse)
    pricing_router.add_api_route(
        path, create_row, methods=["POST"], response_model=ScreenResponse, status_code=status.HTTP_201_CREATED
    )
    pricing_router.add_api_route(f"{path}/bulk-adjust", bulk_adjust, methods=["POST"], response_model=BulkResponse)
    pricing_router.add_api_route(f"{path}/{{row_id}}", update_row, methods=["PATCH"], response_model=ScreenResponse)
    pricing_router.add_api_route(f"{path}/{{row_id}}", delete_row, methods=["DELETE"], response_model=ScreenResponse)


_register_pricing_routes("/pricing/domains", DomainPricingController, DomainPriceWrite, "domain_pricing")
_register_pricing_routes("/pricing/services", ServicePricingController, ServicePriceWrite, "service_pricing")
_register_pricing_routes("/hosting-packages", HostingPackagesController, HostingPackageWrite, "hosting_package")


@integrations_router.get("/integrations", response_model=ScreenResponse)
async def list_integrations(
    request: Request,
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    try:
        screen = IntegrationsController(client, session)
        await load_screen(screen)
        response = screen_response(screen)
        # Secrets never leave the server.
        response.rows = [
            {key: value for key, value in row.items() if key not in {"access_token", "refresh_token"}}
            for row in response.rows
        ]
        return response
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "integration_list_failed")


@integrations_router.post("/integrations/{integration_id}/connect", response_model=ScreenResponse)
async def connect_integration(
    request: Request,
    integration_id: uuid.UUID,
    dto: IntegrationConnectRequest,
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    def answer(field: CredentialField) -> str | None:
        return dto.credentials.get(field.key, field.default)

    try:
        screen = IntegrationsController(client, session)
        await load_screen(screen)
        await screen.connect(integration_id, answer)
        response = screen_response(screen)
        response.rows = []
        return response
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "integration_connect_failed")


@integrations_router.post("/integrations/{integration_id}/disconnect", response_model=ScreenResponse)
async def disconnect_integration(
    request: Request,
    integration_id: uuid.UUID,
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    try:
        screen = IntegrationsController(client, session)
        await load_screen(screen)
        await screen.disconnect(integration_id)
        response = screen_response(screen)
        response.rows = []
        return response
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "integration_disconnect_failed")


@emails_router.post("/emails", response_model=None, status_code=status.HTTP_202_ACCEPTED)
async def send_email(
    request: Request,
    dto: EmailSendRequest,
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> dict[str, Any] | JSONResponse:
    try:
        if not session.is_admin:
            raise PermissionDenied("Only admins can send emails")
        result = await EmailDispatcher(client).send(dto.to, dto.template, dto.data, subject=dto.subject)
        result.raise_for_error()
        return {"status": "sent", "template": dto.template, "result": result.data}
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "email_send_failed")


@knowledge_base_router.get("", response_model=ScreenResponse)
async def list_articles(
    request: Request,
    view: ViewParams = Depends(view_params),
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    try:
        screen = KnowledgeBaseController(client, session)
        await load_screen(screen)
        return screen_response(screen, view)
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "article_list_failed")


@knowledge_base_router.post("", response_model=ScreenResponse, status_code=status.HTTP_201_CREATED)
async def create_article(
    request: Request,
    dto: ArticleCreate,
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    try:
        screen = KnowledgeBaseController(client, session)
        await screen.create(dto.model_dump())
        return screen_response(screen)
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "article_create_failed")


@knowledge_base_router.patch("/{article_id}", response_model=ScreenResponse)
async def update_article(
    request: Request,
    article_id: uuid.UUID,
    dto: ArticleUpdate,
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    try:
        screen = KnowledgeBaseController(client, session)
        await screen.update(article_id, _payload(dto))
        return screen_response(screen)
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "article_update_failed")


@knowledge_base_router.post("/{article_id}/publish-toggle", response_model=ScreenResponse)
async def toggle_article_publish(
    request: Request,
    article_id: uuid.UUID,
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    try:
        screen = KnowledgeBaseController(client, session)
        await load_screen(screen)
        await screen.toggle_publish(article_id)
        return screen_response(screen)
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "article_publish_failed")


@knowledge_base_router.delete("/{article_id}", response_model=ScreenResponse)
async def delete_article(
    request: Request,
    article_id: uuid.UUID,
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    try:
        screen = KnowledgeBaseController(client, session)
        await screen.delete(article_id)
        return screen_response(screen)
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "article_delete_failed")


@knowledge_base_router.post("/{article_id}/view", response_model=None)
async def view_article(
    request: Request,
    article_id: uuid.UUID,
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> dict[str, int] | JSONResponse:
    try:
        screen = KnowledgeBaseController(client, session)
        await load_screen(screen)
        return {"view_count": await screen.increment_view(article_id)}
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "article_view_failed")


@knowledge_base_router.post("/{article_id}/vote", response_model=ScreenResponse)
async def vote_article(
    request: Request,
    article_id: uuid.UUID,
    dto: ArticleVoteRequest,
    client: DataClient = Depends(get_data_client),
    session: SessionContext = Depends(get_session_context),
) -> ScreenResponse | JSONResponse:
    try:
        screen = KnowledgeBaseController(client, session)
        await load_screen(screen)
        await screen.vote(article_id, dto.helpful)
        return screen_response(screen)
    except SCREEN_ERRORS as exc:
        return screen_error(request, exc, "article_vote_failed")
