from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from agencydesk.core.auth import SessionContext, get_session_context
from agencydesk.core.config import get_settings
from agencydesk.metrics import generate_metrics_payload, metrics_content_type
from agencydesk.screens.api import (
    crm_router,
    customers_router,
    emails_router,
    hosting_router,
    integrations_router,
    invoices_router,
    knowledge_base_router,
    pipeline_router,
    pricing_router,
    projects_router,
    tickets_router,
)

router = APIRouter()
router.include_router(customers_router)
router.include_router(pipeline_router)
router.include_router(crm_router)
router.include_router(tickets_router)
router.include_router(invoices_router)
router.include_router(projects_router)
router.include_router(hosting_router)
router.include_router(pricing_router)
router.include_router(integrations_router)
router.include_router(emails_router)
router.include_router(knowledge_base_router)


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/me", tags=["auth"])
async def me(session: SessionContext = Depends(get_session_context)) -> dict[str, str | bool | None]:
    return {
        "user_id": session.user_id,
        "email": session.email,
        "role": session.role,
        "is_super_admin": session.is_super_admin,
    }


@router.get("/metrics", tags=["system"])
def metrics(session: SessionContext = Depends(get_session_context)) -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")
    if not session.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin session required")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
