from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from agencydesk.api.routes import router as api_router
from agencydesk.core.config import get_settings
from agencydesk.logging import configure_logging
from agencydesk.middleware.correlation_id import CorrelationIdMiddleware
from agencydesk.middleware.request_logging import RequestLoggingMiddleware
from agencydesk.otel import get_fastapi_server_request_hook, setup_otel
from agencydesk.store.client import get_data_client


configure_logging()
logger = logging.getLogger("agencydesk.lifecycle")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("system.started")
    yield
    await get_data_client().aclose()
    logger.info("system.stopped")


app = FastAPI(title="AgencyDesk API", version="0.1.0", lifespan=lifespan)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.include_router(api_router)

settings = get_settings()
if settings.otel_enabled:
    setup_otel("agencydesk-api", True)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())
