"""
FastAPI application for the HarborList authorization service.

Hosts the gateway authorizers and the dealer sub-account authorization
endpoints.

Usage:
    uvicorn app.main:app --reload --port 8081
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from app.authorizers.routes import router as authorizers_router
from app.dealer.routes import router as dealer_router
from harbor_core.auth.factory import get_audit_dispatcher
from harbor_core.auth.middleware import RequestContextMiddleware
from harbor_core.config import settings
from harbor_core.infrastructure.rate_limiter import limiter
from harbor_core.infrastructure.telemetry import TelemetryService, setup_telemetry
from harbor_core.logging import setup_logging
from harbor_core.runtime.errors import HTTP_STATUS_BY_CODE, ServiceError

# Initialize logging
setup_logging()

# Initialize Telemetry (Tracing/Metrics)
setup_telemetry()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Flush fire-and-forget audit writes before the process exits
    await get_audit_dispatcher().drain()


app = FastAPI(
    title="HarborList Authorization",
    description="Policy decisions for customer, staff and dealer sub-account access",
    version="1.0.0",
    lifespan=lifespan,
)

# Instrument FastAPI app
TelemetryService().instrument_app(app)

# Rate limiter setup
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

app.add_middleware(RequestContextMiddleware)

# NOTE: CORS must be the last middleware added so it runs FIRST
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    request_id = getattr(request.state, "request_id", "-")
    logger.warning(f"[{request_id}] {exc!r}: {exc.message_debug or exc.message_safe}")
    return JSONResponse(
        status_code=HTTP_STATUS_BY_CODE.get(exc.code, 500),
        content=exc.to_dict(),
    )


app.include_router(authorizers_router, tags=["Authorizers"])
app.include_router(dealer_router, tags=["Dealer"])


@app.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
        dict: Status and service information.
    """
    return {"status": "ok", "service": settings.SERVICE_NAME, "version": "1.0.0"}
