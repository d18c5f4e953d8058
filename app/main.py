from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.api.v1.router import api_router
from app.core.exceptions import DomainError, InternalError
from app.database import init_db, async_session_factory
from app.jobs.scheduler import start_scheduler, shutdown_scheduler, get_job_status


logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    - Create missing tables in DEBUG (production schema is managed by Alembic)
    - Start background scheduler
    """
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    if settings.DEBUG:
        await init_db()

    if settings.SCHEDULER_ENABLED:
        start_scheduler()

    yield

    shutdown_scheduler()
    logger.info("Shutting down...")


OPENAPI_TAGS = [
    {"name": "Webhooks", "description": "Signed order-completion events from the order source"},
    {"name": "Affiliates", "description": "Referral-link click tracking and affiliate stats"},
    {"name": "Earnings", "description": "Earnings summary and per-source breakdown"},
    {"name": "Payouts", "description": "Payout requests, history and payout destinations"},
    {"name": "Commissions", "description": "Brand tiers, brand and genre commission rates"},
    {"name": "Brands", "description": "Brand ownership, team access and recent orders"},
]

API_DESCRIPTION = """
## Merch Marketplace Earnings API

Commission attribution, earnings ledger, payouts and brand ownership for a
multi-brand merchandise marketplace.

### Authentication

All endpoints except the order webhook, click tracking and public brand reads
require the identity provider's JWT: `Authorization: Bearer <token>`.

### Error Codes

| Code | Description |
|------|-------------|
| 400 | Validation failed (rates, order totals, payout minimum) |
| 401 | Missing or invalid token / webhook signature |
| 403 | Insufficient role on the brand or platform |
| 404 | Resource doesn't exist or is not visible |
| 409 | Duplicate access, last-owner removal, payout in progress |
| 502 | Payment provider failure |
"""

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=API_DESCRIPTION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=OPENAPI_TAGS,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


def _error_response(request: Request, exc: DomainError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.message,
            "code": exc.code,
            "path": str(request.url.path),
        },
    )


@app.exception_handler(DomainError)
async def domain_exception_handler(request: Request, exc: DomainError):
    """Map domain errors to their HTTP status."""
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message} {exc.context}")
    else:
        logger.info(f"{exc.code} on {request.method} {request.url.path}: {exc.message} {exc.context}")
    return _error_response(request, exc)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Anything unexpected becomes a 500 without leaking internals."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return _error_response(request, InternalError("Internal server error"))


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint with database validation."""
    from sqlalchemy import text
    from datetime import datetime, timezone

    health_status = {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": "unknown"
        },
        "jobs": get_job_status(),
    }

    try:
        async with async_session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
            health_status["checks"]["database"] = "connected"
    except Exception as e:
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"error: {str(e)}"

    if health_status["status"] == "unhealthy":
        return JSONResponse(status_code=503, content=health_status)

    return health_status
