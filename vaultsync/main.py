"""
vaultsync/main.py

Purpose: Application entry point

- Initializes FastAPI app, logging and exception handlers
- Binds a request id to every request's log lines
- Registers API routes (auth, clients, onboarding, vault, webhooks, crm)
- Startup: settings check, Mongo connection, indexes, core document catalog
- Health checks
"""

import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from vaultsync.core.config import settings, validate_settings
from vaultsync.core.errors import add_exception_handlers
from vaultsync.core.logging import setup_logging, get_logger, LogContext
from vaultsync.db.mongo import connect_to_mongo, close_mongo_connection, check_database_health
from vaultsync.db.indexes import create_indexes
from vaultsync.services.crm_service import get_crm_service
from vaultsync.services.document_service import get_document_service
from vaultsync.api import auth, clients, crm, onboarding, vault, webhooks

# Initialize logging first
setup_logging()
logger = get_logger(__name__)

VERSION = "1.0.0"
SLOW_REQUEST_SECONDS = 5.0
REQUEST_ID_HEADER = "X-Request-ID"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup fails fast on bad settings or an unreachable database; the
    core document catalog is seeded before the first request.
    """
    logger.info("Starting VaultSync...")

    try:
        validate_settings()
        await connect_to_mongo()
        await create_indexes()

        seeded = await get_document_service().seed_core_documents()
        logger.info(f"Core document catalog ready ({seeded} newly seeded)")

        if not get_crm_service().is_configured():
            logger.warning("CRM credentials missing; CRM calls will fail")

        logger.info(f"VaultSync started (environment={settings.ENVIRONMENT}, debug={settings.DEBUG})")

    except Exception as e:
        logger.critical(f"Failed to start application: {str(e)}", exc_info=True)
        raise

    yield

    logger.info("Shutting down VaultSync...")
    try:
        await close_mongo_connection()
    except Exception as e:
        logger.error(f"Error during shutdown: {str(e)}", exc_info=True)


app = FastAPI(
    title="VaultSync - Client Onboarding & Document Vault",
    description="Client onboarding, document collection and CRM synchronization",
    version=VERSION,
    lifespan=lifespan,
    debug=settings.DEBUG,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[REQUEST_ID_HEADER],
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    """
    Tags all log lines of a request with its id and reports slow requests.

    An incoming X-Request-ID (from a proxy or automation relay) is reused.
    """
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    request.state.request_id = request_id

    start_time = time.perf_counter()
    with LogContext(request_id=request_id):
        response = await call_next(request)
        elapsed = time.perf_counter() - start_time

        if elapsed > SLOW_REQUEST_SECONDS:
            logger.warning(f"Slow request: {request.method} {request.url.path} took {elapsed:.2f}s")

    response.headers[REQUEST_ID_HEADER] = request_id
    response.headers["X-Process-Time"] = f"{elapsed:.4f}"
    return response


add_exception_handlers(app)

for module, tag in (
    (auth, "Auth"),
    (clients, "Clients"),
    (onboarding, "Onboarding"),
    (vault, "Vault"),
    (webhooks, "Webhooks"),
    (crm, "CRM"),
):
    app.include_router(module.router, prefix=settings.API_PREFIX, tags=[tag])


@app.get("/", tags=["Health"])
async def root():
    return {
        "name": "VaultSync API",
        "version": VERSION,
        "status": "running",
        "environment": settings.ENVIRONMENT,
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Database connectivity plus CRM configuration.

    503 when the database is unreachable; missing CRM credentials only
    degrade the report.
    """
    checks = {}
    try:
        checks["database"] = "healthy" if await check_database_health() else "unhealthy"
    except Exception as e:
        logger.error(f"Database health check failed: {str(e)}")
        checks["database"] = "unhealthy"

    checks["crm"] = "configured" if get_crm_service().is_configured() else "not_configured"

    if checks["database"] != "healthy":
        status = "unhealthy"
    elif checks["crm"] != "configured":
        status = "degraded"
    else:
        status = "healthy"

    return JSONResponse(
        status_code=503 if status == "unhealthy" else 200,
        content={
            "status": status,
            "timestamp": time.time(),
            "environment": settings.ENVIRONMENT,
            "version": VERSION,
            "checks": checks,
        },
    )


@app.get("/ready", tags=["Health"])
async def readiness_check():
    """Readiness: ready once the database answers."""
    try:
        if await check_database_health():
            return {"status": "ready"}
        reason = "database_unavailable"
    except Exception as e:
        reason = str(e)
    return JSONResponse(status_code=503, content={"status": "not_ready", "reason": reason})


@app.get("/live", tags=["Health"])
async def liveness_check():
    """Liveness check."""
    return {"status": "alive"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "vaultsync.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
        log_level=settings.LOG_LEVEL.lower()
    )
