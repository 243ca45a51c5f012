"""ADFLOW — FastAPI Application Entry Point.

Multi-tenant campaign management with workflow-automation hand-off.
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from adflow.database import init_db, test_connection
from adflow.scheduler.jobs import start_scheduler, stop_scheduler
from adflow.api.campaign_routes import router as campaign_router
from adflow.api.integration_routes import router as integration_router
from adflow.api.resource_routes import router as resource_router
from adflow.api.tenant_routes import router as tenant_router
from adflow.api.webhook_routes import router as webhook_router
from adflow.core.errors import AdflowError, PreconditionFailed, TransportFailure
from adflow.core.logging import get_logger

logger = get_logger("main")


IS_SERVERLESS = bool(
    os.environ.get("VERCEL") or os.environ.get("AWS_LAMBDA_FUNCTION_NAME")
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info("🚀 ADFLOW starting up...")
    logger.info(f"🌍 Environment: {'SERVERLESS' if IS_SERVERLESS else 'LOCAL'}")
    db_ok = test_connection()
    if db_ok:
        try:
            init_db()
        except Exception as e:
            logger.error(f"❌ Table creation failed: {e}")
    else:
        logger.error("❌ Database NOT connected — endpoints will fail")
    if not IS_SERVERLESS:
        start_scheduler()
    yield
    if not IS_SERVERLESS:
        stop_scheduler()
    logger.info("ADFLOW shut down")


app = FastAPI(
    title="ADFLOW",
    description="Multi-tenant ad campaign management — compose campaigns, hand them to the automation workflow, track confirmation.",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AdflowError)
async def adflow_error_handler(request: Request, exc: AdflowError):
    """Map the domain error taxonomy onto HTTP responses."""
    content = {"detail": exc.message, "error": exc.code}
    if isinstance(exc, PreconditionFailed):
        content["problems"] = exc.problems
    if isinstance(exc, TransportFailure) and exc.automation_id is not None:
        content["automation_id"] = exc.automation_id
    return JSONResponse(status_code=exc.http_status, content=content)


# Routers
app.include_router(tenant_router)
app.include_router(resource_router)
app.include_router(integration_router)
app.include_router(campaign_router)
app.include_router(webhook_router)


@app.get("/health", tags=["System"])
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "adflow",
        "version": "1.0.0",
    }
