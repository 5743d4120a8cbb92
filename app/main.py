"""
Crime Alert Hub - FastAPI Application Entry Point

Community crime reporting with trust scoring and location-based alerts.

DESIGN PRINCIPLES:
- Trust is derived: score and verification level are recomputed from the
  report's evidence, completeness, freshness and community votes
- Votes are a ledger: one confirm and one dispute per user per report, never
  on your own report
- Admin verification is the only manual override
- Alerts are read-only aggregation over stored reports
"""

import asyncio
import logging
import os

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from app.config.firebase import initialize_firestore
from app.core.exceptions import CrimeAlertError
from app.core.settings import settings
from app.routes import admin, crime_reports, health, map

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


# Initialize FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Crowdsourced crime reports with community verification and danger alerts",
    debug=settings.DEBUG
)


@app.exception_handler(CrimeAlertError)
async def crime_alert_error_handler(request: Request, exc: CrimeAlertError):
    """Expected domain failures: log briefly and return their status code."""
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}")
    content = {"detail": exc.message, "code": exc.code}
    if exc.detail:
        content["context"] = exc.detail
    return JSONResponse(status_code=exc.status_code, content=content)


# Global exception handler to catch ALL exceptions
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch all unhandled exceptions and log them with full traceback."""
    logger.error(f"🔥 Unhandled exception on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": f"Internal server error: {str(exc)}"}
    )


# Pydantic validation error handler
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Catch Pydantic validation errors and log them."""
    logger.warning(f"🔥 Validation error on {request.method} {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": exc.errors()}
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Locally stored attachments are served by the API itself
if settings.BLOB_STORE_PROVIDER.lower() == "local":
    os.makedirs(settings.LOCAL_UPLOAD_DIR, exist_ok=True)
    app.mount("/uploads", StaticFiles(directory=settings.LOCAL_UPLOAD_DIR), name="uploads")


async def trust_score_sweep_loop(interval_minutes: int):
    """Periodically rescore every report so freshness points decay."""
    from app.services.report_service import get_report_service

    loop = asyncio.get_event_loop()
    while True:
        await asyncio.sleep(interval_minutes * 60)
        try:
            changed = await loop.run_in_executor(None, get_report_service().recalculate_all)
            logger.info(f"[SWEEP] Trust scores refreshed, {changed} report(s) changed")
        except Exception as e:
            logger.critical(f"[SWEEP] Trust score sweep failed: {e}", exc_info=True)


# Application lifecycle events
@app.on_event("startup")
async def startup_event():
    """
    Initialize services on application startup.
    Currently: Firestore connection, trust score sweep
    """
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    try:
        initialize_firestore()
    except Exception as e:
        logger.warning(f"Firestore initialization failed: {e}")
        logger.warning("The app will start but database operations may fail.")
        return

    if settings.TRUST_RESCORE_INTERVAL_MINUTES > 0:
        app.state.sweep_task = asyncio.create_task(
            trust_score_sweep_loop(settings.TRUST_RESCORE_INTERVAL_MINUTES)
        )
        logger.info(f"[SWEEP] Scheduled every {settings.TRUST_RESCORE_INTERVAL_MINUTES} minute(s)")


@app.on_event("shutdown")
async def shutdown_event():
    """
    Cleanup on application shutdown.
    """
    sweep_task = getattr(app.state, "sweep_task", None)
    if sweep_task is not None:
        sweep_task.cancel()
    logger.info(f"Shutting down {settings.APP_NAME}")


# Include routers (map first: its fixed paths share the /crime-reports prefix)
app.include_router(health.router)
app.include_router(map.router)
app.include_router(crime_reports.router)
app.include_router(admin.router)


# Root endpoint
@app.get("/")
async def root():
    """
    Root endpoint - API information.
    """
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "docs": "/docs",
        "health": "/health",
        "nearby": "/crime-reports/nearby?lat={lat}&lng={lng}&radius={km}"
    }
