"""FastAPI application entry point."""
import asyncio
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from quizduel.config import get_settings
from quizduel.logging_config import configure_logging
from quizduel.routers import duels, health
from quizduel.tasks.duel_maintenance import schedule_periodic_maintenance
from quizduel.version import APP_VERSION

settings = get_settings()

log_file = configure_logging(settings.log_dir)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app_instance: FastAPI):
    """Manage application startup and shutdown tasks."""
    logger.info("=" * 60)
    logger.info("Quiz Duel API Starting")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Logging to: {log_file.absolute()}")
    logger.info(f"Database: {settings.database_url.split('@')[-1] if '@' in settings.database_url else 'SQLite'}")
    logger.info("=" * 60)

    maintenance_task = None
    if settings.duel_sweep_interval_seconds > 0:
        try:
            maintenance_task = asyncio.create_task(
                schedule_periodic_maintenance(settings.duel_sweep_interval_seconds)
            )
            logger.info(
                f"Duel maintenance task started (runs every {settings.duel_sweep_interval_seconds}s)"
            )
        except Exception as e:
            logger.error(f"Failed to start duel maintenance task: {e}")
    else:
        logger.info("Duel maintenance task disabled; rely on POST /duels/cleanup")

    try:
        yield
    finally:
        if maintenance_task:
            logger.info("Shutting down background tasks...")
            maintenance_task.cancel()
            try:
                await asyncio.wait_for(maintenance_task, timeout=2.0)
            except asyncio.CancelledError:
                logger.info("Duel maintenance task cancelled")
            except asyncio.TimeoutError:
                logger.warning("Duel maintenance task did not cancel within timeout, forcing shutdown")
            except Exception as e:
                logger.error(f"Error cancelling duel maintenance task: {e}")

        logger.info("Quiz Duel API Shutting Down... Goodbye!")


app = FastAPI(
    title="Quiz Duel API",
    description="Star-wagering football trivia duels",
    version=APP_VERSION,
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors with user-friendly messages."""
    logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")

    errors = []
    for error in exc.errors():
        loc = error.get("loc", [])
        field_path = " -> ".join(str(x) for x in loc[1:]) if len(loc) > 1 else "unknown field"
        errors.append({
            "field": field_path,
            "message": error.get("msg", "Validation error"),
            "type": error.get("type", "unknown"),
        })

    return JSONResponse(
        status_code=422,
        content={
            "detail": "Request validation failed",
            "errors": errors,
        },
    )


allowed_origins = [origin for origin in os.getenv("ALLOWED_ORIGINS", "").split(",") if origin]
if not allowed_origins:
    allowed_origins = [
        settings.frontend_url,
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(duels.router, prefix="/duels", tags=["duels"])
app.include_router(health.router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Quiz Duel API",
        "version": APP_VERSION,
        "environment": settings.environment,
        "docs": "/docs",
    }
