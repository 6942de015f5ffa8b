"""Tribu community outings API."""
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from tribu.core.config import settings
from tribu.core.database import create_db_and_tables
from tribu.core.scheduler import shutdown_scheduler, start_scheduler
from tribu.outings.errors import DomainError, ErrorCode, StoreUnavailable
from tribu.routes import comments, events, groups, push, reminders

# Configure logging
log_dir = Path.home() / ".logs" / "tribu"
log_dir.mkdir(parents=True, exist_ok=True)
log_file = log_dir / "latest.log"

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    filename=str(log_file),
)
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ErrorCode.VALIDATION_ERROR: 422,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.EVENT_FULL: 409,
    ErrorCode.ALREADY_SUBSCRIBED: 409,
    ErrorCode.EVENT_PAST: 409,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.STORE_UNAVAILABLE: 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown lifecycle."""
    # Startup
    logger.info("Starting Tribu application")
    create_db_and_tables()
    if settings.reminder_scheduler_enabled:
        start_scheduler()
    yield
    # Shutdown
    if settings.reminder_scheduler_enabled:
        shutdown_scheduler()
    logger.info("Tribu application shut down")


app = FastAPI(
    title=settings.app_name,
    description="Parents form invite-coded groups and publish or join local outings",
    version="0.1.0",
    lifespan=lifespan,
)

# Configure CORS for external access
origins = (
    ["*"]
    if settings.allowed_origins == "*"
    else [o.strip() for o in settings.allowed_origins.split(",")]
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(events.router)
app.include_router(comments.router)
app.include_router(groups.router)
app.include_router(push.router)
app.include_router(reminders.router)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    """Return business-rule outcomes as typed JSON errors."""
    return JSONResponse(exc.to_dict(), status_code=ERROR_STATUS[exc.code])


@app.exception_handler(OperationalError)
async def store_unavailable_handler(request: Request, exc: OperationalError):
    """Surface database connectivity problems as a generic retry prompt."""
    logger.error(f"Database unavailable on {request.url.path}: {exc}")
    error = StoreUnavailable()
    return JSONResponse(error.to_dict(), status_code=ERROR_STATUS[error.code])


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "app": settings.app_name}
