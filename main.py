from contextlib import asynccontextmanager
import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.core.clock import utcnow
from app.core.config import settings
from app.core.database import engine
from app.core.exceptions import ClinicAuthException
from app.core.middleware import RequestSizeLimitMiddleware, SecurityHeadersMiddleware
from app.core.rate_limit import limiter
from app.api.routes.auth import router as auth_router
from app.api.routes.phone import router as phone_router
from app.api.routes.telegram import router as telegram_router
from app.services.messaging import get_messaging_platform
from app.services.messaging.telegram import TelegramClient
from app.services.number_matching import NumberMatcher
from app.services.phone_verification_service import PhoneVerificationService, VerificationTokenStore
from app.services.security_guard import FailedAttemptStore, SecurityGuard

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Determine if running in production
IS_PRODUCTION = os.getenv("ENVIRONMENT", "development") == "production"


def run_migrations():
    """Run database migrations on startup."""
    from alembic.config import Config
    from alembic import command

    logger.info("Running database migrations...")
    command.upgrade(Config("alembic.ini"), "head")
    logger.info("Database migrations completed successfully")


def build_state(app: FastAPI, scheduler) -> None:
    """Construct the process-wide stores and the services that hold them."""
    matcher = NumberMatcher()
    app.state.number_matcher = matcher
    app.state.verification_service = PhoneVerificationService(VerificationTokenStore(), matcher)
    app.state.security_guard = SecurityGuard(FailedAttemptStore(), scheduler)
    app.state.messaging = get_messaging_platform("telegram")


def register_webhook(messaging) -> None:
    """Point the bot at our update route so /verify messages reach us."""
    if not settings.TELEGRAM_WEBHOOK_URL or not settings.TELEGRAM_WEBHOOK_SECRET:
        logger.info("TELEGRAM_WEBHOOK_URL not set, skipping webhook registration")
        return
    if not isinstance(messaging, TelegramClient):
        return
    if not messaging.set_webhook(settings.TELEGRAM_WEBHOOK_URL, settings.TELEGRAM_WEBHOOK_SECRET):
        logger.warning("Telegram webhook registration failed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting clinic identity API...")

    errors = settings.validate_required_secrets()
    if errors:
        for error in errors:
            logger.error(f"Configuration error: {error}")
        if IS_PRODUCTION:
            raise RuntimeError("Invalid configuration: " + "; ".join(errors))

    if IS_PRODUCTION:
        run_migrations()

    from app.core.scheduler import register_cleanup_jobs, scheduler, shutdown_scheduler, start_scheduler

    build_state(app, scheduler)
    register_cleanup_jobs(app.state.verification_service, app.state.security_guard)
    start_scheduler()
    register_webhook(app.state.messaging)

    logger.info("Clinic identity API started successfully")
    yield
    shutdown_scheduler()
    logger.info("Shutting down clinic identity API...")


app = FastAPI(
    title="Clinic Identity API",
    description="Sessions, one-time passcodes and Telegram phone verification for the clinic backend",
    version="1.0.0",
    lifespan=lifespan,
    docs_url=None if IS_PRODUCTION else "/docs",
    redoc_url=None if IS_PRODUCTION else "/redoc",
)

# Add rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


# Exception handlers
@app.exception_handler(ClinicAuthException)
async def clinic_auth_exception_handler(request: Request, exc: ClinicAuthException):
    """Handle identity API exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.detail,
            "error_code": exc.error_code,
        },
        headers=exc.headers,
    )


@app.exception_handler(SQLAlchemyError)
async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError):
    """Handle database errors."""
    logger.error(f"Database error: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "detail": "A database error occurred",
            "error_code": "DATABASE_ERROR",
        },
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected errors."""
    logger.error(f"Unexpected error: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "detail": "An unexpected error occurred",
            "error_code": "INTERNAL_ERROR",
        },
    )


# Security middleware (order matters - first added = last executed)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestSizeLimitMiddleware)

allowed_origins = [settings.FRONTEND_URL]
if not IS_PRODUCTION:
    allowed_origins.extend([
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
    ])

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "Origin"],
    expose_headers=["Retry-After"],
    max_age=600,
)

# Include routers
app.include_router(auth_router, prefix="/api")
app.include_router(phone_router, prefix="/api")
app.include_router(telegram_router, prefix="/api")


@app.get("/health")
def health_check():
    """Health check endpoint for load balancers and monitoring."""
    health_status = {
        "status": "healthy",
        "timestamp": utcnow().isoformat(),
        "version": "1.0.0",
    }

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        health_status["database"] = "connected"
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        health_status["status"] = "unhealthy"
        health_status["database"] = "disconnected"

    return health_status
