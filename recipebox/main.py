"""
Recipebox Auth API - FastAPI Application
Main entry point with all routes configured.
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncEngine

from recipebox.api import auth, users
from recipebox.config import Settings, settings as default_settings
from recipebox.core.exceptions import register_exception_handlers
from recipebox.core.rate_limit import InMemoryRateLimiter
from recipebox.database import create_session_factory, get_engine, init_db
from recipebox.schemas.common import HealthResponse
from recipebox.services.email_service import EmailService, build_email_service
from recipebox.services.notification_dispatcher import NotificationDispatcher
from recipebox.services.sweeper import ExpiredRecordSweeper

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Startup
    await init_db(app.state.engine)
    if app.state.settings.SWEEPER_ENABLED:
        app.state.sweeper.start()
    logger.info("Recipebox API started")
    yield
    # Shutdown
    await app.state.sweeper.stop()
    await app.state.dispatcher.drain()
    await app.state.engine.dispose()


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[AsyncEngine] = None,
    email_service: Optional[EmailService] = None
) -> FastAPI:
    """Build the application and its process-wide collaborators."""
    settings = settings or default_settings
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title="Recipebox Auth API",
        description="Accounts, sessions, password reset and email verification for Recipebox",
        version=VERSION,
        lifespan=lifespan
    )

    engine = engine or get_engine()
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine)
    app.state.email_service = email_service or build_email_service(settings)
    app.state.dispatcher = NotificationDispatcher()
    app.state.ip_rate_limiter = InMemoryRateLimiter(
        settings.IP_RATE_LIMIT_REQUESTS,
        timedelta(minutes=settings.IP_RATE_LIMIT_WINDOW_MINUTES)
    )
    app.state.email_rate_limiter = InMemoryRateLimiter(
        settings.EMAIL_RATE_LIMIT_REQUESTS,
        timedelta(minutes=settings.EMAIL_RATE_LIMIT_WINDOW_MINUTES)
    )
    app.state.sweeper = ExpiredRecordSweeper(
        app.state.session_factory,
        limiters=[app.state.ip_rate_limiter, app.state.email_rate_limiter],
        token_interval=timedelta(hours=settings.TOKEN_SWEEP_INTERVAL_HOURS),
        code_interval=timedelta(hours=settings.CODE_SWEEP_INTERVAL_HOURS)
    )

    # CORS Configuration; tokens travel in headers and bodies, never cookies
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Include all routers
    app.include_router(auth.router, prefix=settings.API_PREFIX)
    app.include_router(users.router, prefix=settings.API_PREFIX)

    @app.get("/")
    async def root():
        return {
            "message": "Recipebox Auth API is running",
            "version": VERSION,
            "docs": "/docs"
        }

    @app.get("/health", response_model=HealthResponse)
    async def health():
        """Detailed health check."""
        return HealthResponse(version=VERSION, timestamp=datetime.now(timezone.utc))

    return app


app = create_app()
