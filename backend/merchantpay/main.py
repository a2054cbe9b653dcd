"""MerchantPay - merchant session and authorization API."""
import asyncio
from collections.abc import Callable
import contextlib
from contextlib import asynccontextmanager
from datetime import datetime
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from merchantpay.api import auth, scope, users
from merchantpay.api.errors import register_exception_handlers
from merchantpay.config import Settings, get_settings
from merchantpay.middleware.authentication import RequestAuthenticationMiddleware
from merchantpay.middleware.rate_limiting import RateLimitMiddleware
from merchantpay.models.user import utcnow
from merchantpay.services.rate_limit import FixedWindowRateLimiter
from merchantpay.services.sessions import SessionService

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


async def purge_rate_limit_windows(limiter: FixedWindowRateLimiter, interval_seconds: int) -> None:
    """Periodically drop expired rate-limit windows."""
    while True:
        await asyncio.sleep(interval_seconds)
        limiter.cleanup()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup: create tables and seed the bootstrap account
    from merchantpay.database import Base, SessionLocal, engine
    from merchantpay.services.bootstrap import ensure_superadmin

    # Import all models so they're registered with Base
    from merchantpay import models  # noqa: F401

    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        ensure_superadmin(db, app.state.settings)
    finally:
        db.close()

    cleanup_task = None
    limiter = app.state.rate_limiter
    if limiter is not None:
        cleanup_task = asyncio.create_task(
            purge_rate_limit_windows(limiter, app.state.settings.rate_limit_cleanup_interval_seconds)
        )

    yield

    # Shutdown: stop background cleanup
    if cleanup_task is not None:
        cleanup_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await cleanup_task


def create_app(
    settings: Settings | None = None,
    clock: Callable[[], datetime] = utcnow,
    rate_limiter: FixedWindowRateLimiter | None = None,
) -> FastAPI:
    """Build the API with its own session service and rate-limit store."""
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        description="Session, refresh and role authorization for merchant payment operations",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.session_service = SessionService.from_settings(settings, clock=clock)
    if settings.rate_limit_enabled:
        if rate_limiter is None:
            rate_limiter = FixedWindowRateLimiter(
                window_ms=settings.rate_limit_window_ms,
                max_requests=settings.rate_limit_max_requests,
            )
    else:
        rate_limiter = None
    app.state.rate_limiter = rate_limiter

    register_exception_handlers(app)

    # Starlette runs the last-added middleware first: CORS, rate limit, authentication.
    app.add_middleware(RequestAuthenticationMiddleware, codec=app.state.session_service.codec)
    if rate_limiter is not None:
        app.add_middleware(
            RateLimitMiddleware,
            limiter=rate_limiter,
            exclude_paths=["/health"],
            trust_forwarded_for=settings.trust_forwarded_for,
        )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "app": settings.app_name}

    app.include_router(auth.router, prefix="/api")
    app.include_router(users.router, prefix="/api")
    app.include_router(scope.router, prefix="/api")

    logger.debug(f"{settings.app_name} application created")
    return app


app = create_app()
