"""Subscription billing backend: FastAPI application entry point."""

import signal
from contextlib import asynccontextmanager

# structlog caches its processor chain on first use, so logging is configured
# before anything else under app/ is imported.
from app.core.logging import configure_structlog
from app.core.config import get_settings as _get_settings_early

_early_settings = _get_settings_early()
configure_structlog(
    log_level="DEBUG" if _early_settings.debug else "INFO",
    json_logs=not _early_settings.debug,
)

import structlog

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.errors import register_exception_handlers
from app.api.routes import api_router
from app.core.config import Settings, get_settings
from app.db import close_db, init_db
from app.domain.plans import missing_price_ids
from app.middleware.correlation import setup_correlation_middleware

logger = structlog.get_logger(__name__)


def validate_stripe_config(settings: Settings) -> None:
    """Refuse to boot without Stripe credentials and price ids (debug mode excepted)."""
    if settings.debug:
        return
    missing = missing_price_ids(settings)
    missing += [
        name
        for name in ("stripe_secret_key", "stripe_webhook_secret")
        if not getattr(settings, name)
    ]
    if missing:
        raise RuntimeError(f"Missing Stripe configuration at startup: {missing}")


def _install_drain_handler(app: FastAPI) -> None:
    """On SIGTERM, flip /api/health to 503 so the load balancer drains us."""
    app.state.shutting_down = False

    def handle_sigterm(signum, frame):
        app.state.shutting_down = True
        logger.info("sigterm_received", action="health_check_503_draining_connections")

    signal.signal(signal.SIGTERM, handle_sigterm)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    _install_drain_handler(app)
    logger.info("startup_begin", app_name=settings.app_name, debug=settings.debug)

    validate_stripe_config(settings)
    await init_db()
    logger.info("startup_complete", stripe_configured=bool(settings.stripe_secret_key))

    yield

    await close_db()
    logger.info("shutdown_complete")


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Stripe checkout, billing portal and webhook mirror for subscriptions",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    # Browser client only; Stripe webhooks are server-to-server
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url, *settings.cors_allowed_origins],
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )
    setup_correlation_middleware(app)
    register_exception_handlers(app)

    app.include_router(api_router, prefix="/api")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=_early_settings.debug)
