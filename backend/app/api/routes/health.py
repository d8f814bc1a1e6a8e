import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from app.core.config import Settings, get_settings
from app.db.base import ping_db

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Liveness check.

    Returns 503 during graceful shutdown so the load balancer stops routing traffic.
    """
    if getattr(request.app.state, "shutting_down", False):
        return JSONResponse(
            status_code=503,
            content={"status": "shutting_down", "service": "billing-backend"},
        )
    return {"status": "healthy", "service": "billing-backend"}


@router.get("/ready")
async def readiness_check(settings: Settings = Depends(get_settings)):
    """Readiness check - backend store reachable and Stripe credentials present."""
    checks = {
        "database": False,
        "stripe": bool(settings.stripe_secret_key),
        "stripe_webhook": bool(settings.stripe_webhook_secret),
    }

    try:
        await ping_db()
        checks["database"] = True
    except Exception as e:
        logger.error("database_health_check_failed", error=str(e), error_type=type(e).__name__)

    all_healthy = all(checks.values())
    status_code = 200 if all_healthy else 503

    return JSONResponse(
        status_code=status_code,
        content={"status": "ready" if all_healthy else "degraded", "checks": checks},
    )
