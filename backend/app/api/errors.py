"""Error envelope for every failed request: ``{detail, code, debug_id}``.

The debug_id is logged next to the request's correlation id so a support
ticket quoting it can be traced to the server-side record.
"""

import uuid

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from app.core.exceptions import BillingError
from app.middleware.correlation import get_correlation_id

logger = structlog.get_logger(__name__)

# Request body fields whose validation failure is reported as INVALID_PLAN
_PLAN_FIELDS = frozenset({"plan", "planType"})

_HTTP_CODES = {
    401: "UNAUTHORIZED",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
}


def _error_response(
    request: Request,
    event: str,
    status_code: int,
    detail,
    code: str,
    headers: dict | None = None,
    **log_fields,
) -> JSONResponse:
    debug_id = str(uuid.uuid4())

    log = logger.warning if status_code < 500 else logger.error
    log(
        event,
        status_code=status_code,
        code=code,
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        user_id=getattr(request.state, "user_id", None),
        detail=detail,
        **log_fields,
    )

    return JSONResponse(
        status_code=status_code,
        content={"detail": detail, "code": code, "debug_id": debug_id},
        headers=headers,
    )


async def billing_error_handler(request: Request, exc: BillingError) -> JSONResponse:
    return _error_response(request, "billing_error", exc.status_code, exc.message, exc.code)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Framework errors (unknown route, wrong method) in the same envelope."""
    code = _HTTP_CODES.get(exc.status_code, "HTTP_ERROR")
    return _error_response(
        request,
        "http_exception",
        exc.status_code,
        exc.detail,
        code,
        headers=getattr(exc, "headers", None),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed or mistyped bodies get a 400 in the same envelope, not FastAPI's 422."""
    errors = exc.errors()
    code = "VALIDATION_ERROR"
    if any(err.get("loc") and err["loc"][-1] in _PLAN_FIELDS for err in errors):
        code = "INVALID_PLAN"

    messages = []
    for err in errors:
        field = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        messages.append(f"{field}: {err.get('msg')}" if field else str(err.get("msg")))

    return _error_response(
        request,
        "request_validation_error",
        400,
        "Invalid request: " + "; ".join(messages),
        code,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort: log the traceback, return a generic 500."""
    return _error_response(
        request,
        "unhandled_exception",
        500,
        "Internal server error",
        "INTERNAL_ERROR",
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.exception_handler(BillingError)(billing_error_handler)
    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(RequestValidationError)(request_validation_handler)
    app.exception_handler(Exception)(unhandled_exception_handler)
