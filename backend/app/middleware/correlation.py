"""Request correlation via the X-Request-ID header.

The id is echoed on every response, stamped on every log line
(``app.core.logging.add_correlation_id``) and logged next to each error's
debug_id.
"""

import uuid

from asgi_correlation_id import CorrelationIdMiddleware
from asgi_correlation_id.context import correlation_id
from fastapi import FastAPI


def setup_correlation_middleware(app: FastAPI) -> None:
    """Install the middleware.

    A client-supplied X-Request-ID is kept as-is (proxies and the browser
    client send their own); otherwise a UUID4 is generated.
    """
    app.add_middleware(
        CorrelationIdMiddleware,
        header_name="X-Request-ID",
        generator=lambda: str(uuid.uuid4()),
        validator=None,
        transformer=lambda value: value,
    )


def get_correlation_id() -> str | None:
    """Current request's correlation id, or None outside a request."""
    return correlation_id.get(None)


__all__ = ["setup_correlation_middleware", "get_correlation_id"]
