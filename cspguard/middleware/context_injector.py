"""Context injector middleware: request IDs for logs and responses."""

from __future__ import annotations

import structlog
from starlette.requests import Request
from starlette.responses import Response

from cspguard.middleware.pipeline import Middleware, RequestContext
from cspguard.utils.sanitize import strip_control_chars

logger = structlog.get_logger()

_MAX_REQUEST_ID_LENGTH = 256


class ContextInjector(Middleware):
    """Bind per-request logging context.

    - Binds the context's request_id to structlog contextvars
    - Preserves a client X-Request-ID as original_request_id (sanitized)
    - Echoes X-Request-ID on the response
    """

    async def process_request(self, request: Request, context: RequestContext) -> Response | None:
        client_request_id = request.headers.get("x-request-id")
        if client_request_id:
            context.extra["original_request_id"] = strip_control_chars(
                client_request_id[:_MAX_REQUEST_ID_LENGTH]
            )

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=context.request_id,
            path=request.url.path,
        )
        logger.debug(
            "request_context_bound",
            original_request_id=context.extra.get("original_request_id"),
        )
        return None

    async def process_response(self, response: Response, context: RequestContext) -> Response:
        response.headers["x-request-id"] = context.request_id
        structlog.contextvars.clear_contextvars()
        return response
