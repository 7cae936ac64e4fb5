"""Starlette integration: run a MiddlewarePipeline around each endpoint."""

from __future__ import annotations

from collections.abc import Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response
from starlette.types import ASGIApp

from cspguard.middleware.pipeline import MiddlewarePipeline, RequestContext

logger = structlog.get_logger()


class PolicyMiddleware(BaseHTTPMiddleware):
    """Drive the request and response phases of a pipeline.

    The response phase runs for every request whose request phase ran,
    including requests whose endpoint raised, so a provisional header is
    never sent un-finalized.
    """

    def __init__(
        self,
        app: ASGIApp,
        pipeline: MiddlewarePipeline | Callable[[], MiddlewarePipeline],
    ) -> None:
        super().__init__(app)
        # A callable is resolved per request so the pipeline can be rebuilt on reload.
        self._pipeline = pipeline

    @property
    def pipeline(self) -> MiddlewarePipeline:
        if isinstance(self._pipeline, MiddlewarePipeline):
            return self._pipeline
        return self._pipeline()

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        context = RequestContext()
        request.state.context = context
        request.state.csp = context.policy

        pipeline = self.pipeline
        response = await pipeline.process_request(request, context)
        if response is None:
            try:
                response = await call_next(request)
            except Exception:
                logger.exception("endpoint_error", request_id=context.request_id)
                response = PlainTextResponse("Internal Server Error", status_code=500)

        if context.policy.hash_lists and hasattr(response, "body_iterator"):
            # Hashes recorded while the body streams must land before phase 2.
            try:
                response = await _buffer_body(response)
            except Exception:
                logger.exception("endpoint_error", request_id=context.request_id)
                response = PlainTextResponse("Internal Server Error", status_code=500)

        for key, value in context.response_headers.items():
            response.headers[key] = value

        return await pipeline.process_response(response, context)


async def _buffer_body(response: Response) -> Response:
    """Drain a streaming response into a plain one with the same status and headers."""
    chunks: list[bytes] = []
    async for chunk in response.body_iterator:
        chunks.append(chunk if isinstance(chunk, bytes) else chunk.encode(response.charset))
    body = b"".join(chunks)

    buffered = Response(content=body, status_code=response.status_code)
    buffered.raw_headers = [
        (key, value) for key, value in response.raw_headers if key != b"content-length"
    ]
    buffered.raw_headers.append((b"content-length", str(len(body)).encode("latin-1")))
    return buffered
