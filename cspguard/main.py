"""FastAPI demo application protected by the CSP pipeline."""

from __future__ import annotations

import base64
import hashlib
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse

from cspguard.config.loader import (
    PolicySettings,
    configuration_from_settings,
    get_settings,
    load_policy_file,
    load_settings,
    register_reload_handler,
)
from cspguard.health import router as health_router
from cspguard.logging_config import setup_logging
from cspguard.middleware.asgi import PolicyMiddleware
from cspguard.middleware.content_security_policy import ContentSecurityPolicy
from cspguard.middleware.context_injector import ContextInjector
from cspguard.middleware.pipeline import MiddlewarePipeline
from cspguard.policy.builder import Directive, InlineExecution
from cspguard.policy.rendering import inline_allowance, nonce_attribute, record_inline_hash

logger = structlog.get_logger()

_pipeline: MiddlewarePipeline | None = None

_INLINE_STYLE = "body { font-family: sans-serif; margin: 2rem; }"
_INLINE_SCRIPT = "document.documentElement.dataset.ready = 'true';"


def build_pipeline(settings: PolicySettings) -> MiddlewarePipeline:
    """Build the ordered middleware pipeline.

    ContextInjector first so its response hook runs last and every CSP log
    line still carries the request ID.
    """
    pipeline = MiddlewarePipeline()
    pipeline.add(ContextInjector())
    pipeline.add(
        ContentSecurityPolicy(
            configuration_from_settings(settings),
            path_overrides=load_policy_file(settings.policy_file),
        ),
        enabled=settings.enabled,
    )
    return pipeline


def get_pipeline() -> MiddlewarePipeline:
    global _pipeline
    if _pipeline is None:
        _pipeline = build_pipeline(get_settings())
    return _pipeline


def _rebuild_pipeline(settings: PolicySettings) -> None:
    global _pipeline
    _pipeline = build_pipeline(settings)
    logger.info("pipeline_rebuilt", middleware=_pipeline.names)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    global _pipeline

    settings = load_settings()
    setup_logging(log_level=settings.log_level, json_format=settings.log_json)
    register_reload_handler(on_reload=_rebuild_pipeline)
    _pipeline = build_pipeline(settings)

    logger.info("app_started", middleware=_pipeline.names)
    yield
    logger.info("app_stopped")


def sha256_digest(content: str) -> str:
    """Base64 sha256 of an inline block, as CSP hash sources expect."""
    return base64.b64encode(hashlib.sha256(content.encode("utf-8")).digest()).decode("ascii")


def render_inline_block(request: Request, directive: Directive, tag: str, content: str) -> str:
    """Render an inline <script>/<style> the way the active policy allows."""
    if inline_allowance(request, directive) is InlineExecution.HASH:
        record_inline_hash(request, directive, sha256_digest(content))
    attribute = nonce_attribute(request, directive)
    opening = f"<{tag} {attribute}>" if attribute else f"<{tag}>"
    return f"{opening}{content}</{tag}>"


app = FastAPI(title="cspguard demo", lifespan=lifespan)
app.add_middleware(PolicyMiddleware, pipeline=get_pipeline)
app.include_router(health_router)


@app.get("/", response_class=HTMLResponse)
async def index(request: Request) -> HTMLResponse:
    """HTML page with one inline style and one inline script."""
    style = render_inline_block(request, Directive.STYLE, "style", _INLINE_STYLE)
    script = render_inline_block(request, Directive.SCRIPT, "script", _INLINE_SCRIPT)
    body = (
        "<!doctype html><html><head><title>cspguard</title>"
        f"{style}</head><body><h1>cspguard</h1>{script}</body></html>"
    )
    return HTMLResponse(body)


@app.get("/policy")
async def policy(request: Request, path: str = "/"):
    """Show the configuration that applies to ``path``."""
    csp = get_pipeline().get_middleware(ContentSecurityPolicy)
    if csp is None:
        return {"path": path, "policy": None}
    config = csp.configuration_for(path)
    return {"path": path, "header": config.header_name, "policy": config.to_dict()}
