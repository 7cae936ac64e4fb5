"""Content-Security-Policy middleware."""

from __future__ import annotations

from collections.abc import Mapping

import structlog
from starlette.requests import Request
from starlette.responses import Response

from cspguard.middleware.pipeline import Middleware, RequestContext
from cspguard.policy.builder import PolicyBuilder, PolicyConfiguration

logger = structlog.get_logger()

_CONFIG_KEY = "csp_configuration"


class ContentSecurityPolicy(Middleware):
    """Emit a Content-Security-Policy header built in two phases.

    - Request phase: provisional header with hash placeholders
    - Response phase: placeholders replaced with recorded inline hashes
    - Optional per-path configurations; the longest matching prefix wins and
      exactly one configuration applies to a request
    """

    def __init__(
        self,
        config: PolicyConfiguration | None = None,
        path_overrides: Mapping[str, PolicyConfiguration] | None = None,
        builder: PolicyBuilder | None = None,
    ) -> None:
        self._config = config or PolicyConfiguration()
        # "/admin/" and "/admin" name the same prefix; "/" stays "/".
        normalized = {
            prefix.rstrip("/") or "/": config for prefix, config in (path_overrides or {}).items()
        }
        # Longest prefix first so the first match is the most specific one.
        self._overrides = sorted(normalized.items(), key=lambda item: len(item[0]), reverse=True)
        self._builder = builder or PolicyBuilder()

    @property
    def config(self) -> PolicyConfiguration:
        return self._config

    def configuration_for(self, path: str) -> PolicyConfiguration:
        return self._match(path)[1]

    def _match(self, path: str) -> tuple[str | None, PolicyConfiguration]:
        """Return the matching override prefix (None for the default) and its policy."""
        for prefix, config in self._overrides:
            if path == prefix or path.startswith(prefix.rstrip("/") + "/"):
                return prefix, config
        return None, self._config

    async def process_request(self, request: Request, context: RequestContext) -> Response | None:
        path = request.url.path
        prefix, config = self._match(path)
        logger.debug(
            "csp_configuration_selected", path=path, prefix=prefix, header=config.header_name
        )
        context.extra[_CONFIG_KEY] = config
        self._builder.prepare(config, context.policy, context.response_headers)
        return None

    async def process_response(self, response: Response, context: RequestContext) -> Response:
        config = context.extra.get(_CONFIG_KEY)
        if config is None:
            # Request phase never ran (short-circuited earlier in the chain).
            return response
        self._builder.finalize(config, context.policy, response.headers)
        return response
