"""Pre-routing interception of console requests that belong to Grafana."""

import logging
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from admin_proxy.grafana.classifier import PassThrough, decide
from admin_proxy.grafana.relay import forward_rewrite
from admin_proxy.grafana.settings import GrafanaSettings
from admin_proxy.grafana.upstream import raw_request_path

logger = logging.getLogger("uvicorn.error")


class GrafanaRewriteMiddleware(BaseHTTPMiddleware):
    """Send Grafana-owned paths upstream; let everything else reach the routers."""

    def __init__(self, app: ASGIApp, settings: Optional[GrafanaSettings] = None):
        super().__init__(app)
        self.settings = settings

    def _settings(self, request: Request) -> GrafanaSettings:
        if self.settings is not None:
            return self.settings
        return request.app.state.grafana_settings

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        decision = decide(request.url.path, raw_request_path(request.scope))
        if isinstance(decision, PassThrough):
            return await call_next(request)

        logger.debug(
            f"[GrafanaProxy] {request.url.path} classified as {decision.kind.value}"
        )
        return await forward_rewrite(request, decision, self._settings(request))
