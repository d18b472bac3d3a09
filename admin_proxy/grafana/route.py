"""
Console-side Grafana helper routes.

Everything here lives under ``/api/grafana``, which the rewrite middleware
keeps local, so these handlers are never shadowed by the upstream proxy.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional, Tuple

import httpx
from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import JSONResponse, Response
from opentelemetry import trace

from admin_proxy.grafana import upstream
from admin_proxy.grafana.classifier import encode_path
from admin_proxy.grafana.models import (
    DashboardList,
    DashboardSummary,
    GrafanaProxyRequest,
    HealthReport,
)
from admin_proxy.grafana.relay import relay_dashboard
from admin_proxy.grafana.settings import GrafanaSettings, get_grafana_settings
from admin_proxy.utils.exception_logging import log_exception_with_details
from admin_proxy.utils.traced_requests import traced_upstream_call

router = APIRouter(prefix="/api/grafana")
DASHBOARD_RELAY_PREFIX = "/api/grafana/d/"
tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


async def _get_upstream(
    settings: GrafanaSettings, endpoint: str, token: str, operation: str
) -> Tuple[httpx.Response, Any]:
    """
    GET ``endpoint`` from the dashboard service with ``token`` and return the
    response plus its decoded JSON (``None`` for error statuses).
    """
    url = upstream.build_upstream_url(settings.url, endpoint)
    headers = {
        "authorization": f"Bearer {token}",
        "content-type": "application/json",
    }
    with traced_upstream_call(
        tracer,
        operation=operation,
        method="GET",
        target_url=url,
        start_message=f"[GrafanaHelper] GET {url}",
        secret=token,
    ) as span:
        async with upstream.create_client(settings) as client:
            response = await client.get(url, headers=headers)
            span.set_attribute("proxy.status_code", response.status_code)
            if not response.is_success:
                return response, None
            return response, response.json()


@router.get("/d/{dashboard_path:path}")
async def dashboard(
    dashboard_path: str,
    request: Request,
    settings: GrafanaSettings = Depends(get_grafana_settings),
) -> Response:
    """Relay a dashboard page for embedding in the console's iframe."""
    # Keep the client's percent-encoding for the upstream path
    raw_path = upstream.raw_request_path(request.scope)
    if raw_path and raw_path.startswith(DASHBOARD_RELAY_PREFIX):
        dashboard_path = raw_path[len(DASHBOARD_RELAY_PREFIX):]
    else:
        dashboard_path = encode_path(dashboard_path)
    return await relay_dashboard(
        dashboard_path, request.query_params.multi_items(), settings
    )


@router.get("/health")
async def health(settings: GrafanaSettings = Depends(get_grafana_settings)):
    if not settings.is_configured:
        return JSONResponse(
            status_code=500,
            content={
                "status": "error",
                "message": "Grafana configuration is missing",
                "configured": False,
            },
        )

    try:
        response, data = await _get_upstream(
            settings, "/api/health", settings.api_token, "grafana_health"
        )
    except Exception as e:
        log_exception_with_details(
            logger, "[GrafanaHelper] Health check failed.", e, secret=settings.api_token
        )
        return JSONResponse(
            status_code=503,
            content={
                "status": "error",
                "message": "Failed to connect to Grafana service",
            },
        )

    if not response.is_success:
        logger.warning(
            f"[GrafanaHelper] Health check returned {response.status_code}"
        )
        return JSONResponse(
            status_code=502,
            content={
                "status": "error",
                "message": "Grafana service is not responding correctly",
                "httpStatus": response.status_code,
            },
        )

    return HealthReport(status="healthy", grafanaStatus=data, timestamp=_now())


@router.get("/dashboards")
async def list_dashboards(settings: GrafanaSettings = Depends(get_grafana_settings)):
    if not settings.is_configured:
        return JSONResponse(
            status_code=500, content={"error": "Grafana configuration is missing"}
        )

    try:
        response, hits = await _get_upstream(
            settings,
            "/api/search?type=dash-db",
            settings.api_token,
            "grafana_list_dashboards",
        )
    except Exception as e:
        log_exception_with_details(
            logger,
            "[GrafanaHelper] Listing dashboards failed.",
            e,
            secret=settings.api_token,
        )
        return JSONResponse(
            status_code=503, content={"error": "Failed to connect to Grafana service"}
        )

    if not response.is_success:
        return JSONResponse(
            status_code=response.status_code,
            content={"error": "Failed to fetch dashboards from Grafana"},
        )

    dashboards = [DashboardSummary.from_search_hit(hit) for hit in hits or []]
    return DashboardList(dashboards=dashboards, count=len(dashboards), timestamp=_now())


async def _proxy_with_user_token(
    settings: GrafanaSettings, endpoint: Optional[str], access_token: Optional[str]
) -> Response:
    if not access_token:
        return JSONResponse(status_code=401, content={"error": "Access token is required"})
    if not endpoint:
        return JSONResponse(status_code=400, content={"error": "Endpoint is required"})
    # Reject "@host" style endpoints that would change the upstream authority
    if not endpoint.startswith("/"):
        return JSONResponse(
            status_code=400, content={"error": "Endpoint must be an absolute path"}
        )
    if not settings.url:
        return JSONResponse(
            status_code=500, content={"error": "Grafana URL not configured"}
        )

    try:
        response, data = await _get_upstream(
            settings, endpoint, access_token, "grafana_user_proxy"
        )
    except Exception as e:
        log_exception_with_details(
            logger, "[GrafanaHelper] Proxy request failed.", e, secret=access_token
        )
        return JSONResponse(
            status_code=500, content={"error": "Failed to proxy request to Grafana"}
        )

    if not response.is_success:
        return JSONResponse(
            status_code=response.status_code,
            content={
                "error": f"Grafana API error: {response.status_code}",
                "details": response.text,
            },
        )
    return JSONResponse(content=data)


@router.get("/proxy")
async def proxy_get(
    endpoint: Optional[str] = Query(None),
    authorization: Optional[str] = Header(None),
    settings: GrafanaSettings = Depends(get_grafana_settings),
):
    access_token = authorization.replace("Bearer ", "", 1) if authorization else None
    return await _proxy_with_user_token(settings, endpoint, access_token)


@router.post("/proxy")
async def proxy_post(
    payload: GrafanaProxyRequest,
    settings: GrafanaSettings = Depends(get_grafana_settings),
):
    return await _proxy_with_user_token(settings, payload.endpoint, payload.accessToken)
