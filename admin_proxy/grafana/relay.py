import logging
from typing import AsyncIterator, Iterable, List, Optional, Tuple

import httpx
from fastapi import Request
from fastapi.responses import PlainTextResponse, Response, StreamingResponse
from opentelemetry import trace

from admin_proxy.grafana import upstream
from admin_proxy.grafana.classifier import Rewrite
from admin_proxy.grafana.settings import ConfigurationMissing, GrafanaSettings
from admin_proxy.utils.exception_logging import log_exception_with_details
from admin_proxy.utils.traced_requests import traced_upstream_call

tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

CONFIGURATION_MISSING_BODY = "Grafana configuration missing"
UPSTREAM_FAILURE_BODY = "Internal Server Error"


def configuration_missing_response() -> Response:
    return PlainTextResponse(CONFIGURATION_MISSING_BODY, status_code=500)


def upstream_failure_response() -> Response:
    return PlainTextResponse(UPSTREAM_FAILURE_BODY, status_code=500)


async def send_upstream(
    settings: GrafanaSettings,
    method: str,
    target: upstream.UpstreamTarget,
    content: Optional[bytes] = None,
    follow_redirects: bool = False,
) -> Tuple[httpx.AsyncClient, httpx.Response]:
    """
    Send one request upstream and return the client with the still-open
    response. The caller owns both and must close them.
    """
    client = upstream.create_client(settings, follow_redirects=follow_redirects)
    try:
        upstream_request = client.build_request(
            method, target.url, headers=target.headers, content=content
        )
        response = await client.send(upstream_request, stream=True)
    except BaseException:
        await client.aclose()
        raise
    return client, response


async def stream_upstream_body(
    response: httpx.Response, client: httpx.AsyncClient
) -> AsyncIterator[bytes]:
    """Yield the upstream body as received, still content-encoded."""
    try:
        async for chunk in response.aiter_raw():
            yield chunk
    finally:
        await response.aclose()
        await client.aclose()


def streaming_relay(
    response: httpx.Response,
    client: httpx.AsyncClient,
    headers: List[Tuple[bytes, bytes]],
) -> StreamingResponse:
    relayed = StreamingResponse(
        stream_upstream_body(response, client),
        status_code=response.status_code,
    )
    # Replace Starlette's defaults so upstream headers keep their order and duplicates
    relayed.raw_headers = headers
    return relayed


async def forward_rewrite(
    request: Request, decision: Rewrite, settings: GrafanaSettings
) -> Response:
    """
    Forward an intercepted request to the dashboard service and relay the
    answer without touching its headers beyond hop-by-hop ones.
    """
    try:
        settings.require()
    except ConfigurationMissing as e:
        logger.error(f"[GrafanaProxy] {e} for {request.url.path}")
        return configuration_missing_response()

    target = upstream.build_upstream_target(
        settings,
        decision.upstream_path,
        request.query_params.multi_items(),
        request.headers,
    )
    body = await request.body()

    with traced_upstream_call(
        tracer,
        operation="grafana_rewrite",
        method=request.method,
        target_url=target.url,
        start_message=f"[GrafanaProxy] {request.method} {request.url.path} -> {target.url}",
        secret=settings.api_token,
        extra_attrs={"proxy.route_kind": decision.kind.value},
    ) as span:
        try:
            client, response = await send_upstream(
                settings, request.method, target, content=body
            )
        except Exception as e:
            span.set_attribute("proxy.error", type(e).__name__)
            log_exception_with_details(
                logger,
                f"[GrafanaProxy] Upstream request to {target.url} failed.",
                e,
                secret=settings.api_token,
            )
            return upstream_failure_response()

        span.set_attribute("proxy.status_code", response.status_code)
        headers = upstream.filter_response_headers(
            response.headers, upstream.HOP_BY_HOP_HEADERS
        )
        return streaming_relay(response, client, headers)


async def relay_dashboard(
    dashboard_path: str,
    query_items: Iterable[Tuple[str, str]],
    settings: GrafanaSettings,
) -> Response:
    """
    Fetch a dashboard page and relay it with the frame-blocking headers removed
    so the console can show it in an iframe.

    Args:
        dashboard_path: Path below ``/d/``, e.g. ``"<uid>/<slug>"``
        query_items: Inbound query parameters as (key, value) pairs
        settings: Upstream configuration

    Returns:
        The upstream status and body, streamed, with every header except the
        deny-list in ``settings.stripped_response_headers``
    """
    try:
        settings.require()
    except ConfigurationMissing as e:
        logger.error(f"[DashboardRelay] {e}")
        return configuration_missing_response()

    target = upstream.build_upstream_target(
        settings, f"/d/{dashboard_path.lstrip('/')}", query_items
    )

    with traced_upstream_call(
        tracer,
        operation="grafana_dashboard_relay",
        method="GET",
        target_url=target.url,
        start_message=f"[DashboardRelay] Fetching {target.url}",
        secret=settings.api_token,
    ) as span:
        try:
            client, response = await send_upstream(
                settings, "GET", target, follow_redirects=True
            )
        except Exception as e:
            span.set_attribute("proxy.error", type(e).__name__)
            log_exception_with_details(
                logger,
                f"[DashboardRelay] Error proxying to Grafana ({target.url}).",
                e,
                secret=settings.api_token,
            )
            return upstream_failure_response()

        span.set_attribute("proxy.status_code", response.status_code)
        headers = upstream.filter_response_headers(
            response.headers, settings.stripped_response_headers
        )
        return streaming_relay(response, client, headers)
