from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import httpx

from admin_proxy.grafana.settings import GrafanaSettings

# Hop-by-hop headers that should NOT be forwarded (RFC 7230)
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}

# Request headers the proxy always sets itself
OVERRIDDEN_HEADERS = {"authorization", "host", "origin"}


@dataclass(frozen=True)
class UpstreamTarget:
    url: str
    headers: Dict[str, str]


def raw_request_path(scope: Mapping) -> Optional[str]:
    """The request path exactly as the client sent it, still percent-encoded."""
    raw_path = scope.get("raw_path")
    if not isinstance(raw_path, (bytes, bytearray)) or not raw_path:
        return None
    return raw_path.decode("latin-1").split("?", 1)[0]


def build_upstream_url(
    base_url: str, path: str, query_items: Iterable[Tuple[str, str]] = ()
) -> str:
    """
    Join the upstream base URL and path, then copy query parameters onto it.
    Repeated keys keep the last value.
    """
    params: Dict[str, str] = {}
    for key, value in query_items:
        params[key] = value

    url = httpx.URL(f"{base_url.rstrip('/')}{path}")
    if params:
        url = url.copy_merge_params(params)
    return str(url)


def auth_headers(settings: GrafanaSettings) -> Dict[str, str]:
    return {
        "authorization": f"Bearer {settings.api_token}",
        "host": settings.host,
        "origin": settings.origin,
    }


def prepare_headers(
    settings: GrafanaSettings, inbound_headers: Optional[Mapping[str, str]] = None
) -> Dict[str, str]:
    """
    Copy the client's headers for forwarding, minus hop-by-hop headers, and
    overwrite Authorization, Host and Origin so the upstream accepts them.
    """
    headers = {}
    for name, value in (inbound_headers or {}).items():
        name_lower = name.lower()
        if name_lower in HOP_BY_HOP_HEADERS or name_lower in OVERRIDDEN_HEADERS:
            continue
        headers[name_lower] = value

    headers.update(auth_headers(settings))
    return headers


def build_upstream_target(
    settings: GrafanaSettings,
    path: str,
    query_items: Iterable[Tuple[str, str]] = (),
    inbound_headers: Optional[Mapping[str, str]] = None,
) -> UpstreamTarget:
    return UpstreamTarget(
        url=build_upstream_url(settings.url, path, query_items),
        headers=prepare_headers(settings, inbound_headers),
    )


def filter_response_headers(
    headers: httpx.Headers, denied: Iterable[str]
) -> List[Tuple[bytes, bytes]]:
    """
    Copy raw upstream headers in order, dropping denied names
    case-insensitively. Names are lowercased for ASGI.
    """
    denied_lower = {name.lower() for name in denied}
    return [
        (name.lower(), value)
        for name, value in headers.raw
        if name.decode("latin-1").lower() not in denied_lower
    ]


def create_client(
    settings: GrafanaSettings, follow_redirects: bool = False
) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.timeout),
        follow_redirects=follow_redirects,
    )
