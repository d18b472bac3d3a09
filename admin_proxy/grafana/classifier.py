"""
Path classification for the console's pre-routing Grafana interception.

Every inbound path is either served by this application (``PassThrough``) or
forwarded to the dashboard service (``Rewrite``). The decision depends on the
path alone.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union
from urllib.parse import quote


class RouteKind(str, Enum):
    LOCAL = "local"
    EXPLICIT_PROXY = "explicit_proxy"
    ASSET = "asset"
    DASHBOARD = "dashboard"
    UPSTREAM_API = "upstream_api"


# Console API routes that share the /api/ namespace with Grafana's own API.
# A new local /api route must be added here or it will be sent upstream.
LOCAL_API_PREFIXES = (
    "/api/clerk-search",
    "/api/delete",
    "/api/grafana",
    "/api/query",
    "/api/auth",
)
EXPLICIT_PROXY_PREFIX = "/grafana-proxy"
ASSET_PREFIXES = ("/public", "/avatar")
DASHBOARD_PREFIX = "/d/"
API_PREFIX = "/api/"


@dataclass(frozen=True)
class PassThrough:
    """Continue with normal application routing."""

    kind: RouteKind = RouteKind.LOCAL


@dataclass(frozen=True)
class Rewrite:
    """Forward the request to the dashboard service at ``upstream_path``."""

    kind: RouteKind
    upstream_path: str


RoutingDecision = Union[PassThrough, Rewrite]


def encode_path(path: str) -> str:
    return quote(path, safe="/:@!$&'()*+,;=-._~")


def classify_path(path: str) -> RouteKind:
    if path.startswith(LOCAL_API_PREFIXES):
        return RouteKind.LOCAL
    if path.startswith(EXPLICIT_PROXY_PREFIX):
        return RouteKind.EXPLICIT_PROXY
    if path.startswith(ASSET_PREFIXES):
        return RouteKind.ASSET
    if path.startswith(DASHBOARD_PREFIX):
        return RouteKind.DASHBOARD
    if path.startswith(API_PREFIX):
        return RouteKind.UPSTREAM_API
    return RouteKind.LOCAL


def upstream_path_for(kind: RouteKind, path: str) -> str:
    """Map an inbound path to the path requested from the dashboard service."""
    if kind is RouteKind.EXPLICIT_PROXY:
        path = path[len(EXPLICIT_PROXY_PREFIX):]
    if not path.startswith("/"):
        path = "/" + path
    return path


def decide(path: str, raw_path: Optional[str] = None) -> RoutingDecision:
    """
    Classify the decoded ``path`` (what the routers see) and build the upstream
    path from ``raw_path``, the still percent-encoded form, so escapes such as
    %3F, %23 and %2F reach the upstream untouched.
    """
    kind = classify_path(path)
    if kind is RouteKind.LOCAL:
        return PassThrough()
    if raw_path is None or classify_path(raw_path) is not kind:
        raw_path = encode_path(path)
    return Rewrite(kind=kind, upstream_path=upstream_path_for(kind, raw_path))
