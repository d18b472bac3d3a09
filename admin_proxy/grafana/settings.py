from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional
from urllib.parse import urlparse

from fastapi import Request

from admin_proxy import vars as env

# Headers that keep the dashboard from rendering inside the console's iframe
FRAME_BLOCKING_HEADERS = frozenset({"x-frame-options", "content-security-policy"})


class ConfigurationMissing(Exception):
    """Raised when the upstream URL or credential is not configured."""

    message = "Grafana configuration missing"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)


@dataclass(frozen=True)
class GrafanaSettings:
    """Upstream dashboard service configuration, built once per process."""

    url: str = ""
    api_token: str = ""
    timeout: float = 30.0
    stripped_response_headers: FrozenSet[str] = field(
        default_factory=lambda: FRAME_BLOCKING_HEADERS
    )

    @property
    def is_configured(self) -> bool:
        return bool(self.url and self.api_token)

    @property
    def origin(self) -> str:
        parsed = urlparse(self.url)
        return f"{parsed.scheme}://{parsed.netloc}"

    @property
    def host(self) -> str:
        return urlparse(self.url).netloc

    def require(self) -> "GrafanaSettings":
        if not self.is_configured:
            raise ConfigurationMissing()
        return self


def build_settings(
    url: str,
    api_token: str,
    timeout: float = 30.0,
    extra_stripped_headers: Iterable[str] = (),
) -> GrafanaSettings:
    return GrafanaSettings(
        url=(url or "").rstrip("/"),
        api_token=api_token or "",
        timeout=timeout,
        stripped_response_headers=FRAME_BLOCKING_HEADERS
        | {h.lower() for h in extra_stripped_headers},
    )


def load_settings() -> GrafanaSettings:
    """Build settings from the environment snapshot taken in ``admin_proxy.vars``."""
    return build_settings(
        env.GRAFANA_URL,
        env.GRAFANA_API_TOKEN,
        timeout=env.GRAFANA_PROXY_TIMEOUT,
        extra_stripped_headers=env.GRAFANA_STRIPPED_RESPONSE_HEADERS,
    )


def get_grafana_settings(request: Request) -> GrafanaSettings:
    """FastAPI dependency returning the settings attached to the running app."""
    return request.app.state.grafana_settings
