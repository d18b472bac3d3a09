# Make `import admin_proxy` work when running pytest from a plain checkout.
import os
import sys

import httpx
import pytest

SERVICE_ROOT = os.path.dirname(__file__)
if SERVICE_ROOT not in sys.path:
    sys.path.insert(0, SERVICE_ROOT)

from admin_proxy.grafana import upstream  # noqa: E402
from admin_proxy.grafana.settings import build_settings  # noqa: E402

TEST_GRAFANA_URL = "https://grafana.example.com"
TEST_API_TOKEN = "service-token-123"


class RecordingUpstream:
    """MockTransport handler that records every request it receives."""

    def __init__(self):
        self.requests = []
        self.handler = lambda request: httpx.Response(200, text="ok")

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return as_unread_stream(self.handler(request))


def as_unread_stream(response: httpx.Response) -> httpx.Response:
    """
    A Response built from bytes is already read, so ``aiter_raw()`` would
    raise StreamConsumed. Rebuild it over a fresh stream the way a real
    transport hands it to the client.
    """
    if not isinstance(response.stream, httpx.ByteStream):
        return response
    return httpx.Response(
        response.status_code,
        headers=response.headers,
        stream=httpx.ByteStream(b"".join(response.stream)),
    )


@pytest.fixture
def grafana_settings():
    return build_settings(TEST_GRAFANA_URL, TEST_API_TOKEN)


@pytest.fixture
def unconfigured_settings():
    return build_settings("", "")


@pytest.fixture
def mock_upstream(monkeypatch):
    """Route every upstream client through an in-memory transport."""
    recorder = RecordingUpstream()

    def _create_client(settings, follow_redirects=False):
        return httpx.AsyncClient(
            transport=httpx.MockTransport(recorder),
            follow_redirects=follow_redirects,
        )

    monkeypatch.setattr(upstream, "create_client", _create_client)
    return recorder
