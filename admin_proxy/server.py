import logging
from typing import Iterable, Optional, Sequence

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from prometheus_client import Info
from prometheus_fastapi_instrumentator import Instrumentator

from admin_proxy.grafana.middleware import GrafanaRewriteMiddleware
from admin_proxy.grafana.route import router as grafana_router
from admin_proxy.grafana.settings import GrafanaSettings, load_settings
from admin_proxy.utils import token_fingerprint
from admin_proxy.vars import OTLP_ENDPOINT, OTLP_HEADERS, SERVICE_NAME

logger = logging.getLogger("uvicorn.error")


class FilteringSpanExporter(SpanExporter):
    """
    Streaming a dashboard page through the relay emits one ASGI send span per
    body chunk. Those spans are dropped before export so a single page load
    does not flood the collector.
    """

    def __init__(
        self,
        exporter: SpanExporter,
        dropped_event_types: Iterable[str] = ("http.response.body",),
    ):
        self.exporter = exporter
        self.dropped_event_types = frozenset(dropped_event_types)

    def _keep(self, span: ReadableSpan) -> bool:
        event_type = (span.attributes or {}).get("asgi.event.type")
        return event_type not in self.dropped_event_types

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        kept = [span for span in spans if self._keep(span)]
        if not kept:
            return SpanExportResult.SUCCESS
        return self.exporter.export(kept)

    def shutdown(self):
        return self.exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000):
        return self.exporter.force_flush(timeout_millis)


trace.set_tracer_provider(
    TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
)
if OTLP_ENDPOINT:
    otlp_exporter = OTLPSpanExporter(
        endpoint=OTLP_ENDPOINT,
        headers=((OTLP_HEADERS).split(",") if OTLP_HEADERS else None),
    )
    trace.get_tracer_provider().add_span_processor(
        BatchSpanProcessor(FilteringSpanExporter(otlp_exporter))
    )

# Add app_name to the metrics
app_info = Info("fastapi_app_info", "Application Info")
app_info.info({"app_name": SERVICE_NAME})


def create_app(settings: Optional[GrafanaSettings] = None) -> FastAPI:
    """
    Build the console gateway. ``settings`` defaults to the environment
    snapshot and is shared by the middleware and the helper routes.
    """
    settings = settings if settings is not None else load_settings()
    if settings.is_configured:
        logger.info(
            f"Grafana upstream: {settings.url}, token {token_fingerprint(settings.api_token)}"
        )
    else:
        logger.warning("Grafana upstream is not configured; proxied paths return 500")

    app = FastAPI()
    app.state.grafana_settings = settings

    # Innermost: metrics and tracing wrap proxied requests too
    app.add_middleware(GrafanaRewriteMiddleware, settings=settings)
    Instrumentator().instrument(app).expose(app)
    FastAPIInstrumentor.instrument_app(app)

    app.include_router(grafana_router)
    return app


app = create_app()
