import logging
from typing import Optional, Dict
from contextlib import contextmanager

from opentelemetry.trace import Tracer

from admin_proxy.utils import mask_token

logger = logging.getLogger("uvicorn.error")


@contextmanager
def traced_upstream_call(
    tracer: Tracer,
    operation: str,
    method: str,
    target_url: str,
    start_message: str,
    secret: Optional[str] = None,
    extra_attrs: Optional[Dict] = None,
):
    """Open a span for one upstream call, tag it, and log a start message."""
    with tracer.start_as_current_span(operation) as span:
        span.set_attribute("proxy.method", method)
        span.set_attribute("proxy.target_url", target_url)
        if extra_attrs:
            for k, v in extra_attrs.items():
                span.set_attribute(k, v)
        logger.info(mask_token(start_message, secret))
        yield span
