import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "admin-proxy")

GRAFANA_URL = os.environ.get(
    "GRAFANA_URL", os.environ.get("NEXT_PUBLIC_GRAFANA_URL", "")
).rstrip("/")
GRAFANA_API_TOKEN = os.environ.get("GRAFANA_API_TOKEN", "")
GRAFANA_PROXY_TIMEOUT = float(os.getenv("GRAFANA_PROXY_TIMEOUT", "30"))
# Response headers stripped by the dashboard relay on top of the frame-blocking ones
GRAFANA_STRIPPED_RESPONSE_HEADERS = [
    h.strip().lower()
    for h in os.getenv("GRAFANA_STRIPPED_RESPONSE_HEADERS", "").split(",")
    if h.strip()
]

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")
