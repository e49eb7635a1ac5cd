from prometheus_client import (
    Counter,
    Summary,
    Gauge,
    CollectorRegistry,
    generate_latest,
    CONTENT_TYPE_LATEST
)

registry = CollectorRegistry()

REQUEST_COUNT = Counter(
    "proxy_requests_total",
    "Total number of proxied requests",
    ["method", "route", "status"],
    registry=registry
)

REQUEST_DURATION = Summary(
    "proxy_request_duration_seconds",
    "Upstream round trip duration in seconds",
    ["route"],
    registry=registry
)

ACTIVE_REQUESTS = Gauge(
    "proxy_concurrent_requests",
    "Current number of requests waiting on an upstream",
    registry=registry
)

TABLE_RELOADS = Counter(
    "proxy_route_table_reloads_total",
    "Route table reload attempts by outcome",
    ["outcome"],
    registry=registry
)

ROUTES_MOUNTED = Gauge(
    "proxy_routes_mounted",
    "Number of routes in the active route table",
    registry=registry
)


def render_prometheus_metrics() -> tuple[bytes, str]:
    return generate_latest(registry), CONTENT_TYPE_LATEST
