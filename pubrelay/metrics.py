from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REQS = Counter(
    "pubrelay_requests_total",
    "Requests",
    ["method", "path", "status"],
)
LAT = Histogram(
    "pubrelay_latency_seconds",
    "Latency",
    ["method", "path"],
)
DELIVERIES = Counter(
    "pubrelay_deliveries_total",
    "Outbound deliveries to subscribers",
    ["outcome"],
)
SUBSCRIBERS = Gauge(
    "pubrelay_subscribers",
    "Registered subscriber URLs",
)


def router() -> APIRouter:
    r = APIRouter()

    @r.get("/metrics", include_in_schema=False)
    def metrics():
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return r
