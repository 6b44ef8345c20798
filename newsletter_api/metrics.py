from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

REQS = Counter(
    "newsletter_requests_total",
    "Requests",
    ["method", "path", "status"],
)
LAT = Histogram(
    "newsletter_latency_seconds",
    "Latency",
    ["method", "path"],
)
SUBSCRIPTIONS = Counter(
    "newsletter_subscriptions_total",
    "Subscribe attempts by outcome",
    ["outcome"],
)
PUBLISH_FAILURES = Counter(
    "newsletter_publish_failures_total",
    "Subscribe events that could not be published",
)


def router() -> APIRouter:
    r = APIRouter()

    @r.get("/metrics", include_in_schema=False)
    def metrics():
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return r
