"""Prometheus metrics for the SiteGenie API and pipelines."""

import re
import time
import logging

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from prometheus_client.core import CollectorRegistry
from fastapi import FastAPI, Request, Response

logger = logging.getLogger(__name__)

# Custom registry so repeated app construction in one process does not
# collide with the default global registry.
sitegenie_registry = CollectorRegistry()

request_count = Counter(
    'sitegenie_http_requests_total',
    'Total number of HTTP requests',
    ['method', 'endpoint', 'status_code'],
    registry=sitegenie_registry
)

request_duration = Histogram(
    'sitegenie_http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 120.0],
    registry=sitegenie_registry
)

crawl_requests = Counter(
    'sitegenie_crawl_requests_total',
    'Crawl attempts by path (primary or fallback) and outcome',
    ['path', 'status'],
    registry=sitegenie_registry
)

ingestions = Counter(
    'sitegenie_ingestions_total',
    'Ingestion runs by final chatbot status',
    ['status'],
    registry=sitegenie_registry
)

chunks = Counter(
    'sitegenie_chunks_total',
    'Chunk embed+store operations by outcome',
    ['status'],
    registry=sitegenie_registry
)

answers = Counter(
    'sitegenie_answers_total',
    'Answer turns by outcome',
    ['outcome'],
    registry=sitegenie_registry
)


def _normalize_endpoint(path: str) -> str:
    """Normalize endpoint path to reduce cardinality."""
    path = re.sub(r'/[0-9a-f]{8}-?[0-9a-f]{4}-?[0-9a-f]{4}-?[0-9a-f]{4}-?[0-9a-f]{12}', '/{id}', path)
    path = re.sub(r'/\d+', '/{id}', path)
    return path


def setup_prometheus_metrics(app: FastAPI) -> None:
    """Attach request metrics middleware and the /metrics endpoint."""

    @app.middleware("http")
    async def prometheus_middleware(request: Request, call_next):
        endpoint = _normalize_endpoint(request.url.path)
        start_time = time.time()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            request_count.labels(
                method=request.method,
                endpoint=endpoint,
                status_code=str(status_code)
            ).inc()
            request_duration.labels(
                method=request.method,
                endpoint=endpoint
            ).observe(time.time() - start_time)

    @app.get("/metrics")
    async def metrics_endpoint():
        """Prometheus metrics endpoint."""
        return Response(generate_latest(sitegenie_registry), media_type=CONTENT_TYPE_LATEST)

    logger.info("Prometheus metrics configured")
