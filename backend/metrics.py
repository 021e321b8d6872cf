"""
Prometheus metrics for the backend service.
"""

import os
from fastapi.responses import Response
from prometheus_client import Counter, Gauge, generate_latest, CONTENT_TYPE_LATEST, CollectorRegistry
from prometheus_client.multiprocess import MultiProcessCollector


SUBSCRIBERS = Gauge(
    'backend_subscribers',
    'Connected subscribers'
)

POLLING_ACTIVE = Gauge(
    'backend_polling_active',
    '1 while the shared poll timer is armed'
)

FLIGHTS_CACHED = Gauge(
    'backend_flights_cached',
    'Flights in the last cached batch'
)

FETCH_CYCLES = Counter(
    'backend_fetch_cycles_total',
    'Fetch-normalize-publish cycles',
    ['trigger', 'status']  # trigger: join, tick, bounds, coalesced
)

FETCHES_COALESCED = Counter(
    'backend_fetches_coalesced_total',
    'Cycle requests folded into an in-flight fetch'
)

WEBSOCKET_CONNECTIONS = Gauge(
    'backend_websocket_connections',
    'Active WebSocket connections'
)

WEBSOCKET_MESSAGES_SENT = Counter(
    'backend_websocket_messages_sent_total',
    'Messages sent by type',
    ['type']  # update, error
)

MESSAGES_REJECTED = Counter(
    'backend_messages_rejected_total',
    'Inbound WebSocket messages rejected',
    ['reason']
)

HTTP_REQUESTS = Counter(
    'backend_http_requests_total',
    'HTTP requests',
    ['method', 'path', 'status']
)


async def get_metrics():
    """FastAPI handler for /metrics endpoint."""
    if 'PROMETHEUS_MULTIPROC_DIR' in os.environ:
        # Multi-process mode (for production)
        registry = CollectorRegistry()
        MultiProcessCollector(registry)
        output = generate_latest(registry)
    else:
        # Single-process mode (for development)
        output = generate_latest()

    return Response(content=output, media_type=CONTENT_TYPE_LATEST)
