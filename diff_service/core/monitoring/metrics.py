"""Métricas Prometheus del servicio."""

from __future__ import annotations

import logging

from prometheus_client import Counter, Gauge, start_http_server

logger = logging.getLogger(__name__)

DIFF_MESSAGES = Counter(
    "diff_service_messages_total",
    "Messages handled by diff devices",
    ["status"],  # published, malformed, baseline, dropped
)
DEVICE_EVENTS = Counter(
    "diff_service_device_events_total",
    "Device lifecycle events handled by the service client",
    ["action"],  # link, unlink, relink
)
LINKED_DEVICES = Gauge(
    "diff_service_linked_devices",
    "Devices currently linked to the service",
)


def start_metrics_server(port: int) -> bool:
    """Expone /metrics en ``port``. 0 deshabilita."""
    if port <= 0:
        return False
    start_http_server(port)
    logger.info("[METRICS] Serving on :%d", port)
    return True
