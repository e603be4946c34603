"""Monitoring layer - Stats y métricas."""

from .stats import Stats
from .metrics import DEVICE_EVENTS, DIFF_MESSAGES, LINKED_DEVICES, start_metrics_server

__all__ = ["Stats", "DEVICE_EVENTS", "DIFF_MESSAGES", "LINKED_DEVICES", "start_metrics_server"]
