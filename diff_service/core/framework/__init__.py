"""Framework layer - API REST, eventos y sesiones de dispositivo."""

from .device_control import ManagedDeviceControl, Transport
from .rest_client import FrameworkRestClient
from .schemas import ServiceInfo, ThingEvent, ThingInfo, parse_thing_event
from .service_client import ManagedServiceClient

__all__ = [
    "ManagedDeviceControl",
    "Transport",
    "FrameworkRestClient",
    "ServiceInfo",
    "ThingEvent",
    "ThingInfo",
    "parse_thing_event",
    "ManagedServiceClient",
]
