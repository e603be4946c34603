"""Domain layer - Interfaces de dispositivo y bindings."""

from .device_interface import (
    TRANSDUCER_PREFIX,
    DeviceFactory,
    IDevice,
    IDeviceControl,
    Message,
)
from .stream_binding import StreamBinding, build_stream_bindings, parse_topic_list

__all__ = [
    "TRANSDUCER_PREFIX",
    "DeviceFactory",
    "IDevice",
    "IDeviceControl",
    "Message",
    "StreamBinding",
    "build_stream_bindings",
    "parse_topic_list",
]
