"""Cliente de servicio gestionado.

Convierte los eventos del framework en llamadas a ``IDevice``:

- ``new``    → process_link
- ``delete`` → process_unlink
- ``update`` → process_config_change; si se rechaza, unlink + link
- mensajes de transductores → process_message

Cada dispositivo tiene su propio lock: enlace, mensajes, cambios de
config y desenlace de un mismo dispositivo nunca se ejecutan a la vez.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from functools import partial
from typing import Callable, Dict, Optional, Tuple

import orjson

from ...errors import TransportError
from ..domain.device_interface import DeviceFactory, IDevice, Message
from ..monitoring.metrics import DEVICE_EVENTS, LINKED_DEVICES
from ..monitoring.stats import Stats
from .device_control import ManagedDeviceControl, Transport
from .rest_client import FrameworkRestClient
from .schemas import ServiceInfo, ThingEvent, ThingInfo, parse_thing_event

logger = logging.getLogger(__name__)

UNEXPECTED_DISCONNECT_STATUS = "Unexpected disconnect!"
RUNNING_STATUS = "Running"

TransportFactory = Callable[[Tuple[str, str]], Transport]


def status_payload(message: str) -> bytes:
    return orjson.dumps({"message": message})


@dataclass
class _DeviceEntry:
    device: IDevice
    control: Optional[ManagedDeviceControl] = None
    lock: threading.Lock = field(default_factory=threading.Lock)
    active: bool = True


class ManagedServiceClient:
    """Gestiona las sesiones de todos los dispositivos enlazados al servicio.

    Uso:
        client = ManagedServiceClient(rest, transport_factory, DiffDevice)
        client.start()
        client.set_status("Started")
        ...
        client.stop()
    """

    def __init__(
        self,
        rest: FrameworkRestClient,
        transport_factory: TransportFactory,
        device_factory: DeviceFactory,
        running_status: bool = False,
    ):
        self._rest = rest
        self._transport_factory = transport_factory
        self._device_factory = device_factory
        self._running_status = running_status

        self._service: Optional[ServiceInfo] = None
        self._transport: Optional[Transport] = None
        self._devices: Dict[str, _DeviceEntry] = {}
        self._registry_lock = threading.Lock()
        self._stats = Stats()

    # ------------------------------------------------------------------
    # Ciclo de vida
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Conecta al framework y enlaza los dispositivos existentes.

        Raises:
            FrameworkError: la API REST no responde o responde basura.
            TransportError: no se pudo conectar al broker.
        """
        self._service = self._rest.get_service_info()
        logger.info("[SERVICE] Service %s (%s)", self._service.name or "-", self._service.id)

        self._transport = self._transport_factory(
            (self.status_topic, status_payload(UNEXPECTED_DISCONNECT_STATUS).decode())
        )
        if not self._transport.connect():
            raise TransportError("Failed to connect to MQTT broker")

        self._transport.subscribe(self.events_topic, self._on_event)

        things = self._rest.get_service_things()
        logger.info("[SERVICE] Linking %d existing devices", len(things))
        for thing in things:
            self._link(thing)

    def stop(self) -> None:
        """Desenlaza todos los dispositivos y desconecta."""
        with self._registry_lock:
            device_ids = list(self._devices)
        for device_id in device_ids:
            self._unlink(device_id)

        if self._transport is not None:
            self._transport.disconnect()
        self._rest.close()
        logger.info("[SERVICE] Stopped. %s", self._stats)

    def set_status(self, message: str) -> bool:
        """Publica el estado global del servicio."""
        if self._transport is None or self._service is None:
            logger.error("[SERVICE] Cannot publish status %r before start", message)
            return False
        return self._transport.publish(self.status_topic, status_payload(message), retain=True)

    # ------------------------------------------------------------------
    # Topics
    # ------------------------------------------------------------------

    @property
    def service_topic(self) -> str:
        if self._service is None:
            raise RuntimeError("service not started")
        return self._service.topic

    @property
    def status_topic(self) -> str:
        return f"{self.service_topic}/status"

    @property
    def events_topic(self) -> str:
        return f"{self.service_topic}/thing/events"

    def device_status_topic(self, device_id: str) -> str:
        return f"{self.service_topic}/thing/{device_id}/status"

    # ------------------------------------------------------------------
    # Eventos del framework
    # ------------------------------------------------------------------

    def _on_event(self, topic: str, payload: bytes) -> None:
        event = parse_thing_event(payload)
        if event is None:
            logger.warning("[SERVICE] Invalid device event on %s: %r", topic, payload[:200])
            return
        self.handle_event(event)

    def handle_event(self, event: ThingEvent) -> None:
        logger.debug("[SERVICE] Event %s for device %s", event.action, event.thing.id)

        if event.action == "new":
            self._link(event.thing)
        elif event.action == "delete":
            self._unlink(event.thing.id)
        elif event.action == "update":
            self._update(event.thing)

        if self._running_status:
            self.set_status(RUNNING_STATUS)

    def _link(self, thing: ThingInfo) -> None:
        with self._registry_lock:
            existing = thing.id in self._devices
        if existing:
            logger.info("[SERVICE] Device %s already linked - relinking", thing.id)
            self._unlink(thing.id)

        entry = _DeviceEntry(device=self._device_factory())
        entry.control = ManagedDeviceControl(
            device_id=thing.id,
            topic_prefix=thing.topic,
            config=thing.config_map(),
            transport=self._transport,
            on_message=partial(self._deliver, entry),
            stats=self._stats,
        )

        with entry.lock:
            try:
                status = entry.device.process_link(entry.control)
            except Exception as e:
                logger.exception("[SERVICE] Link failed for device %s: %s", thing.id, e)
                entry.control.unsubscribe_all()
                entry.active = False
                self._publish_device_status(thing.id, f"Link failed: {e}")
                return

            with self._registry_lock:
                self._devices[thing.id] = entry
                LINKED_DEVICES.set(len(self._devices))

        self._stats.links += 1
        DEVICE_EVENTS.labels(action="link").inc()
        logger.info("[SERVICE] Linked device %s", thing.id)
        self._publish_device_status(thing.id, status)

    def _unlink(self, device_id: str) -> None:
        with self._registry_lock:
            entry = self._devices.pop(device_id, None)
            LINKED_DEVICES.set(len(self._devices))
        if entry is None:
            logger.debug("[SERVICE] Unlink for unknown device %s", device_id)
            return

        with entry.lock:
            entry.active = False
            entry.control.unsubscribe_all()
            try:
                entry.device.process_unlink(entry.control)
            except Exception as e:
                logger.exception("[SERVICE] Unlink failed for device %s: %s", device_id, e)

        self._stats.unlinks += 1
        DEVICE_EVENTS.labels(action="unlink").inc()
        logger.info("[SERVICE] Unlinked device %s", device_id)

    def _update(self, thing: ThingInfo) -> None:
        with self._registry_lock:
            entry = self._devices.get(thing.id)
        if entry is None:
            self._link(thing)
            return

        new_config = thing.config_map()
        with entry.lock:
            original = dict(entry.control.config)
            changes = {k: v for k, v in new_config.items() if original.get(k) != v}
            try:
                status, applied = entry.device.process_config_change(entry.control, changes, original)
            except Exception as e:
                logger.exception("[SERVICE] Config change failed for device %s: %s", thing.id, e)
                status, applied = "", False
            if applied:
                entry.control.config = new_config

        if applied:
            if status:
                self._publish_device_status(thing.id, status)
            return

        logger.info("[SERVICE] Config change rejected by device %s - relinking", thing.id)
        DEVICE_EVENTS.labels(action="relink").inc()
        self._unlink(thing.id)
        self._link(thing)

    def _deliver(self, entry: _DeviceEntry, message: Message) -> None:
        """Entrega un mensaje de transductor a su dispositivo."""
        self._stats.received += 1
        self._stats.last_message_at = time.time()

        with entry.lock:
            if not entry.active:
                logger.debug("[SERVICE] Dropping message for unlinked device on %s", message.topic)
                return
            try:
                entry.device.process_message(entry.control, message)
            except Exception as e:
                logger.exception("[SERVICE] Device %s failed on %s: %s", entry.control.device_id, message.topic, e)
                self._stats.failed += 1

    def _publish_device_status(self, device_id: str, message: str) -> None:
        self._transport.publish(self.device_status_topic(device_id), status_payload(message))

    # ------------------------------------------------------------------
    # Observabilidad
    # ------------------------------------------------------------------

    @property
    def linked_devices(self) -> Dict[str, IDevice]:
        with self._registry_lock:
            return {device_id: entry.device for device_id, entry in self._devices.items()}

    @property
    def is_connected(self) -> bool:
        return self._transport.is_connected if self._transport else False

    @property
    def stats(self) -> dict:
        return {
            "connected": self.is_connected,
            "devices": len(self.linked_devices),
            **self._stats.to_dict(),
        }

    def health_check(self) -> dict:
        return {
            "healthy": self.is_connected,
            **self.stats,
        }
