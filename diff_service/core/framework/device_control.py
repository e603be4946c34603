"""Control de dispositivo respaldado por el transporte MQTT."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Protocol, Union

from ..domain.device_interface import IDeviceControl, Message
from ..monitoring.stats import Stats

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Lo mínimo que el cliente de servicio necesita del broker."""

    def connect(self) -> bool: ...

    def disconnect(self) -> None: ...

    def subscribe(self, topic: str, callback: Callable[[str, bytes], None], qos: int = 1) -> None: ...

    def unsubscribe(self, topic: str) -> None: ...

    def publish(self, topic: str, payload: Union[str, bytes], retain: bool = False, qos: int = 0) -> bool: ...

    @property
    def is_connected(self) -> bool: ...


class ManagedDeviceControl(IDeviceControl):
    """Traduce topics relativos al dispositivo a topics MQTT absolutos.

    ``subscribe("transducer/temp", 0)`` escucha en
    ``openchirp/device/<id>/transducer/temp`` y entrega cada mensaje a
    ``on_message`` con key 0.
    """

    def __init__(
        self,
        device_id: str,
        topic_prefix: str,
        config: Dict[str, str],
        transport: Transport,
        on_message: Callable[[Message], None],
        stats: Optional[Stats] = None,
    ):
        self._device_id = device_id
        self._prefix = topic_prefix.rstrip("/")
        self._config = dict(config)
        self._transport = transport
        self._on_message = on_message
        self._stats = stats
        self._topics: List[str] = []

    @property
    def device_id(self) -> str:
        return self._device_id

    @property
    def config(self) -> Dict[str, str]:
        return self._config

    @config.setter
    def config(self, value: Dict[str, str]) -> None:
        self._config = dict(value)

    def full_topic(self, topic: str) -> str:
        return f"{self._prefix}/{topic.lstrip('/')}"

    def subscribe(self, topic: str, key: Any) -> None:
        full_topic = self.full_topic(topic)

        def _callback(received_topic: str, payload: bytes) -> None:
            self._on_message(Message(topic=received_topic, key=key, payload=payload))

        self._transport.subscribe(full_topic, _callback)
        self._topics.append(full_topic)

    def publish(self, topic: str, payload: str) -> None:
        full_topic = self.full_topic(topic)
        if self._transport.publish(full_topic, payload) and self._stats is not None:
            self._stats.published += 1

    def unsubscribe_all(self) -> None:
        """Cancela todas las suscripciones del dispositivo."""
        for full_topic in self._topics:
            self._transport.unsubscribe(full_topic)
        self._topics.clear()
