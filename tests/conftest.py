"""Fixtures y dobles compartidos por los tests."""

from typing import Any, Callable, Dict, List, Tuple
from unittest.mock import MagicMock

import pytest

from diff_service.core.domain.device_interface import IDeviceControl
from diff_service.core.framework.rest_client import FrameworkRestClient
from diff_service.core.framework.schemas import ServiceInfo, ThingInfo


class FakeDeviceControl(IDeviceControl):
    """Control en memoria: registra suscripciones y publicaciones."""

    def __init__(self, config: Dict[str, str], device_id: str = "dev-1"):
        self._config = dict(config)
        self._device_id = device_id
        self.subscriptions: List[Tuple[str, Any]] = []
        self.published: List[Tuple[str, str]] = []

    @property
    def device_id(self) -> str:
        return self._device_id

    @property
    def config(self) -> Dict[str, str]:
        return self._config

    def subscribe(self, topic: str, key: Any) -> None:
        self.subscriptions.append((topic, key))

    def publish(self, topic: str, payload: str) -> None:
        self.published.append((topic, payload))


class FakeTransport:
    """Broker falso con entrega síncrona."""

    def __init__(self, connect_ok: bool = True):
        self.connect_ok = connect_ok
        self.connected = False
        self.disconnected = False
        self.subscriptions: Dict[str, Callable[[str, bytes], None]] = {}
        self.published: List[Tuple[str, Any, bool]] = []

    def connect(self) -> bool:
        self.connected = self.connect_ok
        return self.connect_ok

    def disconnect(self) -> None:
        self.connected = False
        self.disconnected = True

    def subscribe(self, topic, callback, qos=1) -> None:
        self.subscriptions[topic] = callback

    def unsubscribe(self, topic) -> None:
        self.subscriptions.pop(topic, None)

    def publish(self, topic, payload, retain=False, qos=0) -> bool:
        self.published.append((topic, payload, retain))
        return True

    @property
    def is_connected(self) -> bool:
        return self.connected

    def deliver(self, topic: str, payload: bytes) -> None:
        self.subscriptions[topic](topic, payload)

    def payloads_for(self, topic: str) -> list:
        return [payload for t, payload, _ in self.published if t == topic]


SERVICE_TOPIC = "openchirp/service/svc-1"


def make_thing(device_id: str, inputs: str, outputs: str = "") -> ThingInfo:
    config = [{"key": "InputTopics", "value": inputs}]
    if outputs:
        config.append({"key": "OutputTopics", "value": outputs})
    return ThingInfo.model_validate({
        "id": device_id,
        "pubsub": {"topic": f"openchirp/device/{device_id}"},
        "config": config,
    })


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def mock_rest():
    """Mock de la API REST con un servicio sin dispositivos."""
    rest = MagicMock(spec=FrameworkRestClient)
    rest.get_service_info.return_value = ServiceInfo.model_validate({
        "id": "svc-1",
        "name": "math-diff",
        "pubsub": {"topic": SERVICE_TOPIC},
    })
    rest.get_service_things.return_value = []
    return rest
