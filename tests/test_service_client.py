"""Tests del cliente de servicio gestionado con un broker falso.

Flujo completo: evento de enlace → suscripción → mensaje → diferencia
publicada → desenlace.
"""

import threading
from unittest.mock import MagicMock

import orjson
import pytest

from diff_service.core.diff.device import DiffDevice
from diff_service.core.domain.device_interface import IDevice
from diff_service.core.framework.service_client import ManagedServiceClient
from diff_service.errors import FrameworkError, TransportError

from conftest import SERVICE_TOPIC, FakeTransport, make_thing

EVENTS_TOPIC = f"{SERVICE_TOPIC}/thing/events"
STATUS_TOPIC = f"{SERVICE_TOPIC}/status"


def _event(action: str, device_id: str, inputs: str = "", outputs: str = "") -> bytes:
    thing = make_thing(device_id, inputs, outputs)
    return orjson.dumps({"action": action, "thing": thing.model_dump()})


def _status(payload) -> str:
    return orjson.loads(payload)["message"]


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def wills():
    return []


@pytest.fixture
def client(mock_rest, fake_transport, wills) -> ManagedServiceClient:
    def factory(will):
        wills.append(will)
        return fake_transport

    return ManagedServiceClient(mock_rest, factory, DiffDevice)


@pytest.fixture
def started(client) -> ManagedServiceClient:
    client.start()
    return client


# =============================================================================
# ARRANQUE
# =============================================================================

class TestStart:
    def test_subscribes_events_topic(self, started, fake_transport):
        assert EVENTS_TOPIC in fake_transport.subscriptions
        assert started.is_connected is True

    def test_will_is_unexpected_disconnect_status(self, started, wills):
        topic, payload = wills[0]
        assert topic == STATUS_TOPIC
        assert _status(payload) == "Unexpected disconnect!"

    def test_links_existing_things(self, mock_rest, client, fake_transport):
        mock_rest.get_service_things.return_value = [make_thing("dev-1", "temp")]

        client.start()

        assert "dev-1" in client.linked_devices
        assert "openchirp/device/dev-1/transducer/temp" in fake_transport.subscriptions
        status_topic = f"{SERVICE_TOPIC}/thing/dev-1/status"
        assert [_status(p) for p in fake_transport.payloads_for(status_topic)] == ["Success"]

    def test_transport_failure_raises(self, mock_rest):
        client = ManagedServiceClient(mock_rest, lambda will: FakeTransport(connect_ok=False), DiffDevice)

        with pytest.raises(TransportError):
            client.start()

    def test_framework_failure_raises(self, mock_rest, client):
        mock_rest.get_service_info.side_effect = FrameworkError("down", status_code=503)

        with pytest.raises(FrameworkError):
            client.start()

    def test_set_status_is_retained(self, started, fake_transport):
        assert started.set_status("Started") is True

        topic, payload, retain = fake_transport.published[-1]
        assert topic == STATUS_TOPIC
        assert _status(payload) == "Started"
        assert retain is True

    def test_set_status_before_start(self, client):
        assert client.set_status("Started") is False


# =============================================================================
# FLUJO DE MENSAJES
# =============================================================================

class TestMessageFlow:
    def test_diff_published_on_output_topic(self, started, fake_transport):
        fake_transport.deliver(EVENTS_TOPIC, _event("new", "dev-1", "temp,light", "temp_rate"))

        fake_transport.deliver("openchirp/device/dev-1/transducer/temp", b"20")
        fake_transport.deliver("openchirp/device/dev-1/transducer/temp", b"21.5")
        fake_transport.deliver("openchirp/device/dev-1/transducer/light", b"300")

        assert fake_transport.payloads_for("openchirp/device/dev-1/transducer/temp_rate") == [
            "20.0000000000",
            "1.5000000000",
        ]
        assert fake_transport.payloads_for("openchirp/device/dev-1/transducer/light_diff") == ["300.0000000000"]
        assert started.stats["received"] == 3
        assert started.stats["published"] == 3

    def test_devices_are_isolated(self, started, fake_transport):
        fake_transport.deliver(EVENTS_TOPIC, _event("new", "dev-1", "temp"))
        fake_transport.deliver(EVENTS_TOPIC, _event("new", "dev-2", "temp"))

        fake_transport.deliver("openchirp/device/dev-1/transducer/temp", b"10")
        fake_transport.deliver("openchirp/device/dev-2/transducer/temp", b"100")
        fake_transport.deliver("openchirp/device/dev-1/transducer/temp", b"11")

        assert fake_transport.payloads_for("openchirp/device/dev-1/transducer/temp_diff") == [
            "10.0000000000",
            "1.0000000000",
        ]
        assert fake_transport.payloads_for("openchirp/device/dev-2/transducer/temp_diff") == ["100.0000000000"]

    def test_malformed_payload_publishes_nothing(self, started, fake_transport):
        fake_transport.deliver(EVENTS_TOPIC, _event("new", "dev-1", "temp"))

        fake_transport.deliver("openchirp/device/dev-1/transducer/temp", b"NaN-ish")

        assert fake_transport.payloads_for("openchirp/device/dev-1/transducer/temp_diff") == []
        assert started.stats["failed"] == 0

    def test_device_exception_is_contained(self, mock_rest, fake_transport):
        device = MagicMock(spec=IDevice)
        device.process_link.side_effect = lambda control: control.subscribe("transducer/t", 0) or "Success"
        device.process_message.side_effect = RuntimeError("boom")
        client = ManagedServiceClient(mock_rest, lambda will: fake_transport, lambda: device)
        client.start()
        fake_transport.deliver(EVENTS_TOPIC, _event("new", "dev-1", "t"))

        fake_transport.deliver("openchirp/device/dev-1/transducer/t", b"1")

        assert client.stats["failed"] == 1
        assert client.health_check()["healthy"] is True

    def test_invalid_event_is_ignored(self, started, fake_transport):
        fake_transport.deliver(EVENTS_TOPIC, b"garbage")

        assert started.linked_devices == {}


# =============================================================================
# DESENLACE Y RECONFIGURACIÓN
# =============================================================================

class TestLifecycle:
    def test_delete_unlinks_and_unsubscribes(self, started, fake_transport):
        fake_transport.deliver(EVENTS_TOPIC, _event("new", "dev-1", "temp"))
        device = started.linked_devices["dev-1"]

        fake_transport.deliver(EVENTS_TOPIC, _event("delete", "dev-1"))

        assert "dev-1" not in started.linked_devices
        assert "openchirp/device/dev-1/transducer/temp" not in fake_transport.subscriptions
        assert device.is_linked is False

    def test_delete_unknown_device_is_noop(self, started, fake_transport):
        fake_transport.deliver(EVENTS_TOPIC, _event("delete", "ghost"))
        fake_transport.deliver(EVENTS_TOPIC, _event("delete", "ghost"))

        assert started.linked_devices == {}

    def test_update_relinks_with_new_config(self, started, fake_transport):
        fake_transport.deliver(EVENTS_TOPIC, _event("new", "dev-1", "temp"))
        fake_transport.deliver("openchirp/device/dev-1/transducer/temp", b"5")

        fake_transport.deliver(EVENTS_TOPIC, _event("update", "dev-1", "humidity"))

        assert "openchirp/device/dev-1/transducer/temp" not in fake_transport.subscriptions
        assert "openchirp/device/dev-1/transducer/humidity" in fake_transport.subscriptions
        fake_transport.deliver("openchirp/device/dev-1/transducer/humidity", b"7")
        assert fake_transport.payloads_for("openchirp/device/dev-1/transducer/humidity_diff") == ["7.0000000000"]

    def test_update_for_unknown_device_links_it(self, started, fake_transport):
        fake_transport.deliver(EVENTS_TOPIC, _event("update", "dev-9", "temp"))

        assert "dev-9" in started.linked_devices

    def test_duplicate_new_event_relinks(self, started, fake_transport):
        fake_transport.deliver(EVENTS_TOPIC, _event("new", "dev-1", "temp"))
        first = started.linked_devices["dev-1"]

        fake_transport.deliver(EVENTS_TOPIC, _event("new", "dev-1", "temp"))

        assert started.linked_devices["dev-1"] is not first
        assert first.is_linked is False

    def test_running_status_pulse(self, mock_rest, fake_transport):
        client = ManagedServiceClient(mock_rest, lambda will: fake_transport, DiffDevice, running_status=True)
        client.start()

        fake_transport.deliver(EVENTS_TOPIC, _event("new", "dev-1", "temp"))

        assert [_status(p) for p in fake_transport.payloads_for(STATUS_TOPIC)] == ["Running"]

    def test_stop_unlinks_everything(self, started, fake_transport, mock_rest):
        fake_transport.deliver(EVENTS_TOPIC, _event("new", "dev-1", "temp"))
        fake_transport.deliver(EVENTS_TOPIC, _event("new", "dev-2", "temp"))

        started.stop()

        assert started.linked_devices == {}
        assert fake_transport.disconnected is True
        mock_rest.close.assert_called_once()
        assert started.stats["unlinks"] == 2

    def test_unlink_concurrent_with_messages(self, started, fake_transport):
        fake_transport.deliver(EVENTS_TOPIC, _event("new", "dev-1", "temp"))
        callback = fake_transport.subscriptions["openchirp/device/dev-1/transducer/temp"]
        errors = []

        def _pump():
            try:
                for i in range(500):
                    callback("openchirp/device/dev-1/transducer/temp", str(i).encode())
            except Exception as e:  # pragma: no cover
                errors.append(e)

        worker = threading.Thread(target=_pump)
        worker.start()
        fake_transport.deliver(EVENTS_TOPIC, _event("delete", "dev-1"))
        worker.join()

        assert errors == []
        assert started.stats["failed"] == 0
