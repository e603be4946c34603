"""Cliente MQTT del servicio."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, Optional, Tuple
from urllib.parse import urlparse

import paho.mqtt.client as mqtt

logger = logging.getLogger(__name__)

MessageCallback = Callable[[str, bytes], None]

_DEFAULT_PORTS = {"tcp": 1883, "mqtt": 1883, "tls": 8883, "ssl": 8883, "mqtts": 8883}
_TLS_SCHEMES = {"tls", "ssl", "mqtts"}


def parse_server_uri(uri: str) -> Tuple[str, int, bool]:
    """``scheme://host:port`` -> (host, port, tls).

    Schemes aceptados: tcp, mqtt (plano) y tls, ssl, mqtts (TLS).
    """
    parsed = urlparse(uri)
    scheme = (parsed.scheme or "").lower()
    if scheme not in _DEFAULT_PORTS:
        raise ValueError(f"Unsupported MQTT scheme in {uri!r} (expected tcp or tls)")
    if not parsed.hostname:
        raise ValueError(f"Missing host in MQTT server URI {uri!r}")
    port = parsed.port or _DEFAULT_PORTS[scheme]
    return parsed.hostname, port, scheme in _TLS_SCHEMES


class MQTTClient:
    """Cliente MQTT ligero sobre paho.

    Responsabilidades:
    - Conexión/desconexión al broker (tcp o tls)
    - Suscripciones con callback por topic, re-emitidas al reconectar
    - Publicación fire-and-forget
    - Last will opcional
    """

    def __init__(
        self,
        server_uri: str = "tcp://localhost:1883",
        username: Optional[str] = None,
        password: Optional[str] = None,
        client_id: str = "math-diff-service",
        will: Optional[Tuple[str, str]] = None,
        connect_timeout: float = 5.0,
    ):
        self.broker_host, self.broker_port, self.use_tls = parse_server_uri(server_uri)
        self.username = username
        self.password = password
        self.client_id = f"{client_id}-{int(time.time())}"
        self.connect_timeout = connect_timeout
        self._will = will

        self._client: Optional[mqtt.Client] = None
        self._connected = False
        self._lock = threading.Lock()
        self._subscriptions: Dict[str, Tuple[MessageCallback, int]] = {}

    def connect(self) -> bool:
        """Conecta al broker y espera el CONNACK."""
        try:
            self._client = mqtt.Client(
                client_id=self.client_id,
                protocol=mqtt.MQTTv311,
                callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            )

            self._client.on_connect = self._on_connect
            self._client.on_disconnect = self._on_disconnect

            if self.username and self.password:
                self._client.username_pw_set(self.username, self.password)
            if self.use_tls:
                self._client.tls_set()
            if self._will:
                will_topic, will_payload = self._will
                self._client.will_set(will_topic, will_payload, qos=1, retain=True)

            logger.info("[MQTT] Connecting to %s:%d (tls=%s)", self.broker_host, self.broker_port, self.use_tls)
            self._client.connect(self.broker_host, self.broker_port, keepalive=60)
            self._client.loop_start()

            # Esperar conexión
            for _ in range(int(self.connect_timeout * 10)):
                if self._connected:
                    return True
                time.sleep(0.1)

            logger.error("[MQTT] Connection timeout")
            self._client.loop_stop()
            return False

        except Exception as e:
            logger.exception("[MQTT] Connection failed: %s", e)
            return False

    def disconnect(self):
        """Desconecta del broker."""
        if self._client:
            try:
                self._client.disconnect()
                self._client.loop_stop()
            except Exception as e:
                logger.warning("[MQTT] Disconnect error: %s", e)
        self._connected = False

    def subscribe(self, topic: str, callback: MessageCallback, qos: int = 1) -> None:
        """Suscribe ``topic`` y entrega cada mensaje a ``callback(topic, payload)``."""
        with self._lock:
            self._subscriptions[topic] = (callback, qos)
        if self._client is None:
            return
        self._client.message_callback_add(topic, self._make_handler(callback))
        if self._connected:
            self._client.subscribe(topic, qos=qos)
        logger.debug("[MQTT] Subscribed to %s", topic)

    def unsubscribe(self, topic: str) -> None:
        with self._lock:
            known = self._subscriptions.pop(topic, None) is not None
        if not known or self._client is None:
            return
        self._client.message_callback_remove(topic)
        if self._connected:
            self._client.unsubscribe(topic)
        logger.debug("[MQTT] Unsubscribed from %s", topic)

    def publish(self, topic: str, payload: str, retain: bool = False, qos: int = 0) -> bool:
        """Publica sin esperar confirmación."""
        if self._client is None:
            logger.warning("[MQTT] Publish to %s before connect", topic)
            return False
        info = self._client.publish(topic, payload, qos=qos, retain=retain)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            logger.warning("[MQTT] Publish to %s failed: rc=%s", topic, info.rc)
            return False
        return True

    def _make_handler(self, callback: MessageCallback):
        def _handler(client, userdata, msg):
            callback(msg.topic, msg.payload)
        return _handler

    def _on_connect(self, client, userdata, flags, rc, properties=None):
        """Callback de conexión - re-suscribe todo."""
        if rc == 0:
            self._connected = True
            logger.info("[MQTT] Connected to broker")
            with self._lock:
                subscriptions = list(self._subscriptions.items())
            for topic, (callback, qos) in subscriptions:
                client.message_callback_add(topic, self._make_handler(callback))
                client.subscribe(topic, qos=qos)
            if subscriptions:
                logger.info("[MQTT] Re-subscribed %d topics", len(subscriptions))
        else:
            self._connected = False
            logger.error("[MQTT] Connection failed: rc=%s", rc)

    def _on_disconnect(self, client, userdata, flags, rc, properties=None):
        """Callback de desconexión."""
        self._connected = False
        logger.warning("[MQTT] Disconnected (rc=%s)", rc)

    @property
    def is_connected(self) -> bool:
        return self._connected
