"""Transport layer - Conexión MQTT."""

from .mqtt_client import MQTTClient, parse_server_uri

__all__ = ["MQTTClient", "parse_server_uri"]
