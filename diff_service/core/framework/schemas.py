"""Schemas de los mensajes del framework.

Formato de un thing (REST ``/things`` y eventos MQTT):
{
    "id": "5b0e...",
    "type": "device",
    "pubsub": {"topic": "openchirp/device/5b0e..."},
    "config": [
        {"key": "InputTopics", "value": "temp, humidity"},
        {"key": "OutputTopics", "value": "temp_rate"}
    ]
}

Evento en ``<service topic>/thing/events``:
{"action": "new" | "update" | "delete", "thing": {...}}
"""

from __future__ import annotations

from typing import Dict, List, Literal, Optional

import orjson
from pydantic import BaseModel, ConfigDict, Field, ValidationError

DEVICE_TOPIC_ROOT = "openchirp/device"


class PubSubInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    topic: str = ""


class ConfigItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    key: str
    value: Optional[str] = ""


class ServiceInfo(BaseModel):
    """Descripción del servicio devuelta por ``GET /apiv1/service/{id}``."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(..., alias="_id")
    name: str = ""
    pubsub: PubSubInfo = Field(default_factory=PubSubInfo)

    @property
    def topic(self) -> str:
        return self.pubsub.topic or f"openchirp/service/{self.id}"


class ThingInfo(BaseModel):
    """Dispositivo enlazado al servicio junto con su configuración."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(..., alias="_id")
    type: str = "device"
    pubsub: PubSubInfo = Field(default_factory=PubSubInfo)
    config: List[ConfigItem] = Field(default_factory=list)

    @property
    def topic(self) -> str:
        return self.pubsub.topic or f"{DEVICE_TOPIC_ROOT}/{self.id}"

    def config_map(self) -> Dict[str, str]:
        return {item.key: item.value or "" for item in self.config}


class ThingEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    action: Literal["new", "update", "delete"]
    thing: ThingInfo


def parse_thing_event(payload: bytes) -> Optional[ThingEvent]:
    """Parsea un evento de dispositivo. None si el payload es inválido."""
    try:
        return ThingEvent.model_validate(orjson.loads(payload))
    except (orjson.JSONDecodeError, ValidationError):
        return None
