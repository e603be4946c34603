"""Interfaz abstracta de dispositivo gestionado.

Desacopla la lógica por dispositivo del framework que la hospeda.
Cualquier transporte (MQTT real, broker falso en tests) implementa
``IDeviceControl`` y entrega los eventos de ciclo de vida a ``IDevice``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Tuple


# Prefijo de los streams de transductores dentro del topic de un dispositivo
TRANSDUCER_PREFIX = "transducer"


@dataclass(frozen=True)
class Message:
    """Mensaje pub/sub entregado a un dispositivo."""
    topic: str
    key: Any
    payload: bytes


class IDeviceControl(ABC):
    """Handle que el framework entrega a un dispositivo.

    Implementations:
    - ManagedDeviceControl: topics MQTT bajo el prefijo del dispositivo
    - FakeDeviceControl: registro en memoria para tests
    """

    @property
    @abstractmethod
    def device_id(self) -> str:
        """Identificador del dispositivo en el framework."""
        pass

    @property
    @abstractmethod
    def config(self) -> Dict[str, str]:
        """Configuración del servicio para este dispositivo."""
        pass

    @abstractmethod
    def subscribe(self, topic: str, key: Any) -> None:
        """Registra interés en un topic relativo al dispositivo.

        Cada mensaje recibido en ``topic`` se entregará con ``key``.
        """
        pass

    @abstractmethod
    def publish(self, topic: str, payload: str) -> None:
        """Publica ``payload`` en un topic relativo al dispositivo."""
        pass


class IDevice(ABC):
    """Ciclo de vida de un dispositivo enlazado al servicio."""

    @abstractmethod
    def process_link(self, control: IDeviceControl) -> str:
        """Enlace inicial. Devuelve el estado a reportar para el dispositivo."""
        pass

    @abstractmethod
    def process_unlink(self, control: IDeviceControl) -> None:
        pass

    @abstractmethod
    def process_config_change(
        self,
        control: IDeviceControl,
        changes: Dict[str, str],
        original: Dict[str, str],
    ) -> Tuple[str, bool]:
        """Cambio de configuración en caliente.

        Returns:
            (estado, aplicado). Si ``aplicado`` es False el framework
            re-enlaza el dispositivo con la nueva configuración.
        """
        pass

    @abstractmethod
    def process_message(self, control: IDeviceControl, message: Message) -> None:
        pass


DeviceFactory = Callable[[], IDevice]
