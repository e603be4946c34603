"""Estadísticas del cliente de servicio."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Stats:
    """Contadores de mensajes y eventos de dispositivo."""

    received: int = 0
    published: int = 0
    failed: int = 0
    links: int = 0
    unlinks: int = 0
    last_message_at: float = 0
    started_at: datetime = field(default_factory=_utc_now)

    def __str__(self) -> str:
        return (
            f"Stats: received={self.received} published={self.published} "
            f"failed={self.failed} links={self.links} unlinks={self.unlinks}"
        )

    def to_dict(self) -> dict:
        """Convierte a diccionario."""
        return {
            "received": self.received,
            "published": self.published,
            "failed": self.failed,
            "links": self.links,
            "unlinks": self.unlinks,
            "last_message_at": self.last_message_at,
            "started_at": self.started_at.isoformat(),
            "success_rate": self._success_rate(),
        }

    def _success_rate(self) -> float:
        """Mensajes procesados sin excepción sobre recibidos."""
        if self.received == 0:
            return 1.0
        return (self.received - self.failed) / self.received

