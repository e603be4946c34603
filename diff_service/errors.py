"""Excepciones del servicio."""

from __future__ import annotations


class DiffServiceError(Exception):
    """Error base del servicio."""


class FrameworkError(DiffServiceError):
    """Fallo hablando con la API REST del framework."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class TransportError(DiffServiceError):
    """Fallo de conexión o publicación con el broker MQTT."""
