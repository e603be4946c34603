"""Cliente REST de la API del framework."""

from __future__ import annotations

import logging
from typing import Any, List, Optional

import requests
from pydantic import ValidationError

from ...errors import FrameworkError
from .schemas import ServiceInfo, ThingInfo

logger = logging.getLogger(__name__)

API_PREFIX = "apiv1"


class FrameworkRestClient:
    """Consulta la descripción del servicio y sus dispositivos enlazados.

    Autentica con el id y token del servicio (HTTP basic).
    """

    def __init__(
        self,
        server: str,
        service_id: str,
        service_token: str,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self._base_url = f"{server.rstrip('/')}/{API_PREFIX}"
        self._service_id = service_id
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.auth = (service_id, service_token)

    def get_service_info(self) -> ServiceInfo:
        data = self._get(f"service/{self._service_id}")
        try:
            return ServiceInfo.model_validate(data)
        except ValidationError as e:
            raise FrameworkError(f"Invalid service info: {e}") from e

    def get_service_things(self) -> List[ThingInfo]:
        data = self._get(f"service/{self._service_id}/things")
        if not isinstance(data, list):
            raise FrameworkError("Invalid things listing: expected a JSON array")
        try:
            return [ThingInfo.model_validate(item) for item in data]
        except ValidationError as e:
            raise FrameworkError(f"Invalid thing entry: {e}") from e

    def close(self) -> None:
        self._session.close()

    def _get(self, path: str) -> Any:
        url = f"{self._base_url}/{path}"
        logger.debug("[REST] GET %s", url)
        try:
            response = self._session.get(url, timeout=self._timeout)
        except requests.RequestException as e:
            raise FrameworkError(f"Request to {url} failed: {e}") from e

        if not response.ok:
            raise FrameworkError(
                f"GET {url} returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise FrameworkError(f"Invalid JSON from {url}") from e
