from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Escala numérica heredada del framework: debug=5, info=4, warning=3,
# error=2, fatal=1, panic=0
LOG_LEVELS = {
    5: logging.DEBUG,
    4: logging.INFO,
    3: logging.WARNING,
    2: logging.ERROR,
    1: logging.CRITICAL,
    0: logging.CRITICAL,
}


@dataclass(frozen=True)
class Settings:
    framework_server: str
    mqtt_server: str
    service_id: str
    service_token: str
    log_level: int

    first_diff_against_zero: bool
    running_status: bool
    metrics_port: int


def to_logging_level(level: int) -> int:
    """Escala 0-5 -> nivel de ``logging``. Fuera de rango se satura."""
    return LOG_LEVELS[max(0, min(5, level))]


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def get_settings() -> Settings:
    # Load env file (if present) but still allow overriding via real environment variables.
    env_file = os.getenv("DIFF_SERVICE_ENV_FILE", ".env")
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    return Settings(
        framework_server=os.getenv("FRAMEWORK_SERVER", "http://localhost:7000"),
        mqtt_server=os.getenv("MQTT_SERVER", "tls://localhost:1883"),
        service_id=os.getenv("SERVICE_ID", ""),
        service_token=os.getenv("SERVICE_TOKEN", ""),
        log_level=int(os.getenv("LOG_LEVEL", "4")),
        first_diff_against_zero=_env_bool("FIRST_DIFF_AGAINST_ZERO", True),
        running_status=_env_bool("RUNNING_STATUS", True),
        metrics_port=int(os.getenv("METRICS_PORT", "0")),
    )
