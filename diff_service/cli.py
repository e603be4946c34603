"""CLI entry point for the math diff service."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from functools import partial
from typing import List, Optional

from . import __version__
from .config import Settings, get_settings, to_logging_level
from .core.diff.device import DiffDevice
from .core.framework.rest_client import FrameworkRestClient
from .core.framework.service_client import ManagedServiceClient
from .core.monitoring.metrics import start_metrics_server
from .core.transport.mqtt_client import MQTTClient, parse_server_uri
from .errors import DiffServiceError

logger = logging.getLogger(__name__)


def build_parser(defaults: Settings) -> argparse.ArgumentParser:
    """Flags con valores por defecto tomados del entorno."""
    p = argparse.ArgumentParser(
        prog="math-diff-service",
        description="Publishes the running difference of transducer values",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument(
        "--framework-server",
        default=defaults.framework_server,
        help="framework server's URI (env FRAMEWORK_SERVER)",
    )
    p.add_argument(
        "--mqtt-server",
        default=defaults.mqtt_server,
        help="MQTT server's URI, scheme://host:port where scheme is tcp or tls (env MQTT_SERVER)",
    )
    p.add_argument("--service-id", default=defaults.service_id, help="service id (env SERVICE_ID)")
    p.add_argument("--service-token", default=defaults.service_token, help="service token (env SERVICE_TOKEN)")
    p.add_argument(
        "--log-level",
        type=int,
        default=defaults.log_level,
        help="debug=5, info=4, warning=3, error=2, fatal=1, panic=0 (env LOG_LEVEL)",
    )
    p.add_argument(
        "--first-diff-against-zero",
        action=argparse.BooleanOptionalAction,
        default=defaults.first_diff_against_zero,
        help="first diff of a stream is computed against 0.0 instead of only seeding the baseline",
    )
    p.add_argument(
        "--running-status",
        action=argparse.BooleanOptionalAction,
        default=defaults.running_status,
        help="publish a 'Running' service status on every device event",
    )
    p.add_argument(
        "--metrics-port",
        type=int,
        default=defaults.metrics_port,
        help="serve Prometheus metrics on this port, 0 disables (env METRICS_PORT)",
    )
    return p


def parse_settings(argv: Optional[List[str]] = None) -> Settings:
    p = build_parser(get_settings())
    args = p.parse_args(argv)
    if not args.service_id or not args.service_token:
        p.error("--service-id and --service-token are required (or SERVICE_ID / SERVICE_TOKEN)")
    try:
        parse_server_uri(args.mqtt_server)
    except ValueError as e:
        p.error(str(e))

    return Settings(
        framework_server=args.framework_server,
        mqtt_server=args.mqtt_server,
        service_id=args.service_id,
        service_token=args.service_token,
        log_level=args.log_level,
        first_diff_against_zero=bool(args.first_diff_against_zero),
        running_status=bool(args.running_status),
        metrics_port=args.metrics_port,
    )


def build_client(settings: Settings) -> ManagedServiceClient:
    rest = FrameworkRestClient(settings.framework_server, settings.service_id, settings.service_token)

    def transport_factory(will):
        return MQTTClient(
            settings.mqtt_server,
            username=settings.service_id,
            password=settings.service_token,
            client_id=settings.service_id,
            will=will,
        )

    return ManagedServiceClient(
        rest,
        transport_factory,
        partial(DiffDevice, first_diff_against_zero=settings.first_diff_against_zero),
        running_status=settings.running_status,
    )


def run(
    settings: Settings,
    stop_event: threading.Event,
    client: Optional[ManagedServiceClient] = None,
) -> int:
    """Arranca el servicio y bloquea hasta ``stop_event``. Devuelve exit code."""
    logger.info("Starting Math Diff Service")

    client = client or build_client(settings)
    try:
        client.start()
    except DiffServiceError as e:
        logger.error("Failed to start service client: %s", e)
        client.stop()
        return 1
    logger.info("Started service")

    if not client.set_status("Starting"):
        logger.error("Failed to publish service status")
        client.stop()
        return 1
    logger.info("Published service status")

    if not client.set_status("Started"):
        logger.error("Failed to publish service status")
        client.stop()
        return 1
    logger.info("Published service status")

    while not stop_event.wait(1.0):
        pass
    logger.warning("Shutting down")

    if not client.set_status("Shutting down"):
        logger.error("Failed to publish service status")
    else:
        logger.info("Published service status")

    client.stop()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    settings = parse_settings(argv)

    logging.basicConfig(
        level=to_logging_level(settings.log_level),
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )

    if settings.metrics_port > 0:
        start_metrics_server(settings.metrics_port)

    stop_event = threading.Event()

    def _on_signal(signum, frame):
        logger.info("Received signal %s", signal.Signals(signum).name)
        stop_event.set()

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    return run(settings, stop_event)


if __name__ == "__main__":
    sys.exit(main())
