"""Dispositivo de diferencias.

Por cada stream de entrada publica la diferencia entre el valor recién
llegado y el último valor visto en ese mismo stream.
"""

from __future__ import annotations

import logging
import math
from typing import Dict, Optional, Tuple

from ..domain.device_interface import (
    TRANSDUCER_PREFIX,
    IDevice,
    IDeviceControl,
    Message,
)
from ..domain.stream_binding import StreamBinding, build_stream_bindings
from ..monitoring.metrics import DIFF_MESSAGES

logger = logging.getLogger(__name__)

LINK_STATUS = "Success"
DIFF_DECIMALS = 10


def format_diff(diff: float) -> str:
    """Punto fijo con 10 decimales, nunca notación científica.

    Los no finitos se escriben NaN, +Inf y -Inf.
    """
    if math.isnan(diff):
        return "NaN"
    if math.isinf(diff):
        return "+Inf" if diff > 0 else "-Inf"
    return f"{diff:.{DIFF_DECIMALS}f}"


def parse_value(payload: bytes) -> Optional[float]:
    """Parsea el payload como float. None si no es numérico.

    Espacios alrededor o separadores "_" (" 4.25", "1_000") cuentan
    como payload malformado.
    """
    try:
        text = payload.decode("utf-8")
    except UnicodeDecodeError:
        return None
    if text != text.strip() or "_" in text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


class DiffDevice(IDevice):
    """Sesión de un dispositivo enlazado.

    Mantiene una tupla fija de ``StreamBinding`` indexada por la key de
    suscripción. El host garantiza que los mensajes de un mismo
    dispositivo llegan en orden y nunca de forma concurrente.

    Args:
        first_diff_against_zero: si True la primera diferencia de cada
            stream se calcula contra 0.0; si False el primer valor solo
            fija la base y no se publica nada.
    """

    def __init__(self, first_diff_against_zero: bool = True):
        self._first_diff_against_zero = first_diff_against_zero
        self._streams: Tuple[StreamBinding, ...] = ()
        self._linked = False

    @property
    def streams(self) -> Tuple[StreamBinding, ...]:
        return self._streams

    @property
    def is_linked(self) -> bool:
        return self._linked

    def process_link(self, control: IDeviceControl) -> str:
        logger.debug("[DIFF] device=%s Linking with config: %s", control.device_id, control.config)

        self._streams = build_stream_bindings(control.config)
        for index, binding in enumerate(self._streams):
            control.subscribe(f"{TRANSDUCER_PREFIX}/{binding.input_topic}", index)
        self._linked = True

        logger.debug("[DIFF] device=%s Finished linking %d streams", control.device_id, len(self._streams))
        return LINK_STATUS

    def process_unlink(self, control: IDeviceControl) -> None:
        if not self._linked:
            logger.debug("[DIFF] device=%s Already unlinked", control.device_id)
            return
        self._streams = ()
        self._linked = False
        logger.debug("[DIFF] device=%s Unlinked", control.device_id)

    def process_config_change(
        self,
        control: IDeviceControl,
        changes: Dict[str, str],
        original: Dict[str, str],
    ) -> Tuple[str, bool]:
        logger.debug("[DIFF] device=%s Ignoring config change: %s", control.device_id, changes)
        return "", False

    def process_message(self, control: IDeviceControl, message: Message) -> None:
        logger.debug("[DIFF] device=%s Processing diff for topic %s", control.device_id, message.topic)

        binding = self._binding_for(message.key)
        if binding is None:
            logger.warning(
                "[DIFF] device=%s Dropping message with unknown key %r (topic=%s)",
                control.device_id, message.key, message.topic,
            )
            DIFF_MESSAGES.labels(status="dropped").inc()
            return

        value = parse_value(message.payload)
        if value is None:
            logger.warning(
                "[DIFF] device=%s Failed to convert message (%r) to float",
                control.device_id, message.payload,
            )
            DIFF_MESSAGES.labels(status="malformed").inc()
            return

        if not binding.has_value and not self._first_diff_against_zero:
            binding.last_value = value
            binding.has_value = True
            logger.debug("[DIFF] device=%s baseline=%.10f for %s", control.device_id, value, binding.input_topic)
            DIFF_MESSAGES.labels(status="baseline").inc()
            return

        last_value = binding.last_value
        diff = value - last_value
        binding.last_value = value
        binding.has_value = True

        logger.debug(
            "[DIFF] device=%s lastvalue=%.10f | newvalue=%.10f | diff=%.10f",
            control.device_id, last_value, value, diff,
        )

        control.publish(f"{TRANSDUCER_PREFIX}/{binding.output_topic}", format_diff(diff))
        DIFF_MESSAGES.labels(status="published").inc()

    def _binding_for(self, key) -> Optional[StreamBinding]:
        """Binding para la key de suscripción, None si no es válida."""
        if not self._linked or isinstance(key, bool) or not isinstance(key, int):
            return None
        if 0 <= key < len(self._streams):
            return self._streams[key]
        return None
