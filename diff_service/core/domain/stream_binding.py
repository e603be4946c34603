"""Bindings entrada → salida de un dispositivo."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

INPUT_TOPICS_KEY = "InputTopics"
OUTPUT_TOPICS_KEY = "OutputTopics"
DIFF_SUFFIX = "_diff"


@dataclass
class StreamBinding:
    """Stream de entrada, su stream de salida y el último valor visto."""
    input_topic: str
    output_topic: str
    last_value: float = 0.0
    has_value: bool = False


def parse_topic_list(raw: Optional[str]) -> List[str]:
    """Lista separada por comas, tolerando espacios.

    " a , b " -> ["a", "b"]; "" -> [].
    """
    if not raw:
        return []
    compact = "".join(raw.split())
    if not compact:
        return []
    return compact.split(",")


def build_stream_bindings(config: Mapping[str, str]) -> Tuple[StreamBinding, ...]:
    """Construye los bindings a partir de la config del dispositivo.

    La salida i-ésima es ``OutputTopics[i]`` si existe y no está vacía,
    si no ``InputTopics[i] + "_diff"``. Las entradas vacías se descartan
    sin desalinear las salidas.
    """
    inputs = parse_topic_list(config.get(INPUT_TOPICS_KEY))
    outputs = parse_topic_list(config.get(OUTPUT_TOPICS_KEY))

    bindings = []
    seen = set()
    for i, input_topic in enumerate(inputs):
        if not input_topic:
            logger.warning("[BINDING] Empty input topic at position %d ignored", i)
            continue
        if input_topic in seen:
            # Una sola suscripción por topic: solo la última key recibe mensajes
            logger.warning("[BINDING] Duplicate input topic %r at position %d", input_topic, i)
        seen.add(input_topic)
        if i < len(outputs) and outputs[i]:
            output_topic = outputs[i]
        else:
            output_topic = input_topic + DIFF_SUFFIX
        bindings.append(StreamBinding(input_topic=input_topic, output_topic=output_topic))

    return tuple(bindings)
