"""Core module - Servicio de diferencias sobre el framework IoT.

Estructura:
- domain/      → Interfaces de dispositivo y bindings de streams
- diff/        → Transformación de diferencia por dispositivo
- framework/   → API REST, eventos de enlace y control de dispositivos
- transport/   → Cliente MQTT
- monitoring/  → Stats y métricas Prometheus
"""
