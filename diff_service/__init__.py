"""Servicio de diferencias de primer orden para streams de transductores."""

__version__ = "1.0"
