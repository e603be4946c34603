"""Diff layer - Transformación de diferencia de primer orden."""

from .device import DiffDevice, format_diff, parse_value

__all__ = ["DiffDevice", "format_diff", "parse_value"]
