"""Remvana: travel booking backend."""

__version__ = "0.4.0"
