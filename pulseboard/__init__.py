"""Pulseboard - multi-tenant marketing analytics dashboard backend."""

__version__ = "1.0.0"
