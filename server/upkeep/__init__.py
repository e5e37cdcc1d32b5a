"""Maintenance scheduling and reminder engine."""

__version__ = "1.0.0"
