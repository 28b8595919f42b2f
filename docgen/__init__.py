"""Docgen console: optimistic collection stores plus notification and search aggregation."""

__version__ = "0.1.0"
