"""Durable client-side storage."""

from docgen.infrastructure.storage.read_state import ReadStateStorage

__all__ = ["ReadStateStorage"]
