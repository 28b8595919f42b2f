"""
Durable slot for the notification read-set.

Stored as a JSON list of strings in a single file. Absent, unreadable or
malformed content loads as an empty list; writes replace the whole file.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable

from docgen.domains.errors import ParseFailure
from docgen.utils.config import read_state_path
from docgen.utils.logger import get_logger

logger = get_logger()


def decode_read_ids(raw: str) -> list[str]:
    """
    Decode stored content into a list of identifiers.

    Non-string entries are dropped.

    Raises:
        ParseFailure: If content is not JSON or not a list.
    """
    try:
        data: Any = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        raise ParseFailure(f"Read-state is not valid JSON: {e}") from e
    if not isinstance(data, list):
        raise ParseFailure(f"Read-state must be a list, got {type(data).__name__}")
    return [x for x in data if isinstance(x, str)]


class ReadStateStorage:
    """Key/value slot holding notification identifiers already seen by the user."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = Path(path) if path is not None else read_state_path()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> list[str]:
        p = self._path
        if not p.is_file():
            return []
        try:
            with open(p, "r", encoding="utf-8") as f:
                raw = f.read()
        except OSError as e:
            logger.warning("Read-state read failed for %s: %s", p, e)
            return []
        if not raw.strip():
            return []
        try:
            return decode_read_ids(raw)
        except ParseFailure as e:
            logger.warning("Read-state at %s reset to empty: %s", p, e)
            return []

    def save(self, ids: Iterable[str]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "w", encoding="utf-8") as f:
                json.dump(list(ids), f, ensure_ascii=False)
        except OSError as e:
            logger.warning("Read-state write failed for %s: %s", self._path, e)
