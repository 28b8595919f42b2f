"""Logging setup for the docgen console."""

import logging
import sys
from pathlib import Path
from typing import Iterable, Optional

# Chatty libraries below the sync layer; their DEBUG lines drown ours.
NOISY_LOGGERS = ("urllib3", "watchdog")


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logger(
    name: str = "docgen",
    level: int | str = logging.INFO,
    log_file: Optional[Path] = None,
    quiet: Iterable[str] = NOISY_LOGGERS,
) -> logging.Logger:
    """
    Configure and return the application logger.

    Args:
        name: Logger name.
        level: Logging level, as an int or a level name such as "DEBUG".
            Unknown names fall back to INFO.
        log_file: Optional path to log file. If None, logs to stderr only.
        quiet: Third-party loggers capped at WARNING.

    Returns:
        Configured logger. Calling again only updates the level.
    """
    log = logging.getLogger(name)
    log.setLevel(_resolve_level(level))
    for other in quiet:
        logging.getLogger(other).setLevel(logging.WARNING)
    if log.handlers:
        return log

    fmt = logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    h = logging.StreamHandler(sys.stderr)
    h.setFormatter(fmt)
    log.addHandler(h)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setFormatter(fmt)
        log.addHandler(fh)

    return log


def get_logger(name: str = "docgen") -> logging.Logger:
    """Return the application logger. Use after setup_logger has been called."""
    return logging.getLogger(name)
