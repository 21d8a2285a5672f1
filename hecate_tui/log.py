"""Logging setup. The terminal belongs to the UI, so records go to a file."""

from __future__ import annotations

import logging
from pathlib import Path

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s [%(threadName)s] %(message)s"


def setup_logging(log_file: Path, level: str = "INFO") -> None:
    """Attach a file handler to the hecate_tui logger.

    Safe to call more than once; only the first call adds a handler.
    """
    logger = logging.getLogger("hecate_tui")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    if logger.handlers:
        return

    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file, mode="w", encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False
