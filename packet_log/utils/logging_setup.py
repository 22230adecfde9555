"""Logging helpers for the packet logger and its CLI."""
from __future__ import annotations

import logging
import sys
from typing import Iterable

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str = "INFO", extra_handlers: Iterable[logging.Handler] | None = None) -> None:
    """Configure application logging with standard Python logging."""

    logging_level = getattr(logging, level.upper(), logging.INFO)

    # Diagnostics go to stderr; stdout carries console packet lines
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging_level)
    console_handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))

    handlers = [console_handler]
    if extra_handlers:
        handlers.extend(extra_handlers)

    logging.basicConfig(
        level=logging_level,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=handlers,
        force=True,
    )


__all__ = ["configure_logging", "LOG_FORMAT", "DATE_FORMAT"]
