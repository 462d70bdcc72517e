"""
Project-wide logging setup for vmfleet.

Provides a simple, consistent console logger with optional JSON output.
Controlled via environment variables:
- VMFLEET_LOG_LEVEL: DEBUG|INFO|WARNING|ERROR (default: INFO)
- VMFLEET_LOG_FORMAT: text|json (default: text)
"""
from __future__ import annotations

import logging
import os
import sys
from typing import Optional

from pythonjsonlogger.json import JsonFormatter


def _get_level() -> int:
    level = os.getenv("VMFLEET_LOG_LEVEL", "INFO").upper()
    return getattr(logging, level, logging.INFO)


def setup_logging(
    force: bool = False,
    *,
    level: Optional[int] = None,
    logger: Optional[logging.Logger] = None,
) -> None:
    """Configure root logging for console output on stderr.

    If a handler is already present and force is False, only the level is
    applied. ``level`` overrides VMFLEET_LOG_LEVEL.
    """
    target_logger = logger or logging.getLogger()
    log_level = level if level is not None else _get_level()

    if target_logger.handlers and not force:
        target_logger.setLevel(log_level)
        return

    if force:
        for h in list(target_logger.handlers):
            target_logger.removeHandler(h)

    target_logger.setLevel(log_level)

    # stdout carries the report
    handler = logging.StreamHandler(sys.stderr)

    fmt = os.getenv("VMFLEET_LOG_FORMAT", "text").lower()
    if fmt == "json":
        formatter: logging.Formatter = JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"levelname": "level", "name": "logger"},
        )
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        )

    handler.setFormatter(formatter)
    target_logger.addHandler(handler)

    # httpx logs every request at INFO; the client logs its own summary.
    logging.getLogger("httpx").setLevel(max(log_level, logging.WARNING))
