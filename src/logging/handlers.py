# src/logging/handlers.py — v3
"""Diagnostic log file for the CLI.

The diagnostic log is separate from the operation ledger; rotating it never
touches ledger history. The file is opened lazily so commands that log
nothing (``validate-batch`` on a clean job) leave no empty file behind.
"""

from __future__ import annotations

import logging
import re
from logging.handlers import RotatingFileHandler
from pathlib import Path

_UNITS = {"": 1, "B": 1, "K": 1024, "KB": 1024, "M": 1024**2, "MB": 1024**2,
          "G": 1024**3, "GB": 1024**3}
_SIZE_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*([KMG]?B?)$", re.IGNORECASE)


def parse_size(size_str: str) -> int:
    """Bytes for '10MB', '1.5M', '512KB' or a bare byte count.

    Raises:
        ValueError: On anything else, or a size below one byte.
    """
    match = _SIZE_RE.match(size_str.strip())
    if not match:
        raise ValueError(f"Invalid size format: {size_str!r}. Use e.g. '10MB'.")
    size = int(float(match.group(1)) * _UNITS[match.group(2).upper()])
    if size < 1:
        raise ValueError(f"Invalid size format: {size_str!r}. Must be at least 1 byte.")
    return size


def create_diagnostic_handler(
    log_file: str | Path,
    formatter: logging.Formatter,
    rotation: str = "10MB",
    retention: int = 5,
) -> RotatingFileHandler:
    """Size-rotated handler writing ``formatter`` output to ``log_file``."""
    path = Path(log_file).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)

    handler = RotatingFileHandler(
        filename=str(path),
        maxBytes=parse_size(rotation),
        backupCount=retention,
        encoding="utf-8",
        delay=True,
    )
    handler.setFormatter(formatter)
    return handler
