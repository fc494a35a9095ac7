"""Logging helpers: configuration, structured context and timing.

Modules log through ``logging.getLogger(__name__)``; this module only wires
handlers and provides the small utilities used to attach structured fields
to DEBUG traces.
"""
from __future__ import annotations

import logging
import os
import time
import urllib.parse
from typing import Any, Dict, Optional

from ..constants import Constants

_VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def configure_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """Configure the root logger.

    The level comes from ``level`` when given, else ``ROCKLOCK_LOG_LEVEL``,
    else INFO. Calling this twice replaces the handlers installed earlier.
    """
    level_name = (level or os.environ.get(f"{Constants.ENV_PREFIX}LOG_LEVEL") or "INFO").upper()
    if level_name not in _VALID_LEVELS:
        level_name = "INFO"

    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_rocklock", False):
            root.removeHandler(handler)

    stream = logging.StreamHandler()
    stream.setFormatter(logging.Formatter(Constants.LOG_FORMAT))
    stream._rocklock = True  # type: ignore[attr-defined]
    root.addHandler(stream)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
        )
        file_handler._rocklock = True  # type: ignore[attr-defined]
        root.addHandler(file_handler)

    root.setLevel(getattr(logging, level_name))


def extra_context(**fields: Any) -> Dict[str, Any]:
    """Build an ``extra=`` payload, dropping fields whose value is None."""
    return {k: v for k, v in fields.items() if v is not None}


def is_debug_enabled(logger: logging.Logger) -> bool:
    """Return True when DEBUG records would be emitted by ``logger``."""
    return logger.isEnabledFor(logging.DEBUG)


def safe_url(url: str) -> str:
    """Strip userinfo, query and fragment so URLs are safe to log."""
    try:
        parts = urllib.parse.urlsplit(url)
    except ValueError:
        return "<invalid-url>"
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    return urllib.parse.urlunsplit((parts.scheme, host, parts.path, "", ""))


class Timer:
    """Context manager measuring elapsed wall time."""

    def __init__(self) -> None:
        self._start = 0.0
        self._end: Optional[float] = None

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._end = time.perf_counter()

    def duration_ms(self) -> int:
        """Elapsed milliseconds, measured up to now while still running."""
        end = self._end if self._end is not None else time.perf_counter()
        return int((end - self._start) * 1000)
