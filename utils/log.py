"""
Logging helpers shared by the engine.

Loggers are plain :mod:`logging` loggers. Structured context is passed through
``extra`` and rendered as logfmt-style ``key=value`` pairs after the message so
check runs, retries and reconnects can be grepped and parsed.
"""

from __future__ import annotations

import logging
import os
import sys
import threading
from typing import Any, Iterable, Optional, Tuple, Union

DEFAULT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_ENV_LEVEL = "QUERYWATCH_LOG_LEVEL"

_RESERVED_ATTRS = set(logging.LogRecord("", 0, "", 0, "", None, None).__dict__) | {"message", "asctime"}
_configured = False
_lock = threading.Lock()


def _resolve_level(level: Optional[Union[int, str]]) -> int:
    if isinstance(level, int):
        return level
    candidate = (level or os.getenv(_ENV_LEVEL) or "INFO").upper()
    resolved = logging.getLevelName(candidate)
    return resolved if isinstance(resolved, int) else logging.INFO


def _format_value(value: Any) -> str:
    text = str(value)
    if text == "" or any(ch in text for ch in (" ", "=", '"')):
        return '"' + text.replace('"', '\\"') + '"'
    return text


def _iter_extras(record: logging.LogRecord) -> Iterable[Tuple[str, Any]]:
    for key, value in record.__dict__.items():
        if key in _RESERVED_ATTRS or key.startswith("_"):
            continue
        yield key, value


class LogfmtFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__(DEFAULT_FORMAT, datefmt=DEFAULT_DATE_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        extras = " ".join(f"{key}={_format_value(value)}" for key, value in _iter_extras(record))
        if extras:
            return f"{base} | {extras}"
        return base


def configure_logging(level: Optional[Union[int, str]] = None, *, force: bool = False) -> None:
    global _configured
    with _lock:
        if _configured and not force:
            return
        handler = logging.StreamHandler(stream=sys.stderr)
        handler.setFormatter(LogfmtFormatter())
        root = logging.getLogger()
        if force:
            for existing in root.handlers[:]:
                root.removeHandler(existing)
        if force or not root.handlers:
            root.addHandler(handler)
        root.setLevel(_resolve_level(level))
        _configured = True


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)
