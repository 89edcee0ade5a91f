"""Logging configuration for the finance tracker packages.

Library modules only call ``logging.getLogger(__name__)``; entrypoints (the
CLI, the API factory) call :func:`configure_logging` at startup. The stream
handler is attached once; every call applies its level.
"""

from __future__ import annotations

import logging
import sys
from typing import IO, Iterable, Optional, Union

PACKAGE_LOGGERS = ("finance_core", "finance_api", "finance_tracker")
DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"

_handler: Optional[logging.Handler] = None


def _parse_level(level: Union[int, str, None]) -> int:
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        level = level.strip().upper()
        if level.isdigit():
            return int(level)
        numeric = getattr(logging, level, None)
        if isinstance(numeric, int):
            return numeric
    return logging.INFO


def configure_logging(
    level: Union[int, str, None] = None,
    *,
    stream: IO[str] = sys.stderr,
    loggers: Iterable[str] = PACKAGE_LOGGERS,
) -> None:
    """Set the level of each package logger and attach the shared handler."""
    global _handler
    if _handler is None:
        _handler = logging.StreamHandler(stream)
        _handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))

    numeric = _parse_level(level)
    for name in loggers:
        logger = logging.getLogger(name)
        logger.setLevel(numeric)
        if _handler not in logger.handlers:
            logger.addHandler(_handler)
            # Avoid double emission via the root logger.
            logger.propagate = False


for _name in PACKAGE_LOGGERS:
    # Silent until an entrypoint configures handlers.
    logging.getLogger(_name).addHandler(logging.NullHandler())
