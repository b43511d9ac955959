"""Central logging configuration for the library."""
from __future__ import annotations

import logging
from typing import Optional

_DEFAULT_LEVEL = logging.INFO
_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a module-level logger with default configuration applied."""
    logger = logging.getLogger(name)
    if not logging.getLogger().handlers:
        logging.basicConfig(level=_DEFAULT_LEVEL, format=_FORMAT)
    return logger


def set_debug(enabled: bool) -> None:
    """Switch the package loggers between DEBUG and the default level."""
    level = logging.DEBUG if enabled else _DEFAULT_LEVEL
    for name in ("mdrender", "md_to_pdf"):
        logging.getLogger(name).setLevel(level)
