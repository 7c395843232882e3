"""Logging helpers for pipeline runs."""

from __future__ import annotations

import logging
from typing import Optional, Union

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s - %(message)s"

_configured_level: Optional[int] = None


def configure_logging(level: Union[int, str] = logging.INFO) -> None:
    """Configure the root logger once; later calls only adjust the level."""
    global _configured_level
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    if _configured_level is None:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    else:
        logging.getLogger().setLevel(level)
    _configured_level = level


def get_logger(name: Optional[str] = None) -> logging.Logger:
    if _configured_level is None:
        configure_logging()
    return logging.getLogger(name)
