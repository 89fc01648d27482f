"""Logging helpers for the image describer service."""
from __future__ import annotations

import logging
from .config import LOG_LEVEL

LOGGER_NAME = "describer.app"


def build_logger() -> logging.Logger:
    """Initialize and return the shared logger."""
    level = getattr(logging, LOG_LEVEL, logging.INFO)
    if not logging.getLogger().handlers:
        logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    else:
        logging.getLogger().setLevel(level)
    return logging.getLogger(LOGGER_NAME)
