"""Shared logger factory."""
from __future__ import annotations

import logging
import os


def get_logger(name: str) -> logging.Logger:
    """Return a module logger with the service's handler and level applied."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
        logger.addHandler(handler)
    level = os.getenv("LOCALVIA_LOG_LEVEL", "INFO").upper()
    logger.setLevel(getattr(logging, level, logging.INFO))
    logger.propagate = False
    return logger
