"""Shared logger for the harness — ``from .logger import logger``."""

import logging
import sys

from .config import LOG_LEVEL

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

logger = logging.getLogger("query_harness")

if not logger.handlers:
    _handler = logging.StreamHandler(sys.stderr)
    _handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(_handler)

logger.setLevel(LOG_LEVEL)


def set_level(level: str) -> None:
    """Change the harness log level at runtime (used by the CLI)."""
    logger.setLevel(level.upper())
