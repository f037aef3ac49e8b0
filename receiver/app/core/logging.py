"""loguru sink setup for the receiver process."""
from __future__ import annotations

import sys

from loguru import logger

from receiver.app.core import SERVICE_NAME

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "{extra[service_name]} | {extra[event]} | {message}"
)


def configure_logging(level: str = "INFO") -> None:
    """Replace loguru's default stderr sink with a stdout sink carrying event fields."""
    logger.remove()
    logger.configure(extra={"service_name": SERVICE_NAME, "event": "-"})
    logger.add(sys.stdout, level=level.upper(), format=LOG_FORMAT, colorize=None)
