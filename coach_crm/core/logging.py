from __future__ import annotations

import logging
from logging import Logger

from .config import get_settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Per-request lines from these drown out cache and mutation logs
NOISY_LOGGERS = ("httpx", "httpcore", "aiogram.event", "apscheduler.executors.default")


def configure_logging() -> Logger:
    """
    Configure logging for the bot process and return the `coach_crm` logger.

    The local environment logs cache and mutation activity at DEBUG; other
    environments log INFO. Third-party request logs stay at WARNING either way.
    """

    settings = get_settings()
    level = logging.DEBUG if settings.is_debug else logging.INFO

    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger("coach_crm")
    logger.setLevel(level)
    return logger
