"""
Shared helpers.
"""
import logging
import sys

from app.core import config

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_handler = logging.StreamHandler(sys.stdout)
_handler.setFormatter(logging.Formatter(LOG_FORMAT))


def get_logger(name: str) -> logging.Logger:
    """
    Get a module logger writing to stdout at the configured level.

    Usage:
        log = get_logger(__name__)
        log.info("Granted %s on %s", level, folder_id)
    """
    logger = logging.getLogger(name)
    if _handler not in logger.handlers:
        logger.addHandler(_handler)
        logger.propagate = False
    logger.setLevel(config.LOG_LEVEL)
    return logger
