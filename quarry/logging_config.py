"""
Logging setup for Quarry.

Library modules only create loggers with ``logging.getLogger(__name__)``;
applications call ``configure_logging()`` once at their entry point.

Usage:
    from quarry.logging_config import configure_logging

    configure_logging(level="DEBUG")  # shows every storage fetch
"""

import logging
from typing import Optional

from quarry.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

_handler: Optional[logging.Handler] = None


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Attach a text handler to the ``quarry`` logger.

    Args:
        level: Level name; defaults to ``settings.log_level``

    Returns:
        The configured ``quarry`` logger
    """
    global _handler

    logger = logging.getLogger("quarry")
    logger.setLevel((level or settings.log_level).upper())

    # Calling twice must not duplicate output
    if _handler is None:
        _handler = logging.StreamHandler()
        _handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(_handler)

    return logger
