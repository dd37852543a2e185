"""
Logging for the quiz session engine.

Every module logs through ``setup_logger(__name__)``, so all records sit
under the ``quiz_session`` namespace and reach stdout as one line each.
"""

import logging
import sys
from typing import Optional, Union

from quiz_session.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

Level = Union[int, str]


def resolve_level(level: Optional[Level] = None) -> int:
    """Map a level name or number to a logging level; unknown names become INFO."""
    if level is None:
        level = settings.log_level
    if isinstance(level, int):
        return level
    resolved = getattr(logging, str(level).upper(), None)
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logger(name: str, level: Optional[Level] = None) -> logging.Logger:
    """
    Return the logger for ``name`` with the engine's stdout handler.

    The handler is attached once per logger. Calling again returns the
    same logger, applying ``level`` if one is given.

    Args:
        name: Logger name (usually __name__)
        level: Overrides ``settings.log_level`` for this logger
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(handler)
    elif level is None:
        return logger

    resolved = resolve_level(level)
    logger.setLevel(resolved)
    for handler in logger.handlers:
        handler.setLevel(resolved)
    return logger
