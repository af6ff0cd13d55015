"""
NewsBot - Logging Setup
=========================
``get_logger`` hands out stdout loggers that share one line format, so
API, ingestion and refresh output interleave cleanly.

Level by ``settings.ENV``:
  • ``"dev"``  → DEBUG    (ranking decisions, embedding batches)
  • ``"prod"`` → WARNING  (fallbacks, retries, failures)

Pipeline stages tag their lines (``[CHAT]``, ``[SEARCH]``, ``[RANK]``,
``[INGEST]``, ``[REFRESH]``) so a single request can be followed with grep.

Usage:
    from newsbot.src.utils.logger import get_logger
    logger = get_logger(__name__)
    logger.info("[SEARCH] %d hits", len(hits))
"""

import logging
import sys

from newsbot.config.settings import settings

_LEVEL_BY_ENV = {"dev": logging.DEBUG, "prod": logging.WARNING}
_LEVEL = _LEVEL_BY_ENV.get(settings.ENV, logging.INFO)

_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_logger(name: str, level: int | None = None) -> logging.Logger:
    """
    Named stdout logger; configured on first request only.

    Args:
        name:  Module ``__name__``.
        level: Overrides the ``ENV``-derived level.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    effective = _LEVEL if level is None else level
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=_LOG_FORMAT, datefmt=_DATE_FORMAT))
    handler.setLevel(effective)

    logger.setLevel(effective)
    logger.addHandler(handler)
    logger.propagate = False
    return logger
