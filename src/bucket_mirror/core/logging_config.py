"""Logging setup for bucket mirror.

Every component logs through a child of the ``bucket-mirror`` logger, and
only that root logger carries a handler. Configuring the root once (from the
CLI or on first use) covers the engine, the jobs and the worker threads.
"""

import os
import sys
import logging
from typing import Optional

ROOT_LOGGER_NAME = "bucket-mirror"
THIRD_PARTY_LOGGERS = ("boto3", "botocore", "s3transfer", "urllib3")

STRUCTURED_FORMAT = "%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s | %(message)s"
SIMPLE_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _resolve_level(level: Optional[str]) -> int:
    name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logger(
    name: str = ROOT_LOGGER_NAME,
    level: Optional[str] = None,
    format_type: str = "structured",
) -> logging.Logger:
    """
    Attach a stdout handler to ``name`` and set its level.

    Args:
        name: Logger to configure (defaults to the mirror's root logger)
        level: Level name; falls back to ``LOG_LEVEL``, then INFO
        format_type: "structured" (names the worker thread) or "simple";
            ``LOG_FORMAT`` overrides it

    Returns:
        The configured logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(_resolve_level(level))

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        if os.getenv("LOG_FORMAT", format_type).lower() == "structured":
            handler.setFormatter(logging.Formatter(STRUCTURED_FORMAT, datefmt=DATE_FORMAT))
        else:
            handler.setFormatter(logging.Formatter(SIMPLE_FORMAT))
        logger.addHandler(handler)

    logger.propagate = False
    return logger


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """
    Return the logger for one component of the mirror.

    Names outside the ``bucket-mirror`` hierarchy are placed under it, so
    ``get_logger("engine")`` and ``get_logger("bucket-mirror.engine")`` are
    the same logger. The root is configured on first use.
    """
    root = logging.getLogger(ROOT_LOGGER_NAME)
    if not root.handlers:
        setup_logger()
    if name == ROOT_LOGGER_NAME:
        return root
    if not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def quiet_third_party_loggers(level: int = logging.WARNING) -> None:
    """Keep boto3/botocore request chatter out of the mirror log."""
    for name in THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(level)


def configure_logging(verbose: bool = False, level: Optional[str] = None) -> logging.Logger:
    """Configure the root logger for one CLI run; ``verbose`` means DEBUG."""
    logger = setup_logger(level=level or ("DEBUG" if verbose else None))
    quiet_third_party_loggers()
    return logger
